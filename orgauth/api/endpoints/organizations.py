"""
Organization Endpoints

Operations on the organization selected in the current session
("/organizations/current"), plus creating new ones.

RBAC:
- View organization / list members: member
- Update organization, change roles, remove members: admin
- Delete organization, transfer ownership: owner only
- Leave: member (owners must transfer first)
- Invite, list and cancel invitations: admin (only owners invite admins)

Platform admins pass every check through the authorization bypass.
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from orgauth.api.deps import (
    get_current_identity,
    get_mailer,
    raise_for_failure,
    require_exact_roles,
    require_org_context,
)
from orgauth.core.context import OrgContext, RequestIdentity
from orgauth.database import get_db
from orgauth.models.organization import MemberRole
from orgauth.schemas.auth import SuccessResponse
from orgauth.schemas.organization import (
    InvitationCreate,
    InvitationResponse,
    MemberResponse,
    MemberRoleUpdate,
    OrganizationCreate,
    OrganizationDetailResponse,
    OrganizationResponse,
    OrganizationUpdate,
    TransferOwnershipRequest,
)
from orgauth.services import invitations, organizations
from orgauth.services.mailer import Mailer

router = APIRouter(prefix="/organizations", tags=["organizations"])

# Owner-only actions name their role set explicitly
require_owner = require_exact_roles([MemberRole.OWNER])


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def create_organization(
    org_data: OrganizationCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Create an organization owned by the caller and switch the session to it."""
    result = organizations.create_organization(
        db, identity.user.id, identity.session.id, org_data.name, org_data.slug
    )
    raise_for_failure(result)
    return result.value


@router.get("/current", response_model=OrganizationDetailResponse)
def get_current_organization(
    ctx: OrgContext = Depends(require_org_context()),
    db: Session = Depends(get_db),
):
    result = organizations.get_organization_details(db, ctx)
    raise_for_failure(result)

    details = result.value
    return OrganizationDetailResponse(
        id=details.organization.id,
        name=details.organization.name,
        slug=details.organization.slug,
        created_at=details.organization.created_at,
        updated_at=details.organization.updated_at,
        member_count=details.member_count,
        role=details.role,
    )


@router.patch("/current", response_model=OrganizationResponse)
def update_current_organization(
    org_data: OrganizationUpdate,
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
):
    result = organizations.update_organization(db, ctx, name=org_data.name, slug=org_data.slug)
    raise_for_failure(result)
    return result.value


@router.delete("/current", response_model=SuccessResponse)
def delete_current_organization(
    ctx: OrgContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    """
    Delete the organization and all memberships in it.

    WARNING: irreversible. Sessions pointing here fall back to no organization.
    """
    result = organizations.delete_organization(db, ctx)
    raise_for_failure(result)
    return SuccessResponse()


@router.get("/current/members", response_model=List[MemberResponse])
def list_members(
    ctx: OrgContext = Depends(require_org_context()),
    db: Session = Depends(get_db),
):
    return [MemberResponse.model_validate(member) for member in organizations.list_members(db, ctx.organization_id)]


@router.patch("/current/members/{member_id}", response_model=MemberResponse)
def update_member_role(
    member_id: str,
    role_data: MemberRoleUpdate,
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
):
    result = organizations.update_member_role(db, ctx, member_id, role_data.role)
    raise_for_failure(result)

    membership = result.value
    return MemberResponse(
        id=membership.id,
        user_id=membership.user_id,
        email=membership.user.email,
        full_name=membership.user.full_name,
        role=membership.role,
        joined_at=membership.created_at,
    )


@router.delete("/current/members/{member_id}", response_model=SuccessResponse)
def remove_member(
    member_id: str,
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
):
    result = organizations.remove_member(db, ctx, member_id)
    raise_for_failure(result)
    return SuccessResponse()


@router.post("/current/leave", response_model=SuccessResponse)
def leave_organization(
    ctx: OrgContext = Depends(require_org_context()),
    db: Session = Depends(get_db),
):
    result = organizations.leave_organization(db, ctx)
    raise_for_failure(result)
    return SuccessResponse()


@router.post("/current/transfer", response_model=SuccessResponse)
def transfer_ownership(
    request_body: TransferOwnershipRequest,
    ctx: OrgContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    """Hand the owner role to another member. The current owner becomes an admin."""
    result = organizations.transfer_ownership(db, ctx, request_body.member_id)
    raise_for_failure(result)
    return SuccessResponse()


@router.post(
    "/current/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
def invite_member(
    invitation_data: InvitationCreate,
    background_tasks: BackgroundTasks,
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Invite an email address into the organization.

    The token goes to the mailer only; the response never carries it.
    """
    result = invitations.invite_member(db, ctx, invitation_data.email, invitation_data.role)
    raise_for_failure(result)

    issued = result.value
    background_tasks.add_task(
        mailer.send_invitation,
        issued.invitation.email,
        issued.organization_name,
        ctx.user.email,
        issued.token,
        issued.invitation.expires_at,
    )
    return InvitationResponse(
        id=issued.invitation.id,
        email=issued.invitation.email,
        role=issued.invitation.role,
        invited_by=ctx.user.email,
        expires_at=issued.invitation.expires_at,
        created_at=issued.invitation.created_at,
    )


@router.get("/current/invitations", response_model=List[InvitationResponse])
def list_invitations(
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
):
    return [
        InvitationResponse.model_validate(invitation)
        for invitation in invitations.list_invitations(db, ctx.organization_id)
    ]


@router.delete("/current/invitations/{invitation_id}", response_model=SuccessResponse)
def cancel_invitation(
    invitation_id: str,
    ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN)),
    db: Session = Depends(get_db),
):
    result = invitations.cancel_invitation(db, ctx, invitation_id)
    raise_for_failure(result)
    return SuccessResponse()
