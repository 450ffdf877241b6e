"""
Organization Management

Create, rename and delete organizations, and manage their members.

Callers pass an OrgContext that has already been through the authorization
engine (api.deps.require_org_context / require_exact_roles). The checks left
here are the member-on-member rules the role hierarchy alone cannot express:

- The owner's membership can't be re-roled or removed
- Only owners promote members to admin
- Admins can't remove other admins
- Nobody removes themselves (leave_organization exists for that)
- Owners can't leave; they transfer ownership first
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgauth.core.context import OrgContext
from orgauth.core.permissions import ROLE_HIERARCHY
from orgauth.models.organization import Membership, MemberRole, Organization
from orgauth.models.session import AuthSession
from orgauth.models.user import User
from orgauth.services import sessions as session_store
from orgauth.services.accounts import slugify
from orgauth.services.results import ServiceError, ServiceResult, fail, ok
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)

SLUG_BASE_MAX_LENGTH = 90


@dataclass(frozen=True)
class MemberView:
    id: str
    user_id: str
    email: str
    full_name: Optional[str]
    role: MemberRole
    joined_at: datetime


@dataclass(frozen=True)
class OrganizationDetails:
    organization: Organization
    member_count: int
    role: Optional[MemberRole]


def _slug_taken(db: Session, slug: str, exclude_id: Optional[str] = None) -> bool:
    query = select(Organization.id).where(Organization.slug == slug)
    if exclude_id:
        query = query.where(Organization.id != exclude_id)
    return db.execute(query).first() is not None


def generate_unique_slug(db: Session, base: str) -> str:
    """base, or base-1, base-2... whichever is free first."""
    # Leave room for the suffix inside the 100-character column
    base = slugify(base)[:SLUG_BASE_MAX_LENGTH].rstrip("-") or "org"
    slug = base
    counter = 1
    while _slug_taken(db, slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _member_in_org(db: Session, organization_id: str, member_id: str) -> Optional[Membership]:
    membership = db.get(Membership, member_id)
    if membership is None or membership.organization_id != organization_id:
        return None
    return membership


def create_organization(
    db: Session,
    user_id: str,
    session_id: str,
    name: str,
    slug: Optional[str] = None,
) -> ServiceResult:
    """
    Create an organization owned by the caller and switch their session to it.
    """
    final_slug = generate_unique_slug(db, slug or name)

    try:
        organization = Organization(name=name, slug=final_slug)
        db.add(organization)
        db.flush()
        db.add(Membership(user_id=user_id, organization_id=organization.id, role=MemberRole.OWNER))
        db.commit()
    except IntegrityError:
        # Slug claimed between the check and the insert
        db.rollback()
        return fail(ServiceError.CONFLICT, "Organization slug is already taken")

    session_store.switch_organization(db, session_id, organization.id)

    logger.info(f"Organization created: {organization.id}", extra={"user_id": user_id})
    return ok(organization)


def get_organization_details(db: Session, context: OrgContext) -> ServiceResult:
    organization = db.get(Organization, context.organization_id)
    if organization is None:
        return fail(ServiceError.NOT_FOUND, "Organization")

    member_count = db.execute(
        select(func.count(Membership.id)).where(Membership.organization_id == organization.id)
    ).scalar_one()

    return ok(OrganizationDetails(organization=organization, member_count=member_count, role=context.role))


def update_organization(
    db: Session,
    context: OrgContext,
    name: Optional[str] = None,
    slug: Optional[str] = None,
) -> ServiceResult:
    """Rename and/or re-slug the current organization. Requires admin."""
    organization = db.get(Organization, context.organization_id)
    if organization is None:
        return fail(ServiceError.NOT_FOUND, "Organization")

    if slug is not None:
        slug = slugify(slug)
        if not slug:
            return fail(ServiceError.INVALID_INPUT, "Slug must contain letters or digits")
        if _slug_taken(db, slug, exclude_id=organization.id):
            return fail(ServiceError.CONFLICT, "Organization slug is already taken")
        organization.slug = slug

    if name is not None:
        organization.name = name

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return fail(ServiceError.CONFLICT, "Organization slug is already taken")

    return ok(organization)


def delete_organization(db: Session, context: OrgContext) -> ServiceResult:
    """
    Delete the current organization. Owner only.

    Memberships cascade; every session pointing here (the caller's included)
    falls back to no organization.
    """
    organization = db.get(Organization, context.organization_id)
    if organization is None:
        return fail(ServiceError.NOT_FOUND, "Organization")

    db.execute(
        update(AuthSession)
        .where(AuthSession.current_org_id == organization.id)
        .values(current_org_id=None)
    )
    db.delete(organization)
    db.commit()

    logger.info(f"Organization deleted: {context.organization_id}", extra={"user_id": context.user.id})
    return ok()


def list_members(db: Session, organization_id: str) -> List[MemberView]:
    """Members with their user info, highest role first, then by join date."""
    rows = db.execute(
        select(
            Membership.id,
            Membership.user_id,
            Membership.role,
            Membership.created_at,
            User.email,
            User.full_name,
        )
        .join(User, User.id == Membership.user_id)
        .where(Membership.organization_id == organization_id)
        .order_by(Membership.created_at)
    ).all()

    members = [
        MemberView(
            id=row.id,
            user_id=row.user_id,
            email=row.email,
            full_name=row.full_name,
            role=row.role,
            joined_at=row.created_at,
        )
        for row in rows
    ]
    # Stable sort keeps join order inside each role
    members.sort(key=lambda member: ROLE_HIERARCHY[member.role], reverse=True)
    return members


def update_member_role(db: Session, context: OrgContext, member_id: str, role: MemberRole) -> ServiceResult:
    """
    Change a member's role to admin or member. Requires admin.

    Ownership only moves through transfer_ownership().
    """
    if role == MemberRole.OWNER:
        return fail(ServiceError.INVALID_INPUT, "Use ownership transfer to assign the owner role")

    membership = _member_in_org(db, context.organization_id, member_id)
    if membership is None:
        return fail(ServiceError.NOT_FOUND, "Member")

    if membership.role == MemberRole.OWNER:
        return fail(ServiceError.FORBIDDEN, "The owner's role cannot be changed")

    if role == MemberRole.ADMIN and context.role == MemberRole.ADMIN and membership.role != MemberRole.ADMIN:
        return fail(ServiceError.FORBIDDEN, "Only owners can promote members to admin")

    membership.role = role
    db.commit()

    logger.info(
        f"Member {membership.user_id} role set to {role.value}",
        extra={"user_id": context.user.id, "organization_id": context.organization_id}
    )
    return ok(membership)


def remove_member(db: Session, context: OrgContext, member_id: str) -> ServiceResult:
    """Remove a member from the current organization. Requires admin."""
    membership = _member_in_org(db, context.organization_id, member_id)
    if membership is None:
        return fail(ServiceError.NOT_FOUND, "Member")

    if membership.role == MemberRole.OWNER:
        return fail(ServiceError.FORBIDDEN, "The owner cannot be removed")

    if membership.user_id == context.user.id:
        return fail(ServiceError.FORBIDDEN, "Use leave to remove yourself")

    if context.role == MemberRole.ADMIN and membership.role == MemberRole.ADMIN:
        return fail(ServiceError.FORBIDDEN, "Admins cannot remove other admins")

    removed_user_id = membership.user_id
    db.delete(membership)
    # Their sessions must not keep pointing at an organization they left
    db.execute(
        update(AuthSession)
        .where(
            AuthSession.user_id == removed_user_id,
            AuthSession.current_org_id == context.organization_id,
        )
        .values(current_org_id=None)
    )
    db.commit()

    logger.info(
        f"Member {removed_user_id} removed",
        extra={"user_id": context.user.id, "organization_id": context.organization_id}
    )
    return ok()


def leave_organization(db: Session, context: OrgContext) -> ServiceResult:
    """The caller leaves the current organization."""
    if context.membership is None:
        return fail(ServiceError.NOT_FOUND, "Membership")

    if context.membership.role == MemberRole.OWNER:
        return fail(ServiceError.FORBIDDEN, "Owners must transfer ownership before leaving")

    membership = db.get(Membership, context.membership.id)
    if membership is None:
        return fail(ServiceError.NOT_FOUND, "Membership")

    db.delete(membership)
    db.execute(
        update(AuthSession)
        .where(
            AuthSession.user_id == context.user.id,
            AuthSession.current_org_id == context.organization_id,
        )
        .values(current_org_id=None)
    )
    db.commit()

    logger.info("Left organization", extra={"user_id": context.user.id, "organization_id": context.organization_id})
    return ok()


def transfer_ownership(db: Session, context: OrgContext, member_id: str) -> ServiceResult:
    """
    Make another member the owner. The previous owner becomes an admin.

    Owner only (platform admins pass via the authorization bypass).
    """
    target = _member_in_org(db, context.organization_id, member_id)
    if target is None:
        return fail(ServiceError.NOT_FOUND, "Member")

    if target.role == MemberRole.OWNER:
        return fail(ServiceError.INVALID_INPUT, "Member is already the owner")

    db.execute(
        update(Membership)
        .where(
            Membership.organization_id == context.organization_id,
            Membership.role == MemberRole.OWNER,
        )
        .values(role=MemberRole.ADMIN)
    )
    target.role = MemberRole.OWNER
    db.commit()

    logger.info(
        f"Ownership transferred to {target.user_id}",
        extra={"user_id": context.user.id, "organization_id": context.organization_id}
    )
    return ok(target)
