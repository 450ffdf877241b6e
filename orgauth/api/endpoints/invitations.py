"""
Invitation Endpoints

The invitee's side of an invitation. Looking one up is public so the
invite page can show who is inviting them where; accepting needs a
signed-in account with the invited email address.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgauth.api.deps import get_current_identity, raise_for_failure
from orgauth.core.context import RequestIdentity
from orgauth.database import get_db
from orgauth.schemas.organization import (
    InvitationAcceptResponse,
    InvitationPreviewResponse,
    InvitationTokenRequest,
)
from orgauth.services import invitations

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.post("/lookup", response_model=InvitationPreviewResponse)
def lookup_invitation(
    request_body: InvitationTokenRequest,
    db: Session = Depends(get_db),
):
    """Token in the body, not the URL, so it stays out of access logs."""
    result = invitations.get_invitation_by_token(db, request_body.token)
    raise_for_failure(result)
    return InvitationPreviewResponse.model_validate(result.value)


@router.post("/accept", response_model=InvitationAcceptResponse)
def accept_invitation(
    request_body: InvitationTokenRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Join the organization and make it the session's current one."""
    result = invitations.accept_invitation(db, identity.user, identity.session.id, request_body.token)
    raise_for_failure(result)
    return InvitationAcceptResponse.model_validate(result.value)
