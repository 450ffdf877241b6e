"""
Organization Invitations

Admins and owners invite people by email with a role. The invitee opens
the emailed link, signs in (or signs up) with that same address and
accepts, which creates the membership and switches their session to the
organization.

Lifecycle: pending -> (accepted | expired | cancelled). A pending
invitation is one with accepted_at NULL and expires_at in the future.

- The emailed secret is 32 random bytes, hex-encoded; only its SHA-256
  digest is stored.
- Acceptance claims the row with a conditional UPDATE (accepted_at IS NULL)
  in the same transaction as the membership insert, so one token yields at
  most one membership.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import secrets
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgauth.config import get_settings
from orgauth.core.context import OrgContext
from orgauth.core.security import normalize_email
from orgauth.database import utcnow
from orgauth.models.invitation import Invitation
from orgauth.models.organization import Membership, MemberRole, Organization
from orgauth.models.user import User
from orgauth.services import sessions as session_store
from orgauth.services.results import ServiceError, ServiceResult, fail, ok
from orgauth.services.sessions import UserIdentity
from orgauth.utils.logging import get_logger, redact_email

logger = get_logger(__name__)
settings = get_settings()

TOKEN_BYTES = 32
INVITATION_VALIDITY = timedelta(days=settings.INVITATION_TTL_DAYS)

# Unknown, expired and used tokens look the same to the caller
INVALID_INVITATION = "Invitation"


@dataclass(frozen=True)
class IssuedInvitation:
    """token is the plaintext secret; it exists only here and in the email."""
    invitation: Invitation
    token: str
    organization_name: str


@dataclass(frozen=True)
class InvitationView:
    id: str
    email: str
    role: MemberRole
    invited_by: str
    expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class InvitationPreview:
    email: str
    organization_name: str
    role: MemberRole
    invited_by: str
    expires_at: datetime


@dataclass(frozen=True)
class AcceptedInvitation:
    organization_id: str
    organization_name: str
    role: MemberRole


def generate_invitation_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_invitation_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _is_pending(now: datetime):
    return Invitation.accepted_at.is_(None), Invitation.expires_at > now


def _find_pending(db: Session, token: str) -> Optional[Invitation]:
    return db.execute(
        select(Invitation)
        .where(Invitation.token_hash == hash_invitation_token(token), *_is_pending(utcnow()))
    ).scalar_one_or_none()


def _is_member(db: Session, organization_id: str, user_id: str) -> bool:
    return db.execute(
        select(Membership.id).where(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
        )
    ).first() is not None


def invite_member(
    db: Session,
    context: OrgContext,
    email: str,
    role: MemberRole = MemberRole.MEMBER,
) -> ServiceResult:
    """
    Invite an email address into the current organization. Requires admin.

    Only owners (and platform admins) may invite admins. Fails with conflict
    if the address already belongs to a member or has a pending invitation.
    """
    email = normalize_email(email)

    if role == MemberRole.OWNER:
        return fail(ServiceError.INVALID_INPUT, "Use ownership transfer to assign the owner role")

    if context.role == MemberRole.ADMIN and role == MemberRole.ADMIN:
        return fail(ServiceError.FORBIDDEN, "Only owners can invite admins")

    existing_member = db.execute(
        select(Membership.id)
        .join(User, User.id == Membership.user_id)
        .where(Membership.organization_id == context.organization_id, User.email == email)
    ).first()
    if existing_member is not None:
        return fail(ServiceError.CONFLICT, "This user is already a member of the organization")

    now = utcnow()
    pending = db.execute(
        select(Invitation.id).where(
            Invitation.organization_id == context.organization_id,
            Invitation.email == email,
            *_is_pending(now),
        )
    ).first()
    if pending is not None:
        return fail(ServiceError.CONFLICT, "An invitation has already been sent to this email")

    # Expired or accepted leftovers would collide with the (org, email) constraint
    db.execute(
        delete(Invitation).where(
            Invitation.organization_id == context.organization_id,
            Invitation.email == email,
        )
    )

    token = generate_invitation_token()
    invitation = Invitation(
        organization_id=context.organization_id,
        email=email,
        role=role,
        token_hash=hash_invitation_token(token),
        invited_by_id=context.user.id,
        expires_at=now + INVITATION_VALIDITY,
    )
    db.add(invitation)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent invite for the same address won
        db.rollback()
        return fail(ServiceError.CONFLICT, "An invitation has already been sent to this email")

    organization = db.get(Organization, context.organization_id)
    logger.info(
        f"Invitation issued for {redact_email(email)} as {role.value}",
        extra={"user_id": context.user.id, "organization_id": context.organization_id}
    )
    return ok(IssuedInvitation(invitation=invitation, token=token, organization_name=organization.name))


def list_invitations(db: Session, organization_id: str) -> List[InvitationView]:
    """Pending invitations of an organization, newest first."""
    rows = db.execute(
        select(Invitation, User.email.label("invited_by"))
        .join(User, User.id == Invitation.invited_by_id)
        .where(Invitation.organization_id == organization_id, *_is_pending(utcnow()))
        .order_by(Invitation.created_at.desc())
    ).all()

    return [
        InvitationView(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            invited_by=invited_by,
            expires_at=invitation.expires_at,
            created_at=invitation.created_at,
        )
        for invitation, invited_by in rows
    ]


def cancel_invitation(db: Session, context: OrgContext, invitation_id: str) -> ServiceResult:
    """Withdraw an invitation of the current organization. Requires admin."""
    invitation = db.get(Invitation, invitation_id)
    if invitation is None or invitation.organization_id != context.organization_id:
        return fail(ServiceError.NOT_FOUND, INVALID_INVITATION)

    if invitation.accepted_at is not None:
        return fail(ServiceError.INVALID_INPUT, "This invitation has already been accepted")

    db.delete(invitation)
    db.commit()
    return ok()


def get_invitation_by_token(db: Session, token: str) -> ServiceResult:
    """Details shown on the invite page before accepting. Does not consume."""
    invitation = _find_pending(db, token)
    if invitation is None:
        return fail(ServiceError.NOT_FOUND, INVALID_INVITATION)

    return ok(InvitationPreview(
        email=invitation.email,
        organization_name=invitation.organization.name,
        role=invitation.role,
        invited_by=invitation.invited_by.email,
        expires_at=invitation.expires_at,
    ))


def accept_invitation(db: Session, user: UserIdentity, session_id: str, token: str) -> ServiceResult:
    """
    Join the organization as the signed-in user.

    The invitation must be addressed to this user's email. An existing
    member consumes the invitation and gets a conflict.
    """
    invitation = _find_pending(db, token)
    if invitation is None:
        return fail(ServiceError.NOT_FOUND, INVALID_INVITATION)

    if invitation.email != normalize_email(user.email):
        return fail(ServiceError.FORBIDDEN, "This invitation was sent to a different email address")

    organization_id = invitation.organization_id
    claimed = db.execute(
        update(Invitation)
        .where(Invitation.id == invitation.id, Invitation.accepted_at.is_(None))
        .values(accepted_at=utcnow())
    ).rowcount
    if claimed != 1:
        db.rollback()
        return fail(ServiceError.NOT_FOUND, INVALID_INVITATION)

    if _is_member(db, organization_id, user.id):
        db.commit()
        return fail(ServiceError.CONFLICT, "You are already a member of this organization")

    db.add(Membership(user_id=user.id, organization_id=organization_id, role=invitation.role))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return fail(ServiceError.CONFLICT, "You are already a member of this organization")

    session_store.switch_organization(db, session_id, organization_id)

    organization = db.get(Organization, organization_id)
    logger.info(
        f"Invitation accepted as {invitation.role.value}",
        extra={"user_id": user.id, "organization_id": organization_id}
    )
    return ok(AcceptedInvitation(
        organization_id=organization_id,
        organization_name=organization.name,
        role=invitation.role,
    ))


def cleanup_expired_invitations(db: Session) -> int:
    """Delete invitations past expiry, accepted or not."""
    result = db.execute(delete(Invitation).where(Invitation.expires_at < utcnow()))
    db.commit()
    if result.rowcount:
        logger.info(f"Removed {result.rowcount} expired invitations")
    return result.rowcount
