"""
Account Service

Sign-up, sign-in, sign-out, organization switching and the self-service
account operations (profile, password change, deletion).

Every function takes the database session explicitly and returns a
ServiceResult (or a plain value); nothing here raises for an expected
outcome.
"""
from dataclasses import dataclass
import re
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgauth.core.permissions import (
    OrganizationSummary,
    authorize_minimum_role,
    get_user_organizations,
)
from orgauth.core.security import (
    get_password_hash,
    normalize_email,
    pwd_context,
    verify_password,
)
from orgauth.models.organization import Membership, MemberRole, Organization
from orgauth.models.session import AuthSession
from orgauth.models.user import User
from orgauth.services import sessions as session_store
from orgauth.services.password_reset import invalidate_user_reset_tokens
from orgauth.services.results import ServiceError, ServiceResult, fail, ok
from orgauth.services.sessions import UserIdentity
from orgauth.utils.logging import get_logger, log_security_event, redact_email

logger = get_logger(__name__)

DUPLICATE_EMAIL_MESSAGE = "An account with this email already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


@dataclass(frozen=True)
class SignUpOutcome:
    user: User
    organization: Organization
    session: AuthSession


@dataclass(frozen=True)
class SignInOutcome:
    user: User
    session: AuthSession
    organizations: List[OrganizationSummary]


def slugify(value: str) -> str:
    """Lowercase, with every run of non-alphanumerics collapsed to one dash."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def sign_up(db: Session, email: str, password: str, full_name: Optional[str] = None) -> ServiceResult:
    """
    Create an account with a personal organization and a session inside it.

    User, organization, owner membership and session are written in one
    transaction: either the caller gets all four or nothing exists.
    """
    normalized = normalize_email(email)
    existing = db.execute(select(User.id).where(User.email == normalized)).first()
    if existing:
        return fail(ServiceError.CONFLICT, DUPLICATE_EMAIL_MESSAGE)

    password_hash = get_password_hash(password)

    try:
        user = User(email=normalized, hashed_password=password_hash, full_name=full_name)
        db.add(user)
        db.flush()

        prefix = normalized.split("@")[0]
        organization = Organization(
            name=f"{prefix}'s Organization",
            slug=f"{slugify(prefix) or 'org'}-{user.id[-8:]}",
        )
        db.add(organization)
        db.flush()

        db.add(Membership(user_id=user.id, organization_id=organization.id, role=MemberRole.OWNER))
        session = session_store.create_session(db, user.id, organization.id, commit=False)
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same email
        db.rollback()
        return fail(ServiceError.CONFLICT, DUPLICATE_EMAIL_MESSAGE)

    logger.info(f"New user signed up: {user.id} with organization {organization.id}")
    return ok(SignUpOutcome(user=user, organization=organization, session=session))


def sign_in(db: Session, email: str, password: str) -> ServiceResult:
    """
    Check credentials and open a new session.

    Unknown email and wrong password produce the same failure. When the user
    belongs to exactly one organization the session starts inside it.
    """
    normalized = normalize_email(email)
    user = db.execute(select(User).where(User.email == normalized)).scalar_one_or_none()

    if user is None:
        # Burn a hash verification so unknown emails take as long as known ones
        pwd_context.dummy_verify()
        log_security_event(
            "failed_sign_in",
            {"reason": "user_not_found", "email": redact_email(normalized)},
            logger
        )
        return fail(ServiceError.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

    if not verify_password(password, user.hashed_password):
        log_security_event(
            "failed_sign_in",
            {"reason": "invalid_password", "user_id": user.id},
            logger
        )
        return fail(ServiceError.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

    organizations = get_user_organizations(db, user.id)
    default_org_id = organizations[0].id if len(organizations) == 1 else None
    session = session_store.create_session(db, user.id, default_org_id)

    logger.info(f"Successful sign-in: user={user.id}")
    return ok(SignInOutcome(user=user, session=session, organizations=organizations))


def sign_out(db: Session, session_id: str) -> bool:
    return session_store.delete_session(db, session_id)


def sign_out_everywhere(db: Session, user_id: str) -> int:
    count = session_store.delete_user_sessions(db, user_id)
    logger.info(f"Signed out {count} session(s)", extra={"user_id": user_id})
    return count


def switch_org(
    db: Session,
    user: UserIdentity,
    session_id: str,
    organization_id: Optional[str],
) -> ServiceResult:
    """
    Change the session's current organization.

    Clearing it (None) always succeeds. Selecting one requires membership or
    the platform admin flag; the session store itself does no checks.
    """
    if organization_id is not None:
        verdict = authorize_minimum_role(db, user.id, organization_id, MemberRole.MEMBER)
        if not verdict.authorized:
            log_security_event(
                "forbidden_org_switch",
                {"user_id": user.id, "organization_id": organization_id, "reason": verdict.reason.value},
                logger
            )
            return fail(ServiceError.FORBIDDEN, "You are not a member of this organization")

        # Admins bypass membership, so the organization may not exist at all
        if db.get(Organization, organization_id) is None:
            return fail(ServiceError.NOT_FOUND, "Organization")

    session = session_store.switch_organization(db, session_id, organization_id)
    if session is None:
        return fail(ServiceError.NOT_FOUND, "Session")

    return ok(session)


def update_profile(db: Session, user_id: str, full_name: Optional[str]) -> ServiceResult:
    user = db.get(User, user_id)
    if user is None:
        return fail(ServiceError.NOT_FOUND, "User")
    user.full_name = full_name
    db.commit()
    return ok(user)


def change_password(db: Session, user_id: str, current_password: str, new_password: str) -> ServiceResult:
    """
    Replace the password after re-checking the current one.

    Outstanding reset links are invalidated in the same commit.
    """
    user = db.get(User, user_id)
    if user is None:
        return fail(ServiceError.NOT_FOUND, "User")

    if not verify_password(current_password, user.hashed_password):
        return fail(ServiceError.INVALID_CREDENTIALS, "Current password is incorrect")

    user.hashed_password = get_password_hash(new_password)
    invalidate_user_reset_tokens(db, user_id, commit=False)
    db.commit()

    logger.info("Password changed", extra={"user_id": user_id})
    return ok()


def delete_account(db: Session, user_id: str, password: str) -> ServiceResult:
    """
    Delete the user after password confirmation.

    Sessions, memberships and reset tokens go with it (FK cascade).
    """
    user = db.get(User, user_id)
    if user is None:
        return fail(ServiceError.NOT_FOUND, "User")

    if not verify_password(password, user.hashed_password):
        return fail(ServiceError.INVALID_CREDENTIALS, "Password is incorrect")

    db.delete(user)
    db.commit()

    logger.info(f"Account deleted: {user_id}")
    return ok()
