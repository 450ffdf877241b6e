"""
API Dependencies

Reusable FastAPI dependencies for authentication and authorization.
This is the request boundary: it reads the session cookie, runs the
resolver in core.context and turns its failures into HTTP errors.

PATTERN: handlers declare what they need (an identity, an org context at
some minimum role) and receive a frozen value. Nothing is read from
request.state.
"""
from datetime import timedelta
from typing import Callable, Iterable, Optional

from fastapi import Cookie, Depends
from sqlalchemy.orm import Session

from orgauth.config import get_settings
from orgauth.core.context import (
    ContextFailure,
    OrgContext,
    RequestIdentity,
    resolve_identity,
    resolve_org_context,
)
from orgauth.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NoOrganizationSelectedError,
    NotFoundError,
)
from orgauth.core.permissions import is_internal_admin
from orgauth.database import get_db
from orgauth.models.organization import MemberRole
from orgauth.services.mailer import LoggingMailer, Mailer
from orgauth.services.results import ServiceError, ServiceResult
from orgauth.services.sessions import SESSION_COOKIE_NAME
from orgauth.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)
settings = get_settings()

_default_mailer = LoggingMailer()


def get_mailer() -> Mailer:
    """Mailer used by the account endpoints. Tests override this dependency."""
    return _default_mailer


def get_session_id(
    session_id: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME)
) -> Optional[str]:
    return session_id


def get_request_identity(
    session_id: Optional[str] = Depends(get_session_id),
    db: Session = Depends(get_db),
) -> RequestIdentity:
    """
    Identity of the caller, possibly anonymous.

    Use directly on routes that accept both, e.g. sign-out.
    """
    return resolve_identity(
        db,
        session_id,
        refresh_interval=timedelta(seconds=settings.SESSION_REFRESH_INTERVAL_SECONDS),
    )


def get_current_identity(
    identity: RequestIdentity = Depends(get_request_identity),
) -> RequestIdentity:
    """Require a signed-in caller. No organization needed."""
    if not identity.is_authenticated:
        raise AuthenticationError()
    return identity


def _raise_for(failure: ContextFailure, identity: RequestIdentity, resolution) -> None:
    if failure == ContextFailure.UNAUTHENTICATED:
        raise AuthenticationError()

    if failure == ContextFailure.NO_ORGANIZATION_SELECTED:
        raise NoOrganizationSelectedError()

    # SECURITY: a session pointing at an org the user can't access is either
    # a revoked membership or a cross-tenant attempt. Log it either way.
    log_security_event(
        "org_access_denied",
        {
            "user_id": identity.session.user_id,
            "organization_id": identity.session.current_org_id,
            "reason": resolution.verdict.reason.value if resolution.verdict else failure.value,
        },
        logger
    )
    raise ForbiddenError()


def require_org_context(minimum_role: MemberRole = MemberRole.MEMBER) -> Callable[..., OrgContext]:
    """
    Dependency factory: org context with at least minimum_role.

    Usage:
        @router.patch("/organizations/current")
        def update(ctx: OrgContext = Depends(require_org_context(MemberRole.ADMIN))):
            ...
    """

    def dependency(
        identity: RequestIdentity = Depends(get_request_identity),
        db: Session = Depends(get_db),
    ) -> OrgContext:
        resolution = resolve_org_context(db, identity, minimum_role=minimum_role)
        if not resolution.ok:
            _raise_for(resolution.failure, identity, resolution)
        return resolution.context

    return dependency


def require_exact_roles(roles: Iterable[MemberRole]) -> Callable[..., OrgContext]:
    """
    Dependency factory: org context whose role is in an exact set.

    NOTE: only for actions a higher role must not inherit by default, or
    that must name their roles explicitly (owner-only operations). Prefer
    require_org_context for everything else.
    """
    allowed = frozenset(roles)

    def dependency(
        identity: RequestIdentity = Depends(get_request_identity),
        db: Session = Depends(get_db),
    ) -> OrgContext:
        resolution = resolve_org_context(db, identity, allowed_roles=allowed)
        if not resolution.ok:
            _raise_for(resolution.failure, identity, resolution)
        return resolution.context

    return dependency


def require_platform_admin(
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> RequestIdentity:
    """
    Require the platform admin flag.

    The flag is re-read from the database instead of trusting the value
    loaded with the session.
    """
    if not is_internal_admin(db, identity.user.id):
        log_security_event(
            "org_access_denied",
            {"user_id": identity.user.id, "reason": "not_platform_admin"},
            logger
        )
        raise ForbiddenError("Admin privileges required")
    return identity


def raise_for_failure(result: ServiceResult) -> None:
    """Translate a failed ServiceResult into the matching HTTP error."""
    if result.success:
        return

    if result.error == ServiceError.CONFLICT:
        raise ConflictError(result.message)
    if result.error == ServiceError.INVALID_CREDENTIALS:
        raise AuthenticationError(result.message)
    if result.error == ServiceError.FORBIDDEN:
        raise ForbiddenError(result.message)
    if result.error == ServiceError.NOT_FOUND:
        raise NotFoundError(result.message)
    raise InvalidInputError(result.message)
