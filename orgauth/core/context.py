"""
Org Context Resolution

Turns a session identifier into "who is this and which organization are
they acting in". Everything is passed explicitly: the resolved identity
and org context are plain frozen values handed to the handler, never
stashed on request.state or in a context variable.

Flow:
1. No session id, or the session store misses (including lazy expiry)
   -> anonymous identity. Not an error; public routes accept it.
2. Routes that need a user turn an anonymous identity into UNAUTHENTICATED.
3. Routes that need an organization turn a missing current_org_id into
   NO_ORGANIZATION_SELECTED.
4. The authorization engine decides membership/role. Any rejection is FORBIDDEN.

The API layer (api.deps) maps ContextFailure values to HTTP errors.
"""
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from orgauth.core.permissions import (
    AuthResult,
    authorize,
    authorize_minimum_role,
    get_membership,
)
from orgauth.database import utcnow
from orgauth.models.organization import MemberRole
from orgauth.services.sessions import (
    SessionWithUser,
    UserIdentity,
    get_session_with_user,
    refresh_session,
)


class ContextFailure(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NO_ORGANIZATION_SELECTED = "no_organization_selected"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class RequestIdentity:
    """Result of reading the session credential. session is None for anonymous requests."""
    session: Optional[SessionWithUser] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def user(self) -> Optional[UserIdentity]:
        return self.session.user if self.session else None


ANONYMOUS = RequestIdentity()


@dataclass(frozen=True)
class MembershipInfo:
    id: str
    organization_id: str
    organization_name: str
    organization_slug: str
    role: MemberRole


@dataclass(frozen=True)
class OrgContext:
    """
    What an org-scoped handler receives.

    membership is None when a platform admin acts in an organization they
    do not belong to.
    """
    user: UserIdentity
    session: SessionWithUser
    organization_id: str
    membership: Optional[MembershipInfo]

    @property
    def role(self) -> Optional[MemberRole]:
        return self.membership.role if self.membership else None


@dataclass(frozen=True)
class ContextResolution:
    context: Optional[OrgContext] = None
    failure: Optional[ContextFailure] = None
    verdict: Optional[AuthResult] = None

    @property
    def ok(self) -> bool:
        return self.context is not None


def resolve_identity(
    db: Session,
    session_id: Optional[str],
    refresh_interval: Optional[timedelta] = None,
) -> RequestIdentity:
    """
    Resolve the session credential into an identity.

    A hit bumps the session's activity marker once it is older than
    refresh_interval (None means every request), so active sessions do not
    write on every call.
    """
    if not session_id:
        return ANONYMOUS

    session = get_session_with_user(db, session_id)
    if session is None:
        return ANONYMOUS

    if refresh_interval is None or utcnow() - session.last_accessed_at >= refresh_interval:
        refresh_session(db, session.id)

    return RequestIdentity(session=session)


def load_membership(db: Session, user_id: str, organization_id: str) -> Optional[MembershipInfo]:
    membership = get_membership(db, user_id, organization_id)
    if membership is None:
        return None
    organization = membership.organization
    return MembershipInfo(
        id=membership.id,
        organization_id=organization.id,
        organization_name=organization.name,
        organization_slug=organization.slug,
        role=membership.role,
    )


def resolve_org_context(
    db: Session,
    identity: RequestIdentity,
    minimum_role: MemberRole = MemberRole.MEMBER,
    allowed_roles: Optional[Iterable[MemberRole]] = None,
) -> ContextResolution:
    """
    Build the org context for an org-scoped operation.

    minimum_role is the default check. Pass allowed_roles only for the rare
    exact-role operation; it takes precedence over minimum_role.
    """
    if not identity.is_authenticated:
        return ContextResolution(failure=ContextFailure.UNAUTHENTICATED)

    session = identity.session
    organization_id = session.current_org_id
    if not organization_id:
        return ContextResolution(failure=ContextFailure.NO_ORGANIZATION_SELECTED)

    if allowed_roles is not None:
        verdict = authorize(db, session.user_id, organization_id, allowed_roles)
    else:
        verdict = authorize_minimum_role(db, session.user_id, organization_id, minimum_role)

    if not verdict.authorized:
        return ContextResolution(failure=ContextFailure.FORBIDDEN, verdict=verdict)

    context = OrgContext(
        user=session.user,
        session=session,
        organization_id=organization_id,
        membership=load_membership(db, session.user_id, organization_id),
    )
    return ContextResolution(context=context, verdict=verdict)
