"""
Permission System (RBAC)

Authorization decisions for organization-scoped access.

Role hierarchy: OWNER > ADMIN > MEMBER.

Two entry points exist:
- authorize_minimum_role(): the default. "At least admin" style checks.
- authorize(): exact role set. Use it only when a higher role must NOT
  pass (e.g. owner-only actions spelled as [OWNER]). Mixing the two for
  the same logical check is how privilege bugs creep in.

Nothing here caches: each call reads the current user and membership rows,
so a revoked membership takes effect on the very next request.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauth.models.organization import Membership, MemberRole, Organization
from orgauth.models.user import User


ROLE_HIERARCHY = {
    MemberRole.OWNER: 3,
    MemberRole.ADMIN: 2,
    MemberRole.MEMBER: 1,
}


class AuthReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ADMIN = "admin"
    NO_MEMBERSHIP = "no_membership"
    INSUFFICIENT_ROLE = "insufficient_role"
    ROLE = "role"


@dataclass(frozen=True)
class AuthResult:
    """Verdict of an authorization check."""
    authorized: bool
    reason: AuthReason
    role: Optional[MemberRole] = None


@dataclass(frozen=True)
class OrganizationSummary:
    id: str
    name: str
    slug: str
    role: MemberRole


def has_minimum_role(user_role: MemberRole, required_role: MemberRole) -> bool:
    """Check if a role meets the minimum required role."""
    return ROLE_HIERARCHY[user_role] >= ROLE_HIERARCHY[required_role]


def has_role(user_role: MemberRole, allowed_roles: Iterable[MemberRole]) -> bool:
    """Check if a role is included in a set of allowed roles."""
    return user_role in set(allowed_roles)


def get_roles_at_or_above(min_role: MemberRole) -> List[MemberRole]:
    """All roles whose level is at least min_role's, highest first."""
    min_level = ROLE_HIERARCHY[min_role]
    return [role for role, level in ROLE_HIERARCHY.items() if level >= min_level]


def authorize(
    db: Session,
    user_id: str,
    organization_id: str,
    allowed_roles: Iterable[MemberRole],
) -> AuthResult:
    """
    Authorize a user for an organization against an exact set of roles.

    Order matters:
    1. Unknown user -> unauthenticated
    2. Platform admin -> authorized, before any membership lookup.
       SECURITY: this is the internal support backdoor and covers
       organizations the admin never joined.
    3. No membership row -> no_membership
    4. Role not in allowed_roles -> insufficient_role
    """
    is_admin = db.execute(
        select(User.is_admin).where(User.id == user_id)
    ).scalar_one_or_none()

    if is_admin is None:
        return AuthResult(authorized=False, reason=AuthReason.UNAUTHENTICATED)

    if is_admin:
        return AuthResult(authorized=True, reason=AuthReason.ADMIN)

    role = get_user_role(db, user_id, organization_id)
    if role is None:
        return AuthResult(authorized=False, reason=AuthReason.NO_MEMBERSHIP)

    if not has_role(role, allowed_roles):
        return AuthResult(authorized=False, reason=AuthReason.INSUFFICIENT_ROLE)

    return AuthResult(authorized=True, reason=AuthReason.ROLE, role=role)


def authorize_minimum_role(
    db: Session,
    user_id: str,
    organization_id: str,
    minimum_role: MemberRole,
) -> AuthResult:
    """Authorize with a hierarchy threshold. The primary API for new checks."""
    return authorize(db, user_id, organization_id, get_roles_at_or_above(minimum_role))


def get_membership(db: Session, user_id: str, organization_id: str) -> Optional[Membership]:
    return db.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
    ).scalar_one_or_none()


def get_user_role(db: Session, user_id: str, organization_id: str) -> Optional[MemberRole]:
    """User's role in an organization, or None if not a member."""
    return db.execute(
        select(Membership.role).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
    ).scalar_one_or_none()


def is_member_of(db: Session, user_id: str, organization_id: str) -> bool:
    return get_user_role(db, user_id, organization_id) is not None


def is_internal_admin(db: Session, user_id: str) -> bool:
    is_admin = db.execute(
        select(User.is_admin).where(User.id == user_id)
    ).scalar_one_or_none()
    return bool(is_admin)


def get_user_organizations(db: Session, user_id: str) -> List[OrganizationSummary]:
    """Every organization the user is a member of, with their role."""
    rows = db.execute(
        select(Organization.id, Organization.name, Organization.slug, Membership.role)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.created_at, Organization.name)
    ).all()
    return [
        OrganizationSummary(id=row.id, name=row.name, slug=row.slug, role=row.role)
        for row in rows
    ]
