"""
Platform Admin Endpoints

Internal support views across all organizations. Platform admin only.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from orgauth.api.deps import require_platform_admin
from orgauth.core.context import RequestIdentity
from orgauth.core.security import normalize_email
from orgauth.database import get_db
from orgauth.models.organization import Membership, Organization
from orgauth.models.user import User
from orgauth.schemas.admin import (
    DashboardResponse,
    PlatformStats,
    RecentOrganizationResponse,
    RecentUserResponse,
)
from orgauth.schemas.user import UserListResponse, UserResponse
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

RECENT_LIMIT = 5


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    identity: RequestIdentity = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    """Platform-wide counts plus the newest users and organizations."""
    total_users = db.execute(select(func.count(User.id))).scalar_one()
    total_organizations = db.execute(select(func.count(Organization.id))).scalar_one()

    recent_users = db.execute(
        select(User).order_by(User.created_at.desc()).limit(RECENT_LIMIT)
    ).scalars().all()

    member_count = (
        select(func.count(Membership.id))
        .where(Membership.organization_id == Organization.id)
        .correlate(Organization)
        .scalar_subquery()
    )
    recent_organizations = db.execute(
        select(Organization, member_count.label("member_count"))
        .order_by(Organization.created_at.desc())
        .limit(RECENT_LIMIT)
    ).all()

    return DashboardResponse(
        stats=PlatformStats(total_users=total_users, total_organizations=total_organizations),
        recent_users=[RecentUserResponse.model_validate(user) for user in recent_users],
        recent_organizations=[
            RecentOrganizationResponse(
                id=organization.id,
                name=organization.name,
                slug=organization.slug,
                created_at=organization.created_at,
                member_count=count,
            )
            for organization, count in recent_organizations
        ],
    )


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    email: Optional[str] = Query(None, description="Case-insensitive substring match"),
    identity: RequestIdentity = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    """
    List all users, newest first.

    Paginated for performance.
    """
    query = select(User)
    if email:
        query = query.where(User.email.contains(normalize_email(email)))

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()

    offset = (page - 1) * page_size
    users = db.execute(
        query.order_by(User.created_at.desc()).offset(offset).limit(page_size)
    ).scalars().all()

    logger.debug(f"Admin listed {len(users)} users", extra={"user_id": identity.user.id})

    return UserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        total=total,
        page=page,
        page_size=page_size
    )
