"""
Admin Schemas

Response models for the platform admin dashboard.
"""
from pydantic import BaseModel, ConfigDict
from typing import List
from datetime import datetime


class PlatformStats(BaseModel):
    total_users: int
    total_organizations: int


class RecentUserResponse(BaseModel):
    id: str
    email: str
    is_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecentOrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime
    member_count: int


class DashboardResponse(BaseModel):
    stats: PlatformStats
    recent_users: List[RecentUserResponse]
    recent_organizations: List[RecentOrganizationResponse]
