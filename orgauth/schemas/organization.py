"""
Organization Schemas

Request/response models for organization, member and invitation management.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from orgauth.models.organization import MemberRole
from orgauth.schemas.user import AccountEmail


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    # Derived from the name when omitted; a numeric suffix is added on collision
    slug: Optional[str] = Field(None, min_length=1, max_length=90)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Acme Corp",
                "slug": "acme-corp"
            }
        }
    )


class OrganizationUpdate(BaseModel):
    """All fields optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=90)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrganizationDetailResponse(OrganizationResponse):
    member_count: int
    # None for a platform admin without a membership row
    role: Optional[MemberRole] = None


class OrganizationSummaryResponse(BaseModel):
    """One entry of the caller's organization list."""
    id: str
    name: str
    slug: str
    role: MemberRole

    model_config = ConfigDict(from_attributes=True)


class MemberResponse(BaseModel):
    id: str
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: MemberRole
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class TransferOwnershipRequest(BaseModel):
    member_id: str = Field(..., min_length=1)


class InvitationCreate(BaseModel):
    email: AccountEmail
    role: MemberRole = MemberRole.MEMBER

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "new.hire@example.com",
                "role": "member"
            }
        }
    )


class InvitationResponse(BaseModel):
    """A pending invitation. The token is never returned."""
    id: str
    email: str
    role: MemberRole
    invited_by: Optional[str] = None
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class InvitationPreviewResponse(BaseModel):
    email: str
    organization_name: str
    role: MemberRole
    invited_by: str
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationAcceptResponse(BaseModel):
    organization_id: str
    organization_name: str
    role: MemberRole

    model_config = ConfigDict(from_attributes=True)
