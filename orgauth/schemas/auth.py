"""
Authentication Schemas

Request/response models for sign-up, sign-in, sessions and password reset.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from orgauth.schemas.organization import OrganizationSummaryResponse
from orgauth.schemas.user import AccountEmail, NewPassword, UserResponse


class SignUpRequest(BaseModel):
    """User registration request."""
    email: AccountEmail
    password: NewPassword
    full_name: Optional[str] = Field(None, max_length=255)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "ValidPass123",
                "full_name": "Jane Doe"
            }
        }
    )


class SignInRequest(BaseModel):
    email: AccountEmail
    # No strength rules here: old passwords must still be accepted
    password: str = Field(..., min_length=1, max_length=100)


class SwitchOrgRequest(BaseModel):
    """organization_id=None leaves the session without an organization."""
    organization_id: Optional[str] = None


class AuthResponse(BaseModel):
    """Returned by sign-up, sign-in and /auth/me."""
    user: UserResponse
    current_organization_id: Optional[str] = None
    organizations: List[OrganizationSummaryResponse] = []


class SessionResponse(BaseModel):
    """The session id itself is a credential and is never returned."""
    current_org_id: Optional[str] = None
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    current: bool = False


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]


class SignOutEverywhereResponse(BaseModel):
    success: bool = True
    sessions_revoked: int


class PasswordResetRequest(BaseModel):
    email: AccountEmail


class PasswordResetValidateRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class PasswordResetValidateResponse(BaseModel):
    valid: bool
    # invalid_token | expired_token | used_token
    error: Optional[str] = None


class PasswordResetConfirmRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    password: NewPassword


class SuccessResponse(BaseModel):
    success: bool = True
