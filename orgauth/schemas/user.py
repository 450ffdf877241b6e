"""
User Schemas

Request/response models for user operations, plus the field types shared
by every schema that accepts an email address or a new password.
"""
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Annotated, Optional
from datetime import datetime

import email_validator
from email_validator import EmailNotValidError, validate_email

from orgauth.core.security import normalize_email, validate_password_strength

# Internal and test accounts live under .local (e.g. alice@test.local).
# Syntax rules still apply; only the reserved-name rejection is lifted.
if "local" in email_validator.SPECIAL_USE_DOMAIN_NAMES:
    email_validator.SPECIAL_USE_DOMAIN_NAMES.remove("local")


def check_email(value: str) -> str:
    """Syntax check only (no DNS lookup), returned normalized."""
    value = value.strip()
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(str(e))
    return normalize_email(value)


def check_password_strength(value: str) -> str:
    problem = validate_password_strength(value)
    if problem:
        raise ValueError(problem)
    return value


# Inbound email fields use this type instead of EmailStr
AccountEmail = Annotated[str, Field(max_length=255), AfterValidator(check_email)]

# Any field that sets a new password uses this type
NewPassword = Annotated[str, Field(max_length=100), AfterValidator(check_password_strength)]


class UserResponse(BaseModel):
    """User response schema (excludes sensitive data)."""
    id: str
    email: str
    full_name: Optional[str] = None
    is_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    """Profile fields a user may change on themselves."""
    full_name: Optional[str] = Field(None, max_length=255)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: NewPassword


class DeleteAccountRequest(BaseModel):
    """Account deletion requires re-entering the password."""
    password: str = Field(..., min_length=1)


class UserListResponse(BaseModel):
    """Paginated list of users."""
    users: list[UserResponse]
    total: int
    page: int
    page_size: int
