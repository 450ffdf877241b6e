"""
User Endpoints

Self-service operations on the signed-in user. Nothing here needs an
organization context; a user can manage their own account while no
organization is selected.
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from orgauth.api.deps import get_current_identity, raise_for_failure
from orgauth.core.context import RequestIdentity
from orgauth.core.exceptions import NotFoundError
from orgauth.database import get_db
from orgauth.models.user import User
from orgauth.schemas.auth import SuccessResponse
from orgauth.schemas.user import (
    ChangePasswordRequest,
    DeleteAccountRequest,
    UserResponse,
    UserUpdate,
)
from orgauth.services import accounts
from orgauth.services.sessions import SESSION_COOKIE_NAME

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_me(
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    user = db.get(User, identity.user.id)
    if user is None:
        raise NotFoundError("User")
    return user


@router.patch("/me", response_model=UserResponse)
def update_me(
    user_data: UserUpdate,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Update profile fields. Email changes are not supported."""
    result = accounts.update_profile(db, identity.user.id, user_data.full_name)
    raise_for_failure(result)
    return result.value


@router.post("/me/password", response_model=SuccessResponse)
def change_password(
    request_body: ChangePasswordRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Change password, re-checking the current one.

    Other sessions stay signed in; use /auth/sign-out-everywhere to end them.
    """
    result = accounts.change_password(
        db, identity.user.id, request_body.current_password, request_body.new_password
    )
    raise_for_failure(result)
    return SuccessResponse()


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(
    request_body: DeleteAccountRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Delete the account after password confirmation.

    Organizations the user owned are kept; their other members stay.
    """
    result = accounts.delete_account(db, identity.user.id, request_body.password)
    raise_for_failure(result)

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return response
