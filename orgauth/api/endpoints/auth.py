"""
Authentication Endpoints

Sign-up, sign-in, sign-out, organization switching and password reset.
The session travels in an HttpOnly cookie; handlers set and clear it here
and nowhere else.
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session

from orgauth.api.deps import (
    get_current_identity,
    get_mailer,
    get_session_id,
    raise_for_failure,
)
from orgauth.core.context import RequestIdentity
from orgauth.core.exceptions import NotFoundError, ResetTokenError
from orgauth.core.permissions import get_user_organizations
from orgauth.database import get_db
from orgauth.models.user import User
from orgauth.schemas.auth import (
    AuthResponse,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    PasswordResetValidateRequest,
    PasswordResetValidateResponse,
    SessionListResponse,
    SessionResponse,
    SignInRequest,
    SignOutEverywhereResponse,
    SignUpRequest,
    SuccessResponse,
    SwitchOrgRequest,
)
from orgauth.schemas.organization import OrganizationSummaryResponse
from orgauth.schemas.user import UserResponse
from orgauth.services import accounts
from orgauth.services import password_reset
from orgauth.services.mailer import Mailer
from orgauth.services.sessions import (
    SESSION_COOKIE_NAME,
    list_user_sessions,
    session_cookie_options,
)
from orgauth.utils.logging import get_logger, log_security_event, redact_email

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(SESSION_COOKIE_NAME, session_id, **session_cookie_options())


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def _auth_response(db: Session, user: User, current_org_id, organizations=None) -> AuthResponse:
    if organizations is None:
        organizations = get_user_organizations(db, user.id)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        current_organization_id=current_org_id,
        organizations=[OrganizationSummaryResponse.model_validate(org) for org in organizations],
    )


@router.post("/sign-up", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def sign_up(
    registration: SignUpRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Create an account, a personal organization and a signed-in session.

    NOTE: no email verification step; the welcome email is informational.
    """
    result = accounts.sign_up(db, registration.email, registration.password, registration.full_name)
    raise_for_failure(result)

    outcome = result.value
    _set_session_cookie(response, outcome.session.id)
    background_tasks.add_task(mailer.send_welcome, outcome.user.email)

    return _auth_response(db, outcome.user, outcome.session.current_org_id)


@router.post("/sign-in", response_model=AuthResponse)
def sign_in(
    credentials: SignInRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Authenticate with email and password and open a session.

    SECURITY: unknown email and wrong password return the same 401.
    """
    result = accounts.sign_in(db, credentials.email, credentials.password)
    raise_for_failure(result)

    outcome = result.value
    _set_session_cookie(response, outcome.session.id)

    return _auth_response(db, outcome.user, outcome.session.current_org_id, outcome.organizations)


@router.post("/sign-out", response_model=SuccessResponse)
def sign_out(
    response: Response,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    """End the current session. Succeeds without a session too."""
    if session_id:
        accounts.sign_out(db, session_id)
    _clear_session_cookie(response)
    return SuccessResponse()


@router.post("/sign-out-everywhere", response_model=SignOutEverywhereResponse)
def sign_out_everywhere(
    response: Response,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """End every session of the current user, this one included."""
    count = accounts.sign_out_everywhere(db, identity.user.id)
    _clear_session_cookie(response)
    return SignOutEverywhereResponse(sessions_revoked=count)


@router.get("/me", response_model=AuthResponse)
def me(
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    user = db.get(User, identity.user.id)
    if user is None:
        raise NotFoundError("User")
    return _auth_response(db, user, identity.session.current_org_id)


@router.post("/switch-org", response_model=AuthResponse)
def switch_org(
    request_body: SwitchOrgRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Select the organization this session acts in.

    organization_id=null clears the selection and always succeeds.
    """
    result = accounts.switch_org(db, identity.user, identity.session.id, request_body.organization_id)
    raise_for_failure(result)

    user = db.get(User, identity.user.id)
    return _auth_response(db, user, result.value.current_org_id)


@router.get("/organizations", response_model=List[OrganizationSummaryResponse])
def list_my_organizations(
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return [
        OrganizationSummaryResponse.model_validate(org)
        for org in get_user_organizations(db, identity.user.id)
    ]


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    identity: RequestIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Active sessions of the current user, most recently used first."""
    sessions = list_user_sessions(db, identity.user.id)
    return SessionListResponse(sessions=[
        SessionResponse(
            current_org_id=session.current_org_id,
            created_at=session.created_at,
            last_accessed_at=session.last_accessed_at,
            expires_at=session.expires_at,
            current=session.id == identity.session.id,
        )
        for session in sessions
    ])


@router.post("/password-reset/request", response_model=SuccessResponse)
def request_password_reset(
    request_body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Email a reset link if the account exists.

    SECURITY: the response is identical for known and unknown emails so it
    can't be used to discover accounts. The token goes to the mailer only.
    """
    result = password_reset.request_password_reset(db, request_body.email)

    if result.success:
        background_tasks.add_task(
            mailer.send_password_reset, result.email, result.issued.token, result.issued.expires_at
        )
        log_security_event(
            "password_reset_requested",
            {"user_id": result.user_id},
            logger
        )
    else:
        log_security_event(
            "password_reset_requested",
            {"reason": result.error.value, "email": redact_email(request_body.email)},
            logger
        )

    return SuccessResponse()


@router.post("/password-reset/validate", response_model=PasswordResetValidateResponse)
def validate_password_reset_token(
    request_body: PasswordResetValidateRequest,
    db: Session = Depends(get_db),
):
    """Check a reset link before showing the new-password form. Does not consume it."""
    validation = password_reset.validate_reset_token(db, request_body.token)
    if validation.valid:
        return PasswordResetValidateResponse(valid=True)
    return PasswordResetValidateResponse(valid=False, error=validation.error.value)


@router.post("/password-reset/confirm", response_model=SuccessResponse)
def confirm_password_reset(
    request_body: PasswordResetConfirmRequest,
    db: Session = Depends(get_db),
):
    """Consume a reset token and set the new password."""
    outcome = password_reset.reset_password(db, request_body.token, request_body.password)

    if not outcome.success:
        log_security_event(
            "password_reset_rejected",
            {"reason": outcome.error.value},
            logger
        )
        # A token whose user was deleted is just an invalid token to the caller
        if outcome.error == password_reset.ResetFailure.USER_NOT_FOUND:
            raise ResetTokenError(password_reset.ResetFailure.INVALID_TOKEN.value)
        raise ResetTokenError(outcome.error.value)

    log_security_event("password_reset_completed", {}, logger)
    return SuccessResponse()
