"""
Password Reset Token Manager

Lifecycle of a token: issued -> valid -> (used | expired). Both end states
are terminal; a token with used_at set never becomes valid again.

- The emailed secret is 32 random bytes, hex-encoded. Only its SHA-256
  digest is stored, and lookups go through the digest.
- Requesting a new token marks every unused token of the user as used,
  so only the newest link works.
- reset_password() claims the token and writes the new password hash in one
  transaction. The claim is a conditional UPDATE (used_at IS NULL), so of
  several concurrent resets with the same token exactly one wins.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
import hashlib
import secrets
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from orgauth.config import get_settings
from orgauth.core.security import get_password_hash, normalize_email
from orgauth.database import utcnow
from orgauth.models.password_reset import PasswordResetToken
from orgauth.models.user import User
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

TOKEN_BYTES = 32
TOKEN_VALIDITY = timedelta(seconds=settings.PASSWORD_RESET_TOKEN_TTL_SECONDS)


class ResetFailure(str, Enum):
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    USED_TOKEN = "used_token"
    USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class IssuedResetToken:
    """The plaintext token goes to the mailer and nowhere else."""
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class ResetRequestResult:
    success: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    issued: Optional[IssuedResetToken] = None
    error: Optional[ResetFailure] = None


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    user_id: Optional[str] = None
    error: Optional[ResetFailure] = None


@dataclass(frozen=True)
class ResetOutcome:
    success: bool
    error: Optional[ResetFailure] = None


def generate_reset_token() -> str:
    """64 hex characters from a CSPRNG."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_reset_token(token: str) -> str:
    """
    Deterministic SHA-256 digest used for storage and lookup.

    Unsalted is fine here: the input is already 256 bits of randomness.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_password_reset_token(db: Session, user_id: str, *, commit: bool = True) -> IssuedResetToken:
    """Issue a token for a user. Does not touch older tokens."""
    token = generate_reset_token()
    expires_at = utcnow() + TOKEN_VALIDITY

    db.add(PasswordResetToken(
        user_id=user_id,
        token_hash=hash_reset_token(token),
        expires_at=expires_at,
    ))
    if commit:
        db.commit()
    else:
        db.flush()

    return IssuedResetToken(token=token, expires_at=expires_at)


def invalidate_user_reset_tokens(db: Session, user_id: str, *, commit: bool = True) -> int:
    """
    Mark every unused token of the user as used.

    Rows are kept (not deleted) so the issue history survives until the
    expiry sweep removes them.
    """
    result = db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.user_id == user_id, PasswordResetToken.used_at.is_(None))
        .values(used_at=utcnow())
    )
    if commit:
        db.commit()
    return result.rowcount


def lock_user_by_email(normalized_email: str):
    """SELECT ... FOR UPDATE on the user row (a no-op on SQLite, which serializes writers)."""
    return select(User.id).where(User.email == normalized_email).with_for_update()


def request_password_reset(db: Session, email: str) -> ResetRequestResult:
    """
    Issue a fresh token for the account with this email.

    user_not_found is reported to the caller; the HTTP layer hides it so the
    response does not reveal whether the account exists.
    """
    normalized = normalize_email(email)
    # The row lock serializes concurrent requests for one user, so the
    # invalidate + insert below can never leave two unused tokens.
    user_id = db.execute(lock_user_by_email(normalized)).scalar_one_or_none()

    if user_id is None:
        return ResetRequestResult(success=False, error=ResetFailure.USER_NOT_FOUND)

    superseded = invalidate_user_reset_tokens(db, user_id, commit=False)
    issued = create_password_reset_token(db, user_id, commit=False)
    db.commit()

    if superseded:
        logger.info(f"Superseded {superseded} outstanding reset token(s)", extra={"user_id": user_id})

    return ResetRequestResult(success=True, user_id=user_id, email=normalized, issued=issued)


def _check_token(token_row: Optional[PasswordResetToken], now: datetime) -> Optional[ResetFailure]:
    if token_row is None:
        return ResetFailure.INVALID_TOKEN
    # Used wins over expired: a consumed link reports "used" forever
    if token_row.used_at is not None:
        return ResetFailure.USED_TOKEN
    if token_row.expires_at < now:
        return ResetFailure.EXPIRED_TOKEN
    return None


def _find_token(db: Session, token: str) -> Optional[PasswordResetToken]:
    return db.execute(
        select(PasswordResetToken)
        .where(PasswordResetToken.token_hash == hash_reset_token(token))
        # Another request may have claimed or superseded it since it was loaded
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def validate_reset_token(db: Session, token: str) -> TokenValidation:
    """Check a token without consuming it."""
    token_row = _find_token(db, token)
    error = _check_token(token_row, utcnow())
    if error is not None:
        return TokenValidation(valid=False, error=error)
    return TokenValidation(valid=True, user_id=token_row.user_id)


def reset_password(db: Session, token: str, new_password: str) -> ResetOutcome:
    """
    Consume a token and set the new password, atomically.

    Steps (one transaction): re-validate the token, confirm the user still
    exists, claim the token with a conditional update, write the new hash.
    Any exception rolls the whole thing back, so a token is never spent
    without the password changing, and vice versa.
    """
    try:
        token_row = _find_token(db, token)
        now = utcnow()
        error = _check_token(token_row, now)
        if error is not None:
            db.rollback()
            return ResetOutcome(success=False, error=error)

        user = db.get(User, token_row.user_id)
        if user is None:
            db.rollback()
            return ResetOutcome(success=False, error=ResetFailure.USER_NOT_FOUND)

        password_hash = get_password_hash(new_password)

        claimed = db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == token_row.id, PasswordResetToken.used_at.is_(None))
            .values(used_at=now)
        ).rowcount
        if claimed != 1:
            # Lost the race to a concurrent reset with the same token
            db.rollback()
            return ResetOutcome(success=False, error=ResetFailure.USED_TOKEN)

        user.hashed_password = password_hash
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Password reset completed", extra={"user_id": token_row.user_id})
    return ResetOutcome(success=True)


def cleanup_expired_reset_tokens(db: Session) -> int:
    """Delete tokens past expiry, used or not."""
    result = db.execute(
        delete(PasswordResetToken)
        .where(PasswordResetToken.expires_at < utcnow())
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Removed {result.rowcount} expired password reset tokens")
    return result.rowcount


def get_user_reset_tokens(db: Session, user_id: str) -> List[PasswordResetToken]:
    """All tokens of a user, newest first (admin/debugging)."""
    return list(
        db.execute(
            select(PasswordResetToken)
            .where(PasswordResetToken.user_id == user_id)
            .order_by(PasswordResetToken.created_at.desc())
        ).scalars()
    )
