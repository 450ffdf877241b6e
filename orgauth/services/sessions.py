"""
Session Store

Create, read, refresh and invalidate session rows.

EXPIRY MODEL:
- expires_at is absolute: creation time + SESSION_MAX_AGE_SECONDS (7 days).
- last_accessed_at is a sliding activity marker. refresh_session() bumps it
  and never extends expires_at.
- Expired rows are deleted lazily by the read that finds them
  (get_session / get_session_with_user). That delete is part of the
  contract: reads mutate the table on purpose. cleanup_expired_sessions()
  is a hygiene sweep on top of it.

switch_organization() writes the pointer unconditionally. Membership must
be checked by the caller (services.accounts.switch_org).
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from orgauth.config import get_settings
from orgauth.database import utcnow
from orgauth.models.session import AuthSession
from orgauth.models.user import User
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE = timedelta(seconds=settings.SESSION_MAX_AGE_SECONDS)


def session_cookie_options() -> dict:
    """Keyword arguments for Response.set_cookie()."""
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
        "max_age": settings.SESSION_MAX_AGE_SECONDS,
    }


@dataclass(frozen=True)
class UserIdentity:
    """Identity fields needed for authorization. Never the password hash."""
    id: str
    email: str
    is_admin: bool


@dataclass(frozen=True)
class SessionWithUser:
    id: str
    user_id: str
    current_org_id: Optional[str]
    expires_at: datetime
    last_accessed_at: datetime
    created_at: datetime
    user: UserIdentity


def _is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    return expires_at < (now or utcnow())


def _load(db: Session, session_id: str) -> Optional[AuthSession]:
    return db.execute(
        select(AuthSession)
        .where(AuthSession.id == session_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _discard_expired(db: Session, session_id: str) -> None:
    # Another request may have removed it already; a zero-row delete is fine
    db.execute(delete(AuthSession).where(AuthSession.id == session_id))
    db.commit()
    logger.debug("Lazily removed expired session")


def create_session(
    db: Session,
    user_id: str,
    current_org_id: Optional[str] = None,
    *,
    commit: bool = True,
) -> AuthSession:
    """
    Create a new session for the user.

    commit=False lets sign-up create the session inside its own transaction.
    """
    now = utcnow()
    session = AuthSession(
        user_id=user_id,
        current_org_id=current_org_id,
        expires_at=now + SESSION_MAX_AGE,
        last_accessed_at=now,
        created_at=now,
    )
    db.add(session)
    if commit:
        db.commit()
    else:
        db.flush()
    return session


def get_session(db: Session, session_id: str) -> Optional[AuthSession]:
    """Session by id, or None if missing or expired (expired rows are deleted)."""
    session = _load(db, session_id)
    if session is None:
        return None

    if _is_expired(session.expires_at):
        db.expunge(session)
        _discard_expired(db, session_id)
        return None

    return session


def get_session_with_user(db: Session, session_id: str) -> Optional[SessionWithUser]:
    """Session plus the minimal identity projection of its user."""
    row = db.execute(
        select(
            AuthSession.id,
            AuthSession.user_id,
            AuthSession.current_org_id,
            AuthSession.expires_at,
            AuthSession.last_accessed_at,
            AuthSession.created_at,
            User.email,
            User.is_admin,
        )
        .join(User, User.id == AuthSession.user_id)
        .where(AuthSession.id == session_id)
    ).one_or_none()

    if row is None:
        return None

    if _is_expired(row.expires_at):
        _discard_expired(db, session_id)
        return None

    return SessionWithUser(
        id=row.id,
        user_id=row.user_id,
        current_org_id=row.current_org_id,
        expires_at=row.expires_at,
        last_accessed_at=row.last_accessed_at,
        created_at=row.created_at,
        user=UserIdentity(id=row.user_id, email=row.email, is_admin=bool(row.is_admin)),
    )


def refresh_session(db: Session, session_id: str) -> Optional[AuthSession]:
    """Bump last_accessed_at. expires_at is untouched."""
    session = _load(db, session_id)
    if session is None:
        return None
    session.last_accessed_at = utcnow()
    db.commit()
    return session


def switch_organization(
    db: Session,
    session_id: str,
    organization_id: Optional[str],
) -> Optional[AuthSession]:
    """Point the session at an organization (or at none). No authorization here."""
    session = _load(db, session_id)
    if session is None:
        return None
    session.current_org_id = organization_id
    db.commit()
    return session


def delete_session(db: Session, session_id: str) -> bool:
    """Delete a session. Idempotent; returns whether a row existed."""
    result = db.execute(delete(AuthSession).where(AuthSession.id == session_id))
    db.commit()
    return result.rowcount > 0


def delete_user_sessions(db: Session, user_id: str) -> int:
    """Delete every session of a user ("sign out everywhere")."""
    result = db.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
    db.commit()
    return result.rowcount


def cleanup_expired_sessions(db: Session) -> int:
    """Bulk-delete expired sessions. Safe to run concurrently and repeatedly."""
    result = db.execute(delete(AuthSession).where(AuthSession.expires_at < utcnow()))
    db.commit()
    if result.rowcount:
        logger.info(f"Removed {result.rowcount} expired sessions")
    return result.rowcount


def list_user_sessions(db: Session, user_id: str) -> List[AuthSession]:
    """Active sessions of a user, most recently active first."""
    return list(
        db.execute(
            select(AuthSession)
            .where(AuthSession.user_id == user_id, AuthSession.expires_at > utcnow())
            .order_by(AuthSession.last_accessed_at.desc())
        ).scalars()
    )
