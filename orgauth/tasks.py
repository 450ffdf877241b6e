"""
Housekeeping

Expired sessions and reset tokens are already dropped lazily when read.
This sweep removes the ones nobody reads again, along with lapsed
invitations.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgauth.database import SessionLocal
from orgauth.services.invitations import cleanup_expired_invitations
from orgauth.services.password_reset import cleanup_expired_reset_tokens
from orgauth.services.sessions import cleanup_expired_sessions
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CleanupReport:
    sessions: int
    reset_tokens: int
    invitations: int = 0


def cleanup_expired_records(db: Session) -> CleanupReport:
    """One sweep. Idempotent and safe to run from several workers."""
    return CleanupReport(
        sessions=cleanup_expired_sessions(db),
        reset_tokens=cleanup_expired_reset_tokens(db),
        invitations=cleanup_expired_invitations(db),
    )


def _run_once(session_factory: Callable[[], Session]) -> CleanupReport:
    db = session_factory()
    try:
        return cleanup_expired_records(db)
    finally:
        db.close()


async def periodic_cleanup(interval_seconds: int, session_factory: Callable[[], Session] = SessionLocal) -> None:
    """
    Run cleanup_expired_records every interval_seconds until cancelled.

    A failed sweep is logged and retried on the next tick.
    """
    logger.info(f"Cleanup task started (every {interval_seconds}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            report = await asyncio.to_thread(_run_once, session_factory)
        except SQLAlchemyError as e:
            logger.error(f"Cleanup sweep failed: {e}")
            continue
        if report.sessions or report.reset_tokens or report.invitations:
            logger.info(
                f"Cleanup removed {report.sessions} session(s), {report.reset_tokens} reset token(s)"
                f" and {report.invitations} invitation(s)"
            )
