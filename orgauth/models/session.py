"""
Session Model

One row per signed-in browser/client. The primary key doubles as the
opaque credential carried in the session cookie.

NOTE: current_org_id is only a pointer to the selected tenant. It does not
imply membership; membership is re-checked on every org-scoped request.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from orgauth.database import Base, utcnow
import secrets


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


class AuthSession(Base):
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True, default=generate_session_id)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Deleting the organization clears the pointer instead of the session
    current_org_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True
    )

    # Absolute expiry, fixed at creation
    expires_at = Column(DateTime, nullable=False, index=True)
    # Sliding activity marker, bumped by refresh; never moves expires_at
    last_accessed_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_session_user_accessed", "user_id", "last_accessed_at"),
    )

    def __repr__(self):
        return f"<AuthSession user={self.user_id} org={self.current_org_id}>"
