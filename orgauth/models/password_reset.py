"""
Password Reset Token Model

Only the SHA-256 digest of the emailed secret is stored.

A token is usable while used_at is NULL and expires_at is in the future.
Superseded tokens get used_at set rather than being deleted, so the
history of issued tokens survives until the expiry sweep.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from orgauth.database import Base, utcnow
import uuid


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="password_reset_tokens")

    __table_args__ = (
        Index("idx_reset_token_user_unused", "user_id", "used_at"),
    )

    def __repr__(self):
        return f"<PasswordResetToken user={self.user_id} used={self.used_at is not None}>"
