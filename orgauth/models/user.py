"""
User Model

A user is a global identity. Tenant access comes from Membership rows,
never from a column on the user, so one account can belong to many
organizations with a different role in each.

IMPORTANT: email is stored lowercase (see core.security.normalize_email)
and is unique across the whole platform.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from orgauth.database import Base, utcnow
import uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Credentials and profile
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)

    # Platform-level administrator (internal staff).
    # SECURITY: bypasses tenant membership checks entirely, see core.permissions.authorize
    is_admin = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Account deletion cascades to everything hanging off the user
    memberships = relationship(
        "Membership", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    sessions = relationship(
        "AuthSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    password_reset_tokens = relationship(
        "PasswordResetToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    sent_invitations = relationship(
        "Invitation", back_populates="invited_by", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<User {self.email}>"
