"""
Organization Invitation Model

An emailed, single-use offer to join an organization with a given role.
Like reset tokens, only the SHA-256 digest of the secret is stored.

At most one invitation row exists per (organization, email); issuing a new
one replaces an expired or accepted predecessor.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship
from orgauth.database import Base, utcnow
from orgauth.models.organization import MemberRole
import uuid


class Invitation(Base):
    __tablename__ = "organization_invitations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Stored lowercase, compared with the accepting user's email
    email = Column(String(255), nullable=False)
    role = Column(
        SQLEnum(MemberRole, values_callable=lambda roles: [r.value for r in roles], name="member_role"),
        default=MemberRole.MEMBER,
        nullable=False
    )

    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    invited_by_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )

    expires_at = Column(DateTime, nullable=False, index=True)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="invitations")
    invited_by = relationship("User", back_populates="sent_invitations")

    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_invitation_org_email"),
    )

    def __repr__(self):
        return f"<Invitation org={self.organization_id} role={self.role.value}>"
