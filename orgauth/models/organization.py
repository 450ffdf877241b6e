"""
Organization and Membership Models

The organization is the tenant boundary. Membership is the ternary
(user, organization, role) relation that grants access to it.

Role hierarchy: OWNER > ADMIN > MEMBER (levels live in core.permissions).
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from orgauth.database import Base, utcnow
import uuid
import enum


class MemberRole(str, enum.Enum):
    """
    Roles a user can hold inside one organization.

    OWNER: Full control, including deleting the organization
    ADMIN: Manages settings and members (but not other admins)
    MEMBER: Standard access to tenant data
    """
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    # Human-readable unique identifier
    slug = Column(String(100), unique=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    members = relationship(
        "Membership", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True
    )
    invitations = relationship(
        "Invitation", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<Organization {self.slug}>"


class Membership(Base):
    __tablename__ = "organization_members"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    role = Column(
        SQLEnum(MemberRole, values_callable=lambda roles: [r.value for r in roles], name="member_role"),
        default=MemberRole.MEMBER,
        nullable=False
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="members")

    __table_args__ = (
        # At most one membership per (user, organization)
        UniqueConstraint("user_id", "organization_id", name="uq_member_user_org"),
        Index("idx_member_org_role", "organization_id", "role"),
    )

    def __repr__(self):
        return f"<Membership user={self.user_id} org={self.organization_id} role={self.role.value}>"
