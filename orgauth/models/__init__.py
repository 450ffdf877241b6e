"""
Database Models

Users are global; organizations are tenants; memberships connect the two.
Sessions and password reset tokens hang off the user and are removed with it.
Invitations belong to an organization and go away with it.
"""
from orgauth.models.user import User
from orgauth.models.organization import Organization, Membership, MemberRole
from orgauth.models.session import AuthSession
from orgauth.models.password_reset import PasswordResetToken
from orgauth.models.invitation import Invitation

__all__ = ["User", "Organization", "Membership", "MemberRole", "AuthSession", "PasswordResetToken", "Invitation"]
