"""Row builders and test doubles shared by the test modules."""
from datetime import datetime
from typing import List, Tuple

from fastapi.testclient import TestClient

from orgauth.core.security import get_password_hash
from orgauth.models import Membership, MemberRole, Organization, User

DEFAULT_PASSWORD = "ValidPass123"


class RecordingMailer:
    """Mailer double that keeps every call instead of sending."""

    def __init__(self):
        self.password_resets: List[Tuple[str, str, datetime]] = []
        self.welcomes: List[str] = []
        self.invitations: List[Tuple[str, str, str, str, datetime]] = []

    def send_password_reset(self, email: str, token: str, expires_at: datetime) -> None:
        self.password_resets.append((email, token, expires_at))

    def send_welcome(self, email: str) -> None:
        self.welcomes.append(email)

    def send_invitation(self, email, organization_name, invited_by, token, expires_at) -> None:
        self.invitations.append((email, organization_name, invited_by, token, expires_at))


def create_user(db, email: str, password: str = DEFAULT_PASSWORD, is_admin: bool = False, full_name=None) -> User:
    user = User(
        email=email.lower(),
        hashed_password=get_password_hash(password),
        is_admin=is_admin,
        full_name=full_name,
    )
    db.add(user)
    db.commit()
    return user


def create_org(db, name: str, slug: str = None) -> Organization:
    organization = Organization(name=name, slug=slug or name.lower().replace(" ", "-"))
    db.add(organization)
    db.commit()
    return organization


def add_member(db, user: User, organization: Organization, role: MemberRole = MemberRole.MEMBER) -> Membership:
    membership = Membership(user_id=user.id, organization_id=organization.id, role=role)
    db.add(membership)
    db.commit()
    return membership


def sign_in(client: TestClient, email: str, password: str = DEFAULT_PASSWORD):
    response = client.post("/api/v1/auth/sign-in", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response
