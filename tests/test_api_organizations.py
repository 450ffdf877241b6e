"""End-to-end tests for organization-scoped endpoints and role enforcement."""
import logging

import pytest
from sqlalchemy import select

from orgauth.models import AuthSession, MemberRole

from factories import add_member, create_org, create_user, sign_in

API = "/api/v1"


@pytest.fixture
def acme(db):
    return create_org(db, "Acme")


@pytest.fixture
def memberships(db, acme):
    result = {}
    for role in MemberRole:
        user = create_user(db, f"{role.value}@example.com")
        result[role] = add_member(db, user, acme, role)
    return result


@pytest.fixture
def as_role(make_client, memberships):
    """Signed-in client for the acme member holding the given role."""

    def factory(role):
        client = make_client()
        sign_in(client, f"{role.value}@example.com")
        return client

    return factory


class TestRoleEnforcement:
    @pytest.mark.parametrize("role, expected", [
        (MemberRole.MEMBER, 403),
        (MemberRole.ADMIN, 200),
        (MemberRole.OWNER, 200),
    ])
    def test_update_requires_admin(self, as_role, role, expected):
        response = as_role(role).patch(f"{API}/organizations/current", json={"name": "Renamed"})

        assert response.status_code == expected
        if expected == 403:
            assert response.json()["type"] == "forbidden"

    @pytest.mark.parametrize("role, expected", [
        (MemberRole.MEMBER, 403),
        (MemberRole.ADMIN, 403),
        (MemberRole.OWNER, 200),
    ])
    def test_delete_is_owner_only(self, as_role, role, expected):
        assert as_role(role).delete(f"{API}/organizations/current").status_code == expected

    def test_every_role_can_read(self, as_role):
        for role in MemberRole:
            response = as_role(role).get(f"{API}/organizations/current")
            assert response.status_code == 200
            assert response.json()["role"] == role.value
            assert response.json()["member_count"] == 3

    def test_revoked_membership_is_forbidden_on_next_request(self, as_role):
        member = as_role(MemberRole.MEMBER)
        owner = as_role(MemberRole.OWNER)
        member_id = next(
            m["id"] for m in owner.get(f"{API}/organizations/current/members").json() if m["role"] == "member"
        )
        assert member.get(f"{API}/organizations/current").status_code == 200

        owner.delete(f"{API}/organizations/current/members/{member_id}")

        # Removal also cleared the member's pointer
        response = member.get(f"{API}/organizations/current")
        assert response.status_code == 403
        assert response.json()["type"] == "no_organization_selected"

    def test_stale_pointer_to_foreign_org_is_forbidden(self, make_client, db, acme, memberships):
        globex = create_org(db, "Globex")
        outsider = create_user(db, "outsider@example.com")
        add_member(db, outsider, globex, MemberRole.OWNER)
        client = make_client()
        sign_in(client, "outsider@example.com")
        # Simulate a session whose pointer no longer matches a membership
        session = db.execute(select(AuthSession).where(AuthSession.user_id == outsider.id)).scalar_one()
        session.current_org_id = acme.id
        db.commit()

        response = client.get(f"{API}/organizations/current")

        assert response.status_code == 403
        assert response.json()["type"] == "forbidden"


class TestPlatformAdmin:
    def test_admin_can_enter_and_manage_any_org(self, make_client, db, acme, memberships):
        create_user(db, "staff@example.com", is_admin=True)
        staff = make_client()
        sign_in(staff, "staff@example.com")

        assert staff.post(f"{API}/auth/switch-org", json={"organization_id": acme.id}).status_code == 200
        current = staff.get(f"{API}/organizations/current").json()
        assert current["role"] is None
        assert staff.patch(f"{API}/organizations/current", json={"name": "Audited"}).status_code == 200
        assert staff.delete(f"{API}/organizations/current").status_code == 200

    def test_admin_user_listing(self, make_client, db, memberships):
        create_user(db, "staff@example.com", is_admin=True)
        staff = make_client()
        sign_in(staff, "staff@example.com")

        response = staff.get(f"{API}/admin/users", params={"page_size": 2})

        assert response.status_code == 200
        assert response.json()["total"] == 4
        assert len(response.json()["users"]) == 2
        assert staff.get(f"{API}/admin/users", params={"email": "OWNER"}).json()["total"] == 1

    def test_admin_listing_forbidden_for_org_owner(self, as_role):
        response = as_role(MemberRole.OWNER).get(f"{API}/admin/users")
        assert response.status_code == 403

    def test_dashboard_counts_and_recent_rows(self, make_client, db, acme, memberships):
        create_org(db, "Empty Co")
        create_user(db, "staff@example.com", is_admin=True)
        staff = make_client()
        sign_in(staff, "staff@example.com")

        response = staff.get(f"{API}/admin/dashboard")

        assert response.status_code == 200
        data = response.json()
        assert data["stats"] == {"total_users": 4, "total_organizations": 2}
        assert len(data["recent_users"]) == 4
        assert "hashed_password" not in data["recent_users"][0]
        counts = {org["slug"]: org["member_count"] for org in data["recent_organizations"]}
        assert counts == {"acme": 3, "empty-co": 0}

    def test_dashboard_forbidden_for_org_owner(self, as_role):
        assert as_role(MemberRole.OWNER).get(f"{API}/admin/dashboard").status_code == 403


class TestMembers:
    def _member_id(self, client, role):
        members = client.get(f"{API}/organizations/current/members").json()
        return next(m["id"] for m in members if m["role"] == role)

    def test_list_members(self, as_role):
        members = as_role(MemberRole.MEMBER).get(f"{API}/organizations/current/members").json()

        assert [m["role"] for m in members] == ["owner", "admin", "member"]
        assert members[0]["email"] == "owner@example.com"

    def test_owner_promotes_member(self, as_role):
        owner = as_role(MemberRole.OWNER)
        member_id = self._member_id(owner, "member")

        response = owner.patch(f"{API}/organizations/current/members/{member_id}", json={"role": "admin"})

        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    def test_admin_cannot_promote(self, as_role):
        admin = as_role(MemberRole.ADMIN)
        member_id = self._member_id(admin, "member")

        response = admin.patch(f"{API}/organizations/current/members/{member_id}", json={"role": "admin"})

        assert response.status_code == 403

    def test_unknown_member(self, as_role):
        response = as_role(MemberRole.OWNER).delete(f"{API}/organizations/current/members/nope")

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    def test_leave_and_owner_cannot_leave(self, as_role):
        assert as_role(MemberRole.MEMBER).post(f"{API}/organizations/current/leave").status_code == 200
        assert as_role(MemberRole.OWNER).post(f"{API}/organizations/current/leave").status_code == 403

    def test_transfer_ownership(self, as_role):
        owner = as_role(MemberRole.OWNER)
        admin_id = self._member_id(owner, "admin")

        assert as_role(MemberRole.ADMIN).post(
            f"{API}/organizations/current/transfer", json={"member_id": admin_id}
        ).status_code == 403
        assert owner.post(f"{API}/organizations/current/transfer", json={"member_id": admin_id}).status_code == 200

        roles = {m["email"]: m["role"] for m in owner.get(f"{API}/organizations/current/members").json()}
        assert roles["admin@example.com"] == "owner"
        assert roles["owner@example.com"] == "admin"


def test_create_organization_switches_session(client):
    client.post(f"{API}/auth/sign-up", json={"email": "alice@example.com", "password": "ValidPass123"})

    response = client.post(f"{API}/organizations", json={"name": "Side Project"})

    assert response.status_code == 201
    assert response.json()["slug"] == "side-project"
    assert client.get(f"{API}/organizations/current").json()["id"] == response.json()["id"]
    assert len(client.get(f"{API}/auth/organizations").json()) == 2


class TestInvitations:
    def _invite(self, client, email="bob@example.com", role="member"):
        return client.post(f"{API}/organizations/current/invitations", json={"email": email, "role": role})

    @pytest.mark.parametrize("role, expected", [
        (MemberRole.MEMBER, 403),
        (MemberRole.ADMIN, 201),
        (MemberRole.OWNER, 201),
    ])
    def test_inviting_requires_admin(self, as_role, role, expected):
        assert self._invite(as_role(role)).status_code == expected

    def test_token_goes_to_the_mailer_only(self, as_role, mailer, caplog):
        with caplog.at_level(logging.DEBUG):
            response = self._invite(as_role(MemberRole.OWNER), "Bob@Example.com")

        assert response.status_code == 201
        assert response.json()["email"] == "bob@example.com"
        assert response.json()["invited_by"] == "owner@example.com"
        assert "token" not in response.json()
        email, organization_name, invited_by, token, _ = mailer.invitations[0]
        assert (email, organization_name, invited_by) == ("bob@example.com", "Acme", "owner@example.com")
        assert token not in caplog.text
        assert "bob@example.com" not in caplog.text

    def test_admin_cannot_invite_admin(self, as_role):
        response = self._invite(as_role(MemberRole.ADMIN), role="admin")

        assert response.status_code == 403
        assert self._invite(as_role(MemberRole.OWNER), role="admin").status_code == 201

    def test_duplicates_and_members_conflict(self, as_role):
        owner = as_role(MemberRole.OWNER)
        self._invite(owner)

        assert self._invite(owner).status_code == 409
        assert self._invite(owner, "member@example.com").status_code == 409

    def test_owner_role_is_not_invitable(self, as_role):
        assert self._invite(as_role(MemberRole.OWNER), role="owner").status_code == 400

    def test_list_and_cancel(self, as_role, make_client, mailer):
        owner = as_role(MemberRole.OWNER)
        invitation_id = self._invite(owner).json()["id"]
        token = mailer.invitations[0][3]

        listed = owner.get(f"{API}/organizations/current/invitations").json()
        assert [i["email"] for i in listed] == ["bob@example.com"]
        assert as_role(MemberRole.MEMBER).get(f"{API}/organizations/current/invitations").status_code == 403

        assert owner.delete(f"{API}/organizations/current/invitations/{invitation_id}").status_code == 200
        assert owner.get(f"{API}/organizations/current/invitations").json() == []
        assert make_client().post(f"{API}/invitations/lookup", json={"token": token}).status_code == 404
        assert owner.delete(f"{API}/organizations/current/invitations/{invitation_id}").status_code == 404

    def test_invitee_signs_up_and_joins(self, as_role, make_client, mailer):
        self._invite(as_role(MemberRole.OWNER), role="admin")
        token = mailer.invitations[0][3]

        anonymous = make_client()
        preview = anonymous.post(f"{API}/invitations/lookup", json={"token": token})
        assert preview.status_code == 200
        assert preview.json()["organization_name"] == "Acme"
        assert preview.json()["role"] == "admin"
        assert anonymous.post(f"{API}/invitations/accept", json={"token": token}).status_code == 401

        bob = make_client()
        bob.post(f"{API}/auth/sign-up", json={"email": "bob@example.com", "password": "ValidPass123"})
        accepted = bob.post(f"{API}/invitations/accept", json={"token": token})

        assert accepted.status_code == 200
        assert accepted.json()["organization_name"] == "Acme"
        current = bob.get(f"{API}/organizations/current").json()
        assert current["name"] == "Acme"
        assert current["role"] == "admin"
        assert current["member_count"] == 4
        assert bob.post(f"{API}/invitations/accept", json={"token": token}).status_code == 404

    def test_wrong_account_cannot_accept(self, as_role, make_client, mailer):
        self._invite(as_role(MemberRole.OWNER))
        token = mailer.invitations[0][3]

        eve = make_client()
        eve.post(f"{API}/auth/sign-up", json={"email": "eve@example.com", "password": "ValidPass123"})
        response = eve.post(f"{API}/invitations/accept", json={"token": token})

        assert response.status_code == 403
        assert eve.get(f"{API}/organizations/current").json()["name"] != "Acme"

    def test_unknown_token_lookup(self, client):
        response = client.post(f"{API}/invitations/lookup", json={"token": "f" * 64})

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"
