"""Tests for the session store."""
from datetime import timedelta

from sqlalchemy import select

from orgauth.database import utcnow
from orgauth.models import AuthSession
from orgauth.services import sessions as store

from factories import create_org, create_user


def _expire(db, session_id):
    db.get(AuthSession, session_id).expires_at = utcnow() - timedelta(seconds=1)
    db.commit()


def _row_exists(db, session_id):
    return db.execute(select(AuthSession.id).where(AuthSession.id == session_id)).first() is not None


class TestCreateSession:
    def test_expires_seven_days_after_creation(self, db):
        user = create_user(db, "user@example.com")

        session = store.create_session(db, user.id)

        assert session.expires_at - session.created_at == timedelta(days=7)
        assert session.current_org_id is None

    def test_ids_are_opaque_and_unique(self, db):
        user = create_user(db, "user@example.com")

        first = store.create_session(db, user.id)
        second = store.create_session(db, user.id)

        assert first.id != second.id
        assert len(first.id) >= 40

    def test_cookie_options(self):
        options = store.session_cookie_options()

        assert options["httponly"] is True
        assert options["samesite"] == "lax"
        assert options["path"] == "/"
        assert options["max_age"] == 604800
        # Not production in tests
        assert options["secure"] is False


class TestGetSession:
    def test_returns_live_session(self, db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)

        assert store.get_session(db, session.id).id == session.id

    def test_missing_session(self, db):
        assert store.get_session(db, "nope") is None

    def test_expired_session_is_missing_and_deleted(self, db, fresh_db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)
        _expire(db, session.id)

        assert store.get_session(db, session.id) is None
        assert not _row_exists(fresh_db(), session.id)

    def test_with_user_projection(self, db):
        user = create_user(db, "user@example.com", is_admin=True)
        org = create_org(db, "Acme")
        session = store.create_session(db, user.id, org.id)

        loaded = store.get_session_with_user(db, session.id)

        assert loaded.current_org_id == org.id
        assert loaded.user.id == user.id
        assert loaded.user.email == "user@example.com"
        assert loaded.user.is_admin is True
        assert not hasattr(loaded.user, "hashed_password")

    def test_with_user_expired_is_deleted(self, db, fresh_db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)
        _expire(db, session.id)

        assert store.get_session_with_user(db, session.id) is None
        assert not _row_exists(fresh_db(), session.id)


class TestRefreshAndSwitch:
    def test_refresh_bumps_activity_but_not_expiry(self, db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)
        original_expiry = session.expires_at
        session.last_accessed_at = utcnow() - timedelta(hours=1)
        db.commit()

        refreshed = store.refresh_session(db, session.id)

        assert refreshed.expires_at == original_expiry
        assert utcnow() - refreshed.last_accessed_at < timedelta(minutes=1)

    def test_refresh_missing_session(self, db):
        assert store.refresh_session(db, "nope") is None

    def test_switch_organization_sets_and_clears_pointer(self, db):
        user = create_user(db, "user@example.com")
        org = create_org(db, "Acme")
        session = store.create_session(db, user.id)

        assert store.switch_organization(db, session.id, org.id).current_org_id == org.id
        assert store.switch_organization(db, session.id, None).current_org_id is None

    def test_switch_missing_session(self, db):
        assert store.switch_organization(db, "nope", None) is None


class TestDeletion:
    def test_delete_is_idempotent(self, db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)

        assert store.delete_session(db, session.id) is True
        assert store.delete_session(db, session.id) is False
        assert store.get_session(db, session.id) is None

    def test_delete_user_sessions_only_touches_that_user(self, db):
        alice = create_user(db, "alice@example.com")
        bob = create_user(db, "bob@example.com")
        store.create_session(db, alice.id)
        store.create_session(db, alice.id)
        bobs = store.create_session(db, bob.id)

        assert store.delete_user_sessions(db, alice.id) == 2
        assert store.list_user_sessions(db, alice.id) == []
        assert store.get_session(db, bobs.id) is not None

    def test_cleanup_removes_only_expired(self, db):
        user = create_user(db, "user@example.com")
        live = store.create_session(db, user.id)
        stale = store.create_session(db, user.id)
        _expire(db, stale.id)

        assert store.cleanup_expired_sessions(db) == 1
        assert store.cleanup_expired_sessions(db) == 0
        assert _row_exists(db, live.id)
        assert not _row_exists(db, stale.id)

    def test_deleting_user_cascades_to_sessions(self, db, fresh_db):
        user = create_user(db, "user@example.com")
        session = store.create_session(db, user.id)

        db.delete(user)
        db.commit()

        assert not _row_exists(fresh_db(), session.id)

    def test_deleting_org_clears_session_pointer(self, db, fresh_db):
        user = create_user(db, "user@example.com")
        org = create_org(db, "Acme")
        session = store.create_session(db, user.id, org.id)

        db.delete(org)
        db.commit()

        assert fresh_db().get(AuthSession, session.id).current_org_id is None


def test_list_user_sessions_most_recent_first(db):
    user = create_user(db, "user@example.com")
    older = store.create_session(db, user.id)
    newer = store.create_session(db, user.id)
    expired = store.create_session(db, user.id)
    older.last_accessed_at = utcnow() - timedelta(hours=2)
    newer.last_accessed_at = utcnow() - timedelta(hours=1)
    db.commit()
    _expire(db, expired.id)

    assert [s.id for s in store.list_user_sessions(db, user.id)] == [newer.id, older.id]
