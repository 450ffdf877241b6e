"""Tests for the password reset token manager."""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
import re

from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import sessionmaker

from orgauth.core.security import verify_password
from orgauth.database import Base, create_db_engine, utcnow
from orgauth.models import PasswordResetToken, User
from orgauth.services import password_reset as resets
from orgauth.services.password_reset import ResetFailure

from factories import DEFAULT_PASSWORD, create_user


def _token_row(db, token):
    return db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == resets.hash_reset_token(token))
    ).scalar_one()


class TestIssuing:
    def test_token_is_64_hex_chars(self):
        assert re.fullmatch(r"[0-9a-f]{64}", resets.generate_reset_token())

    def test_hash_is_deterministic_sha256(self):
        token = resets.generate_reset_token()
        assert resets.hash_reset_token(token) == resets.hash_reset_token(token)
        assert len(resets.hash_reset_token(token)) == 64
        assert resets.hash_reset_token(token) != token

    def test_only_the_digest_is_stored(self, db):
        user = create_user(db, "alice@example.com")

        issued = resets.create_password_reset_token(db, user.id)

        stored = db.execute(select(PasswordResetToken.token_hash)).scalars().all()
        assert stored == [resets.hash_reset_token(issued.token)]

    def test_request_issues_one_hour_token(self, db):
        create_user(db, "alice@example.com")

        result = resets.request_password_reset(db, "Alice@Example.com")

        assert result.success
        assert result.email == "alice@example.com"
        remaining = result.issued.expires_at - utcnow()
        assert timedelta(minutes=59) < remaining <= timedelta(hours=1)

    def test_request_for_unknown_email(self, db):
        result = resets.request_password_reset(db, "nonexistent@x.com")

        assert not result.success
        assert result.error == ResetFailure.USER_NOT_FOUND
        assert result.issued is None
        assert db.execute(select(PasswordResetToken)).first() is None

    def test_new_request_supersedes_previous_token(self, db):
        create_user(db, "alice@example.com")

        first = resets.request_password_reset(db, "alice@example.com").issued
        second = resets.request_password_reset(db, "alice@example.com").issued

        assert resets.validate_reset_token(db, first.token).error == ResetFailure.USED_TOKEN
        assert resets.validate_reset_token(db, second.token).valid
        # Superseded rows are kept, marked used
        assert _token_row(db, first.token).used_at is not None


class TestValidation:
    def test_valid_token_reports_user(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)

        validation = resets.validate_reset_token(db, issued.token)

        assert validation.valid
        assert validation.user_id == user.id

    def test_unknown_token(self, db):
        assert resets.validate_reset_token(db, "0" * 64).error == ResetFailure.INVALID_TOKEN

    def test_expired_token(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)
        _token_row(db, issued.token).expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        assert resets.validate_reset_token(db, issued.token).error == ResetFailure.EXPIRED_TOKEN

    def test_used_is_reported_before_expired(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)
        row = _token_row(db, issued.token)
        row.used_at = utcnow()
        row.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        assert resets.validate_reset_token(db, issued.token).error == ResetFailure.USED_TOKEN

    def test_validation_does_not_consume(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)

        resets.validate_reset_token(db, issued.token)

        assert resets.validate_reset_token(db, issued.token).valid


class TestResetPassword:
    def test_reset_changes_password_and_consumes_token(self, db, fresh_db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)

        outcome = resets.reset_password(db, issued.token, "NewPass456")

        assert outcome.success
        check = fresh_db()
        stored = check.get(User, user.id)
        assert verify_password("NewPass456", stored.hashed_password)
        assert not verify_password(DEFAULT_PASSWORD, stored.hashed_password)
        assert _token_row(check, issued.token).used_at is not None

    def test_second_use_fails_with_used_token(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)
        assert resets.reset_password(db, issued.token, "NewPass456").success

        outcome = resets.reset_password(db, issued.token, "OtherPass789")

        assert not outcome.success
        assert outcome.error == ResetFailure.USED_TOKEN
        assert verify_password("NewPass456", db.get(User, user.id).hashed_password)

    def test_expired_token_leaves_password_alone(self, db):
        user = create_user(db, "alice@example.com")
        issued = resets.create_password_reset_token(db, user.id)
        _token_row(db, issued.token).expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        outcome = resets.reset_password(db, issued.token, "NewPass456")

        assert outcome.error == ResetFailure.EXPIRED_TOKEN
        assert verify_password(DEFAULT_PASSWORD, db.get(User, user.id).hashed_password)
        assert _token_row(db, issued.token).used_at is None

    def test_unknown_token(self, db):
        assert resets.reset_password(db, "f" * 64, "NewPass456").error == ResetFailure.INVALID_TOKEN

    def test_concurrent_resets_with_one_token_have_one_winner(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        setup = factory()
        user = create_user(setup, "alice@example.com")
        token = resets.create_password_reset_token(setup, user.id).token
        setup.close()

        def attempt(index):
            db = factory()
            try:
                return resets.reset_password(db, token, f"RacePass{index}A")
            finally:
                db.close()

        try:
            with ThreadPoolExecutor(max_workers=6) as pool:
                outcomes = list(pool.map(attempt, range(6)))
        finally:
            engine.dispose()

        winners = [o for o in outcomes if o.success]
        assert len(winners) == 1
        assert all(o.error == ResetFailure.USED_TOKEN for o in outcomes if not o.success)

    def test_concurrent_requests_leave_one_usable_token(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'requests.db'}")
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        setup = factory()
        user = create_user(setup, "alice@example.com")
        setup.close()

        def request(_):
            db = factory()
            try:
                return resets.request_password_reset(db, "alice@example.com")
            finally:
                db.close()

        try:
            with ThreadPoolExecutor(max_workers=8) as pool:
                results = list(pool.map(request, range(8)))

            check = factory()
            tokens = resets.get_user_reset_tokens(check, user.id)
            check.close()
        finally:
            engine.dispose()

        assert all(r.success for r in results)
        assert len(tokens) == 8
        assert len([t for t in tokens if t.used_at is None]) == 1

    def test_issuing_locks_the_user_row(self):
        statement = resets.lock_user_by_email("alice@example.com")

        assert "FOR UPDATE" in str(statement.compile(dialect=postgresql.dialect()))


class TestHousekeeping:
    def test_cleanup_removes_expired_tokens(self, db):
        user = create_user(db, "alice@example.com")
        live = resets.create_password_reset_token(db, user.id)
        stale = resets.create_password_reset_token(db, user.id)
        _token_row(db, stale.token).expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        assert resets.cleanup_expired_reset_tokens(db) == 1
        assert resets.validate_reset_token(db, live.token).valid
        assert resets.validate_reset_token(db, stale.token).error == ResetFailure.INVALID_TOKEN

    def test_user_tokens_newest_first(self, db):
        user = create_user(db, "alice@example.com")
        first = resets.create_password_reset_token(db, user.id)
        second = resets.create_password_reset_token(db, user.id)
        _token_row(db, first.token).created_at = utcnow() - timedelta(minutes=5)
        db.commit()

        hashes = [row.token_hash for row in resets.get_user_reset_tokens(db, user.id)]

        assert hashes == [resets.hash_reset_token(second.token), resets.hash_reset_token(first.token)]
