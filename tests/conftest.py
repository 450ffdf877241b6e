import os

# Settings are cached on first import, so the environment must be in place
# before anything from orgauth is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CLEANUP_INTERVAL_SECONDS"] = "0"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from orgauth.api.deps import get_mailer  # noqa: E402
from orgauth.database import Base, SessionLocal, engine, init_db  # noqa: E402
from orgauth.main import app  # noqa: E402

from factories import RecordingMailer  # noqa: E402


@pytest.fixture(autouse=True)
def tables():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fresh_db():
    """Factory for new sessions, for reading state after an HTTP call."""
    sessions = []

    def factory():
        session = SessionLocal()
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def make_client(mailer):
    """Independent clients (separate cookie jars) for multi-user scenarios."""
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield lambda: TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()
