"""
Database Configuration and Session Management

SQLAlchemy engine, session factory and declarative base.

The backing store is the only shared mutable resource in the service:
every session, membership and reset-token operation is a short
request against it, scoped to one row or one transaction.
"""
from datetime import datetime, timezone
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from orgauth.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def utcnow() -> datetime:
    """Naive UTC timestamp. All DateTime columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        # In-memory databases live and die with their connection, so every
        # thread has to share the one connection.
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "poolclass": QueuePool,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Verify connections before using (handles stale connections)
    }


def create_db_engine(url: str):
    """Build an engine for the given URL with the connection setup hooks attached."""
    engine = create_engine(url, echo=settings.DEBUG, **_engine_options(url))

    @event.listens_for(engine, "connect")
    def configure_connection(dbapi_connection, connection_record):
        """Set connection-level configuration on new connections."""
        cursor = dbapi_connection.cursor()
        if url.startswith("postgresql"):
            cursor.execute("SET TIME ZONE 'UTC'")
        elif url.startswith("sqlite"):
            # Cascades (user -> sessions, org -> memberships) rely on FK enforcement
            cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        logger.debug("New database connection established")

    return engine


engine = create_db_engine(settings.DATABASE_URL)

# expire_on_commit=False: services hand ORM rows back to the request layer
# after committing, and those rows are read without another round trip.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)

# Base class for all models
Base = declarative_base()


def get_db() -> Session:
    """
    Dependency function that provides a database session.

    The session is closed after the request completes. Each request gets
    its own session; nothing is shared between requests.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Initialize database tables.

    In production, you'd use Alembic migrations instead.
    """
    # Import models so they are registered on Base.metadata
    import orgauth.models  # noqa: F401

    logger.warning("init_db() called - use Alembic migrations in production!")
    Base.metadata.create_all(bind=bind or engine)
