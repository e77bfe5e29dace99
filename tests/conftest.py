"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of medcircle.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders the PG JSONB type as TEXT; SQLAlchemy's JSON handling
# still serialises the values.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from medcircle.config import MedCircleConfig, VerificationSettings  # noqa: E402
from medcircle.database.models import Base  # noqa: E402
from medcircle.services.karma_service import KarmaLedger  # noqa: E402
from medcircle.services.moderation_service import ModerationService  # noqa: E402
from medcircle.services.notifications import NotificationCenter  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all MedCircle tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in ``run_db`` and by the
    TestClient's worker threads).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def ledger(db_engine: Engine, notifier: NotificationCenter) -> KarmaLedger:
    return KarmaLedger(db_engine, notifier)


@pytest.fixture
def moderation(
    db_engine: Engine, ledger: KarmaLedger, notifier: NotificationCenter
) -> ModerationService:
    return ModerationService(db_engine, ledger, notifier)


@pytest.fixture
def test_config() -> MedCircleConfig:
    return MedCircleConfig(
        community_name="Test Circle",
        verification=VerificationSettings(
            npi_api_url="https://npi.test/api/",
            document_endpoint="https://ocr.test/verify-document",
            license_boards={"CA": "https://board.test/ca"},
        ),
    )


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------
def make_token(sub: str = "user-1", username: str = "Dr. Test", is_admin: bool = False) -> str:
    """Create a signed session JWT.  Usable as a factory in any test."""
    import jwt

    from medcircle.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_token() -> str:
    return make_token()


@pytest.fixture
def admin_token() -> str:
    return make_token(sub="admin-1", username="FixtureAdmin", is_admin=True)


@pytest.fixture
def client(db_engine: Engine, notifier: NotificationCenter, test_config: MedCircleConfig):
    """FastAPI TestClient wired to the in-memory database.

    The lifespan is not entered, so no real ``DATABASE_URL`` is needed.
    """
    from fastapi.testclient import TestClient

    from medcircle.api import deps
    from medcircle.api.main import app

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_config] = lambda: test_config
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
