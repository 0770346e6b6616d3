"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of earnledger.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event, update  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from earnledger.database.engine import init_db  # noqa: E402
from earnledger.database.models import Account  # noqa: E402
from earnledger.services import account_store, ledger_service  # noqa: E402

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
    """Create an in-memory SQLite engine with all EarnLedger tables + defaults.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine safe for real concurrent threads.

    Every transaction starts with ``BEGIN IMMEDIATE`` so writers queue on the
    database lock instead of failing with "database is locked".
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def _no_retry_sleep():
    """Keep the optimistic retry loop fast in tests."""
    previous = ledger_service.get_retry_policy()
    ledger_service.configure_retry_policy(previous.max_attempts, 0.0)
    yield
    ledger_service.configure_retry_policy(previous.max_attempts, previous.retry_delay)


def make_account(engine: Engine, account_id: str = "acct-1", label: str = "Alice", **fields):
    """Register an account and force arbitrary starting values.

    The direct UPDATE is test setup only; production code writes accounts
    exclusively through ``account_store.conditional_update``.
    """
    account_store.create_account(engine, account_id, label)
    if fields:
        with Session(engine) as session:
            session.execute(update(Account).where(Account.id == account_id).values(**fields))
            session.commit()
    return account_store.get_account(engine, account_id)


@pytest.fixture
def seed_account():
    """The ``make_account`` helper, for tests using a non-default engine."""
    return make_account


@pytest.fixture
def account_factory(db_engine):
    def _make(account_id: str = "acct-1", label: str = "Alice", **fields):
        return make_account(db_engine, account_id, label, **fields)
    return _make


def make_token(sub: str = "acct-1", *, is_admin: bool = False, **claims) -> str:
    """Create a signed JWT the way the external identity provider would."""
    import jwt

    from earnledger.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "is_admin": is_admin, **claims},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def token_for():
    """Factory fixture: ``token_for("acct-1", is_admin=False)`` → signed JWT."""
    return make_token


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_token("admin-1", is_admin=True, username="FixtureAdmin")


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from earnledger.api.main import app
    from earnledger.api.routes import ledger as ledger_routes

    # Routers captured get_engine at import; override that exact object
    app.dependency_overrides[ledger_routes.get_engine] = lambda: db_engine
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
