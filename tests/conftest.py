"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB

from rankkeeper.database.models import Base
from rankkeeper.database.seed import seed_default_ranks
from rankkeeper.engine.clock import FixedClock
from rankkeeper.services.catalog import SqlRankCatalog
from rankkeeper.services.entitlement_service import EntitlementService
from rankkeeper.services.store import SqlEntitlementStore

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

# A fixed point in time most tests start from
T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Rankkeeper tables.

    Uses StaticPool so every session shares the same in-memory database.
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
def seeded_engine(db_engine: Engine) -> Engine:
    """``db_engine`` with the default rank catalogue (vip, vip_plus, mvp)."""
    seed_default_ranks(db_engine)
    return db_engine


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def store(seeded_engine, clock) -> SqlEntitlementStore:
    return SqlEntitlementStore(seeded_engine, clock)


@pytest.fixture
def catalog(seeded_engine) -> SqlRankCatalog:
    return SqlRankCatalog(seeded_engine)


@pytest.fixture
def service(catalog, store, clock) -> EntitlementService:
    return EntitlementService(catalog, store, clock)
