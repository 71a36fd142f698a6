"""Integration test fixtures.

Applies every migration under migrations/ against an ephemeral PostgreSQL
database provided by pytest-postgresql before each integration test.
"""

from __future__ import annotations

from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

from inventory_restore.config import RestoreSettings
from inventory_restore.connection import ConnectionManager, ResilientExecutor

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = sorted((PROJECT_ROOT / "migrations").glob("*.sql"))

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")

FAST_SETTINGS = RestoreSettings(
    connect_attempts=2,
    connect_backoff_seconds=0.0,
    op_max_retries=2,
    op_backoff_seconds=0.0,
)


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (autocommit connection, dsn) with schema applied.

    The connection is autocommit so assertions see rows committed by the
    restore's own connection.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def executor(db_conn):
    """ResilientExecutor over its own managed connection, zero backoff."""
    _, dsn = db_conn
    manager = ConnectionManager(dsn, FAST_SETTINGS)
    try:
        yield ResilientExecutor(manager, FAST_SETTINGS)
    finally:
        manager.close()
