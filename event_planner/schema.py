"""
Local SQLite Schema.

Creates the tables the client core keeps on disk:

- ``schema_version``: single-row tracker for migrations.
- ``local_cache``: string key-value store backing ``LocalCacheService``
  (pending sign-up roles and the last resolved role).
- ``audit_log``: queryable copy of role write-backs and admin actions.

Migration strategy mirrors a classic ``user_version`` scheme: fresh
databases get every table in one shot; existing databases only run the
incremental functions registered in :data:`_MIGRATIONS`.  The whole
upgrade is one transaction so a failure leaves the previous version in
place and the next start retries.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from event_planner.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS local_cache (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

# version -> migration applied when upgrading *to* that version
_MIGRATIONS: dict[int, Callable[[sqlite3.Connection, StructuredLogger], None]] = {}


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute(_TABLE_DEFINITIONS[0])
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the version tracker.  Does not commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    """Apply migrations in ``(from_version, to_version]``.  Does not commit."""
    for version in sorted(v for v in _MIGRATIONS if from_version < v <= to_version):
        logger.info("Running local schema migration to version %d", version)
        _MIGRATIONS[version](conn, logger)


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Bring the local database up to :data:`CURRENT_SCHEMA_VERSION`.

    Idempotent; called on every start.

    Raises:
        sqlite3.Error: If the upgrade fails.  The transaction is rolled
            back first.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Local schema is up to date (version %d).", current)
        return

    try:
        if current == 0:
            for ddl in _TABLE_DEFINITIONS:
                conn.execute(ddl)
        else:
            _run_incremental_migrations(conn, logger, current, CURRENT_SCHEMA_VERSION)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error("Local schema migration failed; still at version %d.", current)
        raise

    logger.info("Local schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
