"""
Durable Local Cache Service.

String key-value access to the ``local_cache`` table in the local SQLite
database.  Holds the client-side copies of role state that must survive
a restart:

- ``user_role``: the last resolved role of the signed-in user.
- ``pending_role:<email>``: the role requested at sign-up, consumed by
  the first resolution for that email.

The table is created by ``initialize_schema``::

    CREATE TABLE IF NOT EXISTS local_cache (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from event_planner.logger import StructuredLogger

USER_ROLE_KEY: str = "user_role"
_PENDING_ROLE_PREFIX: str = "pending_role:"


def pending_role_key(email: str) -> str:
    """Cache key for the sign-up role of *email* (normalised)."""
    return f"{_PENDING_ROLE_PREFIX}{email.strip().lower()}"


class LocalCacheService:
    """Reads and writes cache entries; never raises on storage errors.

    Parameters
    ----------
    conn:
        Open SQLite connection whose schema has been initialised.
    logger:
        Structured logger instance.
    """

    def __init__(self, conn: sqlite3.Connection, logger: StructuredLogger) -> None:
        self._conn = conn
        self._logger = logger

    def get(self, key: str) -> Optional[str]:
        """Read a value by key.  Returns ``None`` if not found."""
        try:
            row = self._conn.execute(
                "SELECT value FROM local_cache WHERE key = ?",
                (key,),
            ).fetchone()
            return row[0] if row is not None else None
        except sqlite3.Error as exc:
            self._logger.warning("Failed to read local_cache[%s]: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> bool:
        """Upsert a value.  Returns ``True`` on success."""
        try:
            self._conn.execute(
                """
                INSERT INTO local_cache (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value      = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            self._conn.commit()
            self._logger.debug("local_cache[%s] updated.", key)
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to write local_cache[%s]: %s", key, exc)
            return False

    def remove(self, key: str) -> bool:
        """Delete a key.  Missing keys count as success."""
        try:
            self._conn.execute("DELETE FROM local_cache WHERE key = ?", (key,))
            self._conn.commit()
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to delete local_cache[%s]: %s", key, exc)
            return False
