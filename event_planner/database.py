"""
Backend Connection Layer.

Owns the two stores the client core talks to:

- **Supabase (hosted)**: authentication, the ``profiles`` / ``vendors`` /
  ``admins`` tables and their realtime change feeds, reached through the
  async client so every round trip is an ``await`` on the event loop.
- **SQLite (local)**: the durable client-side cache (role strings that
  must survive a restart) and the local audit trail.

This module only manages *connections*.  Queries live in the
repositories and in ``LocalCacheService``.

Usage::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_CACHE_PATH),
        logger=StructuredLogger(name="database"),
    )
    await db.connect()
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, acreate_client

from event_planner.logger import StructuredLogger


class DatabaseManager:
    """Holds the async Supabase client and the local SQLite connection.

    The SQLite connection is opened in ``__init__``; the Supabase client
    needs the event loop and is created by :meth:`connect`.  When the URL
    or key is empty the client is never created and :pyattr:`supabase`
    raises ``RuntimeError``, which the credential store and repositories
    translate into their own "backend unreachable" outcomes.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL.  May be empty (offline).
    supabase_key:
        The anon key for end-user sessions, or the service-role key for
        out-of-band maintenance scripts.
    sqlite_path:
        Filesystem path for the local cache database; ``:memory:`` is
        accepted for tests.
    logger:
        Structured logger for connection lifecycle events.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase_url: str = supabase_url
        self._supabase_key: str = supabase_key
        self._supabase: Optional[AsyncClient] = None
        self._sqlite_conn: Optional[sqlite3.Connection] = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> AsyncClient:
        """Return the connected async Supabase client.

        Raises
        ------
        RuntimeError
            If :meth:`connect` was not called or credentials are missing.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Call connect() with a configured SUPABASE_URL first."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the local SQLite connection.

        Raises
        ------
        RuntimeError
            If the connection has been closed.
        """
        if self._sqlite_conn is None:
            raise RuntimeError("The local cache database has been closed.")
        return self._sqlite_conn

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Create the async Supabase client.

        Returns ``True`` when the client is ready.  Credential format
        problems are logged and leave the manager offline.
        """
        if self._supabase is not None:
            return True

        if not (self._supabase_url and self._supabase_key):
            self._logger.warning(
                "Supabase credentials not configured; backend calls will fail."
            )
            return False

        try:
            self._supabase = await acreate_client(self._supabase_url, self._supabase_key)
        except (ValueError, TypeError) as exc:
            self._logger.warning("Supabase credential format error: %s", exc)
            return False
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialisation failure: %s", exc, exc_info=True,
            )
            return False

        self._logger.info("Supabase async client initialised.")
        return True

    async def close(self) -> None:
        """Close realtime sockets and the SQLite connection.

        Safe to call multiple times.
        """
        if self._supabase is not None:
            try:
                await self._supabase.remove_all_channels()
            except Exception as exc:
                self._logger.warning("Failed to close realtime channels: %s", exc)
            self._supabase = None

        if self._sqlite_conn is not None:
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._sqlite_conn = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open (or create) the local cache database.

        Raises
        ------
        PermissionError
            With a user-facing message when the file or its directory is
            read-only or locked.
        """
        try:
            conn = sqlite3.connect(str(path))
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local cache at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
