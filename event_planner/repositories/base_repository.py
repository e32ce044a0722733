"""
Base Repository.

Shared infrastructure for the Supabase-backed repositories:

- ``DatabaseManager`` and logger references received via ``__init__``
- ``_run``: awaits a PostgREST request and classifies failures into
  ``RepositoryUnavailableError`` / ``RepositoryError``
- ``_subscribe``: opens a realtime ``postgres_changes`` channel filtered
  to one user's rows
"""

from __future__ import annotations

import itertools
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger
from event_planner.models.session_models import ChangeEvent
from event_planner.repositories.errors import (
    NO_ROWS_CODE,
    TABLE_MISSING_CODES,
    RepositoryError,
    RepositoryUnavailableError,
)

T = TypeVar("T")

# Message fragments PostgREST uses when the relation itself is missing.
_TABLE_MISSING_FRAGMENTS: tuple[str, ...] = (
    "does not exist",
    "could not find the table",
    "schema cache",
)

_channel_counter = itertools.count(1)


def extract_rows(response: Any) -> list[dict[str, Any]]:
    """Return ``response.data`` as a list of rows.

    ``maybe_single()`` yields ``None`` instead of a response on some
    client releases, and a bare dict instead of a list on others.
    """
    if response is None:
        return []
    data = getattr(response, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


class ChannelSubscription:
    """Handle for one realtime channel; ``unsubscribe`` is idempotent."""

    def __init__(self, client: AsyncClient, channel: Any, logger: StructuredLogger) -> None:
        self._client = client
        self._channel = channel
        self._logger = logger
        self._closed = False

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._client.remove_channel(self._channel)
        except Exception as exc:
            self._logger.warning("Failed to remove realtime channel: %s", exc)


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> AsyncClient:
        """Returns the async Supabase client."""
        return self._db.supabase

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    async def _run(
        self,
        request: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
    ) -> Optional[T]:
        """Await *request* and translate backend failures.

        Returns ``None`` for PostgREST's "no rows" answer so callers can
        treat it as an ordinary miss.

        Raises
        ------
        RepositoryUnavailableError
            The table is missing or not exposed through the API.
        RepositoryError
            Any other failure, including the client being offline.
        """
        try:
            return await request()
        except APIError as exc:
            code = str(exc.code) if exc.code is not None else None
            message = exc.message or str(exc)
            if code == NO_ROWS_CODE or code == "204":
                return None
            if self._is_table_missing(code, message):
                raise RepositoryUnavailableError(
                    f"Table '{self.TABLE}' is unavailable: {message}",
                    table=self.TABLE,
                    code=code,
                    original_error=exc,
                ) from exc
            self._logger.warning(
                "%s failed on '%s' (%s): %s", operation_name, self.TABLE, code, message,
            )
            raise RepositoryError(
                message, table=self.TABLE, code=code, original_error=exc,
            ) from exc
        except httpx.HTTPError as exc:
            self._logger.warning(
                "%s could not reach the backend: %s", operation_name, exc,
            )
            raise RepositoryError(
                f"Network error during {operation_name}: {exc}",
                table=self.TABLE,
                original_error=exc,
            ) from exc
        except RuntimeError as exc:
            # DatabaseManager.supabase raises RuntimeError while offline.
            raise RepositoryError(
                str(exc), table=self.TABLE, original_error=exc,
            ) from exc

    @staticmethod
    def _is_table_missing(code: Optional[str], message: str) -> bool:
        if code in TABLE_MISSING_CODES:
            return True
        lowered = message.lower()
        return "relation" in lowered and any(
            fragment in lowered for fragment in _TABLE_MISSING_FRAGMENTS
        )

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def _subscribe(
        self,
        column: str,
        value: str,
        callback: Callable[[ChangeEvent], None],
    ) -> ChannelSubscription:
        """Listen for every row change on ``TABLE`` where *column* = *value*.

        *callback* runs synchronously inside the realtime client's
        receive loop with a parsed :class:`ChangeEvent`.
        """
        client = self.supabase
        table = self.TABLE

        def _on_change(payload: dict[str, Any]) -> None:
            try:
                event = ChangeEvent.from_payload(table, payload)
            except (TypeError, ValueError) as exc:
                self._logger.warning("Ignoring malformed %s change payload: %s", table, exc)
                return
            callback(event)

        channel_name = f"{table}-{column}-{value}-{next(_channel_counter)}"
        channel = client.channel(channel_name)
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            filter=f"{column}=eq.{value}",
            callback=_on_change,
        )
        await channel.subscribe()
        self._logger.debug("Subscribed to %s changes for %s=%s", table, column, value)
        return ChannelSubscription(client, channel, self._logger)
