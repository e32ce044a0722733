"""
Admin Repository.

Data access for the ``admins`` table.  A row marks its ``user_id`` as an
administrator; rows are inserted by the seed script or by an existing
administrator promoting someone.
"""

from __future__ import annotations

from typing import Callable

from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger
from event_planner.models.records import AdminRecord
from event_planner.models.session_models import ChangeEvent
from event_planner.repositories.base_repository import (
    BaseRepository,
    ChannelSubscription,
    extract_rows,
)


class AdminRepository(BaseRepository):
    """Data access layer for :class:`AdminRecord` rows."""

    TABLE = "admins"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    async def exists_for_user(self, user_id: str) -> bool:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute(),
            operation_name="exists_for_user (admins)",
        )
        return bool(extract_rows(response))

    async def any_exists(self) -> bool:
        """``True`` when at least one administrator row exists."""
        response = await self._run(
            lambda: self.supabase.table(self.TABLE).select("id").limit(1).execute(),
            operation_name="any_exists (admins)",
        )
        return bool(extract_rows(response))

    async def insert(self, user_id: str) -> AdminRecord:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .insert({"user_id": user_id})
            .execute(),
            operation_name="insert (admins)",
        )
        rows = extract_rows(response)
        self._logger.info("Admin record created for %s", user_id)
        return AdminRecord(**rows[0]) if rows else AdminRecord(user_id=user_id)

    async def remove_for_user(self, user_id: str) -> None:
        await self._run(
            lambda: self.supabase.table(self.TABLE)
            .delete()
            .eq("user_id", user_id)
            .execute(),
            operation_name="remove_for_user (admins)",
        )
        self._logger.info("Admin record removed for %s", user_id)

    async def subscribe(
        self, user_id: str, callback: Callable[[ChangeEvent], None],
    ) -> ChannelSubscription:
        return await self._subscribe("user_id", user_id, callback)
