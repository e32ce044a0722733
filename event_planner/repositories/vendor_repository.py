"""
Vendor Repository.

Data access for the ``vendors`` table.  A user owns at most one vendor
record; its existence is what the role resolver checks.
"""

from __future__ import annotations

from typing import Callable, Optional

from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger
from event_planner.models.records import VendorRecord
from event_planner.models.session_models import ChangeEvent
from event_planner.repositories.base_repository import (
    BaseRepository,
    ChannelSubscription,
    extract_rows,
)


class VendorRepository(BaseRepository):
    """Data access layer for :class:`VendorRecord` rows."""

    TABLE = "vendors"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    async def get_by_user_id(self, user_id: str) -> Optional[VendorRecord]:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute(),
            operation_name="get_by_user_id (vendors)",
        )
        rows = extract_rows(response)
        return VendorRecord(**rows[0]) if rows else None

    async def exists_for_user(self, user_id: str) -> bool:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute(),
            operation_name="exists_for_user (vendors)",
        )
        return bool(extract_rows(response))

    async def insert(self, vendor: VendorRecord) -> VendorRecord:
        """Insert *vendor*; the database assigns ``id`` and timestamps."""
        payload = vendor.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"id", "created_at", "updated_at"},
        )
        response = await self._run(
            lambda: self.supabase.table(self.TABLE).insert(payload).execute(),
            operation_name="insert (vendors)",
        )
        rows = extract_rows(response)
        self._logger.info("Vendor record created for %s", vendor.user_id)
        return VendorRecord(**rows[0]) if rows else vendor

    async def set_verified(self, vendor_id: str, verified: bool) -> Optional[VendorRecord]:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .update({"is_verified": verified})
            .eq("id", vendor_id)
            .execute(),
            operation_name="set_verified (vendors)",
        )
        rows = extract_rows(response)
        return VendorRecord(**rows[0]) if rows else None

    async def subscribe(
        self, user_id: str, callback: Callable[[ChangeEvent], None],
    ) -> ChannelSubscription:
        return await self._subscribe("user_id", user_id, callback)
