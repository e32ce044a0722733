"""
Profile Repository.

Data access for the ``profiles`` table (one row per identity, keyed by
the auth user id).
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger
from event_planner.models.enums import UserRole
from event_planner.models.records import Profile
from event_planner.models.session_models import ChangeEvent
from event_planner.repositories.base_repository import (
    BaseRepository,
    ChannelSubscription,
    extract_rows,
)


class ProfileRepository(BaseRepository):
    """Data access layer for :class:`Profile` rows.

    **No ``delete()`` method.**  Profiles are deactivated through
    ``update(user_id, {"is_active": False})`` so audit rows and vendor
    listings never point at a missing user.
    """

    TABLE = "profiles"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    async def get_by_id(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key; ``None`` when absent."""
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("*")
            .eq("id", user_id)
            .maybe_single()
            .execute(),
            operation_name="get_by_id (profiles)",
        )
        rows = extract_rows(response)
        return Profile(**rows[0]) if rows else None

    async def get_by_email(self, email: str) -> Optional[Profile]:
        """Fetch a profile by normalised email address."""
        normalized_email = email.strip().lower()
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("*")
            .eq("email", normalized_email)
            .limit(1)
            .execute(),
            operation_name="get_by_email (profiles)",
        )
        rows = extract_rows(response)
        return Profile(**rows[0]) if rows else None

    async def list_all(self) -> list[Profile]:
        """Fetch every profile, newest first."""
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("*")
            .order("created_at", desc=True)
            .execute(),
            operation_name="list_all (profiles)",
        )
        return [Profile(**row) for row in extract_rows(response)]

    async def insert(self, profile: Profile) -> Profile:
        """Insert *profile* and return the stored row."""
        payload = profile.model_dump(
            mode="json", exclude_none=True, exclude={"created_at", "updated_at"},
        )
        response = await self._run(
            lambda: self.supabase.table(self.TABLE).insert(payload).execute(),
            operation_name="insert (profiles)",
        )
        rows = extract_rows(response)
        self._logger.info("Profile created for %s", profile.id)
        return Profile(**rows[0]) if rows else profile

    async def update(self, user_id: str, patch: dict[str, Any]) -> Optional[Profile]:
        """Apply *patch* to one profile; returns the updated row or ``None``."""
        payload = {
            key: (value.value if isinstance(value, UserRole) else value)
            for key, value in patch.items()
        }
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .update(payload)
            .eq("id", user_id)
            .execute(),
            operation_name="update (profiles)",
        )
        rows = extract_rows(response)
        return Profile(**rows[0]) if rows else None

    async def exists_with_role(self, role: UserRole) -> bool:
        response = await self._run(
            lambda: self.supabase.table(self.TABLE)
            .select("id")
            .eq("role", role.value)
            .limit(1)
            .execute(),
            operation_name="exists_with_role (profiles)",
        )
        return bool(extract_rows(response))

    async def subscribe(
        self, user_id: str, callback: Callable[[ChangeEvent], None],
    ) -> ChannelSubscription:
        """Watch the profile row whose ``id`` is *user_id*."""
        return await self._subscribe("id", user_id, callback)
