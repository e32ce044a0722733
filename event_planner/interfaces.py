"""
Collaborator Contracts.

Structural types for the external collaborators the session core
depends on.  The production implementations are
``SupabaseCredentialStore``, the three Supabase repositories and
``LocalCacheService``; tests pass in-memory objects with the same
methods.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from event_planner.models.enums import SessionEvent, UserRole
from event_planner.models.identity import Identity
from event_planner.models.records import AdminRecord, Profile, VendorRecord
from event_planner.models.session_models import ChangeEvent

SessionCallback = Callable[[SessionEvent, Optional[Identity]], None]
ChangeCallback = Callable[[ChangeEvent], None]


class Unsubscribable(Protocol):
    """Handle returned by every subscription."""

    async def unsubscribe(self) -> None: ...  # noqa: E704


class CredentialStore(Protocol):
    """Authentication provider.

    Rejections raise ``CredentialError``; successful calls return the
    affected identity where one exists.
    """

    async def sign_in(self, email: str, password: str) -> Identity: ...  # noqa: E704

    async def sign_up(  # noqa: E704
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
        redirect_to: Optional[str] = None,
    ) -> Optional[Identity]: ...

    async def sign_out(self) -> None: ...  # noqa: E704

    async def get_session(self) -> Optional[Identity]: ...  # noqa: E704

    async def update_metadata(self, patch: dict[str, Any]) -> Optional[Identity]: ...  # noqa: E704

    async def reset_password_email(  # noqa: E704
        self, email: str, redirect_to: Optional[str] = None,
    ) -> None: ...

    async def update_password(self, new_password: str) -> None: ...  # noqa: E704

    def on_session_change(self, callback: SessionCallback) -> Unsubscribable: ...  # noqa: E704


class ProfileStore(Protocol):
    """The ``profiles`` table."""

    async def get_by_id(self, user_id: str) -> Optional[Profile]: ...  # noqa: E704

    async def get_by_email(self, email: str) -> Optional[Profile]: ...  # noqa: E704

    async def list_all(self) -> list[Profile]: ...  # noqa: E704

    async def insert(self, profile: Profile) -> Profile: ...  # noqa: E704

    async def update(self, user_id: str, patch: dict[str, Any]) -> Optional[Profile]: ...  # noqa: E704

    async def exists_with_role(self, role: UserRole) -> bool: ...  # noqa: E704

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribable: ...  # noqa: E704


class VendorStore(Protocol):
    """The ``vendors`` table."""

    async def get_by_user_id(self, user_id: str) -> Optional[VendorRecord]: ...  # noqa: E704

    async def exists_for_user(self, user_id: str) -> bool: ...  # noqa: E704

    async def insert(self, vendor: VendorRecord) -> VendorRecord: ...  # noqa: E704

    async def set_verified(self, vendor_id: str, verified: bool) -> Optional[VendorRecord]: ...  # noqa: E704

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribable: ...  # noqa: E704


class AdminStore(Protocol):
    """The ``admins`` table."""

    async def exists_for_user(self, user_id: str) -> bool: ...  # noqa: E704

    async def any_exists(self) -> bool: ...  # noqa: E704

    async def insert(self, user_id: str) -> AdminRecord: ...  # noqa: E704

    async def remove_for_user(self, user_id: str) -> None: ...  # noqa: E704

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> Unsubscribable: ...  # noqa: E704


class LocalCache(Protocol):
    """Durable string key-value store on this device."""

    def get(self, key: str) -> Optional[str]: ...  # noqa: E704

    def set(self, key: str, value: str) -> bool: ...  # noqa: E704

    def remove(self, key: str) -> bool: ...  # noqa: E704


class UserMetadataAdmin(Protocol):
    """Privileged write access to *another* user's identity metadata."""

    async def update_user_metadata(self, user_id: str, patch: dict[str, Any]) -> None: ...  # noqa: E704
