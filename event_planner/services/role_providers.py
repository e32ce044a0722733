"""
Role Providers.

Each provider answers one question about an identity ("does this source
know the role?") through the same ``try_resolve`` coroutine.
``RoleResolver`` walks them in precedence order and stops at the first
non-``None`` answer:

0. ``DesignatedAdminProvider``: configured administrator email
1. ``PendingRoleProvider``: role requested at sign-up on this device
2. ``MetadataProvider``: role cached in identity metadata
3. ``ProfileProvider``: ``profiles.role``
4. ``VendorRecordProvider``: a ``vendors`` row exists
5. ``AdminRecordProvider``: an ``admins`` row exists

Providers that read repositories let ``RepositoryError`` propagate; the
resolver decides whether the failure means "abstain" or "give up".
"""

from __future__ import annotations

from typing import Optional

from event_planner.interfaces import AdminStore, LocalCache, ProfileStore, VendorStore
from event_planner.models.enums import RoleSource, UserRole
from event_planner.models.identity import Identity
from event_planner.services.local_cache import pending_role_key


class RoleProvider:
    """One source in the precedence chain."""

    source: RoleSource

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        raise NotImplementedError

    async def on_resolved(
        self, identity: Identity, role: UserRole, source: RoleSource,
    ) -> None:
        """Called after a resolution completed and was written back."""


class DesignatedAdminProvider(RoleProvider):
    """Resolves ``admin`` for one configured email; disabled when empty."""

    source = RoleSource.DESIGNATED_ADMIN

    def __init__(self, admin_email: str) -> None:
        self._admin_email = admin_email.strip().lower()

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        if self._admin_email and identity.normalized_email == self._admin_email:
            return UserRole.ADMIN
        return None


class PendingRoleProvider(RoleProvider):
    """Role stored locally at sign-up, keyed by normalised email.

    The entry is cleared once a resolution it won has been written back,
    so it can never override a later administrative change.
    """

    source = RoleSource.PENDING_LOCAL

    def __init__(self, cache: LocalCache) -> None:
        self._cache = cache

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        if not identity.email:
            return None
        return UserRole.parse(self._cache.get(pending_role_key(identity.email)))

    async def on_resolved(
        self, identity: Identity, role: UserRole, source: RoleSource,
    ) -> None:
        if source is self.source:
            self._cache.remove(pending_role_key(identity.email))


class MetadataProvider(RoleProvider):
    source = RoleSource.METADATA

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        return identity.metadata_role


class ProfileProvider(RoleProvider):
    """``profiles.role``; abstains when the row or the value is missing."""

    source = RoleSource.PROFILE

    def __init__(self, profiles: ProfileStore) -> None:
        self._profiles = profiles

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        profile = await self._profiles.get_by_id(identity.id)
        return profile.role if profile is not None else None


class VendorRecordProvider(RoleProvider):
    source = RoleSource.VENDOR_RECORD

    def __init__(self, vendors: VendorStore) -> None:
        self._vendors = vendors

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        if await self._vendors.exists_for_user(identity.id):
            return UserRole.VENDOR
        return None


class AdminRecordProvider(RoleProvider):
    source = RoleSource.ADMIN_RECORD

    def __init__(self, admins: AdminStore) -> None:
        self._admins = admins

    async def try_resolve(self, identity: Identity) -> Optional[UserRole]:
        if await self._admins.exists_for_user(identity.id):
            return UserRole.ADMIN
        return None


def default_providers(
    *,
    admin_email: str,
    cache: LocalCache,
    profiles: ProfileStore,
    vendors: VendorStore,
    admins: AdminStore,
) -> list[RoleProvider]:
    """The standard precedence chain, highest priority first."""
    return [
        DesignatedAdminProvider(admin_email),
        PendingRoleProvider(cache),
        MetadataProvider(),
        ProfileProvider(profiles),
        VendorRecordProvider(vendors),
        AdminRecordProvider(admins),
    ]
