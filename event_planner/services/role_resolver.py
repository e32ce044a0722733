"""
Role Resolver.

Computes exactly one role per identity from a prioritised list of
``RoleProvider`` objects, then writes the answer back to every place a
role is cached so the next resolution short-circuits early:

- identity metadata ``role``
- ``profiles.role`` (row inserted when missing)
- local cache ``user_role``
- a default ``vendors`` row when the role is vendor and none exists

Failure policy:

- ``RepositoryUnavailableError`` from a provider: that provider
  abstains, the chain continues, the condition is logged at ERROR.
- any other ``RepositoryError``: the run stops with the default role,
  ``error`` set, and no write-back.
- the whole run exceeds the timeout: default role, ``error="timeout"``.
- the caller reports the run as superseded: no write-back,
  ``error="superseded"``.

Nothing escapes ``resolve`` for these cases, so a caller always gets a
role.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Callable, Optional, Sequence

from event_planner.interfaces import CredentialStore, LocalCache, ProfileStore, VendorStore
from event_planner.logger import StructuredLogger
from event_planner.models.enums import RoleSource, UserRole
from event_planner.models.identity import Identity
from event_planner.models.records import Profile, VendorRecord
from event_planner.models.session_models import RoleResolution
from event_planner.repositories.errors import RepositoryError, RepositoryUnavailableError
from event_planner.services.base_service import BaseService
from event_planner.services.local_cache import USER_ROLE_KEY
from event_planner.services.role_providers import RoleProvider
from event_planner.utils.audit import log_audit_event

DEFAULT_ROLE: UserRole = UserRole.ORGANIZER
TIMEOUT_ERROR: str = "timeout"
SUPERSEDED_ERROR: str = "superseded"


class RoleResolver(BaseService):
    """Runs the provider chain and the write-back for one identity.

    Stateless between calls; concurrent ``resolve`` calls for the same
    identity are safe because every write is conditional on the value
    differing.

    Parameters
    ----------
    providers:
        Precedence chain, highest priority first.
    credentials:
        Used for the metadata write-back.
    profiles / vendors:
        Used for the profile and vendor-record write-backs.
    cache:
        Durable local cache holding ``user_role``.
    logger:
        Structured logger instance.
    timeout_s:
        Upper bound on one resolution including write-back.
    audit_conn:
        Optional local database for persisting write-back audit rows.
    """

    def __init__(
        self,
        providers: Sequence[RoleProvider],
        credentials: CredentialStore,
        profiles: ProfileStore,
        vendors: VendorStore,
        cache: LocalCache,
        logger: StructuredLogger,
        timeout_s: float = 5.0,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._providers: list[RoleProvider] = list(providers)
        self._credentials = credentials
        self._profiles = profiles
        self._vendors = vendors
        self._cache = cache
        self._timeout_s = timeout_s
        self._audit_conn = audit_conn

    async def resolve(
        self,
        identity: Identity,
        *,
        trust_metadata: bool = True,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> RoleResolution:
        """Resolve and write back the role of *identity*.

        Parameters
        ----------
        identity:
            The signed-in identity.
        trust_metadata:
            ``False`` skips the metadata provider.  Used when a table
            change triggered the run, since metadata is then the stale
            copy.
        is_current:
            Checked once the role is known; when it returns ``False`` the
            caller has started a newer attempt, so the write-back is
            skipped and ``error`` is ``"superseded"``.
        """
        try:
            return await asyncio.wait_for(
                self._resolve(identity, trust_metadata, is_current), timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            self._logger.warning(
                "Role resolution for %s timed out after %.1fs; using %s.",
                identity.id, self._timeout_s, DEFAULT_ROLE,
                extra={"event": "ROLE_RESOLUTION_TIMEOUT", "user_id": identity.id},
            )
            return RoleResolution(
                role=DEFAULT_ROLE, source=RoleSource.DEFAULT, error=TIMEOUT_ERROR,
            )

    # ------------------------------------------------------------------
    # Precedence chain
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        identity: Identity,
        trust_metadata: bool,
        is_current: Optional[Callable[[], bool]],
    ) -> RoleResolution:
        role: Optional[UserRole] = None
        source = RoleSource.DEFAULT

        for provider in self._providers:
            if not trust_metadata and provider.source is RoleSource.METADATA:
                continue
            try:
                role = await provider.try_resolve(identity)
            except RepositoryUnavailableError as exc:
                self._logger.error(
                    "Role source %s unavailable (table '%s' missing?); skipping. "
                    "Run the database migrations.",
                    provider.source, exc.table,
                    extra={"event": "ROLE_SOURCE_UNAVAILABLE", "code": exc.code},
                )
                continue
            except RepositoryError as exc:
                self._logger.error(
                    "Role source %s failed for %s: %s; defaulting to %s.",
                    provider.source, identity.id, exc.message, DEFAULT_ROLE,
                    extra={"event": "ROLE_RESOLUTION_FAILED", "user_id": identity.id},
                )
                return RoleResolution(
                    role=DEFAULT_ROLE, source=RoleSource.DEFAULT, error=exc.message,
                )
            if role is not None:
                source = provider.source
                break

        if role is None:
            role = DEFAULT_ROLE

        if is_current is not None and not is_current():
            self._logger.debug("Resolution for %s superseded; skipping write-back.", identity.id)
            return RoleResolution(role=role, source=source, error=SUPERSEDED_ERROR)

        writes = await self._write_back(identity, role)

        for provider in self._providers:
            await provider.on_resolved(identity, role, source)

        self._logger.info(
            "Resolved role %s for %s via %s.", role, identity.id, source,
            extra={
                "event": "ROLE_RESOLVED",
                "user_id": identity.id,
                "writes": ",".join(writes),
            },
        )
        return RoleResolution(role=role, source=source, writes=writes)

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    async def _write_back(self, identity: Identity, role: UserRole) -> list[str]:
        """Bring every cache in line with *role*.  Returns what changed."""
        writes: list[str] = []

        if identity.metadata_role != role:
            try:
                await self._credentials.update_metadata({"role": role.value})
                writes.append("metadata")
            except Exception as exc:
                self._logger.warning(
                    "Could not update metadata role for %s: %s", identity.id, exc,
                )

        try:
            if await self._write_back_profile(identity, role):
                writes.append("profile")
        except RepositoryError as exc:
            self._logger.warning(
                "Could not write role to profile %s: %s", identity.id, exc.message,
            )

        if role is UserRole.VENDOR:
            try:
                if not await self._vendors.exists_for_user(identity.id):
                    await self._vendors.insert(VendorRecord(user_id=identity.id))
                    writes.append("vendor_record")
            except RepositoryError as exc:
                self._logger.warning(
                    "Could not create vendor record for %s: %s", identity.id, exc.message,
                )

        if self._cache.get(USER_ROLE_KEY) != role.value:
            if self._cache.set(USER_ROLE_KEY, role.value):
                writes.append("local_cache")

        if writes:
            log_audit_event(
                self._logger,
                action="ROLE_WRITE_BACK",
                entity_type="Profile",
                entity_id=identity.id,
                details={"role": role.value, "targets": ",".join(writes)},
                conn=self._audit_conn,
            )
        return writes

    async def _write_back_profile(self, identity: Identity, role: UserRole) -> bool:
        profile = await self._profiles.get_by_id(identity.id)
        if profile is None:
            metadata = identity.user_metadata
            await self._profiles.insert(
                Profile(
                    id=identity.id,
                    email=identity.normalized_email,
                    role=role,
                    first_name=metadata.get("first_name") or metadata.get("firstName"),
                    last_name=metadata.get("last_name") or metadata.get("lastName"),
                )
            )
            return True
        if profile.role != role:
            await self._profiles.update(identity.id, {"role": role.value})
            return True
        return False
