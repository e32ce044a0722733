"""
Administration Service.

Admin-only user and vendor management, plus the one-time bootstrap
that promotes the first administrator.

Architectural notes:
    - Every operation except ``bootstrap_admin`` checks the acting
      session's role first and answers 403 for non-admins.
    - A role change updates ``profiles.role`` and keeps the ``admins``
      and ``vendors`` rows consistent with it.  A signed-in target picks
      the change up through its profile change feed.
    - The target's identity metadata is synced through the admin API
      when a ``UserMetadataAdmin`` is supplied.  When it is not synced
      the result carries ``METADATA_NOT_SYNCED_WARNING``: a stale
      metadata role outranks the profile on the target's next fresh
      sign-in.
"""

from __future__ import annotations

import sqlite3
from typing import Optional, Union

from event_planner.interfaces import AdminStore, ProfileStore, UserMetadataAdmin, VendorStore
from event_planner.logger import StructuredLogger
from event_planner.models.enums import UserRole
from event_planner.models.records import Profile, VendorRecord
from event_planner.models.service_models import ServiceResult
from event_planner.models.session_models import SessionState
from event_planner.repositories.errors import RepositoryError, RepositoryUnavailableError
from event_planner.services.base_service import BaseService
from event_planner.services.credential_store import CredentialError
from event_planner.utils.audit import log_audit_event

SEED_ACTOR: str = "seed"
METADATA_NOT_SYNCED_WARNING: str = (
    "The user's account metadata still holds the previous role. If they are "
    "offline, their next sign-in may restore it; ask them to sign in while "
    "the change is live or re-apply the role afterwards."
)


class AdminService(BaseService):
    """Service layer for admin user management operations."""

    def __init__(
        self,
        profiles: ProfileStore,
        vendors: VendorStore,
        admins: AdminStore,
        logger: StructuredLogger,
        metadata_admin: Optional[UserMetadataAdmin] = None,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._profiles = profiles
        self._vendors = vendors
        self._admins = admins
        self._metadata_admin = metadata_admin
        self._audit_conn = audit_conn

    async def list_users(self, actor: SessionState) -> ServiceResult[list[Profile]]:
        """All profiles, for the admin user table."""
        denied = self._require_admin(actor, "list users")
        if denied is not None:
            return denied
        try:
            return ServiceResult(success=True, data=await self._profiles.list_all())
        except RepositoryError as exc:
            return self._repository_failure(exc, "fetch users")

    async def update_user_role(
        self,
        actor: SessionState,
        user_id: str,
        new_role: Union[UserRole, str],
    ) -> ServiceResult[Profile]:
        """Change a user's role.

        Args:
            actor: Session of the administrator performing the change.
            user_id: Target profile id.
            new_role: ``organizer``, ``vendor`` or ``admin`` (``user`` is
                accepted as the legacy name of ``organizer``).
        """
        # --- 0. RBAC ---
        denied = self._require_admin(actor, "update user roles")
        if denied is not None:
            return denied

        # --- 1. Validate the role ---
        validated_role = UserRole.parse(new_role)
        if validated_role is None:
            return ServiceResult(
                success=False,
                error=f"Invalid role specified: '{new_role}'. "
                      f"Must be one of: {', '.join(r.value for r in UserRole)}.",
                status_code=400,
            )

        if (
            actor.identity is not None
            and actor.identity.id == user_id
            and validated_role is not UserRole.ADMIN
        ):
            return ServiceResult(
                success=False,
                error="Administrators cannot remove their own admin role.",
                status_code=409,
            )

        try:
            # --- 2. Verify the user exists ---
            profile = await self._profiles.get_by_id(user_id)
            if profile is None:
                return ServiceResult(success=False, error="User not found.", status_code=404)
            old_role = profile.role

            # --- 3. Profile row ---
            updated = await self._profiles.update(user_id, {"role": validated_role.value})
            if updated is None:
                return ServiceResult(
                    success=False, error="Failed to update role in database.", status_code=500,
                )

            # --- 4. Role-bearing records ---
            await self._sync_role_records(updated, validated_role)
        except RepositoryError as exc:
            return self._repository_failure(exc, f"update role for {user_id}")

        # --- 5. Identity metadata ---
        warning = await self._sync_metadata(user_id, validated_role)

        # --- 6. Audit trail ---
        log_audit_event(
            self._logger,
            action="UPDATE_ROLE",
            entity_type="Profile",
            entity_id=user_id,
            user_id=self._actor_id(actor),
            details={
                "old_role": old_role.value if old_role else None,
                "new_role": validated_role.value,
                "metadata_synced": warning is None,
            },
            conn=self._audit_conn,
        )
        return ServiceResult(
            success=True, data=updated, warnings=[warning] if warning else [],
        )

    async def set_user_active(
        self, actor: SessionState, user_id: str, active: bool,
    ) -> ServiceResult[Profile]:
        """Deactivate (or reactivate) a user.  Profiles are never deleted."""
        denied = self._require_admin(actor, "change account status")
        if denied is not None:
            return denied
        if not active and actor.identity is not None and actor.identity.id == user_id:
            return ServiceResult(
                success=False,
                error="Administrators cannot deactivate their own account.",
                status_code=409,
            )

        try:
            updated = await self._profiles.update(user_id, {"is_active": active})
        except RepositoryError as exc:
            return self._repository_failure(exc, f"update status for {user_id}")
        if updated is None:
            return ServiceResult(success=False, error="User not found.", status_code=404)

        log_audit_event(
            self._logger,
            action="ACTIVATE_USER" if active else "DEACTIVATE_USER",
            entity_type="Profile",
            entity_id=user_id,
            user_id=self._actor_id(actor),
            conn=self._audit_conn,
        )
        return ServiceResult(success=True, data=updated)

    async def set_vendor_verified(
        self, actor: SessionState, vendor_id: str, verified: bool,
    ) -> ServiceResult[VendorRecord]:
        denied = self._require_admin(actor, "verify vendors")
        if denied is not None:
            return denied

        try:
            updated = await self._vendors.set_verified(vendor_id, verified)
        except RepositoryError as exc:
            return self._repository_failure(exc, f"verify vendor {vendor_id}")
        if updated is None:
            return ServiceResult(success=False, error="Vendor not found.", status_code=404)

        log_audit_event(
            self._logger,
            action="VERIFY_VENDOR" if verified else "UNVERIFY_VENDOR",
            entity_type="VendorRecord",
            entity_id=vendor_id,
            user_id=self._actor_id(actor),
            details={"owner": updated.user_id},
            conn=self._audit_conn,
        )
        return ServiceResult(success=True, data=updated)

    async def bootstrap_admin(self, email: str) -> ServiceResult[Profile]:
        """Promote the profile registered under *email* to the first admin.

        Refuses (409) once any administrator exists, so running the seed
        script again is harmless.  The account must already be registered.
        """
        try:
            if await self._admins.any_exists() or await self._profiles.exists_with_role(
                UserRole.ADMIN
            ):
                return ServiceResult(
                    success=False,
                    error="An administrator already exists; bootstrap skipped.",
                    status_code=409,
                )

            profile = await self._profiles.get_by_email(email)
            if profile is None:
                return ServiceResult(
                    success=False,
                    error=f"No profile registered for '{email}'. Sign up first.",
                    status_code=404,
                )

            updated = await self._profiles.update(profile.id, {"role": UserRole.ADMIN.value})
            await self._admins.insert(profile.id)
        except RepositoryError as exc:
            return self._repository_failure(exc, "bootstrap administrator")

        warning = await self._sync_metadata(profile.id, UserRole.ADMIN)

        log_audit_event(
            self._logger,
            action="BOOTSTRAP_ADMIN",
            entity_type="Profile",
            entity_id=profile.id,
            user_id=SEED_ACTOR,
            details={"email": profile.email},
            conn=self._audit_conn,
        )
        return ServiceResult(
            success=True, data=updated or profile, warnings=[warning] if warning else [],
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_admin(actor: SessionState, action: str) -> Optional[ServiceResult]:
        if actor.identity is None or actor.role is not UserRole.ADMIN:
            return ServiceResult(
                success=False,
                error=f"Only administrators can {action}.",
                status_code=403,
            )
        return None

    @staticmethod
    def _actor_id(actor: SessionState) -> str:
        return actor.identity.id if actor.identity is not None else SEED_ACTOR

    async def _sync_role_records(self, profile: Profile, role: UserRole) -> None:
        if role is UserRole.ADMIN:
            if not await self._admins.exists_for_user(profile.id):
                await self._admins.insert(profile.id)
        else:
            await self._admins.remove_for_user(profile.id)

        # Vendor rows are kept on demotion; they own listings and bookings.
        if role is UserRole.VENDOR and not await self._vendors.exists_for_user(profile.id):
            company = f"{profile.first_name}'s Company" if profile.first_name else "New Vendor"
            await self._vendors.insert(VendorRecord(user_id=profile.id, company_name=company))

    async def _sync_metadata(self, user_id: str, role: UserRole) -> Optional[str]:
        """Best-effort push of the role into the target's identity metadata.

        Returns a warning for the admin UI when the metadata was not
        updated, ``None`` otherwise.
        """
        if self._metadata_admin is None:
            self._logger.warning(
                "Metadata not updated for %s: no service-role access.", user_id,
            )
            return METADATA_NOT_SYNCED_WARNING
        try:
            await self._metadata_admin.update_user_metadata(user_id, {"role": role.value})
        except CredentialError as exc:
            self._logger.warning(
                "Metadata not updated for %s (%s); the profile role will be "
                "written back on the user's next change-feed resolution.",
                user_id, exc.message,
            )
            return METADATA_NOT_SYNCED_WARNING
        return None

    def _repository_failure(self, exc: RepositoryError, action: str) -> ServiceResult:
        self._logger.error("Could not %s: %s", action, exc.message)
        status = 503 if isinstance(exc, RepositoryUnavailableError) else 500
        return ServiceResult(success=False, error=f"Could not {action}: {exc.message}", status_code=status)
