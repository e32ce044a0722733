"""
Service Layer Package.

Services depend on the repository layer for data access and on the
credential store for authentication.

``create_services()`` wires every repository and service together and
returns a typed dict, so entry points (``main.py``, the seed script, a
UI shell) never build the dependency graph themselves.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from event_planner.config import AppConfig
from event_planner.database import DatabaseManager
from event_planner.logger import get_logger
from event_planner.repositories.admin_repository import AdminRepository
from event_planner.repositories.profile_repository import ProfileRepository
from event_planner.repositories.vendor_repository import VendorRepository
from event_planner.services.admin_service import AdminService
from event_planner.services.credential_store import (
    SupabaseCredentialStore,
    SupabaseUserMetadataAdmin,
)
from event_planner.services.local_cache import LocalCacheService
from event_planner.services.role_providers import default_providers
from event_planner.services.role_resolver import RoleResolver
from event_planner.services.session_context import SessionContext


class ServiceContainer(TypedDict, total=False):
    """Typed container for all application services."""

    # --- Data access ---
    profile_repository: ProfileRepository
    vendor_repository: VendorRepository
    admin_repository: AdminRepository

    # --- Session core ---
    local_cache: LocalCacheService
    credential_store: SupabaseCredentialStore
    role_resolver: RoleResolver
    session_context: SessionContext

    # --- Administration ---
    admin_service: AdminService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    *,
    privileged: bool = False,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    Args:
        db: DatabaseManager with the SQLite schema initialised.  The
            Supabase client may be connected afterwards; repositories
            reach it lazily.
        config: Application configuration.
        privileged: ``True`` when *db* holds a service-role client; the
            admin service then also syncs other users' metadata.

    Returns:
        ServiceContainer mapping service names to wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories
    # ------------------------------------------------------------------
    profiles = ProfileRepository(db=db, logger=logger)
    vendors = VendorRepository(db=db, logger=logger)
    admins = AdminRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    local_cache = LocalCacheService(conn=db.sqlite, logger=logger)
    credential_store = SupabaseCredentialStore(db=db, logger=logger)

    metadata_admin: Optional[SupabaseUserMetadataAdmin] = None
    if privileged:
        metadata_admin = SupabaseUserMetadataAdmin(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 3. Session core
    # ------------------------------------------------------------------
    role_resolver = RoleResolver(
        providers=default_providers(
            admin_email=config.DESIGNATED_ADMIN_EMAIL,
            cache=local_cache,
            profiles=profiles,
            vendors=vendors,
            admins=admins,
        ),
        credentials=credential_store,
        profiles=profiles,
        vendors=vendors,
        cache=local_cache,
        logger=get_logger("role_resolver"),
        timeout_s=config.ROLE_RESOLUTION_TIMEOUT_S,
        audit_conn=db.sqlite,
    )
    session_context = SessionContext(
        credentials=credential_store,
        resolver=role_resolver,
        profiles=profiles,
        vendors=vendors,
        admins=admins,
        cache=local_cache,
        config=config,
        logger=get_logger("session"),
    )

    # ------------------------------------------------------------------
    # 4. Administration
    # ------------------------------------------------------------------
    admin_service = AdminService(
        profiles=profiles,
        vendors=vendors,
        admins=admins,
        logger=logger,
        metadata_admin=metadata_admin,
        audit_conn=db.sqlite,
    )

    return ServiceContainer(
        profile_repository=profiles,
        vendor_repository=vendors,
        admin_repository=admins,
        local_cache=local_cache,
        credential_store=credential_store,
        role_resolver=role_resolver,
        session_context=session_context,
        admin_service=admin_service,
    )
