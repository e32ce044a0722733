"""
Admin service: RBAC, role changes with record sync, status changes and
the first-administrator bootstrap.
"""
from __future__ import annotations

import pytest

from event_planner.models.enums import UserRole
from event_planner.models.identity import Identity
from event_planner.models.records import Profile, VendorRecord
from event_planner.models.session_models import SessionState
from event_planner.repositories.errors import RepositoryError, RepositoryUnavailableError
from event_planner.services.admin_service import METADATA_NOT_SYNCED_WARNING, AdminService
from event_planner.services.credential_store import CredentialError
from event_planner.utils.audit import recent_audit_events
from tests.fakes import FakeMetadataAdmin


pytestmark = pytest.mark.anyio


ADMIN = SessionState(
    identity=Identity(id="a1", email="boss@example.test"), role=UserRole.ADMIN, is_loading=False,
)
ORGANIZER = SessionState(
    identity=Identity(id="u1", email="pat@example.test"), role=UserRole.ORGANIZER, is_loading=False,
)


@pytest.fixture
def metadata_admin() -> FakeMetadataAdmin:
    return FakeMetadataAdmin()


@pytest.fixture
def service(profiles, vendors, admins, logger, metadata_admin, sqlite_conn) -> AdminService:
    profiles.rows["a1"] = Profile(id="a1", email="boss@example.test", role=UserRole.ADMIN)
    profiles.rows["u1"] = Profile(
        id="u1", email="pat@example.test", role=UserRole.ORGANIZER, first_name="Pat",
    )
    admins.user_ids.add("a1")
    return AdminService(
        profiles=profiles,
        vendors=vendors,
        admins=admins,
        logger=logger,
        metadata_admin=metadata_admin,
        audit_conn=sqlite_conn,
    )


# ---------------------------------------------------------------------------
# RBAC
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("actor", [ORGANIZER, SessionState(), SessionState(is_loading=False)])
async def test_non_admins_are_forbidden(service, actor):
    results = [
        await service.list_users(actor),
        await service.update_user_role(actor, "u1", "vendor"),
        await service.set_user_active(actor, "u1", False),
        await service.set_vendor_verified(actor, "v1", True),
    ]

    assert all(r.status_code == 403 and not r.success for r in results)


async def test_list_users(service):
    result = await service.list_users(ADMIN)

    assert result.success
    assert {p.id for p in result.data} == {"a1", "u1"}


async def test_list_users_table_missing_is_503(service, profiles):
    profiles.error = RepositoryUnavailableError("relation missing", table="profiles", code="42P01")

    result = await service.list_users(ADMIN)

    assert result.status_code == 503


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------


async def test_promote_to_vendor_creates_vendor_row(service, profiles, vendors, metadata_admin):
    result = await service.update_user_role(ADMIN, "u1", "vendor")

    assert result.success
    assert profiles.rows["u1"].role is UserRole.VENDOR
    assert vendors.inserts[0].user_id == "u1"
    assert vendors.inserts[0].company_name == "Pat's Company"
    assert metadata_admin.calls == [("u1", {"role": "vendor"})]
    assert result.warnings == []


async def test_promote_to_admin_adds_admin_row(service, admins):
    result = await service.update_user_role(ADMIN, "u1", UserRole.ADMIN)

    assert result.success
    assert "u1" in admins.user_ids


async def test_demotion_keeps_vendor_row_and_drops_admin_row(service, profiles, vendors, admins):
    profiles.rows["u1"] = profiles.rows["u1"].model_copy(update={"role": UserRole.ADMIN})
    admins.user_ids.add("u1")
    vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")

    result = await service.update_user_role(ADMIN, "u1", "user")

    assert result.success
    assert result.data.role is UserRole.ORGANIZER
    assert profiles.rows["u1"].role is UserRole.ORGANIZER
    assert "u1" not in admins.user_ids
    assert "v1" in vendors.rows


async def test_invalid_role_is_400(service, profiles):
    result = await service.update_user_role(ADMIN, "u1", "superuser")

    assert result.status_code == 400
    assert profiles.updates == []


async def test_unknown_user_is_404(service):
    result = await service.update_user_role(ADMIN, "nobody", "vendor")

    assert result.status_code == 404


async def test_admin_cannot_demote_self(service, profiles):
    result = await service.update_user_role(ADMIN, "a1", "organizer")

    assert result.status_code == 409
    assert profiles.rows["a1"].role is UserRole.ADMIN


async def test_metadata_sync_failure_is_not_fatal(service, metadata_admin, profiles):
    metadata_admin.error = CredentialError("User not allowed", status=403)

    result = await service.update_user_role(ADMIN, "u1", "vendor")

    assert result.success
    assert profiles.rows["u1"].role is UserRole.VENDOR
    assert result.warnings == [METADATA_NOT_SYNCED_WARNING]


async def test_without_metadata_admin_only_tables_change(profiles, vendors, admins, logger):
    profiles.rows["u1"] = Profile(id="u1", email="pat@example.test", role=UserRole.ORGANIZER)
    service = AdminService(profiles=profiles, vendors=vendors, admins=admins, logger=logger)

    result = await service.update_user_role(ADMIN, "u1", "vendor")

    assert result.success
    assert vendors.inserts[0].company_name == "New Vendor"


async def test_unsynced_demotion_warns_admin(profiles, vendors, admins, logger, sqlite_conn):
    profiles.rows["u1"] = Profile(id="u1", email="pat@example.test", role=UserRole.VENDOR)
    service = AdminService(
        profiles=profiles, vendors=vendors, admins=admins, logger=logger,
        audit_conn=sqlite_conn,
    )

    result = await service.update_user_role(ADMIN, "u1", "organizer")

    assert result.success
    assert result.warnings == [METADATA_NOT_SYNCED_WARNING]
    assert recent_audit_events(sqlite_conn)[0].details["metadata_synced"] is False


async def test_repository_failure_is_500(service, profiles):
    profiles.error = RepositoryError("connection reset", table="profiles")

    result = await service.update_user_role(ADMIN, "u1", "vendor")

    assert result.status_code == 500
    assert "connection reset" in result.error


async def test_role_change_is_audited(service, sqlite_conn):
    await service.update_user_role(ADMIN, "u1", "vendor")

    event = recent_audit_events(sqlite_conn)[0]
    assert event.action == "UPDATE_ROLE"
    assert event.user_id == "a1"
    assert event.details == {
        "old_role": "organizer", "new_role": "vendor", "metadata_synced": True,
    }


# ---------------------------------------------------------------------------
# Status and verification
# ---------------------------------------------------------------------------


async def test_deactivate_and_reactivate(service, profiles):
    off = await service.set_user_active(ADMIN, "u1", False)
    on = await service.set_user_active(ADMIN, "u1", True)

    assert off.success and on.success
    assert profiles.rows["u1"].is_active is True
    assert ("u1", {"is_active": False}) in profiles.updates


async def test_admin_cannot_deactivate_self(service):
    result = await service.set_user_active(ADMIN, "a1", False)

    assert result.status_code == 409


async def test_deactivate_unknown_user_is_404(service):
    result = await service.set_user_active(ADMIN, "nobody", False)

    assert result.status_code == 404


async def test_verify_vendor(service, vendors, sqlite_conn):
    vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")

    result = await service.set_vendor_verified(ADMIN, "v1", True)

    assert result.success
    assert vendors.rows["v1"].is_verified is True
    assert recent_audit_events(sqlite_conn)[0].action == "VERIFY_VENDOR"


async def test_verify_unknown_vendor_is_404(service):
    result = await service.set_vendor_verified(ADMIN, "v404", True)

    assert result.status_code == 404


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


async def test_bootstrap_refused_when_admin_exists(service):
    result = await service.bootstrap_admin("pat@example.test")

    assert result.status_code == 409


async def test_bootstrap_promotes_first_admin(profiles, vendors, admins, logger, metadata_admin):
    profiles.rows["u1"] = Profile(id="u1", email="pat@example.test", role=UserRole.ORGANIZER)
    service = AdminService(
        profiles=profiles, vendors=vendors, admins=admins, logger=logger,
        metadata_admin=metadata_admin,
    )

    result = await service.bootstrap_admin(" Pat@Example.test ")

    assert result.success
    assert profiles.rows["u1"].role is UserRole.ADMIN
    assert admins.user_ids == {"u1"}
    assert metadata_admin.calls == [("u1", {"role": "admin"})]


async def test_bootstrap_unknown_email_is_404(profiles, vendors, admins, logger):
    service = AdminService(profiles=profiles, vendors=vendors, admins=admins, logger=logger)

    result = await service.bootstrap_admin("ghost@example.test")

    assert result.status_code == 404
