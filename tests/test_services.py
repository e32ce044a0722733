"""
Composition root: the wired service graph runs offline without raising.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from event_planner.database import DatabaseManager
from event_planner.models.auth_models import AuthErrorCode
from event_planner.schema import initialize_schema
from event_planner.services import create_services
from event_planner.services.credential_store import SupabaseUserMetadataAdmin


pytestmark = pytest.mark.anyio


@pytest.fixture
async def offline_db(logger):
    db = DatabaseManager(
        supabase_url="", supabase_key="", sqlite_path=Path(":memory:"), logger=logger,
    )
    initialize_schema(db.sqlite, logger)
    assert await db.connect() is False
    yield db
    await db.close()


async def test_offline_session_resolves_signed_out(offline_db, config):
    services = create_services(db=offline_db, config=config)
    context = services["session_context"]

    state = await context.start()
    result = await context.sign_in("pat@example.test", "secret123")
    await context.close()

    assert state.identity is None and state.is_terminal
    assert result.error_code is AuthErrorCode.NETWORK_ERROR


async def test_privileged_wiring_syncs_metadata(offline_db, config):
    services = create_services(db=offline_db, config=config, privileged=True)

    assert isinstance(services["admin_service"]._metadata_admin, SupabaseUserMetadataAdmin)


async def test_offline_bootstrap_reports_failure(offline_db, config):
    services = create_services(db=offline_db, config=config)

    result = await services["admin_service"].bootstrap_admin("owner@example.test")

    assert not result.success
    assert result.status_code == 500
