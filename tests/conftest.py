"""
Pytest configuration.

Runs async tests on the asyncio backend and wires the session core
against in-memory fakes plus a ``:memory:`` SQLite cache.
"""

from __future__ import annotations

import sqlite3
from typing import Iterator

import pytest

from event_planner.config import AppConfig
from event_planner.logger import StructuredLogger
from event_planner.schema import initialize_schema
from event_planner.services.local_cache import LocalCacheService
from event_planner.services.role_providers import default_providers
from event_planner.services.role_resolver import RoleResolver
from event_planner.services.session_context import SessionContext
from tests.fakes import (
    FakeAdminStore,
    FakeClock,
    FakeCredentialStore,
    FakeProfileStore,
    FakeVendorStore,
)

ADMIN_EMAIL = "admin@example.test"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests", log_file="")


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        _env_file=None,
        SUPABASE_URL="",
        DESIGNATED_ADMIN_EMAIL=ADMIN_EMAIL,
        ROLE_RESOLUTION_TIMEOUT_S=5.0,
        SIGNUP_MIN_INTERVAL_S=1.5,
        PASSWORD_MIN_LENGTH=6,
        SITE_URL="https://planner.example.test",
        LOG_FILE="",
    )


@pytest.fixture
def sqlite_conn(logger: StructuredLogger) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    yield conn
    conn.close()


@pytest.fixture
def cache(sqlite_conn: sqlite3.Connection, logger: StructuredLogger) -> LocalCacheService:
    return LocalCacheService(conn=sqlite_conn, logger=logger)


@pytest.fixture
def credentials() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def vendors() -> FakeVendorStore:
    return FakeVendorStore()


@pytest.fixture
def admins() -> FakeAdminStore:
    return FakeAdminStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def resolver(
    config, credentials, profiles, vendors, admins, cache, logger, sqlite_conn,
) -> RoleResolver:
    return RoleResolver(
        providers=default_providers(
            admin_email=config.DESIGNATED_ADMIN_EMAIL,
            cache=cache,
            profiles=profiles,
            vendors=vendors,
            admins=admins,
        ),
        credentials=credentials,
        profiles=profiles,
        vendors=vendors,
        cache=cache,
        logger=logger,
        timeout_s=config.ROLE_RESOLUTION_TIMEOUT_S,
        audit_conn=sqlite_conn,
    )


@pytest.fixture
def session_context(
    credentials, resolver, profiles, vendors, admins, cache, config, logger, clock,
) -> SessionContext:
    return SessionContext(
        credentials=credentials,
        resolver=resolver,
        profiles=profiles,
        vendors=vendors,
        admins=admins,
        cache=cache,
        config=config,
        logger=logger,
        clock=clock,
    )
