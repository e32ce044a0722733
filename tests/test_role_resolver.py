"""
Role resolution: precedence chain, write-back and failure handling.
"""
from __future__ import annotations

import asyncio
import itertools

import pytest

from event_planner.models.enums import RoleSource, UserRole
from event_planner.models.identity import Identity
from event_planner.models.records import Profile, VendorRecord
from event_planner.repositories.errors import RepositoryError, RepositoryUnavailableError
from event_planner.services.credential_store import CredentialError
from event_planner.services.local_cache import USER_ROLE_KEY, pending_role_key
from event_planner.services.role_providers import RoleProvider, default_providers
from event_planner.services.role_resolver import RoleResolver
from event_planner.utils.audit import recent_audit_events
from tests.conftest import ADMIN_EMAIL


pytestmark = pytest.mark.anyio


def _identity(user_id="u1", email="pat@example.test", role=None) -> Identity:
    metadata = {"role": role} if role else {}
    return Identity(id=user_id, email=email, user_metadata=metadata)


def _signed_in(credentials, identity: Identity) -> Identity:
    credentials.accounts[identity.email] = ("secret123", identity)
    credentials.current = identity
    return identity


async def test_default_role_creates_exactly_one_profile(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity())

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ORGANIZER
    assert result.source is RoleSource.DEFAULT
    assert result.error is None
    assert len(profiles.inserts) == 1
    assert profiles.rows["u1"].role is UserRole.ORGANIZER
    assert profiles.rows["u1"].email == "pat@example.test"


async def test_pending_role_beats_profile_and_overwrites_it(
    resolver, credentials, profiles, vendors, cache,
):
    identity = _signed_in(credentials, _identity())
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role=UserRole.ORGANIZER)
    cache.set(pending_role_key("Pat@Example.test "), "vendor")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.VENDOR
    assert result.source is RoleSource.PENDING_LOCAL
    assert profiles.rows["u1"].role is UserRole.VENDOR
    assert ("u1", {"role": "vendor"}) in profiles.updates
    assert credentials.metadata_updates == [{"role": "vendor"}]
    assert cache.get(USER_ROLE_KEY) == "vendor"
    assert len(vendors.inserts) == 1
    assert vendors.inserts[0].company_name == "New Vendor"
    # consumed once
    assert cache.get(pending_role_key(identity.email)) is None


async def test_consistent_state_performs_no_writes(resolver, credentials, profiles, vendors, cache):
    identity = _signed_in(credentials, _identity(role="vendor"))
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role=UserRole.VENDOR)
    vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")
    cache.set(USER_ROLE_KEY, "vendor")

    first = await resolver.resolve(identity)
    second = await resolver.resolve(credentials.current)

    assert first.role is second.role is UserRole.VENDOR
    assert first.writes == [] and second.writes == []
    assert profiles.inserts == [] and profiles.updates == []
    assert credentials.metadata_updates == []
    assert vendors.inserts == []


async def test_second_run_after_write_back_is_idempotent(resolver, credentials, profiles):
    _signed_in(credentials, _identity())

    first = await resolver.resolve(credentials.current)
    writes_after_first = (len(profiles.inserts), len(profiles.updates), len(credentials.metadata_updates))
    second = await resolver.resolve(credentials.current)

    assert first.role is second.role is UserRole.ORGANIZER
    assert set(first.writes) == {"metadata", "profile", "local_cache"}
    assert second.writes == []
    assert (len(profiles.inserts), len(profiles.updates), len(credentials.metadata_updates)) == writes_after_first


async def test_designated_admin_overrides_profile_role(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity(email=ADMIN_EMAIL.upper(), role="organizer"))
    profiles.rows["u1"] = Profile(id="u1", email=ADMIN_EMAIL, role=UserRole.ORGANIZER)

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ADMIN
    assert result.source is RoleSource.DESIGNATED_ADMIN
    assert profiles.rows["u1"].role is UserRole.ADMIN


async def test_metadata_role_wins_over_profile(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity(role="vendor"))
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role=UserRole.ORGANIZER)

    result = await resolver.resolve(identity)

    assert result.role is UserRole.VENDOR
    assert result.source is RoleSource.METADATA


async def test_untrusted_metadata_lets_profile_win(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity(role="organizer"))
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role=UserRole.ADMIN)

    result = await resolver.resolve(identity, trust_metadata=False)

    assert result.role is UserRole.ADMIN
    assert result.source is RoleSource.PROFILE
    assert credentials.metadata_updates == [{"role": "admin"}]


async def test_legacy_user_role_reads_as_organizer(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity())
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role="user")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ORGANIZER
    assert result.source is RoleSource.PROFILE


async def test_admin_record_resolves_admin(resolver, credentials, admins):
    identity = _signed_in(credentials, _identity())
    admins.user_ids.add("u1")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ADMIN
    assert result.source is RoleSource.ADMIN_RECORD


async def test_vendor_record_resolves_vendor(resolver, credentials, vendors, admins):
    identity = _signed_in(credentials, _identity())
    vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")
    admins.user_ids.add("u1")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.VENDOR
    assert result.source is RoleSource.VENDOR_RECORD


async def test_missing_table_abstains_and_chain_continues(resolver, credentials, profiles, vendors):
    identity = _signed_in(credentials, _identity())
    profiles.error = RepositoryUnavailableError("relation missing", table="profiles", code="42P01")
    vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.VENDOR
    assert result.source is RoleSource.VENDOR_RECORD
    assert result.error is None
    # metadata and cache still written; profile write-back failed quietly
    assert "metadata" in result.writes
    assert "profile" not in result.writes


async def test_unexpected_error_defaults_without_write_back(resolver, credentials, profiles, cache):
    identity = _signed_in(credentials, _identity())
    profiles.error = RepositoryError("connection reset", table="profiles")

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ORGANIZER
    assert result.error == "connection reset"
    assert result.writes == []
    assert credentials.metadata_updates == []
    assert cache.get(USER_ROLE_KEY) is None


async def test_write_back_failure_is_not_fatal(resolver, credentials, profiles):
    identity = _signed_in(credentials, _identity())
    credentials.errors["update_metadata"] = CredentialError("boom")
    profiles.rows["u1"] = Profile(id="u1", email=identity.email, role=UserRole.VENDOR)

    result = await resolver.resolve(identity)

    assert result.role is UserRole.VENDOR
    assert result.error is None
    assert "metadata" not in result.writes
    assert "local_cache" in result.writes


async def test_timeout_returns_default(credentials, profiles, vendors, cache, logger):
    class _Slow(RoleProvider):
        source = RoleSource.PROFILE

        async def try_resolve(self, identity):
            await asyncio.sleep(10)
            return UserRole.ADMIN

    resolver = RoleResolver(
        providers=[_Slow()],
        credentials=credentials,
        profiles=profiles,
        vendors=vendors,
        cache=cache,
        logger=logger,
        timeout_s=0.05,
    )
    identity = _signed_in(credentials, _identity())

    result = await resolver.resolve(identity)

    assert result.role is UserRole.ORGANIZER
    assert result.error == "timeout"
    assert profiles.inserts == []


async def test_result_independent_of_lookup_order(
    credentials, profiles, vendors, admins, cache, logger, config,
):
    """Shuffling which independent lookup finishes first never changes the answer."""
    states = [
        # (metadata, profile role, vendor row, admin row, pending)
        (None, None, False, False, None),
        (None, "organizer", True, True, None),
        ("vendor", "admin", False, True, None),
        (None, None, True, True, None),
        (None, None, False, True, None),
        (None, "admin", True, False, "vendor"),
    ]
    for metadata, profile_role, has_vendor, has_admin, pending in states:
        outcomes = set()
        for delays in itertools.permutations([0.0, 0.001, 0.002]):
            profiles.rows.clear()
            vendors.rows.clear()
            admins.user_ids.clear()
            cache.remove(pending_role_key("pat@example.test"))
            if profile_role:
                profiles.rows["u1"] = Profile(id="u1", email="pat@example.test", role=profile_role)
            if has_vendor:
                vendors.rows["v1"] = VendorRecord(id="v1", user_id="u1")
            if has_admin:
                admins.user_ids.add("u1")
            if pending:
                cache.set(pending_role_key("pat@example.test"), pending)

            providers = default_providers(
                admin_email=config.DESIGNATED_ADMIN_EMAIL,
                cache=cache,
                profiles=profiles,
                vendors=vendors,
                admins=admins,
            )
            for provider, delay in zip(providers[3:], delays):
                original = provider.try_resolve

                async def _delayed(identity, _original=original, _delay=delay):
                    await asyncio.sleep(_delay)
                    return await _original(identity)

                provider.try_resolve = _delayed

            resolver = RoleResolver(
                providers=providers,
                credentials=credentials,
                profiles=profiles,
                vendors=vendors,
                cache=cache,
                logger=logger,
            )
            identity = _identity(role=metadata)
            credentials.current = identity
            outcomes.add((await resolver.resolve(identity)).role)
        assert len(outcomes) == 1, (metadata, profile_role, has_vendor, has_admin, pending)


async def test_write_back_is_audited(resolver, credentials, sqlite_conn):
    identity = _signed_in(credentials, _identity())

    await resolver.resolve(identity)

    events = recent_audit_events(sqlite_conn)
    assert events[0].action == "ROLE_WRITE_BACK"
    assert events[0].entity_id == "u1"
    assert events[0].details["role"] == "organizer"
