"""
Session Context.

Single holder of ``{identity, role, is_loading}`` for the running
client.  It:

- listens to the credential store and re-resolves the role on every
  session event
- watches the current user's ``profiles`` / ``vendors`` / ``admins``
  rows and re-resolves when one changes
- exposes sign-in, sign-up, sign-out and the password flows as
  coroutines returning ``AuthResult``
- publishes each new ``SessionState`` to subscribed listeners (route
  guards)

Every resolution attempt draws a number from a monotonically increasing
sequence; only the newest attempt may publish, so a slow, older
resolution can never overwrite a newer role.  Sign-out and ``close``
advance the sequence too, which discards whatever was in flight.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Coroutine, Optional, Union

from event_planner.config import AppConfig
from event_planner.interfaces import (
    AdminStore,
    CredentialStore,
    LocalCache,
    ProfileStore,
    Unsubscribable,
    VendorStore,
)
from event_planner.logger import StructuredLogger
from event_planner.models.auth_models import AuthErrorCode, AuthResult, classify_auth_error
from event_planner.models.enums import SessionEvent, UserRole
from event_planner.models.identity import Identity
from event_planner.models.records import Profile, ProfileFields, VendorRecord
from event_planner.models.session_models import ChangeEvent, RoleResolution, SessionState
from event_planner.repositories.errors import RepositoryError
from event_planner.services.base_service import BaseService
from event_planner.services.credential_store import CredentialError
from event_planner.services.local_cache import USER_ROLE_KEY, pending_role_key
from event_planner.services.role_resolver import RoleResolver

StateListener = Callable[[SessionState], None]

NETWORK_ERROR_MESSAGE: str = "Cannot reach the server. Check your internet connection."
DEACTIVATED_MESSAGE: str = "This account has been deactivated. Contact an administrator."
THROTTLED_MESSAGE: str = "Please wait a moment before trying again."
INTERRUPTED_MESSAGE: str = "Sign-in was interrupted. Please try again."
SIGNUP_SUCCESS_MESSAGE: str = (
    "Registration successful. Please check your email to confirm your account."
)

# Events after which the session (if any) must be re-resolved.
_RESOLVING_EVENTS: frozenset[SessionEvent] = frozenset({
    SessionEvent.INITIAL_SESSION,
    SessionEvent.SIGNED_IN,
    SessionEvent.USER_UPDATED,
    SessionEvent.TOKEN_REFRESHED,
    SessionEvent.PASSWORD_RECOVERY,
    SessionEvent.MFA_CHALLENGE_VERIFIED,
})


class SessionContext(BaseService):
    """Session state machine and authentication entry point.

    Parameters
    ----------
    credentials:
        The credential store (Supabase auth in production).
    resolver:
        Role resolver used for every (re-)resolution.
    profiles / vendors / admins:
        Repositories; used for sign-up inserts, the deactivation check
        and the change feeds.
    cache:
        Durable local cache (pending sign-up roles and ``user_role``).
    config:
        Supplies the password rule, sign-up throttle and email redirects.
    logger:
        Structured logger instance.
    clock:
        Monotonic time source for the sign-up throttle.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        resolver: RoleResolver,
        profiles: ProfileStore,
        vendors: VendorStore,
        admins: AdminStore,
        cache: LocalCache,
        config: AppConfig,
        logger: StructuredLogger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(logger)
        self._credentials = credentials
        self._resolver = resolver
        self._profiles = profiles
        self._vendors = vendors
        self._admins = admins
        self._cache = cache
        self._config = config
        self._clock = clock

        self._state: SessionState = SessionState()
        self._listeners: list[StateListener] = []
        self._sequence: int = 0
        self._last_signup_attempt: Optional[float] = None
        self._signing_in: bool = False
        self._closed: bool = False

        self._auth_subscription: Optional[Unsubscribable] = None
        self._feed_user_id: Optional[str] = None
        self._feed_subscriptions: list[Unsubscribable] = []
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # State and observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new state.  Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:
                self._logger.error("Session listener failed: %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> SessionState:
        """Subscribe to the credential store and restore the stored session."""
        if self._auth_subscription is None:
            self._auth_subscription = self._credentials.on_session_change(
                self._on_session_event
            )
        return await self.get_current_session()

    async def get_current_session(self) -> SessionState:
        """Return a terminal state, restoring the session if still loading."""
        if self._state.is_terminal:
            return self._state
        try:
            identity = await self._credentials.get_session()
        except CredentialError as exc:
            self._logger.warning("Could not restore session: %s", exc.message)
            identity = None
        await self._apply_identity(identity)
        # A write-back may have scheduled a follow-up resolution.
        await self.wait_until_settled()
        return self._state

    async def close(self) -> None:
        """Unsubscribe everything and drop pending work.  Idempotent."""
        self._closed = True
        self._sequence += 1
        if self._auth_subscription is not None:
            await self._auth_subscription.unsubscribe()
            self._auth_subscription = None
        await self._teardown_feeds()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    async def wait_until_settled(self) -> None:
        """Wait for every scheduled event handler, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthResult:
        email = (email or "").strip()
        if not email or not password:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR, "Email and password are required.",
            )

        self._signing_in = True
        try:
            try:
                identity = await self._credentials.sign_in(email, password)
            except CredentialError as exc:
                return self._credential_failure(exc, operation="sign_in")

            if await self._is_deactivated(identity):
                self._logger.warning(
                    "Sign-in refused for deactivated account %s.", identity.id,
                    extra={"event": "LOGIN_DEACTIVATED", "user_id": identity.id},
                )
                await self._sign_out_quietly()
                return AuthResult.failure(
                    AuthErrorCode.ACCOUNT_DEACTIVATED, DEACTIVATED_MESSAGE,
                )

            resolution = await self._apply_identity(identity)
        finally:
            self._signing_in = False

        if resolution is None:
            await self.wait_until_settled()
            current = self._state.identity
            if current is None or current.id != identity.id:
                self._logger.warning(
                    "Sign-in for %s was superseded before its role resolved.", identity.id,
                    extra={"event": "LOGIN_INTERRUPTED", "user_id": identity.id},
                )
                return AuthResult.failure(
                    AuthErrorCode.UNKNOWN_ERROR, INTERRUPTED_MESSAGE,
                )
        role = resolution.role if resolution is not None else self._state.role
        self._logger.info(
            "User signed in: %s (role: %s)", identity.email, role,
            extra={"event": "LOGIN", "user_id": identity.id},
        )
        return AuthResult(
            success=True, user_id=identity.id, email=identity.email, role=role,
        )

    async def sign_up(
        self,
        email: str,
        password: str,
        requested_role: Union[UserRole, str] = UserRole.ORGANIZER,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult:
        """Register a new account.

        The requested role is stored locally before the provider call so
        a sign-in that races the profile insert still resolves to it.
        Only attempts that pass validation count towards the throttle.
        """
        email = (email or "").strip()
        if not email or not password:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR, "Email and password are required.",
            )
        if len(password) < self._config.PASSWORD_MIN_LENGTH:
            return AuthResult.failure(
                AuthErrorCode.WEAK_PASSWORD,
                f"Password must be at least {self._config.PASSWORD_MIN_LENGTH} "
                "characters long.",
            )

        role = UserRole.parse(requested_role)
        if role is None:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR, f"Unknown role '{requested_role}'.",
            )
        if role is UserRole.ADMIN:
            return AuthResult.failure(
                AuthErrorCode.VALIDATION_ERROR,
                "Administrator accounts cannot be self-registered.",
            )

        now = self._clock()
        if (
            self._last_signup_attempt is not None
            and now - self._last_signup_attempt < self._config.SIGNUP_MIN_INTERVAL_S
        ):
            return AuthResult.failure(AuthErrorCode.THROTTLED, THROTTLED_MESSAGE)
        self._last_signup_attempt = now

        fields = profile_fields or ProfileFields()
        self._cache.set(pending_role_key(email), role.value)

        metadata: dict[str, Any] = {
            "role": role.value,
            "first_name": fields.first_name,
            "last_name": fields.last_name,
        }
        try:
            identity = await self._credentials.sign_up(
                email, password, metadata, redirect_to=self._config.login_redirect_url,
            )
        except CredentialError as exc:
            self._cache.remove(pending_role_key(email))
            return self._credential_failure(exc, operation="sign_up")

        if identity is not None:
            await self._create_records(identity, role, fields)

        self._logger.info(
            "Account registered: %s as %s", email, role,
            extra={"event": "REGISTER", "user_id": identity.id if identity else ""},
        )
        return AuthResult(
            success=True,
            message=SIGNUP_SUCCESS_MESSAGE,
            user_id=identity.id if identity else None,
            email=email,
            role=role,
        )

    async def sign_out(self) -> AuthResult:
        """Sign out; local state is cleared even when the provider call fails."""
        self._sequence += 1
        identity = self._state.identity
        error: Optional[CredentialError] = None
        try:
            await self._credentials.sign_out()
        except CredentialError as exc:
            self._logger.warning("Provider sign-out failed: %s", exc.message)
            error = exc
        finally:
            await self._clear_session(identity)

        if error is not None:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR if error.network
                else AuthErrorCode.UNKNOWN_ERROR,
                error_message=error.message,
            )
        self._logger.info(
            "User signed out.",
            extra={"event": "LOGOUT", "user_id": identity.id if identity else ""},
        )
        return AuthResult(success=True)

    async def reset_password(self, email: str) -> AuthResult:
        email = (email or "").strip()
        if not email:
            return AuthResult.failure(AuthErrorCode.VALIDATION_ERROR, "Email is required.")
        try:
            await self._credentials.reset_password_email(
                email, redirect_to=self._config.reset_password_redirect_url,
            )
        except CredentialError as exc:
            return self._verbatim_failure(exc)
        return AuthResult(
            success=True,
            email=email,
            message="Password reset instructions have been sent to your email.",
        )

    async def update_password(self, new_password: str) -> AuthResult:
        try:
            await self._credentials.update_password(new_password)
        except CredentialError as exc:
            return self._verbatim_failure(exc)
        return AuthResult(success=True, message="Password updated.")

    async def refresh_role(self) -> Optional[RoleResolution]:
        """Re-resolve the current identity, ignoring its cached metadata role."""
        identity = self._state.identity
        if identity is None:
            return None
        return await self._apply_identity(identity, trust_metadata=False)

    # ------------------------------------------------------------------
    # Resolution with sequence gating
    # ------------------------------------------------------------------

    async def _apply_identity(
        self, identity: Optional[Identity], *, trust_metadata: bool = True,
    ) -> Optional[RoleResolution]:
        """Resolve *identity* and publish, unless a newer attempt started.

        Returns the resolution, or ``None`` when signed out or superseded.
        """
        self._sequence += 1
        attempt = self._sequence

        if identity is None:
            await self._teardown_feeds()
            self._publish(SessionState(identity=None, role=None, is_loading=False))
            return None

        current = self._state.identity
        if current is None or current.id != identity.id:
            self._publish(SessionState(identity=identity, role=None, is_loading=True))

        resolution = await self._resolver.resolve(
            identity,
            trust_metadata=trust_metadata,
            is_current=lambda: attempt == self._sequence and not self._closed,
        )

        if attempt != self._sequence or self._closed:
            self._logger.debug(
                "Discarding superseded resolution #%d (%s) for %s.",
                attempt, resolution.role, identity.id,
            )
            return None

        if "metadata" in resolution.writes:
            identity = identity.with_metadata({"role": resolution.role.value})
        self._publish(
            SessionState(identity=identity, role=resolution.role, is_loading=False)
        )
        await self._ensure_feeds(identity.id)
        return resolution

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _on_session_event(self, event: SessionEvent, identity: Optional[Identity]) -> None:
        if event is SessionEvent.SIGNED_IN and self._signing_in:
            # sign_in() resolves the identity itself.
            return
        self._spawn(self._handle_session_event(event, identity))

    async def _handle_session_event(
        self, event: SessionEvent, identity: Optional[Identity],
    ) -> None:
        self._logger.debug("Session event %s", event)
        if event is SessionEvent.SIGNED_OUT:
            self._sequence += 1
            await self._clear_session(self._state.identity)
            return
        if event not in _RESOLVING_EVENTS:
            return
        if identity is None and event is SessionEvent.TOKEN_REFRESHED:
            return
        await self._apply_identity(identity)

    def _on_record_change(self, change: ChangeEvent) -> None:
        self._logger.info(
            "Role-bearing row changed: %s %s", change.table, change.change_type,
            extra={"event": "ROLE_SOURCE_CHANGED"},
        )
        self._spawn(self._handle_record_change())

    async def _handle_record_change(self) -> None:
        identity = self._state.identity
        if identity is None:
            return
        await self._apply_identity(identity, trust_metadata=False)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._closed:
            coro.close()
            return
        try:
            task = asyncio.get_running_loop().create_task(self._guarded(coro))
        except RuntimeError:
            coro.close()
            self._logger.warning("No running event loop; session event dropped.")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error("Session event handler failed: %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Change feeds
    # ------------------------------------------------------------------

    async def _ensure_feeds(self, user_id: str) -> None:
        if self._feed_user_id == user_id:
            return
        await self._teardown_feeds()
        self._feed_user_id = user_id
        for store in (self._profiles, self._vendors, self._admins):
            try:
                subscription = await store.subscribe(user_id, self._on_record_change)
            except Exception as exc:
                self._logger.warning("Could not subscribe to role changes: %s", exc)
                continue
            if self._feed_user_id != user_id:
                # Signed out or switched user while subscribing.
                await subscription.unsubscribe()
                return
            self._feed_subscriptions.append(subscription)

    async def _teardown_feeds(self) -> None:
        subscriptions, self._feed_subscriptions = self._feed_subscriptions, []
        self._feed_user_id = None
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception as exc:
                self._logger.warning("Failed to unsubscribe change feed: %s", exc)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _clear_session(self, identity: Optional[Identity]) -> None:
        self._cache.remove(USER_ROLE_KEY)
        if identity is not None and identity.email:
            self._cache.remove(pending_role_key(identity.email))
        await self._teardown_feeds()
        self._publish(SessionState(identity=None, role=None, is_loading=False))

    async def _sign_out_quietly(self) -> None:
        self._sequence += 1
        try:
            await self._credentials.sign_out()
        except CredentialError as exc:
            self._logger.warning("Sign-out after refusal failed: %s", exc.message)
        await self._clear_session(None)

    async def _is_deactivated(self, identity: Identity) -> bool:
        try:
            profile = await self._profiles.get_by_id(identity.id)
        except RepositoryError as exc:
            self._logger.warning("Deactivation check skipped: %s", exc.message)
            return False
        return profile is not None and not profile.is_active

    async def _create_records(
        self, identity: Identity, role: UserRole, fields: ProfileFields,
    ) -> None:
        """Insert the profile (and vendor row) for a new account.

        Failures are logged only: without a confirmed session the
        database may refuse the insert, and the role resolver creates
        both rows on first sign-in anyway.
        """
        try:
            if await self._profiles.get_by_id(identity.id) is None:
                await self._profiles.insert(
                    Profile(
                        id=identity.id,
                        email=identity.normalized_email,
                        role=role,
                        first_name=fields.first_name or None,
                        last_name=fields.last_name or None,
                    )
                )
        except RepositoryError as exc:
            self._logger.warning(
                "Profile insert after sign-up failed for %s: %s", identity.id, exc.message,
            )

        if role is not UserRole.VENDOR:
            return
        try:
            if not await self._vendors.exists_for_user(identity.id):
                await self._vendors.insert(
                    VendorRecord(
                        user_id=identity.id,
                        company_name=fields.default_company_name(),
                        vendor_type=fields.vendor_type or "General",
                        is_verified=False,
                    )
                )
        except RepositoryError as exc:
            self._logger.warning(
                "Vendor insert after sign-up failed for %s: %s", identity.id, exc.message,
            )

    def _credential_failure(self, exc: CredentialError, *, operation: str) -> AuthResult:
        if exc.network:
            return AuthResult.failure(AuthErrorCode.NETWORK_ERROR, NETWORK_ERROR_MESSAGE)
        code, message = classify_auth_error(exc.message, exc.code, exc.status)
        self._logger.warning(
            "%s failed: %s", operation, exc.message,
            extra={"event": f"{operation.upper()}_FAILED", "error_code": code or ""},
        )
        if code is None:
            return AuthResult.failure(AuthErrorCode.UNKNOWN_ERROR, exc.message)
        return AuthResult.failure(code, message or exc.message)

    @staticmethod
    def _verbatim_failure(exc: CredentialError) -> AuthResult:
        if exc.network:
            return AuthResult.failure(AuthErrorCode.NETWORK_ERROR, NETWORK_ERROR_MESSAGE)
        return AuthResult.failure(AuthErrorCode.UNKNOWN_ERROR, exc.message)
