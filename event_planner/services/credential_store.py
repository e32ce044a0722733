"""
Supabase Credential Store.

Adapts ``supabase`` async auth (GoTrue) to the ``CredentialStore``
contract used by ``SessionContext``:

- every provider rejection becomes a ``CredentialError`` carrying the
  provider's message, machine code and HTTP status
- transport failures and the offline client become a ``CredentialError``
  with ``network=True``
- Supabase ``User`` objects become immutable ``Identity`` models

Classification into user-facing messages happens one layer up, through
``classify_auth_error``.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from supabase import AsyncClient, AuthError, AuthRetryableError

from event_planner.database import DatabaseManager
from event_planner.interfaces import SessionCallback
from event_planner.logger import StructuredLogger
from event_planner.models.enums import SessionEvent
from event_planner.models.identity import Identity
from event_planner.services.base_service import BaseService

T = TypeVar("T")


class CredentialError(Exception):
    """The credential store refused or could not complete a request."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        network: bool = False,
    ) -> None:
        self.message: str = message
        self.code: Optional[str] = code
        self.status: Optional[int] = status
        self.network: bool = network
        super().__init__(message)


def identity_from_user(user: Any) -> Optional[Identity]:
    """Convert a Supabase ``User`` (or ``None``) to an ``Identity``."""
    if user is None:
        return None
    return Identity(
        id=str(user.id),
        email=user.email or "",
        user_metadata=dict(user.user_metadata or {}),
        created_at=getattr(user, "created_at", None),
    )


class AuthSubscription:
    """Wraps the GoTrue listener handle so teardown can be awaited."""

    def __init__(self, subscription: Any = None) -> None:
        self._subscription = subscription

    async def unsubscribe(self) -> None:
        if self._subscription is None:
            return
        self._subscription.unsubscribe()
        self._subscription = None


class SupabaseCredentialStore(BaseService):
    """Credential store backed by the async Supabase auth client.

    Parameters
    ----------
    db:
        ``DatabaseManager`` whose ``supabase`` client is connected
        before the first call.
    logger:
        Structured logger instance.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db = db

    @property
    def _client(self) -> AsyncClient:
        return self._db.supabase

    # ------------------------------------------------------------------
    # Credential operations
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Identity:
        response = await self._call(
            lambda: self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            ),
            operation="sign_in",
        )
        identity = identity_from_user(response.user)
        if identity is None:
            raise CredentialError("Sign-in returned no user.", code="no_user")
        return identity

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
        redirect_to: Optional[str] = None,
    ) -> Optional[Identity]:
        options: dict[str, Any] = {"data": metadata}
        if redirect_to:
            options["email_redirect_to"] = redirect_to
        response = await self._call(
            lambda: self._client.auth.sign_up(
                {"email": email, "password": password, "options": options}
            ),
            operation="sign_up",
        )
        user = response.user
        # With email confirmation on, GoTrue answers a duplicate sign-up
        # with an obfuscated user that has no identities.
        if user is not None and getattr(user, "identities", None) == []:
            raise CredentialError(
                "User already registered", code="user_already_exists", status=422,
            )
        return identity_from_user(user)

    async def sign_out(self) -> None:
        await self._call(lambda: self._client.auth.sign_out(), operation="sign_out")

    async def get_session(self) -> Optional[Identity]:
        session = await self._call(
            lambda: self._client.auth.get_session(), operation="get_session",
        )
        if session is None:
            return None
        return identity_from_user(session.user)

    async def update_metadata(self, patch: dict[str, Any]) -> Optional[Identity]:
        response = await self._call(
            lambda: self._client.auth.update_user({"data": patch}),
            operation="update_metadata",
        )
        return identity_from_user(response.user)

    async def reset_password_email(
        self, email: str, redirect_to: Optional[str] = None,
    ) -> None:
        options: dict[str, Any] = {"redirect_to": redirect_to} if redirect_to else {}
        await self._call(
            lambda: self._client.auth.reset_password_for_email(email, options),
            operation="reset_password_email",
        )

    async def update_password(self, new_password: str) -> None:
        await self._call(
            lambda: self._client.auth.update_user({"password": new_password}),
            operation="update_password",
        )

    # ------------------------------------------------------------------
    # Session notifications
    # ------------------------------------------------------------------

    def on_session_change(self, callback: SessionCallback) -> AuthSubscription:
        """Forward GoTrue auth events to *callback*.

        Unknown event names are dropped.  While offline no events can
        arrive, so an inert subscription is returned.
        """
        if not self._db.is_online:
            self._logger.warning("Auth events unavailable: Supabase client offline.")
            return AuthSubscription()

        def _listener(event: Any, session: Any) -> None:
            try:
                session_event = SessionEvent(str(getattr(event, "value", event)))
            except ValueError:
                self._logger.debug("Ignoring auth event %s", event)
                return
            user = getattr(session, "user", None) if session is not None else None
            callback(session_event, identity_from_user(user))

        return AuthSubscription(self._client.auth.on_auth_state_change(_listener))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _call(self, request: Callable[[], Awaitable[T]], *, operation: str) -> T:
        try:
            return await request()
        except AuthRetryableError as exc:
            self._logger.warning(
                "Auth %s could not reach the server: %s", operation, exc.message,
                extra={"event": "AUTH_NETWORK_ERROR"},
            )
            raise CredentialError(exc.message, status=exc.status, network=True) from exc
        except AuthError as exc:
            code = getattr(exc, "code", None)
            status = getattr(exc, "status", None)
            self._logger.info(
                "Auth %s rejected: %s", operation, exc.message,
                extra={"event": "AUTH_REJECTED", "error_code": code},
            )
            raise CredentialError(exc.message, code=code, status=status) from exc
        except (httpx.HTTPError, ConnectionError, TimeoutError) as exc:
            self._logger.warning(
                "Network error during auth %s: %s", operation, exc,
                extra={"event": "AUTH_NETWORK_ERROR"},
            )
            raise CredentialError(str(exc), network=True) from exc
        except RuntimeError as exc:
            # DatabaseManager.supabase raises while offline.
            raise CredentialError(str(exc), network=True) from exc


class SupabaseUserMetadataAdmin(BaseService):
    """Writes other users' metadata through the GoTrue admin API.

    Needs a client created with the service-role key; with the anon key
    every call is rejected and the caller logs it.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db = db

    async def update_user_metadata(self, user_id: str, patch: dict[str, Any]) -> None:
        try:
            await self._db.supabase.auth.admin.update_user_by_id(
                user_id, {"user_metadata": patch},
            )
        except AuthError as exc:
            raise CredentialError(
                exc.message,
                code=getattr(exc, "code", None),
                status=getattr(exc, "status", None),
            ) from exc
        except (httpx.HTTPError, RuntimeError) as exc:
            raise CredentialError(str(exc), network=True) from exc
        self._logger.info("Updated metadata for %s: %s", user_id, sorted(patch))
