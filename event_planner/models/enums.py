"""
Shared Enumerations.

StrEnum values compare equal to their string form, so rows and metadata
bags coming back from Supabase (``"vendor"``) match ``UserRole.VENDOR``
without conversion.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class UserRole(StrEnum):
    """Access-control category of a session.

    The original web client stored organizers as ``"user"``; that value
    is still accepted on read through :meth:`parse`.
    """

    ORGANIZER = "organizer"
    VENDOR = "vendor"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> Optional["UserRole"]:
        """Normalise a raw role value, returning ``None`` when unusable."""
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        if not cleaned:
            return None
        cleaned = _LEGACY_ROLE_ALIASES.get(cleaned, cleaned)
        try:
            return cls(cleaned)
        except ValueError:
            return None


_LEGACY_ROLE_ALIASES: dict[str, str] = {"user": "organizer"}


class RoleSource(StrEnum):
    """Which precedence level produced a resolved role."""

    DESIGNATED_ADMIN = "designated_admin"
    PENDING_LOCAL = "pending_local"
    METADATA = "metadata"
    PROFILE = "profile"
    VENDOR_RECORD = "vendor_record"
    ADMIN_RECORD = "admin_record"
    DEFAULT = "default"


class SessionEvent(StrEnum):
    """Credential-store session notifications (Supabase auth event names)."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


class ChangeType(StrEnum):
    """Realtime row-change kinds."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class GuardState(StrEnum):
    """Route guard states."""

    CHECKING = "checking"
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"
