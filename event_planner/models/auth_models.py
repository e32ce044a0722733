"""
Authentication Result Models.

Typed contracts between ``SessionContext`` and whatever form collects
the credentials.  Every auth operation returns an ``AuthResult``; the
caller never inspects provider exceptions.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from event_planner.models.enums import UserRole


class AuthErrorCode(StrEnum):
    """Categories of authentication failure shown to the user."""

    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    INVALID_CREDENTIALS = "invalid_credentials"
    RATE_LIMITED = "rate_limited"
    THROTTLED = "throttled"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    WEAK_PASSWORD = "weak_password"
    INVALID_EMAIL = "invalid_email"
    SIGNUPS_DISABLED = "signups_disabled"
    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


# ---------------------------------------------------------------------------
# Provider error mapping
# ---------------------------------------------------------------------------
# Matched in order against the lower-cased provider error code and message.
# Both the machine code (newer GoTrue releases) and the human message
# (older releases) are listed so either form classifies.

AUTH_ERROR_MAP: list[tuple[str, AuthErrorCode, str]] = [
    (
        "email_not_confirmed",
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in. "
        "Check your inbox for the confirmation link.",
    ),
    (
        "email not confirmed",
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in. "
        "Check your inbox for the confirmation link.",
    ),
    ("invalid_credentials", AuthErrorCode.INVALID_CREDENTIALS, "Invalid email or password"),
    ("invalid login credentials", AuthErrorCode.INVALID_CREDENTIALS, "Invalid email or password"),
    ("rate limit", AuthErrorCode.RATE_LIMITED, "Too many attempts. Please try again later."),
    ("rate_limit", AuthErrorCode.RATE_LIMITED, "Too many attempts. Please try again later."),
    ("too many requests", AuthErrorCode.RATE_LIMITED, "Too many attempts. Please try again later."),
    (
        "user_already_exists",
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    (
        "already registered",
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    ("weak_password", AuthErrorCode.WEAK_PASSWORD, "Password must be at least 6 characters long."),
    (
        "password should be at least",
        AuthErrorCode.WEAK_PASSWORD,
        "Password must be at least 6 characters long.",
    ),
    ("email_address_invalid", AuthErrorCode.INVALID_EMAIL, "Please enter a valid email address."),
    ("valid email", AuthErrorCode.INVALID_EMAIL, "Please enter a valid email address."),
    ("signup_disabled", AuthErrorCode.SIGNUPS_DISABLED, "New registrations are currently disabled."),
    (
        "signups are disabled",
        AuthErrorCode.SIGNUPS_DISABLED,
        "New registrations are currently disabled.",
    ),
]


def classify_auth_error(
    message: str,
    code: Optional[str] = None,
    status: Optional[int] = None,
) -> tuple[Optional[AuthErrorCode], Optional[str]]:
    """Map a provider error to ``(error_code, user_message)``.

    Returns ``(None, None)`` when the error matches no known category;
    callers then surface the provider message verbatim.
    """
    haystack = f"{code or ''} {message or ''}".lower()
    for needle, error_code, human_message in AUTH_ERROR_MAP:
        if needle in haystack:
            return error_code, human_message
    if status == 429:
        return AuthErrorCode.RATE_LIMITED, "Too many attempts. Please try again later."
    return None, None


class AuthResult(BaseModel):
    """Unified response for sign-in, sign-up, sign-out and password flows.

    Attributes
    ----------
    success:
        ``True`` when the operation completed.
    error_code:
        Failure category (``None`` on success).
    error_message:
        Text to show next to the form (``None`` on success).
    message:
        Informational text on success, e.g. "check your inbox".
    user_id / email:
        The identity the operation concerned, when known.
    role:
        The resolved (sign-in) or requested (sign-up) role.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None

    @classmethod
    def failure(cls, error_code: AuthErrorCode, error_message: str) -> "AuthResult":
        return cls(success=False, error_code=error_code, error_message=error_message)
