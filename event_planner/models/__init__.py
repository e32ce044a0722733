"""
Data Models Package.

Re-exports the pydantic models so callers can write
``from event_planner.models import Identity, Profile, UserRole``.
"""

from event_planner.models.auth_models import AuthErrorCode, AuthResult
from event_planner.models.enums import (
    ChangeType,
    GuardState,
    RoleSource,
    SessionEvent,
    UserRole,
)
from event_planner.models.identity import Identity
from event_planner.models.records import AdminRecord, Profile, ProfileFields, VendorRecord
from event_planner.models.service_models import ServiceResult
from event_planner.models.session_models import (
    ChangeEvent,
    GuardDecision,
    Redirect,
    RoleResolution,
    SessionState,
)

__all__ = [
    "AdminRecord",
    "AuthErrorCode",
    "AuthResult",
    "ChangeEvent",
    "ChangeType",
    "GuardDecision",
    "GuardState",
    "Identity",
    "Profile",
    "ProfileFields",
    "Redirect",
    "RoleResolution",
    "RoleSource",
    "ServiceResult",
    "SessionEvent",
    "SessionState",
    "UserRole",
    "VendorRecord",
]
