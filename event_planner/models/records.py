"""
Role-Bearing Record Models.

Rows of the ``profiles``, ``vendors`` and ``admins`` tables.  Field
names match the column names so rows can be passed straight to the
constructors.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from event_planner.models.enums import UserRole


class Profile(BaseModel):
    """Application-level user record (one per identity).

    Profiles are never hard-deleted; ``is_active=False`` is the
    deactivation flag.
    """

    id: str
    email: str = ""
    role: Optional[UserRole] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: object) -> Optional[UserRole]:
        # Unknown or legacy values become None / the canonical member so a
        # bad row degrades to "no answer" instead of a validation error.
        return UserRole.parse(value)

    @field_validator("is_active", mode="before")
    @classmethod
    def _null_means_active(cls, value: object) -> object:
        return True if value is None else value


class VendorRecord(BaseModel):
    """A vendor's business listing owner record."""

    id: Optional[str] = None
    user_id: str
    company_name: str = "New Vendor"
    vendor_type: str = "General"
    is_verified: bool = False
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    website: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator("is_verified", mode="before")
    @classmethod
    def _coerce_verified(cls, value: object) -> bool:
        # Older rows stored the flag as text ('t', 'true', '1').
        if isinstance(value, str):
            return value.strip().lower() in {"t", "true", "1"}
        return bool(value)


class AdminRecord(BaseModel):
    """Marks a user as an administrator."""

    id: Optional[str] = None
    user_id: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}


class ProfileFields(BaseModel):
    """Personal fields collected on the registration form."""

    first_name: str = ""
    last_name: str = ""
    company_name: Optional[str] = None
    vendor_type: Optional[str] = None

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    def default_company_name(self) -> str:
        if self.company_name:
            return self.company_name
        if self.first_name:
            return f"{self.first_name}'s Company"
        return "New Vendor"
