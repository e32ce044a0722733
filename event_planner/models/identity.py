"""
Identity Model.

The authenticated-user record as the credential store reports it.  The
application reads it but never edits it in place; metadata changes go
through ``CredentialStore.update_metadata``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from event_planner.models.enums import UserRole


class Identity(BaseModel):
    """An authenticated user as known to the credential store."""

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def metadata_role(self) -> Optional[UserRole]:
        """The role cached in metadata, if any and valid."""
        return UserRole.parse(self.user_metadata.get("role"))

    @property
    def normalized_email(self) -> str:
        return self.email.strip().lower()

    def with_metadata(self, patch: dict[str, Any]) -> "Identity":
        """Return a copy with *patch* merged into ``user_metadata``."""
        return self.model_copy(
            update={"user_metadata": {**self.user_metadata, **patch}},
        )
