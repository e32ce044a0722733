"""
Session State Models.

Immutable snapshots passed from ``SessionContext`` to observers such as
route guards, plus the resolver's result and realtime change payloads.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from event_planner.models.enums import ChangeType, GuardState, RoleSource, UserRole
from event_planner.models.identity import Identity


class SessionState(BaseModel):
    """What the rest of the application knows about the current session."""

    identity: Optional[Identity] = None
    role: Optional[UserRole] = None
    is_loading: bool = True

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def is_terminal(self) -> bool:
        """``True`` once loading finished: signed out, or signed in with a role."""
        if self.is_loading:
            return False
        return self.identity is None or self.role is not None


class RoleResolution(BaseModel):
    """Outcome of one ``RoleResolver.resolve`` call.

    ``error`` is set when a source failed unexpectedly or the run timed
    out; the role is then the default and nothing was written back.
    ``writes`` names the caches that were updated (empty when the
    sources already agreed).
    """

    role: UserRole
    source: RoleSource
    error: Optional[str] = None
    writes: list[str] = Field(default_factory=list)


class ChangeEvent(BaseModel):
    """A realtime row change on one of the role-bearing tables."""

    table: str
    change_type: ChangeType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, table: str, payload: dict[str, Any]) -> "ChangeEvent":
        """Build from a Supabase realtime ``postgres_changes`` payload.

        Realtime releases differ in envelope shape (``data.record`` vs
        ``new``), so both are accepted.
        """
        data: dict[str, Any] = payload.get("data", payload) or {}
        raw_type = str(data.get("type") or data.get("eventType") or "UPDATE").upper()
        try:
            change_type = ChangeType(raw_type)
        except ValueError:
            change_type = ChangeType.UPDATE
        return cls(
            table=str(data.get("table") or table),
            change_type=change_type,
            record=data.get("record") or data.get("new") or {},
            old_record=data.get("old_record") or data.get("old") or {},
        )


class Redirect(BaseModel):
    """A navigation instruction issued by a route guard."""

    target: str
    replace: bool = True
    return_to: Optional[str] = None

    model_config = {"frozen": True}


class GuardDecision(BaseModel):
    """What a route guard concluded for one session snapshot."""

    state: GuardState
    render: bool = False
    redirect: Optional[Redirect] = None

    model_config = {"frozen": True}
