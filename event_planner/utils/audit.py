"""
Audit Trail.

Role write-backs and administrative actions are recorded as validated
``AuditEvent`` objects: always as a JSON log line, and additionally in
the local ``audit_log`` table when a connection is supplied.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from event_planner.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "recent_audit_events"]

DetailValue = Union[str, int, float, bool, None]

# Acting user for changes the client makes on its own behalf.
SYSTEM_ACTOR: str = "system"


class AuditEvent(BaseModel):
    """One audit trail entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str = SYSTEM_ACTOR,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> AuditEvent:
    """Record an audit event and return it.

    Args:
        logger: Where the JSON line goes.
        action: e.g. ``"ROLE_WRITE_BACK"``, ``"UPDATE_ROLE"``,
            ``"DEACTIVATE_USER"``.
        entity_type: e.g. ``"Profile"``, ``"VendorRecord"``.
        entity_id: Primary key of the affected row.
        user_id: Who performed the action.
        details: Flat mapping of extra context (old/new values).
        conn: Local database; when given, the event is also inserted
            into ``audit_log``.  Insert failures are logged, not raised.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", event.model_dump_json())

    if conn is not None:
        try:
            conn.execute(
                """
                INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp,
                    event.action,
                    event.entity_type,
                    event.entity_id,
                    event.user_id,
                    json.dumps(event.details, default=str),
                ),
            )
            conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Failed to persist audit event to SQLite: %s", exc)

    return event


def recent_audit_events(conn: sqlite3.Connection, limit: int = 50) -> list[AuditEvent]:
    """Newest-first audit rows from the local database."""
    rows = conn.execute(
        """
        SELECT timestamp, action, entity_type, entity_id, user_id, details
        FROM audit_log
        ORDER BY id DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [
        AuditEvent(
            timestamp=row[0],
            action=row[1],
            entity_type=row[2],
            entity_id=row[3],
            user_id=row[4],
            details=json.loads(row[5] or "{}"),
        )
        for row in rows
    ]
