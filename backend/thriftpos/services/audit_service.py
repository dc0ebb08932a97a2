# Overview: Service-layer operations for the audit log; appends immutable domain events.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from thriftpos.time_utils import utcnow
"""
Audit log invariants

- Append-only: no updates or deletes of existing events.
- No domain/business logic in the audit log itself.
- Events are written inside the same DB transaction as the domain event they record.
"""


def append_audit_event(
    *,
    action: str,
    entity_type: str,
    entity_id: int,
    user_id: int | None = None,
    terminal_id: int | None = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> AuditEvent:
    ev = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        terminal_id=terminal_id,
        note=note[:255] if note else None,
        payload=payload,
        occurred_at=utcnow(),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(*, entity_type: str, entity_id: int) -> list[AuditEvent]:
    return (
        db.session.query(AuditEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditEvent.occurred_at, AuditEvent.id)
        .all()
    )
