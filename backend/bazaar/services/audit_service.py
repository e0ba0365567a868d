# Overview: Append-only audit trail for destructive and security relevant actions.

from __future__ import annotations

from ..extensions import db
from ..models import AuditEvent
from bazaar.time_utils import utcnow
"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- Events are written inside the same DB transaction as the action they
  record, so a rolled back action leaves no event behind.
- Never pass plaintext credentials in note.
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(entity_type: str | None = None, entity_id: int | None = None) -> list[AuditEvent]:
    query = db.session.query(AuditEvent)
    if entity_type is not None:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    return query.order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc()).all()
