from __future__ import annotations

from ..extensions import db
from thriftpos.time_utils import to_utc_z


class NumberSequence(db.Model):
    """
    Atomic keyed counters for human-readable numbers.

    WHY: Prevent race conditions when allocating transaction numbers
    (one key per terminal) and gift card numbers (one global key).
    """
    __tablename__ = "number_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    # e.g. "TRANSACTION:3", "GIFT_CARD"
    sequence_key = db.Column(db.String(64), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_key": self.sequence_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditEvent(db.Model):
    """
    Append-only audit log for cross-cutting domain events.

    Written inside the same DB transaction as the event it records, so a
    rolled-back sale leaves no audit row behind.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. transaction.completed, gift_card.adjusted
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    terminal_id = db.Column(db.Integer, db.ForeignKey("terminals.id"), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "terminal_id": self.terminal_id,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
