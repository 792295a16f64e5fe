from __future__ import annotations

from ..extensions import db
from armory.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """Per-armory counter for human-readable document numbers."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("armory_id", "document_type", name="uq_document_sequences_armory_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    armory_id = db.Column(db.Integer, db.ForeignKey("armories.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)


class ArmoryLedgerEvent(db.Model):
    """
    Append-only audit trail of stock movements and distribution transitions.

    Written in the same transaction as the change it records, so a committed
    stock movement always has its event and a rolled back one never does.
    """
    __tablename__ = "armory_ledger_events"
    __table_args__ = (
        db.Index("ix_armory_ledger_armory_occurred", "armory_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    armory_id = db.Column(db.Integer, db.ForeignKey("armories.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. distribution.issued, inventory.return_in
    event_category = db.Column(db.String(32), nullable=False, index=True)  # inventory, distributions

    entity_type = db.Column(db.String(64), nullable=False)  # stock_line, distribution
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_id = db.Column(db.String(64), nullable=True, index=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "armory_id": self.armory_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "distribution_id": self.distribution_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
