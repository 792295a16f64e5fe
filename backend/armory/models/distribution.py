from __future__ import annotations

from ..extensions import db
from armory.time_utils import to_utc_z
from .stock import ITEM_WEAPON, ITEM_AMMUNITION, ITEM_EQUIPMENT


DISTRIBUTION_STATUS_ISSUED = "issued"
DISTRIBUTION_STATUS_PARTIAL_RETURN = "partial_return"
DISTRIBUTION_STATUS_RETURNED = "returned"
DISTRIBUTION_STATUS_CANCELLED = "cancelled"

# Statuses that still hold armory stock in the field.
OPEN_DISTRIBUTION_STATUSES = (DISTRIBUTION_STATUS_ISSUED, DISTRIBUTION_STATUS_PARTIAL_RETURN)

RENEWAL_STATUS_PENDING = "pending"
RENEWAL_STATUS_DUE = "due"
RENEWAL_STATUS_OVERDUE = "overdue"
RENEWAL_STATUS_RENEWED = "renewed"


class Distribution(db.Model):
    """
    One issuance of armory stock to an officer/squad.

    LIFECYCLE:
        issued -> partial_return -> returned
        issued -> cancelled

    - Status moves forward only; returned and cancelled are terminal.
    - Rows are never deleted; a returned distribution is retired, not removed.
    - renewal_status is the last recorded renewal state. The time-based view
      (services/renewal_service.py) is computed on read and may disagree.
    """
    __tablename__ = "distributions"
    __table_args__ = (
        db.UniqueConstraint("distribution_no", name="uq_distributions_distribution_no"),
        db.Index("ix_distributions_armory_status", "armory_id", "status"),
        db.Index("ix_distributions_status_renewal_due", "status", "renewal_due"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distribution_no = db.Column(db.String(64), nullable=False)

    armory_id = db.Column(db.Integer, db.ForeignKey("armories.id"), nullable=False, index=True)
    officer_id = db.Column(db.Integer, db.ForeignKey("officers.id"), nullable=False, index=True)
    squad_name = db.Column(db.String(128), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=DISTRIBUTION_STATUS_ISSUED, index=True)
    renewal_status = db.Column(db.String(16), nullable=False, default=RENEWAL_STATUS_PENDING)

    date_issued = db.Column(db.DateTime(timezone=True), nullable=False)
    renewal_due = db.Column(db.DateTime(timezone=True), nullable=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Actor ids come from the authorization collaborator
    issued_by = db.Column(db.String(64), nullable=False)
    returned_by = db.Column(db.String(64), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    remarks = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    armory = db.relationship("Armory", backref=db.backref("distributions", lazy=True))
    officer = db.relationship("Officer", backref=db.backref("distributions", lazy=True))
    items = db.relationship(
        "IssuedItem",
        back_populates="distribution",
        lazy=True,
        order_by="IssuedItem.id",
        cascade="all, delete-orphan",
    )
    renewal_history = db.relationship(
        "RenewalRecord",
        back_populates="distribution",
        lazy=True,
        order_by="RenewalRecord.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Distribution id={self.id} no={self.distribution_no!r} status={self.status}>"

    @property
    def weapons_issued(self) -> list["IssuedItem"]:
        return [i for i in self.items if i.item_type == ITEM_WEAPON]

    @property
    def ammunition_issued(self) -> list["IssuedItem"]:
        return [i for i in self.items if i.item_type == ITEM_AMMUNITION]

    @property
    def equipment_issued(self) -> list["IssuedItem"]:
        return [i for i in self.items if i.item_type == ITEM_EQUIPMENT]

    @property
    def is_open(self) -> bool:
        return self.status in (DISTRIBUTION_STATUS_ISSUED, DISTRIBUTION_STATUS_PARTIAL_RETURN)

    @property
    def outstanding_quantity(self) -> int:
        return sum(i.outstanding for i in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distribution_no": self.distribution_no,
            "armory_id": self.armory_id,
            "officer_id": self.officer_id,
            "squad_name": self.squad_name,
            "status": self.status,
            "renewal_status": self.renewal_status,
            "date_issued": to_utc_z(self.date_issued),
            "renewal_due": to_utc_z(self.renewal_due),
            "return_date": to_utc_z(self.return_date),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "issued_by": self.issued_by,
            "returned_by": self.returned_by,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "remarks": self.remarks,
            "weapons_issued": [i.to_dict() for i in self.weapons_issued],
            "ammunition_issued": [i.to_dict() for i in self.ammunition_issued],
            "equipment_issued": [i.to_dict() for i in self.equipment_issued],
            "outstanding_quantity": self.outstanding_quantity,
            "renewal_history": [r.to_dict() for r in self.renewal_history],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class IssuedItem(db.Model):
    """
    A line of a distribution.

    Invariant: 0 <= returned_quantity <= quantity. The engines enforce it
    before writing; the check constraints are a second line.
    """
    __tablename__ = "issued_items"
    __table_args__ = (
        db.UniqueConstraint("distribution_id", "item_type", "item_key", name="uq_issued_items_distribution_type_key"),
        db.CheckConstraint("quantity > 0", name="ck_issued_items_quantity_positive"),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_issued_items_returned_within_quantity",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id"), nullable=False, index=True)
    stock_line_id = db.Column(db.Integer, db.ForeignKey("stock_lines.id"), nullable=False, index=True)

    item_type = db.Column(db.String(16), nullable=False)
    item_key = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    condition_at_issue = db.Column(db.String(32), nullable=False)
    condition_at_return = db.Column(db.String(32), nullable=True)

    # Copy of the stock line as it was when issued
    item_snapshot = db.Column(db.JSON, nullable=True)

    distribution = db.relationship("Distribution", back_populates="items")
    stock_line = db.relationship("StockLine")

    @property
    def key(self) -> tuple[str, str]:
        return (self.item_type, self.item_key)

    @property
    def outstanding(self) -> int:
        return self.quantity - (self.returned_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_key": self.item_key,
            "stock_line_id": self.stock_line_id,
            "quantity": self.quantity,
            "returned_quantity": self.returned_quantity,
            "outstanding": self.outstanding,
            "condition_at_issue": self.condition_at_issue,
            "condition_at_return": self.condition_at_return,
            "item_snapshot": self.item_snapshot,
        }


class RenewalRecord(db.Model):
    """Append-only renewal history entry."""
    __tablename__ = "renewal_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id"), nullable=False, index=True)

    renewed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    renewed_by = db.Column(db.String(64), nullable=False)
    next_renewal_date = db.Column(db.DateTime(timezone=True), nullable=False)
    condition = db.Column(db.String(32), nullable=False)
    remarks = db.Column(db.Text, nullable=True)

    distribution = db.relationship("Distribution", back_populates="renewal_history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "renewed_at": to_utc_z(self.renewed_at),
            "renewed_by": self.renewed_by,
            "next_renewal_date": to_utc_z(self.next_renewal_date),
            "condition": self.condition,
            "remarks": self.remarks,
        }
