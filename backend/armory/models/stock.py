from __future__ import annotations

from ..extensions import db
from armory.time_utils import to_utc_z


ITEM_WEAPON = "weapon"
ITEM_AMMUNITION = "ammunition"
ITEM_EQUIPMENT = "equipment"
ITEM_TYPES = (ITEM_WEAPON, ITEM_AMMUNITION, ITEM_EQUIPMENT)

CONDITION_SERVICEABLE = "serviceable"
CONDITION_UNSERVICEABLE = "unserviceable"
CONDITION_UNDER_MAINTENANCE = "under_maintenance"
CONDITION_MISSING = "missing"

# Weapons may also be recorded as missing; other lines may not.
CONDITIONS_BY_ITEM_TYPE = {
    ITEM_WEAPON: {
        CONDITION_SERVICEABLE,
        CONDITION_UNSERVICEABLE,
        CONDITION_UNDER_MAINTENANCE,
        CONDITION_MISSING,
    },
    ITEM_AMMUNITION: {
        CONDITION_SERVICEABLE,
        CONDITION_UNSERVICEABLE,
        CONDITION_UNDER_MAINTENANCE,
    },
    ITEM_EQUIPMENT: {
        CONDITION_SERVICEABLE,
        CONDITION_UNSERVICEABLE,
        CONDITION_UNDER_MAINTENANCE,
    },
}

ARMORY_STATUSES = {"active", "under_audit", "closed", "maintenance"}


def make_item_key(*parts) -> str:
    """
    Build the natural composite key of a stock line.

    Parts are stripped and upper-cased; empty parts are dropped so an
    equipment line without a size keys on its type alone.
    """
    cleaned = [str(p).strip().upper() for p in parts if p is not None and str(p).strip()]
    return "|".join(cleaned)


class Armory(db.Model):
    """
    A stock-holding unit.

    Stock lives on the armory's lines and is mutated only inside the
    per-armory write scope (see services/concurrency.py).
    """
    __tablename__ = "armories"
    __table_args__ = (
        db.Index("ix_armories_unit_status", "unit", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    location = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_by = db.Column(db.String(64), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "StockLine",
        back_populates="armory",
        lazy=True,
        order_by="StockLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Armory id={self.id} code={self.code!r} unit={self.unit!r}>"

    def lines_of(self, item_type: str) -> list["StockLine"]:
        return [line for line in self.lines if line.item_type == item_type]

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "reference_id": self.reference_id,
            "name": self.name,
            "code": self.code,
            "location": self.location,
            "unit": self.unit,
            "status": self.status,
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["weapons"] = [line.to_dict() for line in self.lines_of(ITEM_WEAPON)]
            data["ammunition"] = [line.to_dict() for line in self.lines_of(ITEM_AMMUNITION)]
            data["equipment"] = [line.to_dict() for line in self.lines_of(ITEM_EQUIPMENT)]
        return data


class StockLine(db.Model):
    """
    One fungible stock line of an armory.

    KEYING:
    A line is identified by (armory_id, item_type, item_key). item_key is the
    normalized natural key (weapon type + serial/batch, caliber + type, or
    equipment type + size), so issuance and return calls that name the same
    key always address the same line.

    QUANTITIES:
    - quantity: units currently on the shelf (never negative)
    - total_quantity: baseline stock (setup + restocks)
    total_quantity - quantity is what is out on open distributions.
    """
    __tablename__ = "stock_lines"
    __table_args__ = (
        db.UniqueConstraint("armory_id", "item_type", "item_key", name="uq_stock_lines_armory_type_key"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_lines_quantity_nonnegative"),
        db.CheckConstraint("quantity <= total_quantity", name="ck_stock_lines_quantity_le_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    armory_id = db.Column(db.Integer, db.ForeignKey("armories.id"), nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_key = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    condition = db.Column(db.String(32), nullable=False, default=CONDITION_SERVICEABLE)

    # Weapon attributes
    weapon_type = db.Column(db.String(64), nullable=True)
    serial_or_batch = db.Column(db.String(128), nullable=True)
    manufacturer = db.Column(db.String(128), nullable=True)

    # Ammunition attributes
    caliber = db.Column(db.String(32), nullable=True)
    ammo_type = db.Column(db.String(32), nullable=True)
    unit_of_measure = db.Column(db.String(16), nullable=True)
    lot_number = db.Column(db.String(64), nullable=True)

    # Equipment attributes
    equipment_type = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(16), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    armory = db.relationship("Armory", back_populates="lines")

    __mapper_args__ = {
        "polymorphic_on": item_type,
        "version_id_col": version_id,
    }

    @property
    def key(self) -> tuple[str, str]:
        return (self.item_type, self.item_key)

    @property
    def issued_quantity(self) -> int:
        return self.total_quantity - self.quantity

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} key={self.item_key!r} "
            f"quantity={self.quantity}/{self.total_quantity}>"
        )

    def attributes(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "armory_id": self.armory_id,
            "item_type": self.item_type,
            "item_key": self.item_key,
            "quantity": self.quantity,
            "total_quantity": self.total_quantity,
            "issued_quantity": self.issued_quantity,
            "condition": self.condition,
            **self.attributes(),
            "notes": self.notes,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class WeaponLine(StockLine):
    __mapper_args__ = {"polymorphic_identity": ITEM_WEAPON}

    def attributes(self) -> dict:
        return {
            "weapon_type": self.weapon_type,
            "serial_or_batch": self.serial_or_batch,
            "manufacturer": self.manufacturer,
        }


class AmmunitionLine(StockLine):
    __mapper_args__ = {"polymorphic_identity": ITEM_AMMUNITION}

    def attributes(self) -> dict:
        return {
            "caliber": self.caliber,
            "ammo_type": self.ammo_type,
            "unit_of_measure": self.unit_of_measure,
            "lot_number": self.lot_number,
        }


class EquipmentLine(StockLine):
    __mapper_args__ = {"polymorphic_identity": ITEM_EQUIPMENT}

    def attributes(self) -> dict:
        return {
            "equipment_type": self.equipment_type,
            "size": self.size,
        }


LINE_CLASSES = {
    ITEM_WEAPON: WeaponLine,
    ITEM_AMMUNITION: AmmunitionLine,
    ITEM_EQUIPMENT: EquipmentLine,
}
