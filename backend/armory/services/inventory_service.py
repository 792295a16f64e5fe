# Overview: Armory stock lines: setup, restock, keyed lookup and the conservation audit.

# backend/armory/services/inventory_service.py
"""
Armory Stock Invariants (authoritative)

Keying:
- A stock line is addressed by (item_type, item_key); item_key is the
  normalized natural key (see models.stock.make_item_key).
- Engines resolve lines through load_stock_lines_for_update(), an explicit
  dict keyed by (item_type, item_key). Nothing scans line arrays by attribute.

Quantities:
- quantity >= 0 at all times (validated before write, also a DB check).
- total_quantity is the line's baseline: setup quantity plus restocks.
- Conservation: total_quantity == quantity + outstanding quantity of that line
  on open (issued / partial_return) distributions.

Writers:
- Only the issuance and return engines move units between the shelf and the
  field. Setup and restock (administrative) change the baseline.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Armory, StockLine, IssuedItem, Distribution, LINE_CLASSES
from ..models.distribution import OPEN_DISTRIBUTION_STATUSES
from ..models.stock import ARMORY_STATUSES, CONDITION_SERVICEABLE
from ..validation import (
    ValidationError,
    item_key_from_payload,
    parse_int,
    parse_positive_int,
    require_text,
    validate_condition,
    validate_item_type,
)
from .concurrency import armory_scope, lock_for_update, run_with_retry
from .errors import UnknownArmoryError
from .ledger_service import append_armory_event


# Attributes copied from a setup/restock payload onto a new line, per type.
LINE_ATTRIBUTES = {
    "weapon": ("weapon_type", "serial_or_batch", "manufacturer"),
    "ammunition": ("caliber", "ammo_type", "unit_of_measure", "lot_number"),
    "equipment": ("equipment_type", "size"),
}

# Required key attributes when no item_key is supplied.
REQUIRED_ATTRIBUTES = {
    "weapon": ("weapon_type", "serial_or_batch"),
    "ammunition": ("caliber", "ammo_type"),
    "equipment": ("equipment_type",),
}


@dataclass(frozen=True)
class ConservationIssue:
    stock_line_id: int
    item_type: str
    item_key: str
    quantity: int
    total_quantity: int
    outstanding: int

    @property
    def expected_total(self) -> int:
        return self.quantity + self.outstanding

    def to_dict(self) -> dict:
        return {
            "stock_line_id": self.stock_line_id,
            "item_type": self.item_type,
            "item_key": self.item_key,
            "quantity": self.quantity,
            "total_quantity": self.total_quantity,
            "outstanding": self.outstanding,
            "expected_total": self.expected_total,
        }


# =============================================================================
# LOOKUPS
# =============================================================================

def get_armory(armory_id: int) -> Armory:
    armory = db.session.get(Armory, armory_id)
    if not armory:
        raise UnknownArmoryError(armory_id)
    return armory


def load_armory_for_update(armory_id: int) -> Armory:
    armory = lock_for_update(db.session.query(Armory).filter_by(id=armory_id)).first()
    if not armory:
        raise UnknownArmoryError(armory_id)
    return armory


def load_stock_lines_for_update(armory_id: int) -> dict[tuple[str, str], StockLine]:
    """Lock every line of the armory and index them by (item_type, item_key)."""
    lines = lock_for_update(
        db.session.query(StockLine).filter_by(armory_id=armory_id).order_by(StockLine.id)
    ).all()
    return {line.key: line for line in lines}


def get_stock_line(armory_id: int, item_type: str, item_key: str) -> StockLine | None:
    return (
        db.session.query(StockLine)
        .filter_by(armory_id=armory_id, item_type=item_type, item_key=item_key)
        .first()
    )


def get_available_quantity(armory_id: int, item_type: str, item_key: str) -> int:
    """Units on the shelf for a key; 0 when the armory has no such line."""
    get_armory(armory_id)
    line = get_stock_line(armory_id, item_type, item_key)
    return line.quantity if line else 0


# =============================================================================
# SETUP / RESTOCK (administrative)
# =============================================================================

def build_stock_line(item_type: str, payload: dict, quantity: int) -> StockLine:
    item_type = validate_item_type(item_type)
    if not payload.get("item_key"):
        for field in REQUIRED_ATTRIBUTES[item_type]:
            require_text(payload.get(field), field)

    condition = payload.get("condition") or CONDITION_SERVICEABLE
    validate_condition(item_type, condition)

    attrs = {field: payload.get(field) for field in LINE_ATTRIBUTES[item_type] if payload.get(field) is not None}
    if item_type == "ammunition":
        attrs.setdefault("unit_of_measure", "rounds")

    line = LINE_CLASSES[item_type](
        item_type=item_type,
        item_key=item_key_from_payload(item_type, payload),
        quantity=quantity,
        total_quantity=quantity,
        condition=condition,
        notes=payload.get("notes"),
        **attrs,
    )
    return line


def create_armory(
    *,
    reference_id: str,
    name: str,
    code: str,
    location: str,
    unit: str,
    actor_id: str,
    weapons: list[dict] | None = None,
    ammunition: list[dict] | None = None,
    equipment: list[dict] | None = None,
    status: str = "active",
) -> Armory:
    """
    Create an armory with its initial stock lines.

    Each line's setup quantity becomes its baseline (total_quantity).
    """
    if status not in ARMORY_STATUSES:
        raise ValidationError(f"Invalid armory status {status!r}")

    armory = Armory(
        reference_id=require_text(reference_id, "reference_id"),
        name=require_text(name, "name"),
        code=require_text(code, "code"),
        location=require_text(location, "location"),
        unit=require_text(unit, "unit"),
        status=status,
        created_by=actor_id,
    )

    seen: set[tuple[str, str]] = set()
    for item_type, payloads in (("weapon", weapons), ("ammunition", ammunition), ("equipment", equipment)):
        for payload in payloads or []:
            quantity = parse_int(payload.get("quantity", 0), f"{item_type}.quantity")
            if quantity < 0:
                raise ValidationError(f"{item_type}.quantity cannot be negative")
            line = build_stock_line(item_type, payload, quantity)
            if line.key in seen:
                raise ValidationError(f"{item_type} {line.item_key} is listed more than once")
            seen.add(line.key)
            armory.lines.append(line)

    db.session.add(armory)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Armory reference {reference_id!r} already exists")

    for line in armory.lines:
        append_armory_event(
            armory_id=armory.id,
            event_type="inventory.setup",
            event_category="inventory",
            entity_type="stock_line",
            entity_id=line.id,
            actor_id=actor_id,
            payload={"item_type": line.item_type, "item_key": line.item_key, "quantity": line.quantity},
        )

    db.session.commit()
    current_app.logger.info("Armory %s created with %s stock lines", armory.id, len(armory.lines))
    return armory


def restock(
    *,
    armory_id: int,
    item_type: str,
    payload: dict,
    quantity,
    actor_id: str,
) -> StockLine:
    """
    Add units to an armory line, creating the line when its key is new.

    Raises the baseline and the shelf quantity together so conservation holds.
    """
    item_type = validate_item_type(item_type)
    quantity = parse_positive_int(quantity, "quantity")
    item_key = item_key_from_payload(item_type, payload)

    def _op():
        with armory_scope(armory_id):
            load_armory_for_update(armory_id)
            lines = load_stock_lines_for_update(armory_id)

            line = lines.get((item_type, item_key))
            if line is None:
                line = build_stock_line(item_type, payload, quantity)
                line.armory_id = armory_id
                db.session.add(line)
            else:
                line.quantity += quantity
                line.total_quantity += quantity
                if payload.get("condition"):
                    line.condition = validate_condition(item_type, payload["condition"])
            db.session.flush()

            append_armory_event(
                armory_id=armory_id,
                event_type="inventory.restocked",
                event_category="inventory",
                entity_type="stock_line",
                entity_id=line.id,
                actor_id=actor_id,
                payload={"item_type": item_type, "item_key": item_key, "quantity": quantity},
            )
            db.session.commit()
            return line

    line = run_with_retry(_op)
    current_app.logger.info("Armory %s restocked %s %s (+%s)", armory_id, item_type, item_key, quantity)
    return line


# =============================================================================
# CONSERVATION AUDIT
# =============================================================================

def outstanding_by_line(armory_id: int) -> dict[int, int]:
    """Outstanding (issued minus returned) per stock line on open distributions."""
    rows = (
        db.session.query(
            IssuedItem.stock_line_id,
            func.coalesce(func.sum(IssuedItem.quantity - IssuedItem.returned_quantity), 0),
        )
        .join(Distribution, Distribution.id == IssuedItem.distribution_id)
        .filter(
            Distribution.armory_id == armory_id,
            Distribution.status.in_(OPEN_DISTRIBUTION_STATUSES),
        )
        .group_by(IssuedItem.stock_line_id)
        .all()
    )
    return {line_id: int(total) for line_id, total in rows}


def audit_conservation(armory_id: int) -> list[ConservationIssue]:
    """
    Check every line of an armory against the conservation invariant.

    Returns the lines that violate it (empty list when the armory is sound).
    """
    armory = get_armory(armory_id)
    outstanding = outstanding_by_line(armory_id)

    issues = []
    for line in armory.lines:
        line_outstanding = outstanding.get(line.id, 0)
        if line.quantity < 0 or line.total_quantity != line.quantity + line_outstanding:
            issues.append(
                ConservationIssue(
                    stock_line_id=line.id,
                    item_type=line.item_type,
                    item_key=line.item_key,
                    quantity=line.quantity,
                    total_quantity=line.total_quantity,
                    outstanding=line_outstanding,
                )
            )
    return issues
