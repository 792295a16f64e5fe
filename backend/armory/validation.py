from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from armory.models.stock import ITEM_TYPES, CONDITIONS_BY_ITEM_TYPE, make_item_key
from armory.time_utils import parse_iso_datetime


class ValidationError(ValueError):
    """400-level input problem."""


# Attributes that make up the natural key when a caller does not send item_key.
KEY_FIELDS_BY_ITEM_TYPE = {
    "weapon": ("weapon_type", "serial_or_batch"),
    "ammunition": ("caliber", "ammo_type"),
    "equipment": ("equipment_type", "size"),
}


@dataclass(frozen=True)
class ItemRequest:
    """One requested issuance or return line, already normalized."""
    item_type: str
    item_key: str
    quantity: int
    condition: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.item_type, self.item_key)


def parse_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_positive_int(value: Any, field: str) -> int:
    number = parse_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be positive")
    return number


def parse_datetime(value: Any, field: str, *, required: bool = False) -> Optional[datetime]:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def validate_item_type(item_type: Any) -> str:
    if item_type not in ITEM_TYPES:
        raise ValidationError(
            f"Invalid item_type {item_type!r}. Must be one of: {', '.join(ITEM_TYPES)}"
        )
    return item_type


def validate_condition(item_type: str, condition: Any, field: str = "condition") -> str:
    allowed = CONDITIONS_BY_ITEM_TYPE[item_type]
    if not isinstance(condition, str) or condition not in allowed:
        raise ValidationError(
            f"Invalid {field} {condition!r} for {item_type}. Must be one of: {', '.join(sorted(allowed))}"
        )
    return condition


def item_key_from_payload(item_type: str, payload: dict) -> str:
    """Use item_key when given, otherwise build it from the type's key attributes."""
    raw_key = payload.get("item_key")
    if raw_key is not None and str(raw_key).strip():
        return make_item_key(*str(raw_key).split("|"))

    fields = KEY_FIELDS_BY_ITEM_TYPE[item_type]
    key = make_item_key(*(payload.get(f) for f in fields))
    if not key:
        raise ValidationError(f"item_key or {' + '.join(fields)} required for {item_type}")
    return key


def parse_item_requests(
    items: Any,
    *,
    condition_field: str,
    condition_required: bool,
) -> list[ItemRequest]:
    """
    Parse a non-empty list of item lines.

    Each (item_type, item_key) may appear at most once per request.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    parsed: list[ItemRequest] = []
    seen: set[tuple[str, str]] = set()
    for index, payload in enumerate(items):
        if not isinstance(payload, dict):
            raise ValidationError(f"items[{index}] must be an object")

        item_type = validate_item_type(payload.get("item_type"))
        item_key = item_key_from_payload(item_type, payload)
        quantity = parse_positive_int(payload.get("quantity"), f"items[{index}].quantity")

        condition = payload.get(condition_field)
        if condition is None and condition_required:
            raise ValidationError(f"items[{index}].{condition_field} is required")
        if condition is not None:
            validate_condition(item_type, condition, condition_field)

        if (item_type, item_key) in seen:
            raise ValidationError(f"{item_type} {item_key} is listed more than once")
        seen.add((item_type, item_key))

        parsed.append(ItemRequest(item_type=item_type, item_key=item_key, quantity=quantity, condition=condition))

    return parsed
