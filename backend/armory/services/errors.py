# Overview: Domain errors raised by the issuance, return and renewal services.

"""
Every error carries a `details` dict with the identifiers and quantities that
led to the decision (armory id, item key, requested vs available), so a
rejected request can be reconstructed from the error alone.

All of these are raised before any mutation is applied; the per-armory scope
rolls the session back on the way out.
"""

from __future__ import annotations


class DistributionError(Exception):
    """Base class for armory distribution failures."""

    code = "DISTRIBUTION_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }


class UnknownArmoryError(DistributionError):
    code = "UNKNOWN_ARMORY"
    http_status = 404

    def __init__(self, armory_id):
        super().__init__(f"Armory {armory_id} not found", armory_id=armory_id)


class UnknownOfficerError(DistributionError):
    code = "UNKNOWN_OFFICER"
    http_status = 404

    def __init__(self, officer_id):
        super().__init__(f"Officer {officer_id} not found", officer_id=officer_id)


class UnknownDistributionError(DistributionError):
    code = "UNKNOWN_DISTRIBUTION"
    http_status = 404

    def __init__(self, distribution_id):
        super().__init__(f"Distribution {distribution_id} not found", distribution_id=distribution_id)


class UnknownItemError(DistributionError):
    """No stock line (or issued item) matches the requested type and key."""

    code = "UNKNOWN_ITEM"
    http_status = 404


class InsufficientStockError(DistributionError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, *, armory_id: int, item_type: str, item_key: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {item_type} {item_key} in armory {armory_id}. "
            f"Available: {available}, requested: {requested}",
            armory_id=armory_id,
            item_type=item_type,
            item_key=item_key,
            requested=requested,
            available=available,
        )


class OverReturnError(DistributionError):
    code = "OVER_RETURN"
    http_status = 409

    def __init__(self, *, distribution_id: int, item_type: str, item_key: str, requested: int, outstanding: int):
        super().__init__(
            f"Cannot return {requested} of {item_type} {item_key} on distribution "
            f"{distribution_id}. Outstanding: {outstanding}",
            distribution_id=distribution_id,
            item_type=item_type,
            item_key=item_key,
            requested=requested,
            outstanding=outstanding,
        )


class InvalidStateError(DistributionError):
    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, message: str, *, distribution_id: int, status: str, **details):
        super().__init__(message, distribution_id=distribution_id, status=status, **details)


class ConcurrentModificationError(DistributionError):
    """Lock or version conflict that persisted through every retry."""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409
    retryable = True
