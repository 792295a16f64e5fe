# Overview: Return engine: partial and full returns of issued stock back onto armory lines.

"""
Return Processing

WHY: Units come back from the field in parts, often in a worse condition than
they left. Every unit returned must be credited to the same stock line it was
issued from, exactly once.

DESIGN PRINCIPLES:
- Returns are matched by (item_type, item_key) against the distribution's
  issued items, never against the armory's current line attributes.
- A line may not take back more than its outstanding balance.
- Status is derived from the items after every change and only moves forward:
  ISSUED -> PARTIAL_RETURN -> RETURNED.
- The returned condition becomes the stock line's current condition.

LIFECYCLE:
1. return_items() - one or more lines, any quantity up to outstanding
2. return_all() - every outstanding balance; a no-op on a RETURNED distribution
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Distribution
from ..models.distribution import (
    DISTRIBUTION_STATUS_ISSUED,
    DISTRIBUTION_STATUS_PARTIAL_RETURN,
    DISTRIBUTION_STATUS_RETURNED,
    DISTRIBUTION_STATUS_CANCELLED,
    OPEN_DISTRIBUTION_STATUSES,
)
from ..time_utils import utcnow
from ..validation import ItemRequest, parse_item_requests, require_text, validate_condition
from .concurrency import armory_scope, run_with_retry
from .errors import InvalidStateError, OverReturnError, UnknownItemError
from .issuance_service import resolve_armory_id, load_distribution_for_update
from .inventory_service import load_stock_lines_for_update
from .ledger_service import append_armory_event


# =============================================================================
# STATUS DERIVATION
# =============================================================================

# Allowed forward moves; anything else is a regression.
ALLOWED_TRANSITIONS = {
    DISTRIBUTION_STATUS_ISSUED: {
        DISTRIBUTION_STATUS_ISSUED,
        DISTRIBUTION_STATUS_PARTIAL_RETURN,
        DISTRIBUTION_STATUS_RETURNED,
        DISTRIBUTION_STATUS_CANCELLED,
    },
    DISTRIBUTION_STATUS_PARTIAL_RETURN: {
        DISTRIBUTION_STATUS_PARTIAL_RETURN,
        DISTRIBUTION_STATUS_RETURNED,
    },
    DISTRIBUTION_STATUS_RETURNED: {DISTRIBUTION_STATUS_RETURNED},
    DISTRIBUTION_STATUS_CANCELLED: {DISTRIBUTION_STATUS_CANCELLED},
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def derive_status(dist: Distribution) -> str:
    """
    Status implied by the items' returned quantities.

    - every item fully returned -> RETURNED
    - some units returned -> PARTIAL_RETURN
    - nothing returned -> ISSUED
    """
    if all(item.returned_quantity >= item.quantity for item in dist.items):
        return DISTRIBUTION_STATUS_RETURNED
    if any(item.returned_quantity > 0 for item in dist.items):
        return DISTRIBUTION_STATUS_PARTIAL_RETURN
    return DISTRIBUTION_STATUS_ISSUED


def _require_open(dist: Distribution) -> None:
    if dist.status not in OPEN_DISTRIBUTION_STATUSES:
        raise InvalidStateError(
            f"Cannot return items on distribution in {dist.status} status",
            distribution_id=dist.id,
            status=dist.status,
        )


# =============================================================================
# APPLY
# =============================================================================

def _apply_returns(dist: Distribution, returns: list[ItemRequest], actor_id: str) -> None:
    """
    Validate every return line against the locked distribution, then credit stock.

    Caller holds the armory scope and commits.
    """
    items_by_key = {item.key: item for item in dist.items}

    # Phase 1: validate
    matched = []
    for req in returns:
        item = items_by_key.get(req.key)
        if item is None:
            raise UnknownItemError(
                f"Distribution {dist.id} has no issued {req.item_type} {req.item_key}",
                distribution_id=dist.id,
                item_type=req.item_type,
                item_key=req.item_key,
            )
        if req.quantity > item.outstanding:
            raise OverReturnError(
                distribution_id=dist.id,
                item_type=req.item_type,
                item_key=req.item_key,
                requested=req.quantity,
                outstanding=item.outstanding,
            )
        matched.append((req, item))

    _require_open(dist)
    lines = load_stock_lines_for_update(dist.armory_id)
    now = utcnow()

    # Phase 2: apply
    for req, item in matched:
        line = lines[item.key]
        condition = req.condition or item.condition_at_issue

        item.returned_quantity += req.quantity
        item.condition_at_return = condition
        line.quantity += req.quantity
        line.condition = condition

        append_armory_event(
            armory_id=dist.armory_id,
            event_type="inventory.return_in",
            event_category="inventory",
            entity_type="stock_line",
            entity_id=line.id,
            actor_id=actor_id,
            distribution_id=dist.id,
            occurred_at=now,
            payload={
                "item_type": item.item_type,
                "item_key": item.item_key,
                "quantity": req.quantity,
                "condition": condition,
            },
        )

    new_status = derive_status(dist)
    if not can_transition(dist.status, new_status):
        raise InvalidStateError(
            f"Return would move distribution from {dist.status} to {new_status}",
            distribution_id=dist.id,
            status=dist.status,
            derived_status=new_status,
        )

    previous = dist.status
    dist.status = new_status
    if new_status == DISTRIBUTION_STATUS_RETURNED:
        dist.return_date = now
        dist.returned_by = actor_id

    if new_status != previous:
        append_armory_event(
            armory_id=dist.armory_id,
            event_type=f"distribution.{new_status}",
            event_category="distributions",
            entity_type="distribution",
            entity_id=dist.id,
            actor_id=actor_id,
            distribution_id=dist.id,
            occurred_at=now,
            payload={"from": previous, "to": new_status},
        )


# =============================================================================
# RETURN OPERATIONS
# =============================================================================

def return_items(distribution_id: int, returns: list[dict], actor_id: str) -> Distribution:
    """
    Return some or all units of specific issued lines.

    Args:
        distribution_id: Distribution being returned against
        returns: [{item_type, item_key | key attributes, quantity, condition_at_return}]
        actor_id: Receiving actor

    Returns:
        Distribution: The committed distribution with its derived status

    Raises:
        ValidationError: Malformed request (including duplicate lines)
        UnknownDistributionError: Distribution not found
        InvalidStateError: Distribution is CANCELLED
        UnknownItemError: A line was never issued on this distribution
        OverReturnError: A line exceeds its outstanding balance (always so once RETURNED)
    """
    actor_id = require_text(actor_id, "actor_id")
    requests = parse_item_requests(
        returns,
        condition_field="condition_at_return",
        condition_required=True,
    )
    armory_id = resolve_armory_id(distribution_id)

    def _op():
        with armory_scope(armory_id):
            dist = load_distribution_for_update(distribution_id)
            if dist.status == DISTRIBUTION_STATUS_CANCELLED:
                _require_open(dist)
            # A RETURNED distribution has nothing outstanding, so any line is an over-return
            _apply_returns(dist, requests, actor_id)
            db.session.commit()
            return dist

    dist = run_with_retry(_op)
    current_app.logger.info(
        "Distribution %s: %s lines returned by %s (status %s)",
        dist.distribution_no, len(requests), actor_id, dist.status,
    )
    return dist


def return_all(distribution_id: int, actor_id: str, condition: str | None = None) -> Distribution:
    """
    Return every outstanding balance of a distribution.

    Each line comes back in `condition` when given, else in its condition at
    issue. Calling this on a RETURNED distribution changes nothing.

    Raises:
        UnknownDistributionError: Distribution not found
        InvalidStateError: Distribution is CANCELLED
        ValidationError: condition not valid for one of the lines
    """
    actor_id = require_text(actor_id, "actor_id")
    armory_id = resolve_armory_id(distribution_id)

    def _op():
        with armory_scope(armory_id):
            dist = load_distribution_for_update(distribution_id)
            if dist.status == DISTRIBUTION_STATUS_RETURNED:
                return dist, False
            _require_open(dist)

            requests = []
            for item in dist.items:
                if item.outstanding <= 0:
                    continue
                if condition is not None:
                    validate_condition(item.item_type, condition, "condition")
                requests.append(
                    ItemRequest(
                        item_type=item.item_type,
                        item_key=item.item_key,
                        quantity=item.outstanding,
                        condition=condition,
                    )
                )

            _apply_returns(dist, requests, actor_id)
            db.session.commit()
            return dist, True

    dist, changed = run_with_retry(_op)
    if changed:
        current_app.logger.info("Distribution %s fully returned by %s", dist.distribution_no, actor_id)
    return dist
