# Overview: Issuance engine: issue armory stock to an officer/squad, cancel, and query distributions.

"""
Issuance Engine

WHY: Issuing stock is the only path that moves units off an armory shelf.
Two concurrent issuances against the same line must never both succeed when
together they exceed what is available.

DESIGN PRINCIPLES:
- Validate-then-commit: every requested line is resolved and checked against
  the locked stock before any quantity is touched.
- All-or-nothing: the stock decrements, the distribution, its items and the
  ledger events are committed by one db.session.commit().
- Lines are addressed by (item_type, item_key) through an explicit dict.

LIFECYCLE:
1. issue_items() -> ISSUED
2. cancel_distribution() (administrative, ISSUED only) -> CANCELLED, stock restored
   Returns and renewals live in return_service / renewal_service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Distribution, IssuedItem
from ..models.distribution import (
    DISTRIBUTION_STATUS_ISSUED,
    DISTRIBUTION_STATUS_CANCELLED,
    RENEWAL_STATUS_PENDING,
)
from ..time_utils import utcnow, days_from
from ..validation import (
    ValidationError,
    parse_datetime,
    parse_item_requests,
    parse_positive_int,
    require_text,
)
from .concurrency import armory_scope, lock_for_update, run_with_retry
from .directory_service import get_officer
from .document_service import next_document_number
from .errors import (
    InsufficientStockError,
    InvalidStateError,
    UnknownDistributionError,
    UnknownItemError,
)
from .inventory_service import get_armory, load_armory_for_update, load_stock_lines_for_update
from .ledger_service import append_armory_event


# =============================================================================
# DISTRIBUTION LOADING
# =============================================================================

def resolve_armory_id(distribution_id: int) -> int:
    """Armory that owns a distribution; read before entering its write scope."""
    armory_id = (
        db.session.query(Distribution.armory_id)
        .filter_by(id=distribution_id)
        .scalar()
    )
    if armory_id is None:
        raise UnknownDistributionError(distribution_id)
    return armory_id


def load_distribution_for_update(distribution_id: int) -> Distribution:
    dist = lock_for_update(db.session.query(Distribution).filter_by(id=distribution_id)).first()
    if not dist:
        raise UnknownDistributionError(distribution_id)
    return dist


# =============================================================================
# ISSUE
# =============================================================================

def issue_items(
    armory_id: int,
    officer_id: int,
    squad_name: str,
    requested_items: list[dict],
    actor_id: str,
    renewal_due=None,
    remarks: str | None = None,
) -> Distribution:
    """
    Issue stock from an armory to an officer/squad.

    Args:
        armory_id: Armory the stock leaves
        officer_id: Receiving officer (must exist in the directory)
        squad_name: Receiving squad
        requested_items: [{item_type, item_key | key attributes, quantity, condition_at_issue?}]
        actor_id: Issuing actor (from the authorization layer)
        renewal_due: Optional ISO-8601 due date; defaults to now + DEFAULT_RENEWAL_DAYS
        remarks: Optional free text

    Returns:
        Distribution: The committed distribution (status ISSUED)

    Raises:
        ValidationError: Malformed request
        UnknownArmoryError / UnknownOfficerError: References do not resolve
        UnknownItemError: No stock line for a requested key
        InsufficientStockError: A line holds less than requested
    """
    armory_id = parse_positive_int(armory_id, "armory_id")
    officer_id = parse_positive_int(officer_id, "officer_id")
    squad_name = require_text(squad_name, "squad_name")
    actor_id = require_text(actor_id, "actor_id")
    requests = parse_item_requests(
        requested_items,
        condition_field="condition_at_issue",
        condition_required=False,
    )
    due = parse_datetime(renewal_due, "renewal_due")

    def _op():
        with armory_scope(armory_id):
            load_armory_for_update(armory_id)
            officer = get_officer(officer_id)
            lines = load_stock_lines_for_update(armory_id)

            # Phase 1: validate every line against locked stock
            resolved = []
            for req in requests:
                line = lines.get(req.key)
                if line is None:
                    raise UnknownItemError(
                        f"Armory {armory_id} has no {req.item_type} {req.item_key}",
                        armory_id=armory_id,
                        item_type=req.item_type,
                        item_key=req.item_key,
                    )
                if line.quantity < req.quantity:
                    raise InsufficientStockError(
                        armory_id=armory_id,
                        item_type=req.item_type,
                        item_key=req.item_key,
                        requested=req.quantity,
                        available=line.quantity,
                    )
                resolved.append((req, line))

            now = utcnow()
            renewal_due_at = due or days_from(now, current_app.config["DEFAULT_RENEWAL_DAYS"])
            if renewal_due_at <= now:
                raise ValidationError("renewal_due must be in the future")

            # Phase 2: apply
            dist = Distribution(
                distribution_no=next_document_number(
                    armory_id=armory_id,
                    document_type="DISTRIBUTION",
                    prefix="DIS",
                ),
                armory_id=armory_id,
                officer_id=officer.id,
                squad_name=squad_name,
                status=DISTRIBUTION_STATUS_ISSUED,
                renewal_status=RENEWAL_STATUS_PENDING,
                date_issued=now,
                renewal_due=renewal_due_at,
                issued_by=actor_id,
                remarks=remarks,
            )

            for req, line in resolved:
                line.quantity -= req.quantity
                dist.items.append(
                    IssuedItem(
                        stock_line=line,
                        item_type=req.item_type,
                        item_key=req.item_key,
                        quantity=req.quantity,
                        returned_quantity=0,
                        condition_at_issue=req.condition or line.condition,
                        item_snapshot={
                            "item_type": line.item_type,
                            "item_key": line.item_key,
                            "condition": line.condition,
                            **line.attributes(),
                        },
                    )
                )

            db.session.add(dist)
            db.session.flush()

            append_armory_event(
                armory_id=armory_id,
                event_type="distribution.issued",
                event_category="distributions",
                entity_type="distribution",
                entity_id=dist.id,
                actor_id=actor_id,
                distribution_id=dist.id,
                occurred_at=now,
                note=remarks,
                payload={"distribution_no": dist.distribution_no, "officer_id": officer.id},
            )
            for item in dist.items:
                append_armory_event(
                    armory_id=armory_id,
                    event_type="inventory.issue_out",
                    event_category="inventory",
                    entity_type="stock_line",
                    entity_id=item.stock_line_id,
                    actor_id=actor_id,
                    distribution_id=dist.id,
                    occurred_at=now,
                    payload={"item_type": item.item_type, "item_key": item.item_key, "quantity": -item.quantity},
                )

            db.session.commit()
            return dist

    dist = run_with_retry(_op)
    current_app.logger.info(
        "Distribution %s issued from armory %s to officer %s (%s lines)",
        dist.distribution_no, armory_id, officer_id, len(dist.items),
    )
    return dist


# =============================================================================
# CANCEL (administrative)
# =============================================================================

def cancel_distribution(distribution_id: int, actor_id: str, reason: str | None = None) -> Distribution:
    """
    Cancel an ISSUED distribution and put every issued unit back on the shelf.

    A distribution with any return recorded can no longer be cancelled; it
    must be returned instead.

    Raises:
        UnknownDistributionError: Distribution not found
        InvalidStateError: Status is not ISSUED
    """
    actor_id = require_text(actor_id, "actor_id")
    armory_id = resolve_armory_id(distribution_id)

    def _op():
        with armory_scope(armory_id):
            dist = load_distribution_for_update(distribution_id)
            if dist.status != DISTRIBUTION_STATUS_ISSUED:
                raise InvalidStateError(
                    f"Cannot cancel distribution in {dist.status} status",
                    distribution_id=distribution_id,
                    status=dist.status,
                )

            lines = load_stock_lines_for_update(armory_id)
            now = utcnow()
            for item in dist.items:
                line = lines[item.key]
                line.quantity += item.outstanding
                append_armory_event(
                    armory_id=armory_id,
                    event_type="inventory.cancel_in",
                    event_category="inventory",
                    entity_type="stock_line",
                    entity_id=line.id,
                    actor_id=actor_id,
                    distribution_id=dist.id,
                    occurred_at=now,
                    payload={"item_type": item.item_type, "item_key": item.item_key, "quantity": item.outstanding},
                )

            dist.status = DISTRIBUTION_STATUS_CANCELLED
            dist.cancelled_at = now
            dist.cancelled_by = actor_id
            dist.cancellation_reason = reason

            append_armory_event(
                armory_id=armory_id,
                event_type="distribution.cancelled",
                event_category="distributions",
                entity_type="distribution",
                entity_id=dist.id,
                actor_id=actor_id,
                distribution_id=dist.id,
                occurred_at=now,
                note=reason,
            )

            db.session.commit()
            return dist

    dist = run_with_retry(_op)
    current_app.logger.info("Distribution %s cancelled by %s", dist.distribution_no, actor_id)
    return dist


# =============================================================================
# QUERIES
# =============================================================================

def get_distribution(distribution_id: int) -> Distribution:
    dist = db.session.get(Distribution, distribution_id)
    if not dist:
        raise UnknownDistributionError(distribution_id)
    return dist


def list_distributions(
    armory_id: Optional[int] = None,
    officer_id: Optional[int] = None,
    status: Optional[str] = None,
    squad_name: Optional[str] = None,
    issued_from: Optional[datetime] = None,
    issued_to: Optional[datetime] = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """
    List distributions, newest first, with pagination metadata.

    Returns:
        {"items": [...], "pagination": {page, per_page, total, total_pages, has_next, has_prev}}
    """
    query = db.session.query(Distribution)
    if armory_id is not None:
        get_armory(armory_id)
        query = query.filter(Distribution.armory_id == armory_id)
    if officer_id is not None:
        query = query.filter(Distribution.officer_id == officer_id)
    if status:
        query = query.filter(Distribution.status == status)
    if squad_name:
        query = query.filter(Distribution.squad_name == squad_name)
    if issued_from is not None:
        query = query.filter(Distribution.date_issued >= issued_from)
    if issued_to is not None:
        query = query.filter(Distribution.date_issued <= issued_to)

    per_page = max(1, min(per_page or 20, 100))
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    items = (
        query.order_by(Distribution.date_issued.desc(), Distribution.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [d.to_dict() for d in items],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
