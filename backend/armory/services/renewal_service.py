# Overview: Renewal of open distributions and the time-based renewal schedule view.

"""
Renewal Invariants (authoritative)

- Renewal never touches stock; it appends a RenewalRecord, sets
  renewal_status = renewed and moves renewal_due forward.
- Only open distributions (issued / partial_return) can be renewed.
- The schedule view classifies renewal_due against "now" on every read:
    overdue  renewal_due < now
    due      now <= renewal_due <= now + window
    pending  otherwise
  It never writes renewal_status. The stored value is the last recorded
  renewal action; the classification is derived and may disagree with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Distribution, RenewalRecord
from ..models.distribution import (
    OPEN_DISTRIBUTION_STATUSES,
    RENEWAL_STATUS_DUE,
    RENEWAL_STATUS_OVERDUE,
    RENEWAL_STATUS_PENDING,
    RENEWAL_STATUS_RENEWED,
)
from ..time_utils import as_utc_naive, to_utc_z, utcnow
from ..validation import ValidationError, parse_datetime, require_text, validate_condition
from .concurrency import armory_scope, run_with_retry
from .errors import InvalidStateError
from .inventory_service import get_armory
from .issuance_service import load_distribution_for_update, resolve_armory_id
from .ledger_service import append_armory_event


# =============================================================================
# RENEW
# =============================================================================

def renew_distribution(
    distribution_id: int,
    condition: str,
    remarks: str | None,
    next_renewal_date,
    actor_id: str,
) -> Distribution:
    """
    Record a renewal inspection and push the renewal due date forward.

    Args:
        distribution_id: Open distribution being renewed
        condition: Condition observed at inspection
        remarks: Optional free text
        next_renewal_date: New due date (ISO-8601 or datetime), must be in the future
        actor_id: Renewing actor

    Raises:
        UnknownDistributionError: Distribution not found
        InvalidStateError: Distribution is RETURNED or CANCELLED
        ValidationError: Missing/invalid condition or next_renewal_date
    """
    actor_id = require_text(actor_id, "actor_id")
    next_due = parse_datetime(next_renewal_date, "next_renewal_date", required=True)
    if condition is None or not str(condition).strip():
        raise ValidationError("condition is required")
    armory_id = resolve_armory_id(distribution_id)

    def _op():
        with armory_scope(armory_id):
            dist = load_distribution_for_update(distribution_id)
            if dist.status not in OPEN_DISTRIBUTION_STATUSES:
                raise InvalidStateError(
                    f"Cannot renew distribution in {dist.status} status",
                    distribution_id=distribution_id,
                    status=dist.status,
                )

            # Condition must be valid for every line type on the distribution
            for item_type in sorted({item.item_type for item in dist.items}):
                validate_condition(item_type, condition)

            now = utcnow()
            if next_due <= now:
                raise ValidationError("next_renewal_date must be in the future")

            dist.renewal_history.append(
                RenewalRecord(
                    renewed_at=now,
                    renewed_by=actor_id,
                    next_renewal_date=next_due,
                    condition=condition,
                    remarks=remarks,
                )
            )
            previous_due = dist.renewal_due
            dist.renewal_status = RENEWAL_STATUS_RENEWED
            dist.renewal_due = next_due

            append_armory_event(
                armory_id=armory_id,
                event_type="distribution.renewed",
                event_category="distributions",
                entity_type="distribution",
                entity_id=dist.id,
                actor_id=actor_id,
                distribution_id=dist.id,
                occurred_at=now,
                note=remarks,
                payload={
                    "condition": condition,
                    "previous_due": to_utc_z(previous_due),
                    "renewal_due": to_utc_z(next_due),
                },
            )

            db.session.commit()
            return dist

    dist = run_with_retry(_op)
    current_app.logger.info(
        "Distribution %s renewed by %s until %s", dist.distribution_no, actor_id, to_utc_z(dist.renewal_due)
    )
    return dist


# =============================================================================
# SCHEDULE VIEW
# =============================================================================

def classify_renewal(renewal_due: datetime, now: datetime, window_days: int = 7) -> str:
    """Pure time classification of a renewal due date."""
    renewal_due = as_utc_naive(renewal_due)
    now = as_utc_naive(now)
    if renewal_due < now:
        return RENEWAL_STATUS_OVERDUE
    if renewal_due <= now + timedelta(days=window_days):
        return RENEWAL_STATUS_DUE
    return RENEWAL_STATUS_PENDING


@dataclass(frozen=True)
class RenewalView:
    distribution_id: int
    distribution_no: str
    armory_id: int
    officer_id: int
    squad_name: str
    status: str
    renewal_due: datetime
    stored_renewal_status: str
    renewal_state: str
    days_until_due: int

    def to_dict(self) -> dict:
        return {
            "distribution_id": self.distribution_id,
            "distribution_no": self.distribution_no,
            "armory_id": self.armory_id,
            "officer_id": self.officer_id,
            "squad_name": self.squad_name,
            "status": self.status,
            "renewal_due": to_utc_z(self.renewal_due),
            "stored_renewal_status": self.stored_renewal_status,
            "renewal_state": self.renewal_state,
            "days_until_due": self.days_until_due,
        }


def renewal_view_for(dist: Distribution, now: datetime, window_days: int) -> RenewalView:
    due = as_utc_naive(dist.renewal_due)
    return RenewalView(
        distribution_id=dist.id,
        distribution_no=dist.distribution_no,
        armory_id=dist.armory_id,
        officer_id=dist.officer_id,
        squad_name=dist.squad_name,
        status=dist.status,
        renewal_due=due,
        stored_renewal_status=dist.renewal_status,
        renewal_state=classify_renewal(due, now, window_days),
        days_until_due=(due - as_utc_naive(now)).days,
    )


def get_renewal_schedule(
    now: Optional[datetime] = None,
    armory_id: Optional[int] = None,
    window_days: Optional[int] = None,
) -> dict:
    """
    Classify every open distribution by its renewal due date.

    Returns:
        {"as_of": ..., "window_days": n, "summary": {overdue, due, pending, total}, "items": [...]}
        Items are ordered by renewal_due, earliest first.
    """
    now = as_utc_naive(now) if now is not None else utcnow()
    if window_days is None:
        window_days = current_app.config.get("RENEWAL_DUE_WINDOW_DAYS", 7)
    if window_days < 0:
        raise ValidationError("window_days must be zero or greater")

    query = db.session.query(Distribution).filter(Distribution.status.in_(OPEN_DISTRIBUTION_STATUSES))
    if armory_id is not None:
        get_armory(armory_id)
        query = query.filter(Distribution.armory_id == armory_id)

    views = [
        renewal_view_for(dist, now, window_days)
        for dist in query.order_by(Distribution.renewal_due, Distribution.id).all()
    ]

    summary = {RENEWAL_STATUS_OVERDUE: 0, RENEWAL_STATUS_DUE: 0, RENEWAL_STATUS_PENDING: 0}
    for view in views:
        summary[view.renewal_state] += 1
    summary["total"] = len(views)

    return {
        "as_of": to_utc_z(now),
        "window_days": window_days,
        "summary": summary,
        "items": [view.to_dict() for view in views],
    }
