# Overview: Append-only armory audit events, written in the caller's transaction.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import ArmoryLedgerEvent
from ..time_utils import utcnow
"""
Armory Ledger Invariants (authoritative)

- Append-only audit log of stock movements and distribution transitions.
- No business logic in the ledger itself; callers decide what happened.
- Events are flushed inside the same DB transaction as the change they record
  and are committed (or rolled back) with it.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_armory_event(
    *,
    armory_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_id: str | None = None,
    distribution_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ArmoryLedgerEvent:
    ev = ArmoryLedgerEvent(
        armory_id=armory_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        distribution_id=distribution_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def get_armory_events(
    armory_id: int,
    *,
    distribution_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[ArmoryLedgerEvent]:
    query = db.session.query(ArmoryLedgerEvent).filter_by(armory_id=armory_id)
    if distribution_id is not None:
        query = query.filter_by(distribution_id=distribution_id)
    if event_category:
        query = query.filter_by(event_category=event_category)
    return query.order_by(ArmoryLedgerEvent.id.desc()).limit(limit).all()
