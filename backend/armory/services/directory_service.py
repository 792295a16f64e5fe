# Overview: Officer lookups used by the distribution core, plus CLI seeding.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Officer
from ..models.directory import OFFICER_STATUSES
from ..validation import ValidationError, require_text
from .errors import UnknownOfficerError


def get_officer(officer_id: int) -> Officer:
    officer = db.session.get(Officer, officer_id)
    if not officer:
        raise UnknownOfficerError(officer_id)
    return officer


def create_officer(*, service_no: str, rank: str, name: str, status: str = "active") -> Officer:
    if status not in OFFICER_STATUSES:
        raise ValidationError(f"Invalid officer status {status!r}")

    officer = Officer(
        service_no=require_text(service_no, "service_no"),
        rank=require_text(rank, "rank"),
        name=require_text(name, "name"),
        status=status,
    )
    db.session.add(officer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Officer with service number {service_no!r} already exists")
    return officer
