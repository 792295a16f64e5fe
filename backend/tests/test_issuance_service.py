import re
from datetime import timedelta

import pytest

from armory.extensions import db
from armory.models import Distribution, ArmoryLedgerEvent
from armory.services import issuance_service, return_service
from armory.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    UnknownArmoryError,
    UnknownItemError,
    UnknownOfficerError,
)
from armory.time_utils import utcnow, parse_iso_datetime
from armory.validation import ValidationError

from conftest import RIFLE, AMMO, VEST, line_quantity


def issue(armory, officer, *items, **kwargs):
    return issuance_service.issue_items(
        armory_id=armory.id,
        officer_id=officer.id,
        squad_name=kwargs.pop("squad_name", "Alpha"),
        requested_items=list(items),
        actor_id=kwargs.pop("actor_id", "armourer-7"),
        **kwargs,
    )


class TestIssueItems:
    """Issuance decrements stock and records one distribution atomically."""

    def test_issue_decrements_line_and_creates_distribution(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 4})

        assert dist.status == "issued"
        assert dist.renewal_status == "pending"
        assert re.fullmatch(r"DIS-\d{3}-0001", dist.distribution_no)
        assert len(dist.weapons_issued) == 1
        item = dist.weapons_issued[0]
        assert item.quantity == 4
        assert item.returned_quantity == 0
        assert item.condition_at_issue == "serviceable"
        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 6

    def test_insufficient_stock_leaves_line_unchanged(self, db_session, armory, officer):
        issue(armory, officer, {**RIFLE, "quantity": 4})

        with pytest.raises(InsufficientStockError) as exc:
            issue(armory, officer, {**RIFLE, "quantity": 7})

        assert exc.value.details["requested"] == 7
        assert exc.value.details["available"] == 6
        assert exc.value.details["armory_id"] == armory.id
        assert exc.value.details["item_key"] == "RIFLE-A|B-100"
        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 6
        assert db_session.query(Distribution).count() == 1

    def test_no_partial_issuance_when_one_line_is_short(self, db_session, armory, officer):
        with pytest.raises(InsufficientStockError):
            issue(armory, officer, {**AMMO, "quantity": 100}, {**VEST, "quantity": 21})

        assert line_quantity(armory.id, "ammunition", "9MM|FMJ") == 500
        assert line_quantity(armory.id, "equipment", "VEST|L") == 20
        assert db_session.query(Distribution).count() == 0

    def test_issue_with_key_attributes_instead_of_item_key(self, db_session, armory, officer):
        dist = issue(
            armory,
            officer,
            {"item_type": "ammunition", "caliber": " 9mm ", "ammo_type": "fmj", "quantity": 120},
        )

        assert dist.ammunition_issued[0].item_key == "9MM|FMJ"
        assert line_quantity(armory.id, "ammunition", "9MM|FMJ") == 380

    def test_unknown_item(self, db_session, armory, officer):
        with pytest.raises(UnknownItemError):
            issue(armory, officer, {"item_type": "weapon", "item_key": "PISTOL|Z-9", "quantity": 1})

    def test_item_key_must_match_item_type(self, db_session, armory, officer):
        with pytest.raises(UnknownItemError):
            issue(armory, officer, {"item_type": "equipment", "item_key": "RIFLE-A|B-100", "quantity": 1})

    def test_unknown_armory_and_officer(self, db_session, armory, officer):
        with pytest.raises(UnknownArmoryError):
            issuance_service.issue_items(999999, officer.id, "Alpha", [{**RIFLE, "quantity": 1}], "a")
        with pytest.raises(UnknownOfficerError):
            issuance_service.issue_items(armory.id, 999999, "Alpha", [{**RIFLE, "quantity": 1}], "a")

        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 10

    @pytest.mark.parametrize("items", [
        [],
        None,
        [{**RIFLE, "quantity": 0}],
        [{**RIFLE, "quantity": -2}],
        [{**RIFLE, "quantity": "1.5"}],
        [{**RIFLE, "quantity": True}],
        [{"item_type": "grenade", "item_key": "X", "quantity": 1}],
        [{**RIFLE, "quantity": 1}, {**RIFLE, "quantity": 2}],
        [{**RIFLE, "quantity": 1, "condition_at_issue": "shiny"}],
    ])
    def test_malformed_requests_are_rejected(self, db_session, armory, officer, items):
        with pytest.raises(ValidationError):
            issuance_service.issue_items(armory.id, officer.id, "Alpha", items, "armourer-7")

        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 10

    def test_missing_condition_is_weapon_only(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 1, "condition_at_issue": "missing"})
        assert dist.items[0].condition_at_issue == "missing"

        with pytest.raises(ValidationError):
            issue(armory, officer, {**VEST, "quantity": 1, "condition_at_issue": "missing"})

    def test_default_renewal_due(self, app, db_session, armory, officer):
        before = utcnow()
        dist = issue(armory, officer, {**RIFLE, "quantity": 1})
        days = app.config["DEFAULT_RENEWAL_DAYS"]

        assert before + timedelta(days=days) <= dist.renewal_due <= utcnow() + timedelta(days=days)

    def test_caller_supplied_renewal_due(self, db_session, armory, officer):
        due = (utcnow() + timedelta(days=10)).replace(microsecond=0)
        dist = issue(armory, officer, {**RIFLE, "quantity": 1}, renewal_due=due.isoformat() + "Z")

        assert dist.renewal_due == due

    def test_renewal_due_in_past_is_rejected(self, db_session, armory, officer):
        with pytest.raises(ValidationError):
            issue(armory, officer, {**RIFLE, "quantity": 1}, renewal_due="2001-01-01")

    def test_distribution_numbers_are_sequential_per_armory(self, db_session, armory, officer):
        first = issue(armory, officer, {**RIFLE, "quantity": 1})
        second = issue(armory, officer, {**AMMO, "quantity": 1})

        assert first.distribution_no.endswith("-0001")
        assert second.distribution_no.endswith("-0002")

    def test_issue_writes_ledger_events(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 2}, {**AMMO, "quantity": 30})

        events = db_session.query(ArmoryLedgerEvent).filter_by(distribution_id=dist.id).all()
        types = sorted(e.event_type for e in events)
        assert types == ["distribution.issued", "inventory.issue_out", "inventory.issue_out"]
        assert all(e.actor_id == "armourer-7" for e in events)

    def test_item_snapshot_captures_line_attributes(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 1})

        snapshot = dist.items[0].item_snapshot
        assert snapshot["weapon_type"] == "Rifle-A"
        assert snapshot["manufacturer"] == "Acme"


class TestCancelDistribution:
    def test_cancel_restores_stock(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 4}, {**AMMO, "quantity": 50})

        cancelled = issuance_service.cancel_distribution(dist.id, "admin-1", "Issued to wrong squad")

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == "admin-1"
        assert cancelled.cancelled_at is not None
        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 10
        assert line_quantity(armory.id, "ammunition", "9MM|FMJ") == 500

    def test_cancel_not_allowed_after_partial_return(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 4})
        return_service.return_items(
            dist.id, [{**RIFLE, "quantity": 1, "condition_at_return": "serviceable"}], "armourer-7"
        )

        with pytest.raises(InvalidStateError):
            issuance_service.cancel_distribution(dist.id, "admin-1")

        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 7

    def test_cancelled_is_terminal(self, db_session, armory, officer):
        dist = issue(armory, officer, {**RIFLE, "quantity": 1})
        issuance_service.cancel_distribution(dist.id, "admin-1")

        with pytest.raises(InvalidStateError):
            issuance_service.cancel_distribution(dist.id, "admin-1")
        with pytest.raises(InvalidStateError):
            return_service.return_all(dist.id, "armourer-7")

        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 10


class TestDistributionQueries:
    def test_list_filters_and_paginates(self, db_session, armory, other_armory, officer):
        for _ in range(3):
            issue(armory, officer, {**AMMO, "quantity": 1}, squad_name="Alpha")
        issue(armory, officer, {**AMMO, "quantity": 1}, squad_name="Bravo")
        issue(other_armory, officer, {**RIFLE, "quantity": 1})

        result = issuance_service.list_distributions(armory_id=armory.id, per_page=2)
        assert result["pagination"]["total"] == 4
        assert result["pagination"]["total_pages"] == 2
        assert result["pagination"]["has_next"] is True
        assert len(result["items"]) == 2

        bravo = issuance_service.list_distributions(squad_name="Bravo")
        assert [d["squad_name"] for d in bravo["items"]] == ["Bravo"]

        issued = issuance_service.list_distributions(status="issued")
        assert issued["pagination"]["total"] == 5

    def test_list_by_issue_date(self, db_session, armory, officer):
        issue(armory, officer, {**AMMO, "quantity": 1})

        future = issuance_service.list_distributions(issued_from=parse_iso_datetime("2999-01-01"))
        assert future["pagination"]["total"] == 0

    def test_get_distribution(self, db_session, armory, officer):
        dist = issue(armory, officer, {**VEST, "quantity": 2})
        db.session.expire_all()

        loaded = issuance_service.get_distribution(dist.id)
        assert loaded.equipment_issued[0].quantity == 2
        assert loaded.to_dict()["outstanding_quantity"] == 2
