from datetime import datetime, timedelta, timezone

import pytest

from armory.extensions import db
from armory.models import Distribution
from armory.services import issuance_service, return_service, renewal_service
from armory.services.errors import InvalidStateError
from armory.services.renewal_service import classify_renewal
from armory.time_utils import utcnow
from armory.validation import ValidationError

from conftest import RIFLE, AMMO, line_quantity


NOW = datetime(2026, 10, 18, 12, 0, 0)


class TestClassifyRenewal:
    def test_overdue(self):
        assert classify_renewal(NOW - timedelta(seconds=1), NOW) == "overdue"

    def test_due_boundaries(self):
        assert classify_renewal(NOW, NOW) == "due"
        assert classify_renewal(NOW + timedelta(days=7), NOW) == "due"

    def test_pending_after_window(self):
        assert classify_renewal(NOW + timedelta(days=7, seconds=1), NOW) == "pending"

    def test_custom_window(self):
        assert classify_renewal(NOW + timedelta(days=10), NOW, window_days=14) == "due"

    def test_aware_datetimes_are_normalized(self):
        plus_two = timezone(timedelta(hours=2))
        # 13:00+02:00 is 11:00Z, an hour before NOW
        due = datetime(2026, 10, 18, 13, 0, 0, tzinfo=plus_two)
        assert classify_renewal(due, NOW) == "overdue"


@pytest.fixture
def open_distribution(db_session, armory, officer):
    return issuance_service.issue_items(
        armory.id, officer.id, "Alpha", [{**RIFLE, "quantity": 2}], "armourer-7"
    )


def force_due(dist_id, due):
    dist = db.session.get(Distribution, dist_id)
    dist.renewal_due = due
    db.session.commit()


class TestRenewDistribution:
    def test_overdue_then_renewed_is_pending(self, db_session, armory, open_distribution):
        force_due(open_distribution.id, utcnow() - timedelta(days=1))

        schedule = renewal_service.get_renewal_schedule()
        assert schedule["items"][0]["renewal_state"] == "overdue"
        assert schedule["summary"]["overdue"] == 1

        next_due = utcnow() + timedelta(days=30)
        dist = renewal_service.renew_distribution(
            open_distribution.id, "serviceable", "All sighted", next_due, "armourer-7"
        )

        assert dist.renewal_status == "renewed"
        assert dist.renewal_due == next_due
        assert len(dist.renewal_history) == 1
        assert dist.renewal_history[0].renewed_by == "armourer-7"
        assert dist.renewal_history[0].condition == "serviceable"

        schedule = renewal_service.get_renewal_schedule()
        assert schedule["items"][0]["renewal_state"] == "pending"
        assert line_quantity(armory.id, "weapon", "RIFLE-A|B-100") == 8

    def test_view_does_not_write_stored_status(self, db_session, open_distribution):
        force_due(open_distribution.id, utcnow() - timedelta(days=3))

        schedule = renewal_service.get_renewal_schedule()
        db.session.expire_all()

        assert schedule["items"][0]["renewal_state"] == "overdue"
        assert schedule["items"][0]["stored_renewal_status"] == "pending"
        assert db.session.get(Distribution, open_distribution.id).renewal_status == "pending"

    def test_renew_partial_return_is_allowed(self, db_session, open_distribution):
        return_service.return_items(
            open_distribution.id, [{**RIFLE, "quantity": 1, "condition_at_return": "serviceable"}], "a"
        )

        dist = renewal_service.renew_distribution(
            open_distribution.id, "serviceable", None, "2999-01-01", "armourer-7"
        )
        assert dist.status == "partial_return"
        assert dist.renewal_status == "renewed"

    def test_renew_returned_distribution_fails(self, db_session, open_distribution):
        return_service.return_all(open_distribution.id, "a")

        with pytest.raises(InvalidStateError):
            renewal_service.renew_distribution(
                open_distribution.id, "serviceable", None, "2999-01-01", "armourer-7"
            )

    def test_renew_cancelled_distribution_fails(self, db_session, open_distribution):
        issuance_service.cancel_distribution(open_distribution.id, "admin-1")

        with pytest.raises(InvalidStateError):
            renewal_service.renew_distribution(
                open_distribution.id, "serviceable", None, "2999-01-01", "armourer-7"
            )

    @pytest.mark.parametrize("condition,next_date", [
        (None, "2999-01-01"),
        ("shiny", "2999-01-01"),
        ("serviceable", None),
        ("serviceable", "not-a-date"),
        ("serviceable", "2001-01-01"),
    ])
    def test_invalid_renewal_input(self, db_session, open_distribution, condition, next_date):
        with pytest.raises(ValidationError):
            renewal_service.renew_distribution(
                open_distribution.id, condition, None, next_date, "armourer-7"
            )

        dist = issuance_service.get_distribution(open_distribution.id)
        assert dist.renewal_status == "pending"
        assert dist.renewal_history == []


class TestRenewalSchedule:
    def test_schedule_classifies_and_skips_closed(self, db_session, armory, officer):
        def issue(squad):
            return issuance_service.issue_items(armory.id, officer.id, squad, [{**AMMO, "quantity": 1}], "a")

        overdue, due, pending, returned = issue("A"), issue("B"), issue("C"), issue("D")
        force_due(overdue.id, NOW - timedelta(days=2))
        force_due(due.id, NOW + timedelta(days=3))
        force_due(pending.id, NOW + timedelta(days=20))
        return_service.return_all(returned.id, "a")

        schedule = renewal_service.get_renewal_schedule(now=NOW)

        assert schedule["summary"] == {"overdue": 1, "due": 1, "pending": 1, "total": 3}
        assert [i["squad_name"] for i in schedule["items"]] == ["A", "B", "C"]
        assert schedule["items"][1]["days_until_due"] == 3
        assert schedule["as_of"] == "2026-10-18T12:00:00Z"

    def test_schedule_by_armory(self, db_session, armory, other_armory, officer):
        issuance_service.issue_items(armory.id, officer.id, "A", [{**AMMO, "quantity": 1}], "a")
        issuance_service.issue_items(other_armory.id, officer.id, "B", [{**RIFLE, "quantity": 1}], "a")

        schedule = renewal_service.get_renewal_schedule(armory_id=other_armory.id)
        assert [i["squad_name"] for i in schedule["items"]] == ["B"]

    def test_schedule_rejects_negative_window(self, db_session, armory, officer):
        issuance_service.issue_items(armory.id, officer.id, "A", [{**AMMO, "quantity": 1}], "a")

        with pytest.raises(ValidationError):
            renewal_service.get_renewal_schedule(now=NOW, window_days=-3)
