from datetime import timedelta

import pytest

from armory.extensions import db
from armory.models import Distribution
from armory.time_utils import utcnow

from conftest import RIFLE, AMMO, VEST, ADMIN_HEADERS, ARMOURER_HEADERS, VIEWER_HEADERS


@pytest.fixture
def issued(client, armory, officer):
    resp = client.post("/api/distributions", json={
        "armory_id": armory.id,
        "officer_id": officer.id,
        "squad_name": "Alpha",
        "items": [{**RIFLE, "quantity": 4}, {**AMMO, "quantity": 120}],
        "remarks": "Night patrol",
    }, headers=ARMOURER_HEADERS)
    assert resp.status_code == 201
    return resp.get_json()["distribution"]


class TestActorHeaders:
    def test_missing_actor_is_401(self, client, db_session):
        resp = client.get("/api/distributions")
        assert resp.status_code == 401

    def test_viewer_cannot_issue(self, client, armory, officer):
        resp = client.post("/api/distributions", json={
            "armory_id": armory.id, "officer_id": officer.id, "squad_name": "Alpha",
            "items": [{**RIFLE, "quantity": 1}],
        }, headers=VIEWER_HEADERS)
        assert resp.status_code == 403

    def test_armourer_cannot_cancel_or_restock(self, client, armory, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/cancel", headers=ARMOURER_HEADERS)
        assert resp.status_code == 403

        resp = client.post(f"/api/armories/{armory.id}/stock", json={**VEST, "quantity": 1}, headers=ARMOURER_HEADERS)
        assert resp.status_code == 403


class TestIssueRoute:
    def test_issue(self, client, armory, issued):
        assert issued["status"] == "issued"
        assert issued["issued_by"] == "armourer-7"
        assert issued["weapons_issued"][0]["quantity"] == 4
        assert issued["ammunition_issued"][0]["quantity"] == 120
        assert issued["renewal_view"]["renewal_state"] == "pending"
        assert issued["date_issued"].endswith("Z")

        resp = client.get(
            f"/api/armories/{armory.id}/available?item_type=weapon&item_key=RIFLE-A|B-100",
            headers=VIEWER_HEADERS,
        )
        assert resp.get_json()["available_quantity"] == 6

    def test_insufficient_stock_is_409_with_details(self, client, armory, officer):
        resp = client.post("/api/distributions", json={
            "armory_id": armory.id, "officer_id": officer.id, "squad_name": "Alpha",
            "items": [{**RIFLE, "quantity": 11}],
        }, headers=ARMOURER_HEADERS)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["retryable"] is False
        assert body["details"] == {
            "armory_id": armory.id,
            "item_type": "weapon",
            "item_key": "RIFLE-A|B-100",
            "requested": 11,
            "available": 10,
        }

    def test_unknown_references_are_404(self, client, armory, officer):
        resp = client.post("/api/distributions", json={
            "armory_id": armory.id, "officer_id": 999999, "squad_name": "Alpha",
            "items": [{**RIFLE, "quantity": 1}],
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "UNKNOWN_OFFICER"

        resp = client.post("/api/distributions", json={
            "armory_id": armory.id, "officer_id": officer.id, "squad_name": "Alpha",
            "items": [{"item_type": "weapon", "item_key": "NOPE", "quantity": 1}],
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "UNKNOWN_ITEM"

    def test_validation_is_400(self, client, armory, officer):
        resp = client.post("/api/distributions", json={
            "armory_id": armory.id, "officer_id": officer.id, "squad_name": "Alpha", "items": [],
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

        resp = client.post("/api/distributions", json={"squad_name": "Alpha"}, headers=ARMOURER_HEADERS)
        assert resp.status_code == 400


class TestReturnRoutes:
    def test_partial_return_then_return_all(self, client, armory, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/returns", json={
            "items": [{**RIFLE, "quantity": 1, "condition_at_return": "unserviceable"}],
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 200
        assert resp.get_json()["distribution"]["status"] == "partial_return"

        resp = client.post(f"/api/distributions/{issued['id']}/return-all", headers=ARMOURER_HEADERS)
        body = resp.get_json()["distribution"]
        assert resp.status_code == 200
        assert body["status"] == "returned"
        assert body["returned_by"] == "armourer-7"
        assert body["return_date"] is not None
        assert body["renewal_view"] is None

        resp = client.post(f"/api/distributions/{issued['id']}/return-all", headers=ARMOURER_HEADERS)
        assert resp.status_code == 200

        resp = client.get(f"/api/armories/{armory.id}", headers=VIEWER_HEADERS)
        weapons = resp.get_json()["armory"]["weapons"]
        assert weapons[0]["quantity"] == 10
        assert weapons[0]["condition"] == "serviceable"

    def test_over_return_is_409(self, client, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/returns", json={
            "items": [{**RIFLE, "quantity": 5, "condition_at_return": "serviceable"}],
        }, headers=ARMOURER_HEADERS)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "OVER_RETURN"
        assert body["details"]["outstanding"] == 4

    def test_non_string_condition_is_400(self, client, armory, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/returns", json={
            "items": [{**RIFLE, "quantity": 1, "condition_at_return": {"x": 1}}],
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

        resp = client.post(f"/api/distributions/{issued['id']}/renew", json={
            "condition": ["serviceable"], "next_renewal_date": "2999-01-15",
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 400

        resp = client.post(f"/api/armories/{armory.id}/stock", json={
            **VEST, "quantity": 1, "condition": ["serviceable"],
        }, headers=ADMIN_HEADERS)
        assert resp.status_code == 400

    def test_unknown_distribution_is_404(self, client, db_session):
        resp = client.post("/api/distributions/999999/return-all", headers=ARMOURER_HEADERS)
        assert resp.status_code == 404


class TestRenewAndCancelRoutes:
    def test_renew(self, client, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/renew", json={
            "condition": "serviceable",
            "next_renewal_date": "2999-01-15",
            "remarks": "All items sighted",
        }, headers=ARMOURER_HEADERS)

        body = resp.get_json()["distribution"]
        assert resp.status_code == 200
        assert body["renewal_status"] == "renewed"
        assert body["renewal_due"] == "2999-01-15T00:00:00Z"
        assert body["renewal_history"][0]["remarks"] == "All items sighted"

    def test_cancel_then_renew_is_invalid_state(self, client, armory, issued):
        resp = client.post(f"/api/distributions/{issued['id']}/cancel", json={"reason": "Wrong squad"},
                           headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.get_json()["distribution"]["status"] == "cancelled"

        resp = client.post(f"/api/distributions/{issued['id']}/renew", json={
            "condition": "serviceable", "next_renewal_date": "2999-01-15",
        }, headers=ARMOURER_HEADERS)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_STATE"


class TestQueryRoutes:
    def test_list_and_get(self, client, issued):
        resp = client.get("/api/distributions?status=issued&per_page=5", headers=VIEWER_HEADERS)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["pagination"]["total"] == 1
        assert body["items"][0]["distribution_no"] == issued["distribution_no"]

        resp = client.get(f"/api/distributions/{issued['id']}", headers=VIEWER_HEADERS)
        assert resp.get_json()["distribution"]["squad_name"] == "Alpha"

    def test_renewal_schedule(self, client, issued):
        dist = db.session.get(Distribution, issued["id"])
        dist.renewal_due = utcnow() - timedelta(hours=1)
        db.session.commit()

        resp = client.get("/api/distributions/renewals?state=overdue", headers=VIEWER_HEADERS)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["summary"]["overdue"] == 1
        assert [i["distribution_id"] for i in body["items"]] == [issued["id"]]

    def test_negative_renewal_window_is_400(self, client, issued):
        resp = client.get("/api/distributions/renewals?window_days=-1", headers=VIEWER_HEADERS)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

        resp = client.get("/api/distributions/renewals?window_days=0", headers=VIEWER_HEADERS)
        assert resp.status_code == 200
        assert resp.get_json()["window_days"] == 0

    def test_ledger(self, client, armory, issued):
        resp = client.get(
            f"/api/armories/{armory.id}/ledger?distribution_id={issued['id']}", headers=VIEWER_HEADERS
        )
        types = {e["event_type"] for e in resp.get_json()["events"]}
        assert types == {"distribution.issued", "inventory.issue_out"}


class TestArmoryRoutes:
    def test_create_and_restock(self, client, db_session):
        resp = client.post("/api/armories", json={
            "reference_id": "ARM-EAST-01",
            "name": "East Armory",
            "code": "EA1",
            "location": "Depot 2",
            "unit": "K9",
            "equipment": [{"equipment_type": "Helmet", "quantity": 5}],
        }, headers=ADMIN_HEADERS)
        assert resp.status_code == 201
        armory_id = resp.get_json()["armory"]["id"]

        resp = client.post(f"/api/armories/{armory_id}/stock", json={
            "item_type": "equipment", "equipment_type": "helmet", "quantity": 3,
        }, headers=ADMIN_HEADERS)
        line = resp.get_json()["stock_line"]
        assert resp.status_code == 200
        assert line["quantity"] == 8
        assert line["total_quantity"] == 8

    def test_unknown_armory_is_404(self, client, db_session):
        resp = client.get("/api/armories/999999", headers=VIEWER_HEADERS)
        assert resp.status_code == 404


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"]["status"] == "healthy"
