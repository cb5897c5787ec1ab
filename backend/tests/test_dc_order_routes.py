"""
Deal (DcOrder) API tests.

Verifies:
- Creating a deal over HTTP, with and without an assignee
- Follow-up updates are journaled and served newest first
- Deal status endpoints are gated to their roles (403)
- Unknown deals return 404, changes to a completed deal return 409
"""

import pytest

from edusales.extensions import db
from edusales.models import DcOrder, DcOrderHistory, DeliveryChallan


# =============================================================================
# CREATE
# =============================================================================


class TestCreateDeal:

    def test_create_assigned_deal_raises_dc(self, client, db_session, admin, employee, auth_headers):
        resp = client.post(
            "/api/dc-orders",
            json={
                "school_name": "Hill Top School",
                "contact_mobile": "9123456780",
                "products": [{"product_name": "Abacus", "quantity": 12, "unit_price": 450}],
                "priority": "Hot",
                "remarks": "Principal keen",
                "assigned_to": employee.id,
            },
            headers=auth_headers(admin),
        )

        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["dc_order"]["school_name"] == "Hill Top School"
        assert body["dc_order"]["total_amount"] == 12 * 450
        assert body["dc_order"]["history_count"] == 1
        assert body["dc"]["status"] == "created"
        assert body["dc"]["employee"]["id"] == employee.id
        assert body["warnings"] == []

    def test_create_unassigned_deal(self, client, db_session, admin, auth_headers):
        resp = client.post("/api/dc-orders", json={"school_name": "Valley School"}, headers=auth_headers(admin))

        assert resp.status_code == 201
        assert resp.get_json()["dc"] is None
        assert db_session.query(DeliveryChallan).count() == 0

    def test_missing_school_name_is_400(self, client, db_session, admin, auth_headers):
        resp = client.post("/api/dc-orders", json={"zone": "North"}, headers=auth_headers(admin))

        assert resp.status_code == 400
        assert db_session.query(DcOrder).count() == 0

    def test_list_by_status(self, client, db_session, deal, admin, auth_headers):
        client.post("/api/dc-orders", json={"school_name": "Draft School", "save_only": True}, headers=auth_headers(admin))

        resp = client.get("/api/dc-orders", query_string={"status": "saved"}, headers=auth_headers(admin))

        assert resp.status_code == 200
        assert [o["school_name"] for o in resp.get_json()["dc_orders"]] == ["Draft School"]


# =============================================================================
# UPDATE AND HISTORY
# =============================================================================


class TestUpdateAndHistory:

    def test_update_appends_history(self, client, db_session, deal, manager, auth_headers):
        headers = auth_headers(manager)

        resp = client.put(f"/api/dc-orders/{deal.id}", json={"remarks": "Call on Monday"}, headers=headers)
        assert resp.status_code == 200
        resp = client.put(f"/api/dc-orders/{deal.id}", json={"priority": "Hot"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["dc_order"]["priority"] == "Hot"

        resp = client.get(f"/api/dc-orders/{deal.id}/history", headers=headers)

        body = resp.get_json()
        assert body["count"] == 2
        assert [(h["remarks"], h["priority"]) for h in body["history"]] == [("", "Hot"), ("Call on Monday", "Cold")]
        assert body["history"][0]["updated_by_name"] == "Mohan Manager"

    def test_non_history_update_does_not_journal(self, client, db_session, deal, manager, auth_headers):
        resp = client.put(f"/api/dc-orders/{deal.id}", json={"zone": "East"}, headers=auth_headers(manager))

        assert resp.status_code == 200
        assert resp.get_json()["dc_order"]["zone"] == "East"
        assert db_session.query(DcOrderHistory).count() == 0

    def test_history_without_rows_is_synthetic(self, client, db_session, deal, manager, auth_headers):
        resp = client.get(f"/api/dc-orders/{deal.id}/history", headers=auth_headers(manager))

        assert resp.status_code == 200
        history = resp.get_json()["history"]
        assert len(history) == 1
        assert history[0]["id"] is None
        assert history[0]["updated_by"] is None
        assert history[0]["updated_by_name"] == "System"
        assert history[0]["remarks"] == "Lead created"
        assert history[0]["priority"] == "Cold"

    def test_invalid_priority_is_400(self, client, db_session, deal, manager, auth_headers):
        resp = client.put(f"/api/dc-orders/{deal.id}", json={"priority": "Lukewarm"}, headers=auth_headers(manager))

        assert resp.status_code == 400
        assert db_session.query(DcOrderHistory).count() == 0


# =============================================================================
# STATUS OPERATIONS
# =============================================================================


class TestStatusOperations:

    def test_transit_then_complete(self, client, db_session, deal, warehouse_user, auth_headers):
        headers = auth_headers(warehouse_user)

        resp = client.put(f"/api/dc-orders/{deal.id}/mark-in-transit", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["dc_order"]["status"] == "in_transit"

        resp = client.put(
            f"/api/dc-orders/{deal.id}/complete",
            json={"pod_proof_url": "https://files.test/pod.jpg", "actual_delivery_date": "2026-10-15T09:30:00Z"},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()["dc_order"]
        assert body["status"] == "completed"
        assert body["pod_proof_url"] == "https://files.test/pod.jpg"
        assert body["completed_by_user_id"] == warehouse_user.id

    def test_hold_and_resubmit(self, client, db_session, deal, manager, auth_headers):
        headers = auth_headers(manager)

        resp = client.put(f"/api/dc-orders/{deal.id}/hold", json={"remarks": "Budget freeze"}, headers=headers)
        assert resp.get_json()["dc_order"]["status"] == "hold"
        assert resp.get_json()["dc_order"]["remarks"] == "Budget freeze"

        resp = client.put(f"/api/dc-orders/{deal.id}/submit", headers=headers)
        assert resp.get_json()["dc_order"]["status"] == "pending"

    def test_completed_deal_is_409(self, client, db_session, deal, manager, auth_headers):
        headers = auth_headers(manager)
        client.put(f"/api/dc-orders/{deal.id}/complete", headers=headers)

        resp = client.put(f"/api/dc-orders/{deal.id}/hold", json={"remarks": "Too late"}, headers=headers)

        assert resp.status_code == 409
        db.session.expire_all()
        assert db.session.get(DcOrder, deal.id).status == "completed"

    @pytest.mark.parametrize(
        "path,user_fixture",
        [
            ("mark-in-transit", "employee"),
            ("complete", "employee"),
            ("hold", "employee"),
            ("hold", "warehouse_user"),
        ],
    )
    def test_role_gates(self, client, db_session, deal, auth_headers, request, path, user_fixture):
        user = request.getfixturevalue(user_fixture)

        resp = client.put(f"/api/dc-orders/{deal.id}/{path}", json={}, headers=auth_headers(user))

        assert resp.status_code == 403
        db.session.expire_all()
        assert db.session.get(DcOrder, deal.id).status == "pending"

    def test_employee_may_submit(self, client, db_session, deal, employee, auth_headers):
        resp = client.put(f"/api/dc-orders/{deal.id}/submit", headers=auth_headers(employee))
        assert resp.status_code == 200


# =============================================================================
# NOT FOUND: 404
# =============================================================================


class TestNotFound:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/dc-orders/9999"),
            ("PUT", "/api/dc-orders/9999"),
            ("GET", "/api/dc-orders/9999/history"),
            ("PUT", "/api/dc-orders/9999/submit"),
            ("PUT", "/api/dc-orders/9999/hold"),
        ],
    )
    def test_unknown_deal(self, client, db_session, manager, auth_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=auth_headers(manager))
        assert resp.status_code == 404
