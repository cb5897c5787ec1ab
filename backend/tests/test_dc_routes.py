"""
DC workflow API tests.

Verifies:
- Unauthenticated requests return 401
- Each step is gated to its role (403), Super Admin passes every gate
- Domain errors map to 400 / 403 / 404 / 409
- Field staff only see their own queue
"""

import pytest
from sqlalchemy.exc import OperationalError

from edusales.extensions import db
from edusales.models import DeliveryChallan, StockMovement, WarehouseItem


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/dc/raise"),
            ("GET", "/api/dc"),
            ("GET", "/api/dc/1"),
            ("GET", "/api/dc/stats/employee"),
            ("POST", "/api/dc/1/submit-po"),
            ("POST", "/api/dc/1/admin-review"),
            ("POST", "/api/dc/1/manager-request"),
            ("POST", "/api/dc/1/warehouse-process"),
            ("POST", "/api/dc/1/hold"),
            ("POST", "/api/dc-orders"),
            ("GET", "/api/dc-orders/1/history"),
            ("GET", "/api/warehouse"),
            ("POST", "/api/warehouse/stock"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/dc", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# HAPPY PATH OVER HTTP
# =============================================================================


class TestWorkflowOverHttp:

    def test_full_chain(
        self, client, db_session, deal, abacus_item, employee, admin, manager, warehouse_user, auth_headers
    ):
        resp = client.post("/api/dc/raise", json={"dc_order_id": deal.id}, headers=auth_headers(employee))
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        dc_id = body["dc"]["id"]
        assert body["dc"]["status"] == "created"
        assert body["dc"]["employee"]["id"] == employee.id
        assert body["warnings"] == []

        resp = client.post(
            f"/api/dc/{dc_id}/submit-po",
            json={"po_photo_url": "https://files.test/po.jpg"},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 200
        assert resp.get_json()["dc"]["status"] == "po_submitted"

        resp = client.post(
            f"/api/dc/{dc_id}/admin-review",
            json={"action": "approve"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        assert resp.get_json()["dc"]["admin"]["id"] == admin.id

        resp = client.post(
            f"/api/dc/{dc_id}/manager-request",
            json={"requested_quantity": 40},
            headers=auth_headers(manager),
        )
        assert resp.status_code == 200
        assert resp.get_json()["dc"]["status"] == "pending_dc"

        resp = client.post(
            f"/api/dc/{dc_id}/warehouse-process",
            json={"available_quantity": 100, "deliverable_quantity": 40},
            headers=auth_headers(warehouse_user),
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["dc"]["status"] == "completed"
        assert body["stock"] == {"applied": 1, "skipped": 0, "failed": 0}

        db.session.expire_all()
        assert db.session.get(WarehouseItem, abacus_item.id).current_stock == 60

        resp = client.get(f"/api/dc-orders/{deal.id}", headers=auth_headers(admin))
        assert resp.get_json()["dc_order"]["status"] == "completed"


# =============================================================================
# ERROR MAPPING
# =============================================================================


class TestErrorMapping:

    def test_wrong_status_is_409_with_statuses(self, client, db_session, make_dc, admin, auth_headers):
        dc = make_dc(status="created")

        resp = client.post(f"/api/dc/{dc.id}/admin-review", json={"action": "approve"}, headers=auth_headers(admin))

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["current_status"] == "created"
        assert body["required_status"] == ["po_submitted"]

    def test_other_employee_po_is_403(self, client, db_session, make_dc, other_employee, auth_headers):
        dc = make_dc(status="created")

        resp = client.post(
            f"/api/dc/{dc.id}/submit-po",
            json={"po_photo_url": "https://files.test/po.jpg"},
            headers=auth_headers(other_employee),
        )

        assert resp.status_code == 403
        db.session.expire_all()
        assert db.session.get(DeliveryChallan, dc.id).status == "created"

    def test_missing_proof_is_400(self, client, db_session, make_dc, employee, auth_headers):
        dc = make_dc(status="created")
        resp = client.post(f"/api/dc/{dc.id}/submit-po", json={}, headers=auth_headers(employee))
        assert resp.status_code == 400

    def test_unknown_dc_is_404(self, client, db_session, manager, auth_headers):
        resp = client.post("/api/dc/9999/hold", json={"reason": "x"}, headers=auth_headers(manager))
        assert resp.status_code == 404

    def test_unknown_deal_is_404(self, client, db_session, admin, auth_headers):
        resp = client.post("/api/dc/raise", json={"dc_order_id": 9999}, headers=auth_headers(admin))
        assert resp.status_code == 404

    def test_bad_quantity_is_400(self, client, db_session, make_dc, manager, auth_headers):
        dc = make_dc(status="sent_to_manager")
        resp = client.post(
            f"/api/dc/{dc.id}/manager-request",
            json={"requested_quantity": 0},
            headers=auth_headers(manager),
        )
        assert resp.status_code == 400


# =============================================================================
# ROLE GATES: 403
# =============================================================================


class TestRoleGates:

    def test_employee_cannot_review(self, client, db_session, make_dc, employee, auth_headers):
        dc = make_dc(status="po_submitted")
        resp = client.post(f"/api/dc/{dc.id}/admin-review", json={"action": "approve"}, headers=auth_headers(employee))
        assert resp.status_code == 403

    def test_warehouse_cannot_request_from_itself(self, client, db_session, make_dc, warehouse_user, auth_headers):
        dc = make_dc(status="sent_to_manager")
        resp = client.post(
            f"/api/dc/{dc.id}/manager-request",
            json={"requested_quantity": 5},
            headers=auth_headers(warehouse_user),
        )
        assert resp.status_code == 403

    def test_employee_cannot_process_in_warehouse(self, client, db_session, make_dc, employee, auth_headers):
        dc = make_dc(status="pending_dc")
        resp = client.post(f"/api/dc/{dc.id}/warehouse-process", json={}, headers=auth_headers(employee))
        assert resp.status_code == 403

    def test_super_admin_passes_every_gate(self, client, db_session, make_dc, super_admin, auth_headers):
        dc = make_dc(status="po_submitted")
        resp = client.post(
            f"/api/dc/{dc.id}/admin-review",
            json={"action": "reject", "remarks": "Wrong school"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 200
        assert resp.get_json()["dc"]["status"] == "created"


# =============================================================================
# QUEUES
# =============================================================================


class TestQueues:

    def test_status_filter(self, client, db_session, make_dc, manager, auth_headers):
        make_dc(status="pending_dc")
        make_dc(status="created")

        resp = client.get("/api/dc?status=pending_dc", headers=auth_headers(manager))

        assert resp.status_code == 200
        assert [d["status"] for d in resp.get_json()["dcs"]] == ["pending_dc"]

    def test_invalid_status_filter(self, client, db_session, manager, auth_headers):
        resp = client.get("/api/dc?status=lost", headers=auth_headers(manager))
        assert resp.status_code == 400

    def test_field_staff_only_see_their_own(self, client, db_session, make_dc, other_employee, auth_headers):
        make_dc(status="created")

        resp = client.get("/api/dc", headers=auth_headers(other_employee))

        assert resp.get_json()["count"] == 0

    def test_employee_stats(self, client, db_session, make_dc, employee, auth_headers):
        make_dc(status="created")
        make_dc(status="completed")

        resp = client.get("/api/dc/stats/employee", headers=auth_headers(employee))

        body = resp.get_json()
        assert body["employee_id"] == employee.id
        assert body["total"] == 2
        assert body["by_status"]["completed"] == 1
        assert body["by_status"]["hold"] == 0


# =============================================================================
# COMMIT FAILURES
# =============================================================================


def _failing_commit(monkeypatch, failures):
    """Make the next `failures` commits raise "database is locked"."""
    real_commit = db.session.commit
    remaining = [failures]

    def _commit():
        if remaining[0] > 0:
            remaining[0] -= 1
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        return real_commit()

    monkeypatch.setattr(db.session, "commit", _commit)


class TestCommitFailures:

    def test_failed_commit_reruns_the_whole_step(
        self, client, db_session, make_dc, abacus_item, warehouse_user, auth_headers, monkeypatch
    ):
        dc = make_dc(status="pending_dc", lines=[{"product_name": "Abacus", "quantity": 40}])
        headers = auth_headers(warehouse_user)
        _failing_commit(monkeypatch, 1)

        resp = client.post(
            f"/api/dc/{dc.id}/warehouse-process",
            json={"available_quantity": 100, "deliverable_quantity": 40},
            headers=headers,
        )

        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(DeliveryChallan, dc.id).status == "completed"
        assert db.session.get(WarehouseItem, abacus_item.id).current_stock == 60
        assert db.session.query(StockMovement).filter_by(dc_id=dc.id).count() == 1

    def test_commit_that_keeps_failing_is_not_reported_as_success(
        self, client, db_session, make_dc, abacus_item, warehouse_user, auth_headers, monkeypatch
    ):
        dc = make_dc(status="pending_dc", lines=[{"product_name": "Abacus", "quantity": 40}])
        headers = auth_headers(warehouse_user)
        _failing_commit(monkeypatch, 10)

        resp = client.post(
            f"/api/dc/{dc.id}/warehouse-process",
            json={"available_quantity": 100, "deliverable_quantity": 40},
            headers=headers,
        )

        assert resp.status_code >= 500
        db.session.expire_all()
        assert db.session.get(DeliveryChallan, dc.id).status == "pending_dc"
        assert db.session.get(WarehouseItem, abacus_item.id).current_stock == 100
        assert db.session.query(StockMovement).count() == 0
