"""
Deal (DcOrder) tests: follow-up history and deal status operations.
"""

import pytest
from sqlalchemy.exc import OperationalError

from edusales.extensions import db
from edusales.models import DcOrder, DcOrderHistory, DeliveryChallan
from edusales.services import dc_order_service, dc_workflow_service
from edusales.services.dc_workflow_service import DealNotFoundError
from edusales.validation import ConflictError, ValidationError


def _history_count(order_id):
    return db.session.query(DcOrderHistory).filter_by(dc_order_id=order_id).count()


class TestHistory:

    def test_create_with_follow_up_fields_journals_once(self, db_session, admin):
        result = dc_order_service.create_dc_order(
            {"school_name": "Sunrise Public School", "remarks": "Call after 4pm", "priority": "Hot"},
            admin,
        )
        db_session.commit()

        assert _history_count(result.order.id) == 1
        entry = dc_order_service.get_history(result.order.id)[0]
        assert entry["remarks"] == "Call after 4pm"
        assert entry["priority"] == "Hot"
        assert entry["updated_by_name"] == "Anita Admin"

    def test_no_rows_yields_synthetic_entry(self, db_session, admin):
        order = dc_order_service.create_dc_order({"school_name": "Quiet School"}, admin).order
        db_session.commit()

        history = dc_order_service.get_history(order.id)

        assert _history_count(order.id) == 0
        assert len(history) == 1
        assert history[0]["id"] is None
        assert history[0]["remarks"] == "Lead created"
        assert history[0]["priority"] == "Cold"
        assert history[0]["updated_by"] is None
        assert history[0]["updated_by_name"] == "System"
        assert history[0]["updated_at"] is not None

    def test_priority_only_update_defaults_remarks(self, db_session, deal, manager):
        dc_order_service.update_dc_order(deal.id, {"priority": "Warm"}, manager)
        db_session.commit()

        rows = db_session.query(DcOrderHistory).filter_by(dc_order_id=deal.id).all()
        assert len(rows) == 1
        assert rows[0].remarks == ""
        assert rows[0].priority == "Warm"
        assert rows[0].updated_by_user_id == manager.id

    def test_remarks_only_update_defaults_priority(self, db_session, deal, manager):
        dc_order_service.update_dc_order(deal.id, {"remarks": "Asked for a demo"}, manager)
        db_session.commit()

        row = db_session.query(DcOrderHistory).filter_by(dc_order_id=deal.id).one()
        assert row.priority == "Cold"
        assert row.remarks == "Asked for a demo"

    def test_all_three_fields_append_exactly_one_entry(self, db_session, deal, manager):
        dc_order_service.update_dc_order(
            deal.id,
            {"follow_up_date": "2026-11-02", "remarks": "Visit scheduled", "priority": "Hot"},
            manager,
        )
        db_session.commit()

        row = db_session.query(DcOrderHistory).filter_by(dc_order_id=deal.id).one()
        assert row.follow_up_date.year == 2026
        assert row.follow_up_date.month == 11

    def test_other_fields_do_not_journal(self, db_session, deal, manager):
        dc_order_service.update_dc_order(deal.id, {"zone": "North", "contact_person": "Vice Principal"}, manager)
        db_session.commit()

        assert _history_count(deal.id) == 0
        db_session.expire_all()
        assert db_session.get(DcOrder, deal.id).zone == "North"

    def test_newest_first(self, db_session, deal, manager):
        for remark in ("first", "second", "third"):
            dc_order_service.update_dc_order(deal.id, {"remarks": remark}, manager)
            db_session.commit()

        history = dc_order_service.get_history(deal.id)
        assert [h["remarks"] for h in history] == ["third", "second", "first"]

    def test_dropped_is_a_valid_history_priority(self, db_session, deal, manager):
        order = dc_order_service.update_dc_order(deal.id, {"priority": "Dropped"}, manager)
        assert order.priority == "Dropped"

    def test_unknown_priority_rejected(self, db_session, deal, manager):
        with pytest.raises(ValidationError):
            dc_order_service.update_dc_order(deal.id, {"priority": "Lukewarm"}, manager)
        assert _history_count(deal.id) == 0

    def test_missing_deal(self, db_session, manager):
        with pytest.raises(DealNotFoundError):
            dc_order_service.get_history(9999)


class TestCreateDealRaisesDc:

    def test_assigned_deal_gets_a_dc(self, db_session, admin, employee):
        result = dc_order_service.create_dc_order(
            {
                "school_name": "Hill Top School",
                "contact_mobile": "9123456780",
                "products": [{"product_name": "Abacus", "quantity": 12, "unit_price": 450}],
                "assigned_to": employee.id,
            },
            admin,
        )
        db_session.commit()

        assert result.warnings == []
        assert result.order.total_amount == 12 * 450
        assert result.dc is not None
        assert result.dc.employee_id == employee.id
        assert result.dc.requested_quantity == 12

    def test_dc_failure_keeps_the_deal(self, db_session, admin, employee, monkeypatch):
        original_resolve = dc_workflow_service.resolve_origin
        calls = []

        def _locked_once(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise OperationalError("SELECT dc_orders", {}, Exception("database is locked"))
            return original_resolve(**kwargs)

        monkeypatch.setattr(dc_workflow_service, "resolve_origin", _locked_once)

        result = dc_order_service.create_dc_order(
            {"school_name": "River Side School", "remarks": "Demo done", "assigned_to": employee.id},
            admin,
        )
        db_session.commit()

        assert result.dc is None
        assert len(result.warnings) == 1
        assert "database is locked" in result.warnings[0]

        db_session.expire_all()
        order = db_session.query(DcOrder).filter_by(school_name="River Side School").one()
        assert order.assigned_to_user_id == employee.id
        assert _history_count(order.id) == 1
        assert db_session.query(DeliveryChallan).count() == 0

    def test_unassigned_deal_has_no_dc(self, db_session, admin):
        result = dc_order_service.create_dc_order({"school_name": "Valley School"}, admin)
        db_session.commit()

        assert result.dc is None
        assert db_session.query(DeliveryChallan).count() == 0

    def test_school_name_required(self, db_session, admin):
        with pytest.raises(ValidationError, match="school_name is required"):
            dc_order_service.create_dc_order({"school_name": "  "}, admin)


class TestDealStatusOperations:

    def test_complete_records_delivery(self, db_session, deal, warehouse_user):
        order = dc_order_service.complete_order(
            deal.id,
            warehouse_user,
            pod_proof_url="https://files.test/pod.jpg",
            actual_delivery_date="2026-10-15T09:30:00Z",
        )
        db_session.commit()

        assert order.status == "completed"
        assert order.pod_proof_url == "https://files.test/pod.jpg"
        assert order.completed_by_user_id == warehouse_user.id
        assert order.actual_delivery_date.day == 15

    def test_completed_deal_cannot_change(self, db_session, deal, manager):
        dc_order_service.complete_order(deal.id, manager)
        db_session.commit()

        with pytest.raises(ConflictError):
            dc_order_service.hold_order(deal.id, manager, remarks="Wait")

    def test_hold_and_transit(self, db_session, deal, manager):
        assert dc_order_service.mark_in_transit(deal.id, manager).status == "in_transit"
        order = dc_order_service.hold_order(deal.id, manager, remarks="Budget freeze")
        assert order.status == "hold"
        assert order.remarks == "Budget freeze"
        assert dc_order_service.submit_order(deal.id, manager).status == "pending"
