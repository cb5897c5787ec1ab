"""
Stock deduction tests.

Verifies:
- deliverable / available / remaining operands and their fallbacks
- Tiered warehouse-item matching (name+category+level -> name+category -> name)
- Stock never goes below zero
- Exactly one Out movement per deducted line, none for skipped lines
"""

import pytest

from edusales.extensions import db
from edusales.models import StockMovement, WarehouseItem
from edusales.services import stock_service


def _stock(item_id):
    db.session.expire_all()
    return db.session.get(WarehouseItem, item_id).current_stock


def _item(db_session, name, stock, category=None, level=None, min_stock=0):
    item = WarehouseItem(product_name=name, category=category, level=level, current_stock=stock, min_stock=min_stock)
    db_session.add(item)
    db_session.commit()
    return item


class TestOperands:

    def test_deliverable_subtracted_from_current_stock(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 50, "deliverable_quantity": 40}])

        report = stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 60
        assert len(report.applied) == 1
        assert report.applied[0].stock_before == 100
        assert report.applied[0].stock_after == 60

    def test_deliverable_falls_back_to_quantity(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 15}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 85

    def test_available_override(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 10, "available_quantity": 50, "deliverable_quantity": 10}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 40

    def test_remaining_override_wins(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 10, "deliverable_quantity": 10, "remaining_quantity": 75}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 75
        movement = db_session.query(StockMovement).one()
        assert movement.quantity == 10

    def test_stock_floors_at_zero(self, db_session, make_dc, warehouse_user):
        item = _item(db_session, "Flash Cards", 5, min_stock=2)
        dc = make_dc(lines=[{"product_name": "Flash Cards", "quantity": 10}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        db_session.expire_all()
        reloaded = db_session.get(WarehouseItem, item.id)
        assert reloaded.current_stock == 0
        assert reloaded.status == "Out of Stock"

    def test_zero_deliverable_is_skipped_silently(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 10, "deliverable_quantity": 0}])

        report = stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 100
        assert db_session.query(StockMovement).count() == 0
        assert len(report.skipped) == 1
        assert report.warnings() == []


class TestMatching:

    def test_exact_tier_preferred(self, db_session, make_dc, warehouse_user):
        name_only = _item(db_session, "Abacus", 100)
        l1 = _item(db_session, "Abacus", 100, category="Kit", level="L1")
        l2 = _item(db_session, "Abacus", 100, category="Kit", level="L2")
        dc = make_dc(lines=[{"product_name": "Abacus", "category": "Kit", "level": "L2", "quantity": 10}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(l2.id) == 90
        assert _stock(l1.id) == 100
        assert _stock(name_only.id) == 100

    def test_category_tier_when_level_differs(self, db_session, make_dc, warehouse_user):
        other_category = _item(db_session, "Abacus", 100, category="Book", level="L3")
        kit = _item(db_session, "Abacus", 100, category="Kit", level="L1")
        dc = make_dc(lines=[{"product_name": "Abacus", "category": "Kit", "level": "L3", "quantity": 10}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(kit.id) == 90
        assert _stock(other_category.id) == 100

    def test_name_tier_when_category_differs(self, db_session, make_dc, warehouse_user):
        item = _item(db_session, "Abacus", 100, category="Book")
        dc = make_dc(lines=[{"product_name": "Abacus", "category": "Kit", "level": "L2", "quantity": 10}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(item.id) == 90

    def test_product_field_used_when_name_missing(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product": "Abacus", "quantity": 5}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 95

    def test_find_returns_none_without_match(self, db_session, abacus_item):
        assert stock_service.find_warehouse_item("Globe", "Kit", "L1") is None


class TestResilience:

    def test_unmatched_line_does_not_block_others(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[
            {"product_name": "Telescope", "quantity": 2},
            {"product_name": "Abacus", "quantity": 10},
        ])

        report = stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        assert _stock(abacus_item.id) == 90
        assert [o.product_name for o in report.skipped] == ["Telescope"]
        assert [o.product_name for o in report.applied] == ["Abacus"]
        assert report.warnings() == ["Stock not deducted for 'Telescope': no matching warehouse item"]

    def test_movement_records_dc_and_actor(self, db_session, make_dc, abacus_item, warehouse_user):
        dc = make_dc(lines=[{"product_name": "Abacus", "quantity": 3}])

        stock_service.deduct_for_dc(dc, warehouse_user.id)
        db_session.commit()

        movement = db_session.query(StockMovement).one()
        assert movement.movement_type == "Out"
        assert movement.dc_id == dc.id
        assert movement.created_by_user_id == warehouse_user.id
        assert movement.reason == f"DC #{dc.id} delivered to Green Valley School"
