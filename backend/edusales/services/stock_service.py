# Overview: Service-layer operations for warehouse stock; encapsulates business logic and database work.

"""
Warehouse stock service.

DC STOCK DEDUCTION (deduct_for_dc):
    Runs once, when the warehouse completes a DC. For every product line:

    1. deliverable = line.deliverable_quantity, else line.quantity
       (lines with deliverable <= 0 are skipped)
    2. warehouse item = first match of
           (product_name, category, level) -> (product_name, category) -> (product_name)
    3. no match -> skip the line, log, continue
    4. available = line.available_quantity, else item.current_stock
    5. remaining = line.remaining_quantity, else available - deliverable
    6. item.current_stock = max(0, remaining)
    7. one "Out" StockMovement of `deliverable`

    Each line runs in its own SAVEPOINT. A failing line is rolled back on its
    own and reported; it never undoes the DC transition or other lines.

MANUAL ADJUSTMENTS (adjust_stock):
    In adds, Out/Return subtract (floored at zero), Adjustment sets the
    absolute quantity. Every call writes exactly one StockMovement.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import WarehouseItem, StockMovement, DeliveryChallan, DcProductLine, MOVEMENT_TYPES
from ..validation import ValidationError, coerce_int, require_text
from .concurrency import lock_for_update
from edusales.time_utils import utcnow


class StockError(Exception):
    """Raised when a manual stock operation cannot be applied."""
    pass


class WarehouseItemNotFoundError(StockError):
    pass


@dataclass
class LineOutcome:
    line_id: int | None
    product_name: str | None
    deliverable: int
    warehouse_item_id: int | None = None
    stock_before: int | None = None
    stock_after: int | None = None
    movement_id: int | None = None
    reason: str | None = None


@dataclass
class DeductionReport:
    applied: list[LineOutcome] = field(default_factory=list)
    skipped: list[LineOutcome] = field(default_factory=list)
    failed: list[LineOutcome] = field(default_factory=list)

    def warnings(self) -> list[str]:
        messages = []
        for outcome in self.skipped:
            if outcome.deliverable > 0:
                messages.append(f"Stock not deducted for '{outcome.product_name}': {outcome.reason}")
        for outcome in self.failed:
            messages.append(f"Stock update failed for '{outcome.product_name}': {outcome.reason}")
        return messages


def find_warehouse_item(
    product_name: str,
    category: str | None = None,
    level: str | None = None,
) -> WarehouseItem | None:
    """
    Resolve a product line to a warehouse item, loosest match last.

    Tiers whose fields the line does not carry are not attempted. Within a
    tier the oldest item wins. The returned row is locked for update so
    concurrent deductions against one product are serialized.
    """
    tiers = []
    if category and level:
        tiers.append({"product_name": product_name, "category": category, "level": level})
    if category:
        tiers.append({"product_name": product_name, "category": category})
    tiers.append({"product_name": product_name})

    for criteria in tiers:
        query = db.session.query(WarehouseItem).filter_by(**criteria).order_by(WarehouseItem.id)
        item = lock_for_update(query).first()
        if item is not None:
            return item
    return None


def line_deliverable(line: DcProductLine) -> int:
    if line.deliverable_quantity is not None:
        return line.deliverable_quantity
    return line.quantity or 0


def _deduct_line(dc: DeliveryChallan, line: DcProductLine, deliverable: int, actor_user_id: int) -> LineOutcome:
    outcome = LineOutcome(line_id=line.id, product_name=line.display_name, deliverable=deliverable)

    item = find_warehouse_item(line.display_name, line.category, line.level)
    if item is None:
        outcome.reason = "no matching warehouse item"
        return outcome

    available = line.available_quantity if line.available_quantity is not None else item.current_stock
    if line.remaining_quantity is not None:
        remaining = line.remaining_quantity
    else:
        remaining = available - deliverable

    outcome.warehouse_item_id = item.id
    outcome.stock_before = item.current_stock

    item.current_stock = max(0, remaining)

    movement = StockMovement(
        warehouse_item_id=item.id,
        movement_type="Out",
        quantity=deliverable,
        reason=f"DC #{dc.id} delivered to {dc.customer_name}",
        related_sale_id=dc.sale_id,
        dc_id=dc.id,
        created_by_user_id=actor_user_id,
    )
    db.session.add(movement)
    db.session.flush()

    outcome.stock_after = item.current_stock
    outcome.movement_id = movement.id
    return outcome


def deduct_for_dc(dc: DeliveryChallan, actor_user_id: int) -> DeductionReport:
    """
    Best-effort stock reconciliation for a completed DC.

    Never raises for a single line: unmatched lines are skipped and failing
    lines are rolled back to their savepoint, both are logged and reported.
    """
    report = DeductionReport()
    log = current_app.logger

    for line in dc.product_lines:
        deliverable = line_deliverable(line)
        if deliverable <= 0:
            report.skipped.append(LineOutcome(
                line_id=line.id,
                product_name=line.display_name,
                deliverable=deliverable,
                reason="nothing to deliver",
            ))
            continue

        if not line.display_name:
            log.warning("DC %s line %s has no product name; stock not deducted", dc.id, line.id)
            report.skipped.append(LineOutcome(
                line_id=line.id,
                product_name=None,
                deliverable=deliverable,
                reason="line has no product name",
            ))
            continue

        try:
            with db.session.begin_nested():
                outcome = _deduct_line(dc, line, deliverable, actor_user_id)
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            log.warning("Stock deduction failed for DC %s line %s: %s", dc.id, line.id, exc)
            report.failed.append(LineOutcome(
                line_id=line.id,
                product_name=line.display_name,
                deliverable=deliverable,
                reason=str(exc.__class__.__name__),
            ))
            continue

        if outcome.warehouse_item_id is None:
            log.warning(
                "No warehouse item matches '%s' (category=%s, level=%s) for DC %s",
                line.display_name, line.category, line.level, dc.id,
            )
            report.skipped.append(outcome)
        else:
            log.info(
                "DC %s: %s stock %s -> %s (delivered %s)",
                dc.id, line.display_name, outcome.stock_before, outcome.stock_after, deliverable,
            )
            report.applied.append(outcome)

    return report


# =============================================================================
# Warehouse items and manual movements
# =============================================================================

def create_item(data: dict) -> WarehouseItem:
    item = WarehouseItem(
        product_name=require_text(data.get("product_name"), "product_name"),
        product_code=data.get("product_code") or None,
        category=data.get("category"),
        level=data.get("level"),
        specs=data.get("specs") or "Regular",
        item_type=data.get("item_type"),
        current_stock=coerce_int(data.get("current_stock", 0), "current_stock", minimum=0),
        min_stock=coerce_int(data.get("min_stock", 0), "min_stock", minimum=0),
        unit_price=coerce_int(data.get("unit_price", 0), "unit_price", minimum=0),
        unit=data.get("unit") or "pcs",
        location=data.get("location"),
        supplier=data.get("supplier"),
    )
    db.session.add(item)
    db.session.flush()
    return item


def get_item(item_id: int) -> WarehouseItem:
    item = db.session.get(WarehouseItem, item_id)
    if item is None:
        raise WarehouseItemNotFoundError(f"Warehouse item {item_id} not found")
    return item


def list_items(status: str | None = None, category: str | None = None) -> list[WarehouseItem]:
    q = db.session.query(WarehouseItem)
    if status:
        q = q.filter_by(status=status)
    if category:
        q = q.filter_by(category=category)
    return q.order_by(WarehouseItem.created_at.desc(), WarehouseItem.id.desc()).all()


def adjust_stock(
    item_id: int,
    quantity,
    movement_type: str,
    actor_user_id: int,
    *,
    reason: str | None = None,
    related_sale_id: int | None = None,
) -> WarehouseItem:
    """Apply one manual stock movement and record it in the ledger."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")

    minimum = 0 if movement_type == "Adjustment" else 1
    quantity = coerce_int(quantity, "quantity", minimum=minimum)

    item = lock_for_update(db.session.query(WarehouseItem).filter_by(id=item_id)).first()
    if item is None:
        raise WarehouseItemNotFoundError(f"Warehouse item {item_id} not found")

    if movement_type == "In":
        item.current_stock += quantity
        item.last_restocked = utcnow()
    elif movement_type == "Adjustment":
        item.current_stock = quantity
    else:
        item.current_stock = max(0, item.current_stock - quantity)

    db.session.add(StockMovement(
        warehouse_item_id=item.id,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        related_sale_id=related_sale_id,
        created_by_user_id=actor_user_id,
    ))
    db.session.flush()
    return item


def list_movements(item_id: int, limit: int = 200) -> list[StockMovement]:
    get_item(item_id)
    return (
        db.session.query(StockMovement)
        .filter_by(warehouse_item_id=item_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def stock_report() -> dict:
    low = db.session.query(WarehouseItem).filter_by(status="Low Stock").all()
    out = db.session.query(WarehouseItem).filter_by(status="Out of Stock").all()
    total_items = db.session.query(WarehouseItem).count()
    total_value = db.session.query(
        db.func.coalesce(db.func.sum(WarehouseItem.current_stock * WarehouseItem.unit_price), 0)
    ).scalar()

    return {
        "low_stock_items": [i.to_dict() for i in low],
        "out_of_stock_items": [i.to_dict() for i in out],
        "total_items": total_items,
        "total_value": int(total_value or 0),
    }
