# Overview: Service-layer operations for deals (DcOrder); encapsulates business logic and database work.

"""
Deal (DcOrder) service.

HISTORY:
    Every update that carries follow_up_date, remarks or priority appends
    exactly one DcOrderHistory row with the NEW values. Rows are never edited.
    A deal with no rows still reports one synthesized entry built from the
    deal itself, so the timeline is never empty.

DC COUPLING:
    Creating a deal that is already assigned raises its DC right away.
    That DC is a secondary effect: if it cannot be raised the deal is still
    created and the failure is reported as a warning.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DcOrder, DcOrderHistory, DeliveryChallan, User
from ..models.orders import DEAL_PRIORITIES, DEAL_STATUSES, HISTORY_PRIORITIES
from ..validation import ValidationError, ConflictError, coerce_int, optional_int, require_text
from . import dc_workflow_service
from .concurrency import lock_for_update
from .dc_workflow_service import DealNotFoundError, DcWorkflowError
from edusales.time_utils import utcnow, parse_iso_datetime, to_utc_z


HISTORY_FIELDS = ("follow_up_date", "remarks", "priority")

# Plain attribute copies; everything else is validated explicitly
_TEXT_FIELDS = ("school_name", "school_type", "contact_person", "contact_mobile", "email", "address", "zone", "location")


@dataclass
class DcOrderResult:
    order: DcOrder
    dc: DeliveryChallan | None = None
    warnings: list[str] = field(default_factory=list)


def _parse_products(products) -> tuple[list[dict], int]:
    if products is None:
        return [], 0
    if not isinstance(products, list):
        raise ValidationError("products must be a list")

    parsed = []
    total = 0
    for index, raw in enumerate(products):
        if not isinstance(raw, dict):
            raise ValidationError("Each product must be an object")
        quantity = coerce_int(raw.get("quantity", 1), f"products[{index}].quantity", minimum=1)
        unit_price = coerce_int(raw.get("unit_price", 0), f"products[{index}].unit_price", minimum=0)
        parsed.append({
            "product_name": require_text(raw.get("product_name"), f"products[{index}].product_name"),
            "quantity": quantity,
            "unit_price": unit_price,
        })
        total += quantity * unit_price
    return parsed, total


def _validate_priority(value, allowed) -> str:
    if value not in allowed:
        raise ValidationError(f"priority must be one of: {', '.join(allowed)}")
    return value


def _resolve_assignee(value) -> int | None:
    user_id = optional_int(value, "assigned_to", minimum=1)
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationError(f"Employee {user_id} not found or inactive")
    return user.id


def _append_history(order: DcOrder, changes: dict, actor: User | None) -> DcOrderHistory:
    entry = DcOrderHistory(
        dc_order_id=order.id,
        follow_up_date=order.follow_up_date if "follow_up_date" in changes else None,
        remarks=changes.get("remarks") or "",
        priority=changes.get("priority") or "Cold",
        updated_by_user_id=actor.id if actor else None,
        updated_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def get_order(order_id: int) -> DcOrder:
    order = db.session.get(DcOrder, order_id)
    if order is None:
        raise DealNotFoundError(f"Deal {order_id} not found")
    return order


def _load_for_update(order_id: int) -> DcOrder:
    order = lock_for_update(db.session.query(DcOrder).filter_by(id=order_id)).first()
    if order is None:
        raise DealNotFoundError(f"Deal {order_id} not found")
    return order


def list_orders(*, status: str | None = None, assigned_to: int | None = None, limit: int = 100) -> list[DcOrder]:
    q = db.session.query(DcOrder)
    if status:
        q = q.filter_by(status=status)
    if assigned_to:
        q = q.filter_by(assigned_to_user_id=assigned_to)
    return q.order_by(DcOrder.created_at.desc(), DcOrder.id.desc()).limit(limit).all()


def create_dc_order(data: dict, actor: User) -> DcOrderResult:
    """
    Create a deal; raise its DC when it is created already assigned.

    Raises:
        ValidationError: Missing school name, bad products/priority/assignee
    """
    school_name = require_text(data.get("school_name"), "school_name")
    products, computed_total = _parse_products(data.get("products"))
    total_amount = optional_int(data.get("total_amount"), "total_amount", minimum=0)
    priority = _validate_priority(data.get("priority") or "Cold", DEAL_PRIORITIES)
    follow_up_date = parse_iso_datetime(data["follow_up_date"]) if data.get("follow_up_date") else None
    assigned_to = _resolve_assignee(data.get("assigned_to"))

    order = DcOrder(
        school_name=school_name,
        products=products,
        total_amount=total_amount if total_amount is not None else computed_total,
        priority=priority,
        status="saved" if data.get("save_only") else "pending",
        follow_up_date=follow_up_date,
        remarks=data.get("remarks"),
        created_by_user_id=actor.id,
        assigned_to_user_id=assigned_to,
    )
    for name in _TEXT_FIELDS:
        if name != "school_name" and data.get(name) is not None:
            setattr(order, name, data[name])
    db.session.add(order)
    db.session.flush()

    if any(data.get(name) for name in HISTORY_FIELDS):
        _append_history(order, {name: data.get(name) for name in HISTORY_FIELDS if data.get(name)}, actor)
        db.session.flush()

    result = DcOrderResult(order=order)
    if assigned_to is None:
        return result

    try:
        with db.session.begin_nested():
            result.dc = dc_workflow_service.create_dc(actor, dc_order_id=order.id).dc
    except (DcWorkflowError, ValidationError, SQLAlchemyError) as exc:
        current_app.logger.warning("Deal %s created but its DC could not be raised: %s", order.id, exc)
        result.warnings.append(f"DC not raised: {exc}")

    return result


def update_dc_order(order_id: int, changes: dict, actor: User) -> DcOrder:
    """
    Apply field updates to a deal.

    When any of follow_up_date, remarks or priority is present in `changes`
    exactly one history row is appended, even if the values are unchanged.
    """
    if "priority" in changes and changes["priority"] is not None:
        _validate_priority(changes["priority"], HISTORY_PRIORITIES)
    if "status" in changes and changes["status"] not in DEAL_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(DEAL_STATUSES)}")
    if "school_name" in changes:
        require_text(changes["school_name"], "school_name")
    follow_up_date = None
    if changes.get("follow_up_date"):
        follow_up_date = parse_iso_datetime(changes["follow_up_date"])
    assigned_to = _resolve_assignee(changes["assigned_to"]) if "assigned_to" in changes else None

    order = _load_for_update(order_id)

    for name in _TEXT_FIELDS:
        if name in changes:
            setattr(order, name, changes[name])
    if "status" in changes:
        order.status = changes["status"]
    if "assigned_to" in changes:
        order.assigned_to_user_id = assigned_to
    if "follow_up_date" in changes:
        order.follow_up_date = follow_up_date
    if "remarks" in changes:
        order.remarks = changes["remarks"]
    if changes.get("priority"):
        order.priority = changes["priority"]

    if any(name in changes for name in HISTORY_FIELDS):
        _append_history(order, changes, actor)

    db.session.flush()
    return order


def get_history(order_id: int) -> list[dict]:
    """Newest first; never empty."""
    order = get_order(order_id)

    rows = (
        db.session.query(DcOrderHistory)
        .filter_by(dc_order_id=order.id)
        .order_by(DcOrderHistory.updated_at.desc(), DcOrderHistory.id.desc())
        .all()
    )

    if not rows:
        return [{
            "id": None,
            "follow_up_date": to_utc_z(order.follow_up_date) if order.follow_up_date else None,
            "remarks": order.remarks or "Lead created",
            "priority": order.priority or "Cold",
            "updated_by": None,
            "updated_by_name": "System",
            "updated_at": to_utc_z(order.created_at) if order.created_at else None,
        }]

    entries = []
    for row in rows:
        entry = row.to_dict()
        entry["updated_by_name"] = row.updated_by.name if row.updated_by else "System"
        entries.append(entry)
    return entries


# =============================================================================
# Deal status operations
# =============================================================================

def _ensure_open(order: DcOrder, action: str) -> None:
    if order.status == "completed":
        raise ConflictError(f"Cannot {action} deal {order.id}: current status is 'completed'")


def submit_order(order_id: int, actor: User) -> DcOrder:
    order = _load_for_update(order_id)
    _ensure_open(order, "submit")
    order.status = "pending"
    db.session.flush()
    return order


def mark_in_transit(order_id: int, actor: User) -> DcOrder:
    order = _load_for_update(order_id)
    _ensure_open(order, "mark in transit")
    order.status = "in_transit"
    db.session.flush()
    return order


def complete_order(
    order_id: int,
    actor: User,
    *,
    pod_proof_url: str | None = None,
    actual_delivery_date: str | None = None,
) -> DcOrder:
    delivered = parse_iso_datetime(actual_delivery_date) if actual_delivery_date else utcnow()

    order = _load_for_update(order_id)
    _ensure_open(order, "complete")
    order.status = "completed"
    order.actual_delivery_date = delivered
    order.completed_by_user_id = actor.id
    if pod_proof_url:
        order.pod_proof_url = pod_proof_url
    db.session.flush()
    return order


def hold_order(order_id: int, actor: User, *, remarks: str | None = None) -> DcOrder:
    order = _load_for_update(order_id)
    _ensure_open(order, "hold")
    order.status = "hold"
    if remarks:
        order.remarks = remarks
    db.session.flush()
    return order
