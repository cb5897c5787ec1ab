# Overview: Service-layer operations for the delivery challan workflow; encapsulates business logic and database work.

"""
Delivery Challan (DC) Workflow Service

================================================================================
PURPOSE: Move a DC through its approval chain, one organisational role per step
================================================================================

STATE MACHINE:
    created --submit_po--> po_submitted --approve_po--> sent_to_manager
        --request_warehouse--> pending_dc --process_warehouse--> completed

    po_submitted --reject_po--> created
    pending_dc --start_processing--> warehouse_processing
    warehouse_processing --process_warehouse--> completed
    warehouse_processing --complete_delivery--> completed   (legacy path)
    pending_dc | warehouse_processing --hold--> hold

    completed and hold are terminal.

RULES:
1. TRANSITIONS is the only place legal moves are defined.
2. A rejected transition raises InvalidTransitionError naming the required and
   current status, before anything is mutated.
3. Every transition locks the DC row and writes through its version_id, so a
   concurrent transition on the same DC fails with StaleDataError; the retry
   re-reads the row and re-checks the guard.
4. PRIMARY vs SECONDARY: the DC's own transition is flushed first and is
   authoritative. Bookkeeping on the linked deal / sale and stock deduction
   run afterwards in savepoints; their failures are logged and returned as
   WorkflowResult.warnings instead of undoing the transition.

DEAL vs DC STATUS:
    DcOrder.status is the commercial view, DeliveryChallan.status the
    fulfilment stage. They are linked only through DEAL_STATUS_FOR_DC_EVENT.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import DeliveryChallan, DcProductLine, DcOrder, Sale, User
from ..validation import ValidationError, coerce_int, optional_int
from . import stock_service
from .concurrency import lock_for_update, run_with_retry
from edusales.time_utils import utcnow, parse_iso_datetime


class DcStatus:
    CREATED = "created"
    PO_SUBMITTED = "po_submitted"
    SENT_TO_MANAGER = "sent_to_manager"
    PENDING_DC = "pending_dc"
    WAREHOUSE_PROCESSING = "warehouse_processing"
    COMPLETED = "completed"
    HOLD = "hold"

    ALL = (
        CREATED,
        PO_SUBMITTED,
        SENT_TO_MANAGER,
        PENDING_DC,
        WAREHOUSE_PROCESSING,
        COMPLETED,
        HOLD,
    )
    TERMINAL = (COMPLETED, HOLD)


class DcAction:
    SUBMIT_PO = "submit_po"
    APPROVE_PO = "approve_po"
    REJECT_PO = "reject_po"
    REQUEST_WAREHOUSE = "request_warehouse"
    START_PROCESSING = "start_processing"
    PROCESS_WAREHOUSE = "process_warehouse"
    HOLD = "hold"
    SUBMIT_DELIVERY = "submit_delivery"
    COMPLETE_DELIVERY = "complete_delivery"


# (from_status, action) -> to_status
TRANSITIONS = {
    (DcStatus.CREATED, DcAction.SUBMIT_PO): DcStatus.PO_SUBMITTED,
    (DcStatus.PO_SUBMITTED, DcAction.APPROVE_PO): DcStatus.SENT_TO_MANAGER,
    (DcStatus.PO_SUBMITTED, DcAction.REJECT_PO): DcStatus.CREATED,
    (DcStatus.SENT_TO_MANAGER, DcAction.REQUEST_WAREHOUSE): DcStatus.PENDING_DC,
    (DcStatus.PENDING_DC, DcAction.START_PROCESSING): DcStatus.WAREHOUSE_PROCESSING,
    (DcStatus.PENDING_DC, DcAction.PROCESS_WAREHOUSE): DcStatus.COMPLETED,
    (DcStatus.WAREHOUSE_PROCESSING, DcAction.PROCESS_WAREHOUSE): DcStatus.COMPLETED,
    (DcStatus.PENDING_DC, DcAction.HOLD): DcStatus.HOLD,
    (DcStatus.WAREHOUSE_PROCESSING, DcAction.HOLD): DcStatus.HOLD,
    # Delivery proof is recorded without moving the DC
    (DcStatus.WAREHOUSE_PROCESSING, DcAction.SUBMIT_DELIVERY): DcStatus.WAREHOUSE_PROCESSING,
    (DcStatus.WAREHOUSE_PROCESSING, DcAction.COMPLETE_DELIVERY): DcStatus.COMPLETED,
}

# DC event -> deal (DcOrder) status, applied as a secondary effect
DEAL_STATUS_FOR_DC_EVENT = {
    DcAction.SUBMIT_PO: "dc_requested",
    DcAction.APPROVE_PO: "dc_approved",
    DcAction.REJECT_PO: "pending",
    DcAction.HOLD: "hold",
    DcAction.PROCESS_WAREHOUSE: "completed",
    DcAction.COMPLETE_DELIVERY: "completed",
}


class DcWorkflowError(Exception):
    """Base class for DC workflow domain errors."""
    pass


class DcNotFoundError(DcWorkflowError):
    pass


class DealNotFoundError(DcWorkflowError):
    pass


class SaleNotFoundError(DcWorkflowError):
    pass


class DcAuthorizationError(DcWorkflowError):
    """The caller is not allowed to act on this DC (e.g. not its employee)."""
    pass


class ConcurrentTransitionError(DcWorkflowError):
    """Another request kept winning the compare-and-swap on this DC."""
    pass


class InvalidTransitionError(DcWorkflowError):
    """
    Raised when the DC is not in a status the requested action accepts.

    Carries current_status and required_status so callers can report both.
    """

    def __init__(self, message: str, *, current_status: str, required_status: list[str]):
        super().__init__(message)
        self.current_status = current_status
        self.required_status = required_status


@dataclass
class WorkflowResult:
    dc: DeliveryChallan
    warnings: list[str] = field(default_factory=list)
    deduction: stock_service.DeductionReport | None = None


def required_statuses(action: str) -> list[str]:
    return [src for (src, act) in TRANSITIONS if act == action]


def next_status(current: str, action: str) -> str:
    """
    Look up the target status for `action` taken from `current`.

    Raises:
        InvalidTransitionError: If the table has no such move
    """
    target = TRANSITIONS.get((current, action))
    if target is None:
        required = required_statuses(action)
        quoted = " or ".join(f"'{s}'" for s in required)
        raise InvalidTransitionError(
            f"DC must be in {quoted} status. Current status: {current}",
            current_status=current,
            required_status=required,
        )
    return target


# =============================================================================
# Origins: a DC is raised from exactly one deal or one sale
# =============================================================================

@dataclass(frozen=True)
class DealOrigin:
    order: DcOrder

    def link(self) -> dict:
        return {"dc_order_id": self.order.id}

    def existing_dc(self) -> DeliveryChallan | None:
        q = db.session.query(DeliveryChallan).filter_by(dc_order_id=self.order.id)
        return lock_for_update(q.order_by(DeliveryChallan.id)).first()

    def proposed_employee_id(self) -> int | None:
        return self.order.assigned_to_user_id

    def proof_url(self) -> str | None:
        return self.order.pod_proof_url

    def snapshot(self, default_product: str) -> dict:
        order = self.order
        products = order.products or []
        product = default_product
        quantity = 1
        if products:
            product = products[0].get("product_name") or default_product
            quantity = sum((p.get("quantity") or 1) for p in products)
        return {
            "customer_name": order.school_name,
            "customer_email": order.email,
            "customer_address": order.address or order.location or "N/A",
            "customer_phone": order.contact_mobile or order.contact_person or "N/A",
            "product": product,
            "requested_quantity": quantity,
        }

    def default_lines(self) -> list[DcProductLine]:
        lines = []
        for position, p in enumerate(self.order.products or []):
            quantity = p.get("quantity") or 1
            price = int(p.get("unit_price") or 0)
            lines.append(DcProductLine(
                position=position,
                product=p.get("product_name"),
                product_name=p.get("product_name"),
                quantity=quantity,
                price=price,
                total=price * quantity,
            ))
        return lines

    def claim(self, employee_id: int) -> None:
        if self.order.assigned_to_user_id is None:
            self.order.assigned_to_user_id = employee_id


@dataclass(frozen=True)
class SaleOrigin:
    sale: Sale

    def link(self) -> dict:
        return {"sale_id": self.sale.id}

    def existing_dc(self) -> DeliveryChallan | None:
        q = db.session.query(DeliveryChallan).filter_by(sale_id=self.sale.id)
        return lock_for_update(q.order_by(DeliveryChallan.id)).first()

    def proposed_employee_id(self) -> int | None:
        return self.sale.assigned_to_user_id

    def proof_url(self) -> str | None:
        return self.sale.po_document

    def snapshot(self, default_product: str) -> dict:
        sale = self.sale
        return {
            "customer_name": sale.customer_name,
            "customer_email": sale.customer_email,
            "customer_address": "N/A",
            "customer_phone": sale.customer_phone,
            "product": sale.product or default_product,
            "requested_quantity": sale.quantity,
        }

    def default_lines(self) -> list[DcProductLine]:
        return [DcProductLine(
            position=0,
            product=self.sale.product,
            product_name=self.sale.product,
            quantity=self.sale.quantity,
            price=self.sale.unit_price,
            total=self.sale.total_amount,
        )]

    def claim(self, employee_id: int) -> None:
        pass


DcOrigin = Union[DealOrigin, SaleOrigin]


def resolve_origin(*, dc_order_id: int | None = None, sale_id: int | None = None) -> DcOrigin:
    if (dc_order_id is None) == (sale_id is None):
        raise ValidationError("Exactly one of dc_order_id or sale_id is required")

    if dc_order_id is not None:
        order = db.session.get(DcOrder, dc_order_id)
        if order is None:
            raise DealNotFoundError(f"Deal {dc_order_id} not found")
        return DealOrigin(order)

    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found")
    return SaleOrigin(sale)


def _resolve_employee_id(
    explicit_id: int | None,
    origin: DcOrigin,
    actor: User,
    allow_actor_fallback: bool,
) -> int:
    """explicit param -> origin's assignee -> caller (only when allowed)."""
    if explicit_id is not None:
        employee = db.session.get(User, explicit_id)
        if employee is None or not employee.is_active:
            raise ValidationError(f"Employee {explicit_id} not found or inactive")
        return employee.id

    proposed = origin.proposed_employee_id()
    if proposed is not None:
        return proposed

    if allow_actor_fallback:
        return actor.id

    raise ValidationError(
        "Deal must be assigned to an employee before raising DC. "
        "Assign an employee first or specify one in the request."
    )


def parse_product_details(product_details) -> list[DcProductLine]:
    if not isinstance(product_details, list):
        raise ValidationError("product_details must be a list")

    lines = []
    for position, raw in enumerate(product_details):
        if not isinstance(raw, dict):
            raise ValidationError("Each product_details entry must be an object")
        field_prefix = f"product_details[{position}]"
        lines.append(DcProductLine(
            position=position,
            product=raw.get("product"),
            product_name=raw.get("product_name") or raw.get("product"),
            category=raw.get("category"),
            class_name=None if raw.get("class") is None else str(raw.get("class")),
            level=raw.get("level") or "L2",
            quantity=coerce_int(raw.get("quantity", 0), f"{field_prefix}.quantity", minimum=0),
            strength=coerce_int(raw.get("strength", 0), f"{field_prefix}.strength", minimum=0),
            price=coerce_int(raw.get("price", 0), f"{field_prefix}.price", minimum=0),
            total=coerce_int(raw.get("total", 0), f"{field_prefix}.total", minimum=0),
            available_quantity=optional_int(raw.get("available_quantity"), f"{field_prefix}.available_quantity", minimum=0),
            deliverable_quantity=optional_int(raw.get("deliverable_quantity"), f"{field_prefix}.deliverable_quantity", minimum=0),
            remaining_quantity=optional_int(raw.get("remaining_quantity"), f"{field_prefix}.remaining_quantity"),
        ))
    return lines


# =============================================================================
# Internal helpers
# =============================================================================

def _run(op):
    try:
        if db.session().in_nested_transaction():
            # A retry rolls back the whole session, including the caller's
            # work outside this savepoint. Run once; the caller handles failure.
            return op()
        return run_with_retry(op)
    except StaleDataError as exc:
        raise ConcurrentTransitionError(
            "DC was modified by another request; reload and try again"
        ) from exc


def _load_for_update(dc_id: int) -> DeliveryChallan:
    dc = lock_for_update(db.session.query(DeliveryChallan).filter_by(id=dc_id)).first()
    if dc is None:
        raise DcNotFoundError(f"DC {dc_id} not found")
    return dc


def _secondary_effect(warnings: list[str], description: str, effect) -> None:
    """Run `effect` in a savepoint; failure becomes a warning, not an error."""
    try:
        with db.session.begin_nested():
            effect()
    except (SQLAlchemyError, LookupError) as exc:
        current_app.logger.warning("%s failed: %s", description, exc)
        warnings.append(f"{description} failed: {exc}")


def _sync_deal_status(dc: DeliveryChallan, action: str, warnings: list[str], **extra) -> None:
    target = DEAL_STATUS_FOR_DC_EVENT.get(action)
    if target is None or dc.dc_order_id is None:
        return

    def _effect():
        order = db.session.get(DcOrder, dc.dc_order_id)
        if order is None:
            raise LookupError(f"deal {dc.dc_order_id} no longer exists")
        order.status = target
        for key, value in extra.items():
            setattr(order, key, value)
        db.session.flush()

    _secondary_effect(warnings, f"Updating deal {dc.dc_order_id} to '{target}'", _effect)


def _complete_linked_sale(dc: DeliveryChallan, warnings: list[str]) -> None:
    if dc.sale_id is None:
        return

    def _effect():
        sale = db.session.get(Sale, dc.sale_id)
        if sale is None:
            raise LookupError(f"sale {dc.sale_id} no longer exists")
        if sale.status != "Completed":
            sale.status = "Completed"
            db.session.flush()

    _secondary_effect(warnings, f"Completing sale {dc.sale_id}", _effect)


# =============================================================================
# Creation
# =============================================================================

def create_dc(
    actor: User,
    *,
    dc_order_id: int | None = None,
    sale_id: int | None = None,
    employee_id: int | None = None,
    product_details=None,
    requested_quantity=None,
    dc_date: str | None = None,
    dc_remarks: str | None = None,
    dc_notes: str | None = None,
    dc_category: str | None = None,
    allow_actor_fallback: bool = False,
) -> WorkflowResult:
    """
    Raise a DC from a deal or a sale (status: created).

    If the origin already has a DC it is updated in place; no duplicate is
    ever created. An existing proof-of-order artifact is kept, or copied
    from the origin when the DC has none.

    Raises:
        ValidationError: Both/neither origin given, bad input, no employee
        DealNotFoundError / SaleNotFoundError: Origin id does not resolve
        InvalidTransitionError: Replacing product lines of a finished DC
    """
    employee_id = optional_int(employee_id, "employee_id", minimum=1)
    requested = optional_int(requested_quantity, "requested_quantity", minimum=0)
    new_lines = parse_product_details(product_details) if product_details is not None else None
    parsed_dc_date = parse_iso_datetime(dc_date) if dc_date else None

    def _op():
        origin = resolve_origin(dc_order_id=dc_order_id, sale_id=sale_id)
        dc = origin.existing_dc()

        if dc is None:
            owner_id = _resolve_employee_id(employee_id, origin, actor, allow_actor_fallback)
            dc = DeliveryChallan(
                **origin.link(),
                **origin.snapshot(current_app.config.get("DEFAULT_DC_PRODUCT", "Abacus")),
                employee_id=owner_id,
                created_by_user_id=actor.id,
                status=DcStatus.CREATED,
                deliverable_quantity=0,
            )
            dc.product_lines = new_lines if new_lines is not None else origin.default_lines()
            db.session.add(dc)
            origin.claim(owner_id)
            current_app.logger.info("DC raised for %s by user %s", origin.link(), actor.id)
        elif new_lines is not None:
            if dc.status in DcStatus.TERMINAL:
                raise InvalidTransitionError(
                    f"Cannot change product lines of a DC in '{dc.status}' status",
                    current_status=dc.status,
                    required_status=[s for s in DcStatus.ALL if s not in DcStatus.TERMINAL],
                )
            dc.product_lines = new_lines

        if not dc.po_photo_url and origin.proof_url():
            dc.po_photo_url = origin.proof_url()
            dc.po_document = origin.proof_url()

        if requested:
            dc.requested_quantity = requested
        if parsed_dc_date:
            dc.dc_date = parsed_dc_date
            dc.delivery_date = parsed_dc_date
        if dc_remarks:
            dc.dc_remarks = dc_remarks
            dc.delivery_notes = dc_remarks
        if dc_notes:
            dc.dc_notes = dc_notes
            dc.delivery_notes = f"{dc.delivery_notes}\n{dc_notes}" if dc.delivery_notes else dc_notes
        if dc_category:
            dc.dc_category = dc_category

        db.session.flush()
        return WorkflowResult(dc=dc)

    return _run(_op)


# =============================================================================
# Transitions
# =============================================================================

def submit_purchase_order(dc_id: int, proof_url: str, actor: User, *, remarks: str | None = None) -> WorkflowResult:
    """
    Employee uploads the customer's PO (created -> po_submitted).

    Only the DC's own employee may submit.
    """
    if not proof_url or not str(proof_url).strip():
        raise ValidationError("PO photo URL is required")
    proof_url = str(proof_url).strip()

    def _op():
        dc = _load_for_update(dc_id)
        target = next_status(dc.status, DcAction.SUBMIT_PO)
        if dc.employee_id != actor.id:
            raise DcAuthorizationError("You are not authorized to submit PO for this DC")

        now = utcnow()
        dc.po_photo_url = proof_url
        dc.po_document = proof_url
        dc.status = target
        dc.po_submitted_at = now
        dc.po_submitted_by_user_id = actor.id
        if remarks:
            dc.delivery_notes = remarks
        db.session.flush()

        result = WorkflowResult(dc=dc)

        if dc.sale_id is not None:
            def _mirror_on_sale():
                sale = db.session.get(Sale, dc.sale_id)
                if sale is None:
                    raise LookupError(f"sale {dc.sale_id} no longer exists")
                sale.po_document = proof_url
                sale.po_submitted_at = now
                sale.po_submitted_by_user_id = actor.id
                db.session.flush()

            _secondary_effect(result.warnings, f"Recording PO on sale {dc.sale_id}", _mirror_on_sale)

        _sync_deal_status(dc, DcAction.SUBMIT_PO, result.warnings, pod_proof_url=proof_url)
        return result

    return _run(_op)


def review_purchase_order(dc_id: int, action: str, actor: User, *, remarks: str | None = None) -> WorkflowResult:
    """
    Admin approves (po_submitted -> sent_to_manager) or rejects
    (po_submitted -> created, proof discarded) a submitted PO.
    """
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be 'approve' or 'reject'")
    workflow_action = DcAction.APPROVE_PO if action == "approve" else DcAction.REJECT_PO

    def _op():
        dc = _load_for_update(dc_id)
        target = next_status(dc.status, workflow_action)

        now = utcnow()
        dc.status = target
        dc.admin_reviewed_at = now
        dc.admin_reviewed_by_user_id = actor.id

        if workflow_action == DcAction.REJECT_PO:
            dc.po_photo_url = None
            dc.po_document = None
            dc.po_submitted_at = None
            dc.po_submitted_by_user_id = None
            if remarks:
                dc.hold_reason = f"Rejected by Admin: {remarks}"
        else:
            dc.admin_id = actor.id
            dc.sent_to_manager_at = now
            if remarks:
                dc.delivery_notes = remarks
        db.session.flush()

        result = WorkflowResult(dc=dc)
        if workflow_action == DcAction.REJECT_PO:
            _sync_deal_status(dc, workflow_action, result.warnings, pod_proof_url=None)
        else:
            _sync_deal_status(dc, workflow_action, result.warnings)
        return result

    return _run(_op)


def request_from_warehouse(dc_id: int, requested_quantity, actor: User, *, remarks: str | None = None) -> WorkflowResult:
    """Manager asks the warehouse for stock (sent_to_manager -> pending_dc)."""
    if requested_quantity is None or requested_quantity == "":
        raise ValidationError("Valid requested quantity is required")
    requested = coerce_int(requested_quantity, "requested_quantity", minimum=1)

    def _op():
        dc = _load_for_update(dc_id)
        target = next_status(dc.status, DcAction.REQUEST_WAREHOUSE)

        dc.requested_quantity = requested
        dc.status = target
        dc.manager_id = actor.id
        dc.manager_requested_at = utcnow()
        dc.manager_requested_by_user_id = actor.id
        if remarks:
            dc.delivery_notes = remarks
        db.session.flush()
        return WorkflowResult(dc=dc)

    return _run(_op)


def start_warehouse_processing(dc_id: int, actor: User) -> WorkflowResult:
    """Warehouse accepts a pending request (pending_dc -> warehouse_processing)."""
    def _op():
        dc = _load_for_update(dc_id)
        dc.status = next_status(dc.status, DcAction.START_PROCESSING)
        dc.warehouse_id = actor.id
        db.session.flush()
        return WorkflowResult(dc=dc)

    return _run(_op)


def _parse_line_quantities(line_quantities) -> dict[int, dict]:
    if line_quantities is None:
        return {}
    if not isinstance(line_quantities, list):
        raise ValidationError("line_quantities must be a list")

    parsed = {}
    for index, raw in enumerate(line_quantities):
        if not isinstance(raw, dict):
            raise ValidationError("Each line_quantities entry must be an object")
        prefix = f"line_quantities[{index}]"
        line_id = coerce_int(raw.get("line_id"), f"{prefix}.line_id", minimum=1)
        parsed[line_id] = {
            "available_quantity": optional_int(raw.get("available_quantity"), f"{prefix}.available_quantity", minimum=0),
            "deliverable_quantity": optional_int(raw.get("deliverable_quantity"), f"{prefix}.deliverable_quantity", minimum=0),
            "remaining_quantity": optional_int(raw.get("remaining_quantity"), f"{prefix}.remaining_quantity"),
        }
    return parsed


def process_in_warehouse(
    dc_id: int,
    available_quantity,
    deliverable_quantity,
    actor: User,
    *,
    line_quantities=None,
    remarks: str | None = None,
) -> WorkflowResult:
    """
    Warehouse fulfils the DC (pending_dc | warehouse_processing -> completed).

    Stores DC-level and per-line quantities, stamps listed_at when more is
    available than will be delivered, then deducts stock exactly once.
    Stock, deal and sale updates are secondary: they never block completion.
    """
    available = optional_int(available_quantity, "available_quantity", minimum=0)
    deliverable = optional_int(deliverable_quantity, "deliverable_quantity", minimum=0)
    per_line = _parse_line_quantities(line_quantities)

    def _op():
        dc = _load_for_update(dc_id)
        target = next_status(dc.status, DcAction.PROCESS_WAREHOUSE)

        lines_by_id = {line.id: line for line in dc.product_lines}
        unknown = sorted(set(per_line) - set(lines_by_id))
        if unknown:
            raise ValidationError(f"Product lines {unknown} do not belong to DC {dc_id}")

        now = utcnow()
        if available is not None:
            dc.available_quantity = available
        if deliverable is not None:
            dc.deliverable_quantity = deliverable
        for line_id, quantities in per_line.items():
            line = lines_by_id[line_id]
            for key, value in quantities.items():
                if value is not None:
                    setattr(line, key, value)

        dc.status = target
        dc.warehouse_id = actor.id
        dc.warehouse_processed_at = now
        dc.warehouse_processed_by_user_id = actor.id
        dc.completed_at = now
        dc.completed_by_user_id = actor.id
        if dc.available_quantity > dc.deliverable_quantity:
            dc.listed_at = now
        if remarks:
            dc.delivery_notes = remarks
        db.session.flush()

        report = stock_service.deduct_for_dc(dc, actor.id)
        result = WorkflowResult(dc=dc, deduction=report)
        result.warnings.extend(report.warnings())

        _sync_deal_status(dc, DcAction.PROCESS_WAREHOUSE, result.warnings)
        _complete_linked_sale(dc, result.warnings)
        return result

    return _run(_op)


def put_on_hold(dc_id: int, reason: str | None, actor: User) -> WorkflowResult:
    """Stop an in-flight DC (pending_dc | warehouse_processing -> hold)."""
    def _op():
        dc = _load_for_update(dc_id)
        dc.status = next_status(dc.status, DcAction.HOLD)
        dc.hold_reason = reason.strip() if reason and reason.strip() else "No reason provided"
        dc.held_at = utcnow()
        dc.held_by_user_id = actor.id
        db.session.flush()

        result = WorkflowResult(dc=dc)
        _sync_deal_status(dc, DcAction.HOLD, result.warnings)
        return result

    return _run(_op)


def submit_delivery(
    dc_id: int,
    actor: User,
    *,
    delivery_notes: str | None = None,
    delivery_proof: str | None = None,
    delivered_at: str | None = None,
) -> WorkflowResult:
    """Record proof of delivery on a DC in warehouse_processing (status unchanged)."""
    parsed_delivered_at = parse_iso_datetime(delivered_at) if delivered_at else None

    def _op():
        dc = _load_for_update(dc_id)
        dc.status = next_status(dc.status, DcAction.SUBMIT_DELIVERY)

        now = utcnow()
        if delivery_notes is not None:
            dc.delivery_notes = delivery_notes
        if delivery_proof is not None:
            dc.delivery_proof = delivery_proof
        dc.delivered_at = parsed_delivered_at or now
        dc.delivery_submitted_at = now
        dc.delivery_submitted_by_user_id = actor.id
        db.session.flush()
        return WorkflowResult(dc=dc)

    return _run(_op)


def complete_delivery(dc_id: int, actor: User) -> WorkflowResult:
    """
    Legacy completion after a submitted delivery
    (warehouse_processing -> completed). Cascades the linked sale to Completed.
    """
    def _op():
        dc = _load_for_update(dc_id)
        target = next_status(dc.status, DcAction.COMPLETE_DELIVERY)
        if dc.delivery_submitted_at is None:
            raise InvalidTransitionError(
                "DC must be delivered and submitted by employee before completion",
                current_status=dc.status,
                required_status=required_statuses(DcAction.COMPLETE_DELIVERY),
            )

        dc.status = target
        dc.completed_at = utcnow()
        dc.completed_by_user_id = actor.id
        db.session.flush()

        result = WorkflowResult(dc=dc)
        _complete_linked_sale(dc, result.warnings)
        _sync_deal_status(dc, DcAction.COMPLETE_DELIVERY, result.warnings)
        return result

    return _run(_op)


# =============================================================================
# Queue reads
# =============================================================================

def get_dc(dc_id: int) -> DeliveryChallan:
    dc = db.session.get(DeliveryChallan, dc_id)
    if dc is None:
        raise DcNotFoundError(f"DC {dc_id} not found")
    return dc


def list_dcs(
    *,
    status: str | None = None,
    employee_id: int | None = None,
    limit: int = 50,
) -> list[DeliveryChallan]:
    if status is not None and status not in DcStatus.ALL:
        raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(DcStatus.ALL)}")

    q = db.session.query(DeliveryChallan)
    if status:
        q = q.filter_by(status=status)
    if employee_id:
        q = q.filter_by(employee_id=employee_id)

    q = q.order_by(DeliveryChallan.created_at.desc(), DeliveryChallan.id.desc())
    return q.limit(limit).all()


def employee_stats(employee_id: int | None = None) -> dict:
    q = db.session.query(DeliveryChallan.status, db.func.count(DeliveryChallan.id))
    if employee_id:
        q = q.filter(DeliveryChallan.employee_id == employee_id)
    rows = q.group_by(DeliveryChallan.status).all()

    by_status = {status: 0 for status in DcStatus.ALL}
    for status, count in rows:
        by_status[status] = count
    return {"total": sum(by_status.values()), "by_status": by_status}
