from __future__ import annotations

from ..extensions import db
from edusales.time_utils import to_utc_z


def _iso(dt):
    return to_utc_z(dt) if dt else None


def _who(user):
    return user.to_summary() if user is not None else None


class DeliveryChallan(db.Model):
    """
    Delivery Challan (DC): fulfilment record for a closed deal or sale.

    LIFECYCLE (owned by services/dc_workflow_service.py):
        created -> po_submitted -> sent_to_manager -> pending_dc
                -> [warehouse_processing] -> completed
        po_submitted -> created        (admin rejects the PO)
        pending_dc | warehouse_processing -> hold

    The status column is only written by the workflow service. The
    version_id column turns every UPDATE into a compare-and-swap, so two
    requests racing on the same DC cannot both apply a transition.

    Each step stamps its own timestamp and actor column; together these
    fields are the DC's audit trail.
    """
    __tablename__ = "delivery_challans"
    __table_args__ = (
        db.CheckConstraint("deliverable_quantity >= 0", name="ck_dc_deliverable_non_negative"),
        db.CheckConstraint(
            "sale_id IS NOT NULL OR dc_order_id IS NOT NULL",
            name="ck_dc_has_origin",
        ),
        db.Index("ix_dc_status_employee", "status", "employee_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Origin (at least one is always set)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    dc_order_id = db.Column(db.Integer, db.ForeignKey("dc_orders.id"), nullable=True, index=True)

    # Actors, populated as each step is executed
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Customer / product snapshot taken from the origin at creation
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=False, default="N/A")
    customer_phone = db.Column(db.String(64), nullable=False)
    product = db.Column(db.String(255), nullable=False)

    requested_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    deliverable_quantity = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default="created", index=True)

    # Artifacts
    po_photo_url = db.Column(db.String(1024), nullable=True)
    po_document = db.Column(db.String(1024), nullable=True)  # legacy mirror of po_photo_url
    delivery_proof = db.Column(db.String(1024), nullable=True)
    delivery_notes = db.Column(db.Text, nullable=True)
    hold_reason = db.Column(db.Text, nullable=True)

    # DC form fields
    dc_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    dc_remarks = db.Column(db.Text, nullable=True)
    dc_category = db.Column(db.String(64), nullable=True)
    dc_notes = db.Column(db.Text, nullable=True)

    # Step timestamps
    po_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_to_manager_at = db.Column(db.DateTime(timezone=True), nullable=True)
    manager_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    warehouse_processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    listed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Step actors
    po_submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    admin_reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    manager_requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    warehouse_processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    delivery_submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    held_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sale = db.relationship("Sale", backref=db.backref("delivery_challans", lazy=True))
    dc_order = db.relationship("DcOrder", backref=db.backref("delivery_challans", lazy=True))
    employee = db.relationship("User", foreign_keys=[employee_id])
    admin = db.relationship("User", foreign_keys=[admin_id])
    manager = db.relationship("User", foreign_keys=[manager_id])
    warehouse_operator = db.relationship("User", foreign_keys=[warehouse_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    po_submitted_by = db.relationship("User", foreign_keys=[po_submitted_by_user_id])
    admin_reviewed_by = db.relationship("User", foreign_keys=[admin_reviewed_by_user_id])
    manager_requested_by = db.relationship("User", foreign_keys=[manager_requested_by_user_id])
    warehouse_processed_by = db.relationship("User", foreign_keys=[warehouse_processed_by_user_id])
    delivery_submitted_by = db.relationship("User", foreign_keys=[delivery_submitted_by_user_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_user_id])
    held_by = db.relationship("User", foreign_keys=[held_by_user_id])

    product_lines = db.relationship(
        "DcProductLine",
        backref="dc",
        lazy=True,
        order_by="DcProductLine.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DeliveryChallan id={self.id} status={self.status!r} employee_id={self.employee_id}>"

    def to_dict(self) -> dict:
        """DC with its origin and actor identities joined for display."""
        return {
            "id": self.id,
            "status": self.status,
            "sale_id": self.sale_id,
            "dc_order_id": self.dc_order_id,
            "sale": self.sale.to_summary() if self.sale else None,
            "dc_order": self.dc_order.to_summary() if self.dc_order else None,
            "employee": _who(self.employee),
            "admin": _who(self.admin),
            "manager": _who(self.manager),
            "warehouse": _who(self.warehouse_operator),
            "created_by": _who(self.created_by),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_address": self.customer_address,
            "customer_phone": self.customer_phone,
            "product": self.product,
            "requested_quantity": self.requested_quantity,
            "available_quantity": self.available_quantity,
            "deliverable_quantity": self.deliverable_quantity,
            "product_details": [line.to_dict() for line in self.product_lines],
            "po_photo_url": self.po_photo_url,
            "po_document": self.po_document,
            "delivery_proof": self.delivery_proof,
            "delivery_notes": self.delivery_notes,
            "hold_reason": self.hold_reason,
            "dc_date": _iso(self.dc_date),
            "delivery_date": _iso(self.delivery_date),
            "dc_remarks": self.dc_remarks,
            "dc_category": self.dc_category,
            "dc_notes": self.dc_notes,
            "po_submitted_at": _iso(self.po_submitted_at),
            "po_submitted_by": _who(self.po_submitted_by),
            "admin_reviewed_at": _iso(self.admin_reviewed_at),
            "admin_reviewed_by": _who(self.admin_reviewed_by),
            "sent_to_manager_at": _iso(self.sent_to_manager_at),
            "manager_requested_at": _iso(self.manager_requested_at),
            "manager_requested_by": _who(self.manager_requested_by),
            "warehouse_processed_at": _iso(self.warehouse_processed_at),
            "warehouse_processed_by": _who(self.warehouse_processed_by),
            "listed_at": _iso(self.listed_at),
            "delivery_submitted_at": _iso(self.delivery_submitted_at),
            "delivery_submitted_by": _who(self.delivery_submitted_by),
            "delivered_at": _iso(self.delivered_at),
            "completed_at": _iso(self.completed_at),
            "completed_by": _who(self.completed_by),
            "held_at": _iso(self.held_at),
            "held_by": _who(self.held_by),
            "version_id": self.version_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DcProductLine(db.Model):
    """
    One product line on a DC.

    available/deliverable/remaining quantities are captured when the
    warehouse processes the DC; they are the operands of stock deduction.
    """
    __tablename__ = "dc_product_lines"
    __table_args__ = (
        db.CheckConstraint(
            "deliverable_quantity IS NULL OR deliverable_quantity >= 0",
            name="ck_dc_line_deliverable_non_negative",
        ),
        db.Index("ix_dc_product_lines_dc", "dc_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dc_id = db.Column(db.Integer, db.ForeignKey("delivery_challans.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    product = db.Column(db.String(255), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(128), nullable=True)
    class_name = db.Column(db.String(64), nullable=True)
    level = db.Column(db.String(32), nullable=True, default="L2")

    quantity = db.Column(db.Integer, nullable=False, default=0)
    strength = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    available_quantity = db.Column(db.Integer, nullable=True)
    deliverable_quantity = db.Column(db.Integer, nullable=True)
    remaining_quantity = db.Column(db.Integer, nullable=True)

    @property
    def display_name(self) -> str | None:
        return self.product_name or self.product

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product": self.product,
            "product_name": self.product_name,
            "category": self.category,
            "class": self.class_name,
            "level": self.level,
            "quantity": self.quantity,
            "strength": self.strength,
            "price": self.price,
            "total": self.total,
            "available_quantity": self.available_quantity,
            "deliverable_quantity": self.deliverable_quantity,
            "remaining_quantity": self.remaining_quantity,
        }
