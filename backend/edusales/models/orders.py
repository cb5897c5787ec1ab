from __future__ import annotations

from ..extensions import db
from edusales.time_utils import to_utc_z, utcnow


DEAL_PRIORITIES = ("Hot", "Warm", "Cold")
HISTORY_PRIORITIES = ("Hot", "Warm", "Cold", "Dropped")
DEAL_STATUSES = (
    "saved",
    "pending",
    "in_transit",
    "completed",
    "hold",
    "dc_requested",
    "dc_accepted",
    "dc_approved",
    "dc_sent_to_senior",
)


def _iso(dt):
    return to_utc_z(dt) if dt else None


def _generate_dc_code() -> str:
    # Same shape the sales team already prints on challans: DC-<6 digits>
    return f"DC-{int(utcnow().timestamp() * 1000) % 1_000_000:06d}"


class DcOrder(db.Model):
    """
    A deal (closed lead) that delivery challans are raised against.

    Deal status is the COMMERCIAL view of the opportunity; the linked
    DeliveryChallan.status is the fulfilment stage. The two only move together
    through dc_workflow_service.DEAL_STATUS_FOR_DC_EVENT.
    """
    __tablename__ = "dc_orders"
    __table_args__ = (
        db.Index("ix_dc_orders_status", "status"),
        db.Index("ix_dc_orders_assigned_to", "assigned_to_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    dc_code = db.Column(db.String(32), nullable=False, default=_generate_dc_code, index=True)
    school_name = db.Column(db.String(255), nullable=False)
    school_type = db.Column(db.String(64), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    contact_mobile = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    zone = db.Column(db.String(128), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    # [{"product_name": str, "quantity": int, "unit_price": number}]
    products = db.Column(db.JSON, nullable=False, default=list)
    total_amount = db.Column(db.Integer, nullable=False, default=0)

    priority = db.Column(db.String(16), nullable=False, default="Cold")
    status = db.Column(db.String(32), nullable=False, default="pending")

    follow_up_date = db.Column(db.DateTime(timezone=True), nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    pod_proof_url = db.Column(db.String(1024), nullable=True)
    estimated_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_user_id])

    # Append-only; never reassigned or truncated by service code
    history = db.relationship(
        "DcOrderHistory",
        backref="dc_order",
        lazy=True,
        order_by="DcOrderHistory.id",
    )

    def __repr__(self) -> str:
        return f"<DcOrder id={self.id} dc_code={self.dc_code!r} status={self.status!r}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "dc_code": self.dc_code,
            "school_name": self.school_name,
            "contact_person": self.contact_person,
            "contact_mobile": self.contact_mobile,
            "email": self.email,
            "address": self.address,
            "location": self.location,
            "zone": self.zone,
            "products": self.products or [],
            "status": self.status,
            "pod_proof_url": self.pod_proof_url,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "school_type": self.school_type,
            "total_amount": self.total_amount,
            "priority": self.priority,
            "follow_up_date": _iso(self.follow_up_date),
            "remarks": self.remarks,
            "estimated_delivery_date": _iso(self.estimated_delivery_date),
            "actual_delivery_date": _iso(self.actual_delivery_date),
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "assigned_to": self.assigned_to.to_summary() if self.assigned_to else None,
            "completed_by_user_id": self.completed_by_user_id,
            "history_count": len(self.history),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DcOrderHistory(db.Model):
    """
    One row per update that touched follow-up date, remarks or priority.

    Rows carry the NEW values written by that update. Rows are only ever
    inserted.
    """
    __tablename__ = "dc_order_history"
    __table_args__ = (
        db.Index("ix_dc_order_history_order", "dc_order_id", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dc_order_id = db.Column(db.Integer, db.ForeignKey("dc_orders.id"), nullable=False)

    follow_up_date = db.Column(db.DateTime(timezone=True), nullable=True)
    remarks = db.Column(db.Text, nullable=False, default="")
    priority = db.Column(db.String(16), nullable=False, default="Cold")

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    updated_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "follow_up_date": _iso(self.follow_up_date),
            "remarks": self.remarks,
            "priority": self.priority,
            "updated_by": self.updated_by.to_summary() if self.updated_by else None,
            "updated_at": _iso(self.updated_at),
        }


class Sale(db.Model):
    """Parallel commercial record; a DC may be raised against it instead of a deal."""
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=False)
    product = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="Pending")
    notes = db.Column(db.Text, nullable=True)

    po_document = db.Column(db.String(1024), nullable=True)
    po_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    po_submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "product": self.product,
            "quantity": self.quantity,
            "status": self.status,
            "po_document": self.po_document,
        }
