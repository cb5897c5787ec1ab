from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from edusales.time_utils import to_utc_z


MOVEMENT_TYPES = ("In", "Out", "Return", "Adjustment")


class WarehouseItem(db.Model):
    """
    A stocked product and its quantity on hand.

    current_stock is only decremented by stock_service (DC deduction and
    manual adjustments). status is derived from current_stock vs min_stock on
    every insert/update, see the mapper listeners below.
    """
    __tablename__ = "warehouse_items"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_warehouse_stock_non_negative"),
        db.Index("ix_warehouse_items_match", "product_name", "category", "level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_code = db.Column(db.String(64), nullable=True, unique=True)
    category = db.Column(db.String(128), nullable=True)
    level = db.Column(db.String(32), nullable=True)
    specs = db.Column(db.String(128), nullable=False, default="Regular")
    item_type = db.Column(db.String(64), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    unit_price = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="pcs")
    location = db.Column(db.String(255), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="In Stock", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<WarehouseItem id={self.id} product_name={self.product_name!r} stock={self.current_stock}>"

    def refresh_status(self) -> None:
        if self.status == "Discontinued":
            return
        stock = self.current_stock or 0
        if stock <= 0:
            self.status = "Out of Stock"
        elif stock <= (self.min_stock or 0):
            self.status = "Low Stock"
        else:
            self.status = "In Stock"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "category": self.category,
            "level": self.level,
            "specs": self.specs,
            "item_type": self.item_type,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "unit_price": self.unit_price,
            "unit": self.unit,
            "location": self.location,
            "supplier": self.supplier,
            "status": self.status,
            "last_restocked": to_utc_z(self.last_restocked) if self.last_restocked else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


@event.listens_for(WarehouseItem, "before_insert")
@event.listens_for(WarehouseItem, "before_update")
def _recompute_stock_status(mapper, connection, target):
    target.refresh_status()


class StockMovement(db.Model):
    """Append-only ledger entry for a single stock change."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_item", "warehouse_item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    warehouse_item_id = db.Column(db.Integer, db.ForeignKey("warehouse_items.id"), nullable=False)
    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    related_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    dc_id = db.Column(db.Integer, db.ForeignKey("delivery_challans.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    warehouse_item = db.relationship("WarehouseItem", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_item_id": self.warehouse_item_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reason": self.reason,
            "related_sale_id": self.related_sale_id,
            "dc_id": self.dc_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
