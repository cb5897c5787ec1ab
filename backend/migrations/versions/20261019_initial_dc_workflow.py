"""Initial schema: users, deals, sales, delivery challans, warehouse stock

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("emp_code", sa.String(length=64), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("zone", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_email", ["email"], unique=False)
        batch_op.create_index("ix_users_role", ["role"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user", ["user_id"], unique=False)

    op.create_table(
        "dc_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dc_code", sa.String(length=32), nullable=False),
        sa.Column("school_name", sa.String(length=255), nullable=False),
        sa.Column("school_type", sa.String(length=64), nullable=True),
        sa.Column("contact_person", sa.String(length=255), nullable=True),
        sa.Column("contact_mobile", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("zone", sa.String(length=128), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("products", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("follow_up_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("pod_proof_url", sa.String(length=1024), nullable=True),
        sa.Column("estimated_delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("dc_orders", schema=None) as batch_op:
        batch_op.create_index("ix_dc_orders_dc_code", ["dc_code"], unique=False)
        batch_op.create_index("ix_dc_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_dc_orders_assigned_to", ["assigned_to_user_id"], unique=False)

    op.create_table(
        "dc_order_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dc_order_id", sa.Integer(), sa.ForeignKey("dc_orders.id"), nullable=False),
        sa.Column("follow_up_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("dc_order_history", schema=None) as batch_op:
        batch_op.create_index("ix_dc_order_history_order", ["dc_order_id", "updated_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=False),
        sa.Column("product", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("po_document", sa.String(length=1024), nullable=True),
        sa.Column("po_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("po_submitted_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_status", ["status"], unique=False)

    user_fk = lambda name: sa.Column(name, sa.Integer(), sa.ForeignKey("users.id"), nullable=True)  # noqa: E731
    stamp = lambda name: sa.Column(name, sa.DateTime(timezone=True), nullable=True)  # noqa: E731

    op.create_table(
        "delivery_challans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("dc_order_id", sa.Integer(), sa.ForeignKey("dc_orders.id"), nullable=True),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        user_fk("admin_id"),
        user_fk("manager_id"),
        user_fk("warehouse_id"),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_address", sa.Text(), nullable=False),
        sa.Column("customer_phone", sa.String(length=64), nullable=False),
        sa.Column("product", sa.String(length=255), nullable=False),
        sa.Column("requested_quantity", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False),
        sa.Column("deliverable_quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("po_photo_url", sa.String(length=1024), nullable=True),
        sa.Column("po_document", sa.String(length=1024), nullable=True),
        sa.Column("delivery_proof", sa.String(length=1024), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("hold_reason", sa.Text(), nullable=True),
        stamp("dc_date"),
        stamp("delivery_date"),
        sa.Column("dc_remarks", sa.Text(), nullable=True),
        sa.Column("dc_category", sa.String(length=64), nullable=True),
        sa.Column("dc_notes", sa.Text(), nullable=True),
        stamp("po_submitted_at"),
        stamp("admin_reviewed_at"),
        stamp("sent_to_manager_at"),
        stamp("manager_requested_at"),
        stamp("warehouse_processed_at"),
        stamp("listed_at"),
        stamp("delivery_submitted_at"),
        stamp("delivered_at"),
        stamp("completed_at"),
        stamp("held_at"),
        user_fk("po_submitted_by_user_id"),
        user_fk("admin_reviewed_by_user_id"),
        user_fk("manager_requested_by_user_id"),
        user_fk("warehouse_processed_by_user_id"),
        user_fk("delivery_submitted_by_user_id"),
        user_fk("completed_by_user_id"),
        user_fk("held_by_user_id"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("deliverable_quantity >= 0", name="ck_dc_deliverable_non_negative"),
        sa.CheckConstraint("sale_id IS NOT NULL OR dc_order_id IS NOT NULL", name="ck_dc_has_origin"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("delivery_challans", schema=None) as batch_op:
        batch_op.create_index("ix_delivery_challans_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_delivery_challans_dc_order_id", ["dc_order_id"], unique=False)
        batch_op.create_index("ix_delivery_challans_status", ["status"], unique=False)
        batch_op.create_index("ix_dc_status_employee", ["status", "employee_id"], unique=False)

    op.create_table(
        "dc_product_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dc_id", sa.Integer(), sa.ForeignKey("delivery_challans.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product", sa.String(length=255), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("class_name", sa.String(length=64), nullable=True),
        sa.Column("level", sa.String(length=32), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("strength", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=True),
        sa.Column("deliverable_quantity", sa.Integer(), nullable=True),
        sa.Column("remaining_quantity", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "deliverable_quantity IS NULL OR deliverable_quantity >= 0",
            name="ck_dc_line_deliverable_non_negative",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("dc_product_lines", schema=None) as batch_op:
        batch_op.create_index("ix_dc_product_lines_dc", ["dc_id", "position"], unique=False)

    op.create_table(
        "warehouse_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("product_code", sa.String(length=64), nullable=True, unique=True),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("level", sa.String(length=32), nullable=True),
        sa.Column("specs", sa.String(length=128), nullable=False),
        sa.Column("item_type", sa.String(length=64), nullable=True),
        sa.Column("current_stock", sa.Integer(), nullable=False),
        sa.Column("min_stock", sa.Integer(), nullable=False),
        sa.Column("max_stock", sa.Integer(), nullable=True),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("supplier", sa.String(length=255), nullable=True),
        sa.Column("last_restocked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("current_stock >= 0", name="ck_warehouse_stock_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouse_items", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_items_status", ["status"], unique=False)
        batch_op.create_index("ix_warehouse_items_match", ["product_name", "category", "level"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("warehouse_item_id", sa.Integer(), sa.ForeignKey("warehouse_items.id"), nullable=False),
        sa.Column("movement_type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("related_sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("dc_id", sa.Integer(), sa.ForeignKey("delivery_challans.id"), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_item", ["warehouse_item_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_dc_id", ["dc_id"], unique=False)


def downgrade():
    op.drop_table("stock_movements")
    op.drop_table("warehouse_items")
    op.drop_table("dc_product_lines")
    op.drop_table("delivery_challans")
    op.drop_table("sales")
    op.drop_table("dc_order_history")
    op.drop_table("dc_orders")
    op.drop_table("session_tokens")
    op.drop_table("users")
