"""Initial schema: catalog, stock ledger, sales, credit accounts, prescriptions

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "catalog_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("generic_name", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=False),
        sa.Column("manufacturer", sa.String(length=255), nullable=True),
        sa.Column("batch_number", sa.String(length=64), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("reorder_level", sa.Integer(), nullable=False),
        sa.Column("on_hand_quantity", sa.Integer(), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_catalog_items_name", "catalog_items", ["name"], unique=False)
    op.create_index("ix_catalog_items_category", "catalog_items", ["category"], unique=False)

    op.create_table(
        "unit_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("catalog_items.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("base_quantity", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_unit_definitions_item_id", "unit_definitions", ["item_id"], unique=False)

    op.create_table(
        "stock_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("catalog_items.id"), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("unit_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("performed_by", sa.String(length=128), nullable=False),
        sa.Column("performed_by_role", sa.String(length=32), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_events_item_id", "stock_events", ["item_id"], unique=False)
    op.create_index("ix_stock_events_reason", "stock_events", ["reason"], unique=False)
    op.create_index("ix_stock_events_reference_id", "stock_events", ["reference_id"], unique=False)
    op.create_index("ix_stock_events_occurred_at", "stock_events", ["occurred_at"], unique=False)
    op.create_index("ix_stock_events_item_occurred", "stock_events", ["item_id", "occurred_at"], unique=False)

    op.create_table(
        "prescriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("patient_name", sa.String(length=255), nullable=False),
        sa.Column("patient_phone", sa.String(length=64), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_by_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dispensed_by", sa.String(length=255), nullable=True),
        sa.Column("dispensed_at", sa.DateTime(timezone=True), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_prescriptions_status", "prescriptions", ["status"], unique=False)

    op.create_table(
        "prescription_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("prescription_id", sa.Integer(), sa.ForeignKey("prescriptions.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("medicine_text", sa.String(length=255), nullable=False),
        sa.Column("dosage_text", sa.String(length=255), nullable=True),
        sa.Column("frequency_text", sa.String(length=255), nullable=True),
        sa.Column("duration_text", sa.String(length=255), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_prescription_items_prescription_id", "prescription_items", ["prescription_id"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_number", sa.String(length=64), nullable=True, unique=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("tax_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("cashier_id", sa.String(length=128), nullable=False),
        sa.Column("cashier_name", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=64), nullable=True),
        sa.Column("source_prescription_id", sa.Integer(), sa.ForeignKey("prescriptions.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_status", "sales", ["status"], unique=False)
    op.create_index("ix_sales_payment_method", "sales", ["payment_method"], unique=False)
    op.create_index("ix_sales_created_at", "sales", ["created_at"], unique=False)
    op.create_index("ix_sales_cashier_created", "sales", ["cashier_id", "created_at"], unique=False)

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("catalog_items.id"), nullable=False),
        sa.Column("item_name", sa.String(length=255), nullable=False),
        sa.Column("unit_type", sa.String(length=32), nullable=False),
        sa.Column("unit_base_quantity", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("stock_event_id", sa.Integer(), sa.ForeignKey("stock_events.id"), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"], unique=False)

    op.create_table(
        "credit_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=64), nullable=True),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("paid_cents", sa.Integer(), nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_credit_accounts_status", "credit_accounts", ["status"], unique=False)

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("credit_accounts.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False),
        sa.Column("received_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_credit_payments_account_id", "credit_payments", ["account_id"], unique=False)


def downgrade():
    op.drop_index("ix_credit_payments_account_id", table_name="credit_payments")
    op.drop_table("credit_payments")
    op.drop_index("ix_credit_accounts_status", table_name="credit_accounts")
    op.drop_table("credit_accounts")
    op.drop_index("ix_sale_lines_sale_id", table_name="sale_lines")
    op.drop_table("sale_lines")
    op.drop_index("ix_sales_cashier_created", table_name="sales")
    op.drop_index("ix_sales_created_at", table_name="sales")
    op.drop_index("ix_sales_payment_method", table_name="sales")
    op.drop_index("ix_sales_status", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_prescription_items_prescription_id", table_name="prescription_items")
    op.drop_table("prescription_items")
    op.drop_index("ix_prescriptions_status", table_name="prescriptions")
    op.drop_table("prescriptions")
    op.drop_index("ix_stock_events_item_occurred", table_name="stock_events")
    op.drop_index("ix_stock_events_occurred_at", table_name="stock_events")
    op.drop_index("ix_stock_events_reference_id", table_name="stock_events")
    op.drop_index("ix_stock_events_reason", table_name="stock_events")
    op.drop_index("ix_stock_events_item_id", table_name="stock_events")
    op.drop_table("stock_events")
    op.drop_index("ix_unit_definitions_item_id", table_name="unit_definitions")
    op.drop_table("unit_definitions")
    op.drop_index("ix_catalog_items_category", table_name="catalog_items")
    op.drop_index("ix_catalog_items_name", table_name="catalog_items")
    op.drop_table("catalog_items")
