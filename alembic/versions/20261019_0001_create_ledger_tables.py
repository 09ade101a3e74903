"""create ledger tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("sku", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("brand", sa.String(length=100), nullable=True),
            sa.Column("brand_number", sa.String(length=50), nullable=True),
            sa.Column("size_code", sa.String(length=50), nullable=True),
            sa.Column("pack_type", sa.String(length=50), nullable=True),
            sa.Column("pack_size_label", sa.String(length=50), nullable=True),
            sa.Column("units_per_pack", sa.Integer(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("volume_ml", sa.Integer(), nullable=True),
            sa.Column("mrp_price", sa.Numeric(14, 4), nullable=False),
            sa.Column("purchase_cost_price", sa.Numeric(14, 4), nullable=True),
            sa.Column("weighted_avg_cost_price", sa.Numeric(14, 4), nullable=False, server_default="0"),
            sa.Column("weighted_avg_landed_cost_price", sa.Numeric(14, 4), nullable=False, server_default="0"),
            sa.Column("current_stock_units", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reorder_level", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("brand_number", "size_code", "pack_type", name="uq_items_natural_key"),
        )
        op.create_index("ux_items_sku_lower", "items", [sa.text("lower(sku)")], unique=True)
        op.create_index("ix_items_active_name", "items", ["is_active", "name"], unique=False)

    if not _table_exists(inspector, "purchases"):
        op.create_table(
            "purchases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("purchase_date", sa.Date(), nullable=False),
            sa.Column("supplier_name", sa.String(length=255), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("tax_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("miscellaneous_charges", sa.Numeric(12, 2), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_purchases_purchase_date", "purchases", ["purchase_date"], unique=False)

    if not _table_exists(inspector, "purchase_lines"):
        op.create_table(
            "purchase_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("purchase_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("quantity_units", sa.Integer(), nullable=False),
            sa.Column("cases_quantity", sa.Integer(), nullable=True),
            sa.Column("units_per_case", sa.Integer(), nullable=True),
            sa.Column("unit_cost_price", sa.Numeric(14, 4), nullable=False),
            sa.Column("case_cost_price", sa.Numeric(14, 4), nullable=True),
            sa.Column("line_total_price", sa.Numeric(14, 4), nullable=False),
            sa.Column("allocated_tax_amount", sa.Numeric(14, 4), nullable=True),
            sa.Column("allocated_misc_charges", sa.Numeric(14, 4), nullable=True),
            sa.Column("unit_landed_cost_price", sa.Numeric(14, 4), nullable=False),
            sa.Column("mrp_price_at_purchase", sa.Numeric(14, 4), nullable=True),
            sa.Column("brand_number", sa.String(length=50), nullable=True),
            sa.Column("size_code", sa.String(length=50), nullable=True),
            sa.Column("pack_type", sa.String(length=50), nullable=True),
            sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_purchase_lines_purchase_id", "purchase_lines", ["purchase_id"], unique=False)
        op.create_index("ix_purchase_lines_item_id", "purchase_lines", ["item_id"], unique=False)

    if not _table_exists(inspector, "day_end_reports"):
        op.create_table(
            "day_end_reports",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_date", sa.Date(), nullable=False),
            sa.Column("belt_markup", sa.Numeric(14, 4), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("total_sales_amount", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_units_sold", sa.Integer(), nullable=False),
            sa.Column("retail_revenue", sa.Numeric(14, 4), nullable=False),
            sa.Column("belt_revenue", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_cost", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_profit", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_net_profit", sa.Numeric(14, 4), nullable=False),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("report_date"),
        )

    if not _table_exists(inspector, "day_end_lines"):
        op.create_table(
            "day_end_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("channel", sa.String(length=10), nullable=False),
            sa.Column("quantity_sold_units", sa.Integer(), nullable=False),
            sa.Column("mrp_price", sa.Numeric(14, 4), nullable=False),
            sa.Column("selling_price_per_unit", sa.Numeric(14, 4), nullable=False),
            sa.Column("line_revenue", sa.Numeric(14, 4), nullable=False),
            sa.Column("cost_price_at_sale", sa.Numeric(14, 4), nullable=False),
            sa.Column("line_cost", sa.Numeric(14, 4), nullable=False),
            sa.Column("line_profit", sa.Numeric(14, 4), nullable=False),
            sa.Column("line_net_profit", sa.Numeric(14, 4), nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["day_end_reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_day_end_lines_report_id", "day_end_lines", ["report_id"], unique=False)
        op.create_index("ix_day_end_lines_item_id", "day_end_lines", ["item_id"], unique=False)

    if not _table_exists(inspector, "stock_adjustments"):
        op.create_table(
            "stock_adjustments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("adjustment_units", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint("adjustment_units <> 0", name="ck_stock_adjustments_non_zero"),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stock_adjustments_item_id", "stock_adjustments", ["item_id"], unique=False)
        op.create_index(
            "ix_stock_adjustments_item_created_at",
            "stock_adjustments",
            ["item_id", "created_at"],
            unique=False,
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=100), nullable=True),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=50), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
        op.create_index("ix_audit_logs_target", "audit_logs", ["target_type", "target_id"], unique=False)
        op.create_index("ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"], unique=False)


def downgrade() -> None:
    for table_name in (
        "audit_logs",
        "stock_adjustments",
        "day_end_lines",
        "day_end_reports",
        "purchase_lines",
        "purchases",
        "items",
    ):
        op.drop_table(table_name)
