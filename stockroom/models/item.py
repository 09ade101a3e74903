from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockroom.core.money import ZERO_COST, cost_mul
from stockroom.db.base import Base


class Item(Base):
    """A stock-keeping unit.

    ``current_stock_units`` is only ever moved by the stock ledger. The two
    weighted-average columns are derived from purchase history and rewritten
    by the costing service whenever that history changes.
    """
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Composite natural key used to match import rows.
    brand_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    size_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pack_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    pack_size_label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    units_per_pack: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    volume_ml: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    mrp_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    purchase_cost_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    weighted_avg_cost_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=ZERO_COST, server_default="0"
    )
    weighted_avg_landed_cost_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=ZERO_COST, server_default="0"
    )

    current_stock_units: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    reorder_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("brand_number", "size_code", "pack_type", name="uq_items_natural_key"),
        Index("ux_items_sku_lower", func.lower(sku), unique=True),
        Index("ix_items_active_name", "is_active", "name"),
    )

    @property
    def unit_cost_basis(self) -> Decimal:
        """Cost per unit used for sales: weighted average, else the last purchase cost."""
        if self.weighted_avg_cost_price:
            return Decimal(self.weighted_avg_cost_price)
        return Decimal(self.purchase_cost_price or ZERO_COST)

    @property
    def landed_cost_basis(self) -> Decimal:
        if self.weighted_avg_landed_cost_price:
            return Decimal(self.weighted_avg_landed_cost_price)
        return self.unit_cost_basis

    @property
    def total_inventory_value(self) -> Decimal:
        return cost_mul(self.current_stock_units, self.weighted_avg_cost_price or ZERO_COST)
