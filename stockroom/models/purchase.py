from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.db.base import Base
from stockroom.models.item import Item


class Purchase(Base):
    __tablename__ = "purchases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Record-level overhead, allocated to lines only for landed cost.
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    miscellaneous_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    lines: Mapped[list["PurchaseLine"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.position",
    )

    __table_args__ = (
        Index("ix_purchases_purchase_date", "purchase_date"),
    )


class PurchaseLine(Base):
    __tablename__ = "purchase_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    purchase_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("purchases.id", ondelete="CASCADE"), index=True
    )
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id", ondelete="RESTRICT"), index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quantity_units: Mapped[int] = mapped_column(Integer, nullable=False)
    cases_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    units_per_case: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    unit_cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    case_cost_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    line_total_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    allocated_tax_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    allocated_misc_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    unit_landed_cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    # None means the catalog MRP was left untouched by this line.
    mrp_price_at_purchase: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)

    brand_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    size_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pack_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    purchase: Mapped[Purchase] = relationship(back_populates="lines")
    item: Mapped[Item] = relationship()
