import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.db.base import Base
from stockroom.models.item import Item


class SalesChannel(str, enum.Enum):
    RETAIL = "RETAIL"  # primary channel, sold at MRP
    BELT = "BELT"  # secondary channel, sold at MRP + markup


class DayEndReport(Base):
    __tablename__ = "day_end_reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    report_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    belt_markup: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    total_sales_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_units_sold: Mapped[int] = mapped_column(Integer, nullable=False)
    retail_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    belt_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_profit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_net_profit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    lines: Mapped[list["DayEndLine"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="DayEndLine.position",
    )


class DayEndLine(Base):
    __tablename__ = "day_end_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    report_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("day_end_reports.id", ondelete="CASCADE"), index=True
    )
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id", ondelete="RESTRICT"), index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    channel: Mapped[SalesChannel] = mapped_column(
        Enum(SalesChannel, native_enum=False, length=10), nullable=False
    )
    quantity_sold_units: Mapped[int] = mapped_column(Integer, nullable=False)
    mrp_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    selling_price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    cost_price_at_sale: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_profit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_net_profit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    report: Mapped[DayEndReport] = relationship(back_populates="lines")
    item: Mapped[Item] = relationship()
