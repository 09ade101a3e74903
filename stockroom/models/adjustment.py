from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.db.base import Base
from stockroom.models.item import Item


class StockAdjustment(Base):
    """
    Manual single-item correction. Positive adds stock, negative removes it.
    Never edited; mistakes are fixed with an offsetting adjustment.
    """
    __tablename__ = "stock_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id", ondelete="RESTRICT"), index=True)
    adjustment_units: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    item: Mapped[Item] = relationship()

    __table_args__ = (
        CheckConstraint("adjustment_units <> 0", name="ck_stock_adjustments_non_zero"),
        Index("ix_stock_adjustments_item_created_at", "item_id", "created_at"),
    )
