import json
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.errors import InsufficientStock, NotFound, Shortage
from stockroom.models.adjustment import StockAdjustment
from stockroom.models.day_end import DayEndLine
from stockroom.models.item import Item
from stockroom.models.purchase import PurchaseLine

logger = logging.getLogger("stockroom.ledger")


def lock_item(db: Session, item_id: str) -> Item:
    """Load an item row under ``SELECT ... FOR UPDATE`` for the rest of the transaction.

    Pending changes are flushed first; ``populate_existing`` then refreshes an
    already-loaded instance with the row as it stands once the lock is held.
    """
    db.flush()
    item = db.execute(
        select(Item)
        .where(Item.id == item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if item is None:
        raise NotFound(f"Item not found: {item_id}")
    return item


def _log_delta(event: str, item: Item, delta_units: int, before: int) -> None:
    logger.info(
        json.dumps(
            {
                "event": event,
                "item_id": item.id,
                "sku": item.sku,
                "delta_units": delta_units,
                "stock_before": before,
                "stock_after": item.current_stock_units,
            }
        )
    )


def apply_delta(db: Session, item_id: str, delta_units: int) -> Item:
    """Move stock by ``delta_units``; a removal may not leave the item below zero."""
    item = lock_item(db, item_id)
    before = item.current_stock_units
    after = before + delta_units
    if delta_units < 0 and after < 0:
        raise InsufficientStock(
            [Shortage(item_id=item.id, item_name=item.name, required=-delta_units, available=before)]
        )
    item.current_stock_units = after
    db.flush()
    _log_delta("stock.apply", item, delta_units, before)
    return item


def reverse_delta(db: Session, item_id: str, delta_units: int) -> Item:
    """Undo a previously applied delta. No sufficiency check."""
    item = lock_item(db, item_id)
    before = item.current_stock_units
    item.current_stock_units = before - delta_units
    db.flush()
    _log_delta("stock.reverse", item, -delta_units, before)
    return item


def expected_stock_units(db: Session, item_id: str) -> int:
    """Stock implied by committed records: purchases - sales + adjustments."""
    db.flush()
    purchased = db.execute(
        select(func.coalesce(func.sum(PurchaseLine.quantity_units), 0)).where(
            PurchaseLine.item_id == item_id
        )
    ).scalar_one()
    sold = db.execute(
        select(func.coalesce(func.sum(DayEndLine.quantity_sold_units), 0)).where(
            DayEndLine.item_id == item_id
        )
    ).scalar_one()
    adjusted = db.execute(
        select(func.coalesce(func.sum(StockAdjustment.adjustment_units), 0)).where(
            StockAdjustment.item_id == item_id
        )
    ).scalar_one()
    return int(purchased) - int(sold) + int(adjusted)
