from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.id_utils import generate_id
from stockroom.models.adjustment import StockAdjustment
from stockroom.schemas.adjustment import StockAdjustIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.stock_ledger_service import apply_delta
from stockroom.services.transaction_coordinator import LedgerOperation, OperationState, atomic


def create_adjustment(
    db: Session,
    payload: StockAdjustIn,
    *,
    actor_id: str | None = None,
) -> tuple[StockAdjustment, int]:
    """Record a manual correction and move stock by the same amount.

    Returns the adjustment and the item's stock once it is applied.
    """
    adjustment_id = generate_id()
    operation = LedgerOperation("adjustment.create", adjustment_id)
    with atomic(db, operation):
        operation.advance(OperationState.APPLYING)
        item = apply_delta(db, payload.item_id, payload.adjustment_units)
        stock_after = item.current_stock_units
        adjustment = StockAdjustment(
            id=adjustment_id,
            item_id=item.id,
            adjustment_units=payload.adjustment_units,
            reason=payload.reason,
            created_by=actor_id,
        )
        db.add(adjustment)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="stock.adjust",
            target_type="item",
            target_id=item.id,
            metadata_json={
                "adjustment_id": adjustment_id,
                "adjustment_units": payload.adjustment_units,
                "stock_after": stock_after,
                "reason": payload.reason,
            },
        )
    db.refresh(adjustment)
    return adjustment, stock_after


def list_adjustments(
    db: Session,
    *,
    item_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockAdjustment], int]:
    stmt = select(StockAdjustment)
    count_stmt = select(func.count(StockAdjustment.id))
    if item_id:
        stmt = stmt.where(StockAdjustment.item_id == item_id)
        count_stmt = count_stmt.where(StockAdjustment.item_id == item_id)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id)
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), total
