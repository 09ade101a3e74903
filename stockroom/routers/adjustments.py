from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.deps import get_actor_id, get_db
from stockroom.schemas.adjustment import StockAdjustIn, StockAdjustmentListOut, StockAdjustmentOut
from stockroom.schemas.common import pagination_meta
from stockroom.services.adjustment_service import create_adjustment, list_adjustments

router = APIRouter(prefix="/adjustments", tags=["adjustments"])


@router.post(
    "",
    response_model=StockAdjustmentOut,
    status_code=status.HTTP_201_CREATED,
    summary="Manual stock adjustment",
    responses=error_responses(404, 409, 422, 500),
)
def create_adjustment_endpoint(
    payload: StockAdjustIn,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    adjustment, stock_after = create_adjustment(db, payload, actor_id=actor_id)
    out = StockAdjustmentOut.model_validate(adjustment)
    out.stock_after = stock_after
    return out


@router.get(
    "",
    response_model=StockAdjustmentListOut,
    summary="List stock adjustments",
    responses=error_responses(422, 500),
)
def list_adjustments_endpoint(
    item_id: str | None = Query(default=None, description="Optional item filter"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = list_adjustments(db, item_id=item_id, limit=limit, offset=offset)
    return StockAdjustmentListOut(
        items=[StockAdjustmentOut.model_validate(row) for row in rows],
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(rows)),
    )
