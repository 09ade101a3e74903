from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.deps import get_actor_id, get_db
from stockroom.schemas.common import pagination_meta
from stockroom.schemas.item import (
    ItemCreate,
    ItemListOut,
    ItemOut,
    ItemUpdate,
    LowStockItemOut,
    LowStockListOut,
    PriceHistoryEntryOut,
    PriceHistoryOut,
)
from stockroom.services.costing_service import get_price_history
from stockroom.services.item_service import (
    archive_item,
    create_item,
    get_item,
    list_items,
    list_low_stock,
    low_stock_threshold,
    update_item,
)

router = APIRouter(prefix="/items", tags=["items"])


@router.get(
    "",
    response_model=ItemListOut,
    summary="List catalog items",
    responses=error_responses(422, 500),
)
def list_items_endpoint(
    search: str | None = Query(default=None, max_length=100, description="Match name, SKU or brand number"),
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = list_items(db, search=search, include_inactive=include_inactive, limit=limit, offset=offset)
    return ItemListOut(
        items=[ItemOut.model_validate(item) for item in items],
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.post(
    "",
    response_model=ItemOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a catalog item",
    responses=error_responses(409, 422, 500),
)
def create_item_endpoint(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return ItemOut.model_validate(create_item(db, payload, actor_id=actor_id))


@router.get(
    "/low-stock",
    response_model=LowStockListOut,
    summary="List active items at or below their reorder level",
    responses=error_responses(422, 500),
)
def low_stock_endpoint(
    threshold: int | None = Query(default=None, ge=0, description="Overrides per-item reorder levels"),
    db: Session = Depends(get_db),
):
    items = list_low_stock(db, threshold=threshold)
    rows = [
        LowStockItemOut(
            item_id=item.id,
            sku=item.sku,
            name=item.name,
            reorder_level=low_stock_threshold(item, threshold),
            stock=item.current_stock_units,
        )
        for item in items
    ]
    return LowStockListOut(
        items=rows,
        pagination=pagination_meta(total=len(rows), limit=len(rows), offset=0, count=len(rows)),
    )


@router.get(
    "/{item_id}",
    response_model=ItemOut,
    summary="Get a catalog item",
    responses=error_responses(404, 500),
)
def get_item_endpoint(item_id: str, db: Session = Depends(get_db)):
    return ItemOut.model_validate(get_item(db, item_id))


@router.patch(
    "/{item_id}",
    response_model=ItemOut,
    summary="Update catalog fields",
    responses=error_responses(404, 409, 422, 500),
)
def update_item_endpoint(
    item_id: str,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return ItemOut.model_validate(update_item(db, item_id, payload, actor_id=actor_id))


@router.delete(
    "/{item_id}",
    response_model=ItemOut,
    summary="Archive an item",
    responses=error_responses(404, 500),
)
def archive_item_endpoint(
    item_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return ItemOut.model_validate(archive_item(db, item_id, actor_id=actor_id))


@router.get(
    "/{item_id}/price-history",
    response_model=PriceHistoryOut,
    summary="Purchase cost history with the running weighted average",
    responses=error_responses(404, 500),
)
def price_history_endpoint(item_id: str, db: Session = Depends(get_db)):
    history = get_price_history(db, item_id)
    return PriceHistoryOut(
        item_id=history.item.id,
        weighted_avg_cost=history.result.weighted_avg_cost,
        total_units_purchased=history.result.total_units_purchased,
        total_value_purchased=history.result.total_value_purchased,
        current_stock_units=history.item.current_stock_units,
        total_inventory_value=history.item.total_inventory_value,
        entries=[
            PriceHistoryEntryOut(
                purchase_id=entry.purchase_id,
                purchase_line_id=entry.purchase_line_id,
                purchase_date=entry.purchase_date,
                supplier_name=entry.supplier_name,
                quantity_units=entry.snapshot.entry.quantity,
                unit_cost_price=entry.snapshot.entry.unit_cost,
                line_value=entry.snapshot.line_value,
                running_total_units=entry.snapshot.total_units,
                running_total_value=entry.snapshot.total_value,
                running_weighted_avg_cost=entry.snapshot.weighted_avg_cost,
            )
            for entry in history.entries
        ],
    )
