from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.purchase import Purchase
from stockroom.schemas.common import OkOut, pagination_meta
from stockroom.schemas.imports import (
    ImportRejectedRowOut,
    PurchaseImportBatchOut,
    PurchaseImportParseOut,
    PurchaseImportRowOut,
)
from stockroom.schemas.purchase import (
    PurchaseCreate,
    PurchaseLineOut,
    PurchaseListOut,
    PurchaseOut,
    PurchaseSummaryOut,
)
from stockroom.services.import_reconciler import (
    import_purchase_batch,
    parse_purchase_rows,
    read_tabular_upload,
    read_upload_bytes,
)
from stockroom.services.purchase_service import (
    create_purchase,
    delete_purchase,
    get_purchase,
    list_purchases,
    update_purchase,
)

router = APIRouter(prefix="/purchases", tags=["purchases"])


def _purchase_out(purchase: Purchase) -> PurchaseOut:
    lines = [
        PurchaseLineOut(
            id=line.id,
            item_id=line.item_id,
            item_name=line.item.name,
            sku=line.item.sku,
            position=line.position,
            quantity_units=line.quantity_units,
            cases_quantity=line.cases_quantity,
            units_per_case=line.units_per_case,
            unit_cost_price=line.unit_cost_price,
            case_cost_price=line.case_cost_price,
            line_total_price=line.line_total_price,
            allocated_tax_amount=line.allocated_tax_amount,
            allocated_misc_charges=line.allocated_misc_charges,
            unit_landed_cost_price=line.unit_landed_cost_price,
            mrp_price_at_purchase=line.mrp_price_at_purchase,
        )
        for line in purchase.lines
    ]
    return PurchaseOut(
        id=purchase.id,
        purchase_date=purchase.purchase_date,
        supplier_name=purchase.supplier_name,
        notes=purchase.notes,
        tax_amount=purchase.tax_amount,
        miscellaneous_charges=purchase.miscellaneous_charges,
        created_by=purchase.created_by,
        created_at=purchase.created_at,
        total_quantity=sum(line.quantity_units for line in lines),
        total_cost=sum((line.line_total_price for line in lines), Decimal("0.0000")),
        line_items=lines,
    )


@router.get(
    "",
    response_model=PurchaseListOut,
    summary="List purchases",
    responses=error_responses(422, 500),
)
def list_purchases_endpoint(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    summaries, total = list_purchases(db, date_from=date_from, date_to=date_to, limit=limit, offset=offset)
    return PurchaseListOut(
        items=[PurchaseSummaryOut.model_validate(summary) for summary in summaries],
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(summaries)),
    )


@router.post(
    "",
    response_model=PurchaseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a purchase and add its units to stock",
    responses=error_responses(404, 409, 422, 500),
)
def create_purchase_endpoint(
    payload: PurchaseCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return _purchase_out(create_purchase(db, payload, actor_id=actor_id))


@router.post(
    "/import/parse",
    response_model=PurchaseImportParseOut,
    summary="Parse a purchase spreadsheet without saving anything",
    responses=error_responses(422, 500),
)
def parse_purchase_import(file: UploadFile = File(...)):
    rows = parse_purchase_rows(read_tabular_upload(file.filename, read_upload_bytes(file.file)))
    with_issues = sum(1 for row in rows if row.issues)
    return PurchaseImportParseOut(
        rows=[
            PurchaseImportRowOut(
                row_number=row.row_number,
                raw_name=row.raw_name,
                payload=row.payload,
                issues=row.issues,
            )
            for row in rows
        ],
        clean_rows=len(rows) - with_issues,
        rows_with_issues=with_issues,
    )


@router.post(
    "/import",
    response_model=PurchaseImportBatchOut,
    summary="Import a purchase spreadsheet as one purchase",
    responses=error_responses(409, 422, 500),
)
def import_purchase_endpoint(
    file: UploadFile = File(...),
    purchase_date: date = Form(...),
    supplier_name: str | None = Form(default=None, max_length=255),
    allow_item_creation: bool = Form(default=True),
    tax_amount: Decimal | None = Form(default=None, ge=0),
    miscellaneous_charges: Decimal | None = Form(default=None, ge=0),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    rows = parse_purchase_rows(read_tabular_upload(file.filename, read_upload_bytes(file.file)))
    result = import_purchase_batch(
        db,
        rows,
        purchase_date=purchase_date,
        supplier_name=supplier_name,
        allow_item_creation=allow_item_creation,
        tax_amount=tax_amount,
        miscellaneous_charges=miscellaneous_charges,
        actor_id=actor_id,
    )
    return PurchaseImportBatchOut(
        accepted=result.accepted,
        purchase=_purchase_out(result.purchase) if result.purchase is not None else None,
        rejected_rows=[
            ImportRejectedRowOut(row_number=row.row_number, reasons=row.reasons)
            for row in result.rejected_rows
        ],
    )


@router.get(
    "/{purchase_id}",
    response_model=PurchaseOut,
    summary="Get a purchase with its lines",
    responses=error_responses(404, 500),
)
def get_purchase_endpoint(purchase_id: str, db: Session = Depends(get_db)):
    return _purchase_out(get_purchase(db, purchase_id))


@router.put(
    "/{purchase_id}",
    response_model=PurchaseOut,
    summary="Replace a purchase's details and lines",
    responses=error_responses(404, 409, 422, 500),
)
def update_purchase_endpoint(
    purchase_id: str,
    payload: PurchaseCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return _purchase_out(update_purchase(db, purchase_id, payload, actor_id=actor_id))


@router.delete(
    "/{purchase_id}",
    response_model=OkOut,
    summary="Delete a purchase and remove its units from stock",
    responses=error_responses(404, 409, 500),
)
def delete_purchase_endpoint(
    purchase_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    delete_purchase(db, purchase_id, actor_id=actor_id)
    return OkOut()
