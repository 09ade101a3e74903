from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.deps import get_actor_id, get_db
from stockroom.schemas.common import OkOut, pagination_meta
from stockroom.schemas.day_end import (
    DayEndPreviewOut,
    DayEndReportCreate,
    DayEndReportListOut,
    DayEndReportOut,
    PricedLineOut,
    ShortageOut,
)
from stockroom.schemas.imports import DayEndImportParseOut, DayEndImportRowOut
from stockroom.services.day_end_service import (
    create_day_end_report,
    delete_day_end_report,
    get_day_end_report,
    list_day_end_reports,
    update_day_end_report,
)
from stockroom.services.import_reconciler import parse_day_end_rows, read_tabular_upload, read_upload_bytes
from stockroom.services.preview_service import preview_day_end_report

router = APIRouter(prefix="/day-end", tags=["day-end"])


@router.get(
    "",
    response_model=DayEndReportListOut,
    summary="List day-end reports",
    responses=error_responses(422, 500),
)
def list_reports_endpoint(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    reports, total = list_day_end_reports(db, date_from=date_from, date_to=date_to, limit=limit, offset=offset)
    return DayEndReportListOut(
        items=[DayEndReportOut.model_validate(report) for report in reports],
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(reports)),
    )


@router.post(
    "",
    response_model=DayEndReportOut,
    status_code=status.HTTP_201_CREATED,
    summary="Commit a day-end sales report and remove its units from stock",
    responses=error_responses(404, 409, 422, 500),
)
def create_report_endpoint(
    payload: DayEndReportCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return DayEndReportOut.model_validate(create_day_end_report(db, payload, actor_id=actor_id))


@router.post(
    "/preview",
    response_model=DayEndPreviewOut,
    summary="Price a day-end report and list shortages without saving",
    responses=error_responses(404, 422, 500),
)
def preview_report_endpoint(
    payload: DayEndReportCreate,
    editing_report_id: str | None = Query(
        default=None, description="Report being edited; its sold units count as available"
    ),
    db: Session = Depends(get_db),
):
    result = preview_day_end_report(db, payload, editing_report_id=editing_report_id)
    return DayEndPreviewOut(
        belt_markup=result.belt_markup,
        total_revenue=result.total_revenue,
        retail_revenue=result.retail_revenue,
        belt_revenue=result.belt_revenue,
        total_units=result.total_units,
        total_cost=result.total_cost,
        total_profit=result.total_profit,
        total_net_profit=result.total_net_profit,
        profit_margin=result.profit_margin,
        lines=[PricedLineOut(**asdict(line)) for line in result.lines],
        shortages=[ShortageOut(**asdict(shortage)) for shortage in result.shortages],
    )


@router.post(
    "/import/parse",
    response_model=DayEndImportParseOut,
    summary="Parse a day-end sales spreadsheet without saving anything",
    responses=error_responses(422, 500),
)
def parse_day_end_import(file: UploadFile = File(...)):
    rows = parse_day_end_rows(read_tabular_upload(file.filename, read_upload_bytes(file.file)))
    with_issues = sum(1 for row in rows if row.issues)
    return DayEndImportParseOut(
        rows=[
            DayEndImportRowOut(
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


@router.get(
    "/{report_id}",
    response_model=DayEndReportOut,
    summary="Get a day-end report",
    responses=error_responses(404, 500),
)
def get_report_endpoint(report_id: str, db: Session = Depends(get_db)):
    return DayEndReportOut.model_validate(get_day_end_report(db, report_id))


@router.put(
    "/{report_id}",
    response_model=DayEndReportOut,
    summary="Replace a day-end report's lines",
    responses=error_responses(404, 409, 422, 500),
)
def update_report_endpoint(
    report_id: str,
    payload: DayEndReportCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return DayEndReportOut.model_validate(update_day_end_report(db, report_id, payload, actor_id=actor_id))


@router.delete(
    "/{report_id}",
    response_model=OkOut,
    summary="Delete a day-end report and return its units to stock",
    responses=error_responses(404, 500),
)
def delete_report_endpoint(
    report_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    delete_day_end_report(db, report_id, actor_id=actor_id)
    return OkOut()
