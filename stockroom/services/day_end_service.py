from collections.abc import Sequence
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from stockroom.core.errors import Conflict, InsufficientStock, NotFound
from stockroom.core.id_utils import generate_id
from stockroom.models.day_end import DayEndLine, DayEndReport
from stockroom.schemas.day_end import DayEndReportCreate
from stockroom.services.audit_service import log_audit_event
from stockroom.services.preview_service import (
    CandidateLine,
    ItemSnapshot,
    PreviewResult,
    PricedLine,
    candidate_lines,
    price_lines,
    resolve_markup,
    sold_units_by_item,
)
from stockroom.services.stock_ledger_service import lock_item
from stockroom.services.transaction_coordinator import LedgerOperation, StockDelta, atomic, replace


def _load_report(db: Session, report_id: str, *, for_update: bool = False) -> DayEndReport:
    stmt = (
        select(DayEndReport)
        .where(DayEndReport.id == report_id)
        .options(selectinload(DayEndReport.lines))
    )
    if for_update:
        stmt = stmt.with_for_update()
    report = db.execute(stmt).scalar_one_or_none()
    if report is None:
        raise NotFound("Report not found")
    return report


def _ensure_date_free(db: Session, report_date: date, *, report_id: str | None = None) -> None:
    stmt = select(DayEndReport.id).where(DayEndReport.report_date == report_date)
    if report_id:
        stmt = stmt.where(DayEndReport.id != report_id)
    if db.execute(stmt.limit(1)).scalar_one_or_none() is not None:
        raise Conflict(f"A day-end report already exists for {report_date.isoformat()}")


def _price_locked(
    db: Session,
    candidates: Sequence[CandidateLine],
    *,
    markup,
    restored: dict[str, int] | None = None,
    action: str,
) -> PreviewResult:
    snapshot: dict[str, ItemSnapshot] = {}
    for candidate in candidates:
        if candidate.item_id not in snapshot:
            snapshot[candidate.item_id] = ItemSnapshot.from_item(lock_item(db, candidate.item_id))
    result = price_lines(candidates, snapshot, markup=markup, restored=restored)
    if result.shortages:
        raise InsufficientStock(result.shortages, action=action)
    return result


def _build_lines(report_id: str, priced: Sequence[PricedLine]) -> list[DayEndLine]:
    return [
        DayEndLine(
            id=generate_id(),
            report_id=report_id,
            item_id=line.item_id,
            position=position,
            channel=line.channel,
            quantity_sold_units=line.quantity_sold_units,
            mrp_price=line.mrp_price,
            selling_price_per_unit=line.selling_price_per_unit,
            line_revenue=line.line_revenue,
            cost_price_at_sale=line.cost_price_at_sale,
            line_cost=line.line_cost,
            line_profit=line.line_profit,
            line_net_profit=line.line_net_profit,
        )
        for position, line in enumerate(priced)
    ]


def _apply_totals(report: DayEndReport, result: PreviewResult) -> None:
    report.belt_markup = result.belt_markup
    report.total_sales_amount = result.total_revenue
    report.total_units_sold = result.total_units
    report.retail_revenue = result.retail_revenue
    report.belt_revenue = result.belt_revenue
    report.total_cost = result.total_cost
    report.total_profit = result.total_profit
    report.total_net_profit = result.total_net_profit


def _sale_deltas(lines) -> list[StockDelta]:
    return [StockDelta(line.item_id, -line.quantity_sold_units) for line in lines]


def _audit_metadata(report: DayEndReport) -> dict:
    return {
        "report_date": report.report_date.isoformat(),
        "line_count": len(report.lines),
        "total_units_sold": report.total_units_sold,
        "total_sales_amount": str(report.total_sales_amount),
    }


def create_day_end_report(
    db: Session,
    payload: DayEndReportCreate,
    *,
    actor_id: str | None = None,
) -> DayEndReport:
    report_id = generate_id()
    operation = LedgerOperation("day_end.create", report_id)
    try:
        with atomic(db, operation):
            _ensure_date_free(db, payload.report_date)
            candidates, _ = candidate_lines(db, payload.lines)
            result = _price_locked(
                db, candidates, markup=resolve_markup(payload.belt_markup), action="commit day-end report"
            )

            report = DayEndReport(
                id=report_id,
                report_date=payload.report_date,
                notes=payload.notes,
                created_by=actor_id,
            )
            _apply_totals(report, result)
            report.lines = _build_lines(report_id, result.lines)
            db.add(report)

            replace(
                db,
                operation,
                previous=[],
                proposed=_sale_deltas(report.lines),
                action_label="commit day-end report",
            )
            log_audit_event(
                db,
                actor_id=actor_id,
                action="day_end.create",
                target_type="day_end_report",
                target_id=report_id,
                metadata_json=_audit_metadata(report),
            )
    except IntegrityError as exc:
        # Lost a race with another report for the same date.
        raise Conflict(f"A day-end report already exists for {payload.report_date.isoformat()}") from exc
    return get_day_end_report(db, report_id)


def update_day_end_report(
    db: Session,
    report_id: str,
    payload: DayEndReportCreate,
    *,
    actor_id: str | None = None,
) -> DayEndReport:
    """Replace a report's lines; its old sales count as available stock for the new ones."""
    operation = LedgerOperation("day_end.update", report_id)
    try:
        with atomic(db, operation):
            report = _load_report(db, report_id, for_update=True)
            _ensure_date_free(db, payload.report_date, report_id=report_id)
            previous = _sale_deltas(report.lines)
            restored = sold_units_by_item(report)

            candidates, _ = candidate_lines(db, payload.lines)
            result = _price_locked(
                db,
                candidates,
                markup=resolve_markup(payload.belt_markup),
                restored=restored,
                action="update day-end report",
            )

            report.report_date = payload.report_date
            report.notes = payload.notes
            _apply_totals(report, result)
            report.lines.clear()
            db.flush()
            report.lines.extend(_build_lines(report_id, result.lines))

            replace(
                db,
                operation,
                previous=previous,
                proposed=_sale_deltas(report.lines),
                action_label="update day-end report",
            )
            log_audit_event(
                db,
                actor_id=actor_id,
                action="day_end.update",
                target_type="day_end_report",
                target_id=report_id,
                metadata_json=_audit_metadata(report),
            )
    except IntegrityError as exc:
        raise Conflict(f"A day-end report already exists for {payload.report_date.isoformat()}") from exc
    return get_day_end_report(db, report_id)


def delete_day_end_report(db: Session, report_id: str, *, actor_id: str | None = None) -> None:
    """Delete a report and return its sold units to stock."""
    operation = LedgerOperation("day_end.delete", report_id)
    with atomic(db, operation):
        report = _load_report(db, report_id, for_update=True)
        metadata = _audit_metadata(report)
        replace(
            db,
            operation,
            previous=_sale_deltas(report.lines),
            proposed=[],
            action_label="delete day-end report",
        )
        db.delete(report)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="day_end.delete",
            target_type="day_end_report",
            target_id=report_id,
            metadata_json=metadata,
        )


def get_day_end_report(db: Session, report_id: str) -> DayEndReport:
    return _load_report(db, report_id)


def list_day_end_reports(
    db: Session,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[DayEndReport], int]:
    filters = []
    if date_from is not None:
        filters.append(DayEndReport.report_date >= date_from)
    if date_to is not None:
        filters.append(DayEndReport.report_date <= date_to)

    total = int(db.execute(select(func.count(DayEndReport.id)).where(*filters)).scalar_one())
    reports = db.execute(
        select(DayEndReport)
        .where(*filters)
        .options(selectinload(DayEndReport.lines))
        .order_by(DayEndReport.report_date.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(reports), total
