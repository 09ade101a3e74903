from datetime import date
from decimal import Decimal

import pytest

from stockroom.core.errors import Conflict, InsufficientStock, NotFound, ValidationFailed
from stockroom.models.day_end import SalesChannel
from stockroom.schemas.day_end import DayEndReportCreate
from stockroom.schemas.purchase import PurchaseCreate
from stockroom.services.day_end_service import (
    create_day_end_report,
    delete_day_end_report,
    get_day_end_report,
    list_day_end_reports,
    update_day_end_report,
)
from stockroom.services.preview_service import (
    CandidateLine,
    ItemSnapshot,
    preview_day_end_report,
    price_lines,
)
from stockroom.services.purchase_service import create_purchase


def _report(lines, *, report_date=date(2026, 10, 18), **extra) -> DayEndReportCreate:
    return DayEndReportCreate(report_date=report_date, lines=lines, **extra)


def _snapshot(stock: int) -> dict[str, ItemSnapshot]:
    return {
        "kf": ItemSnapshot(
            item_id="kf",
            name="Kingfisher 650ml",
            sku="KF-650",
            mrp_price=Decimal("100"),
            unit_cost=Decimal("60"),
            landed_unit_cost=Decimal("63"),
            stock_units=stock,
        )
    }


def test_price_lines_for_both_channels():
    result = price_lines(
        [
            CandidateLine("kf", SalesChannel.RETAIL, 3),
            CandidateLine("kf", SalesChannel.BELT, 2),
        ],
        _snapshot(10),
        markup=Decimal("20"),
    )

    assert result.retail_revenue == Decimal("300.0000")
    assert result.belt_revenue == Decimal("240.0000")
    assert result.total_revenue == Decimal("540.0000")
    assert result.total_cost == Decimal("300.0000")
    assert result.total_profit == Decimal("240.0000")
    assert result.total_net_profit == Decimal("225.0000")
    assert result.profit_margin == Decimal("44.44")
    assert result.total_units == 5
    assert [line.selling_price_per_unit for line in result.lines] == [Decimal("100.0000"), Decimal("120.0000")]
    assert result.shortages == []


def test_price_lines_honours_selling_price_override():
    result = price_lines(
        [CandidateLine("kf", SalesChannel.BELT, 1, selling_price=Decimal("150"))],
        _snapshot(10),
        markup=Decimal("20"),
    )
    assert result.lines[0].line_revenue == Decimal("150.0000")


def test_shortage_sums_quantities_across_lines():
    result = price_lines(
        [
            CandidateLine("kf", SalesChannel.RETAIL, 3),
            CandidateLine("kf", SalesChannel.BELT, 3),
        ],
        _snapshot(5),
        markup=Decimal("20"),
    )
    assert [(s.required, s.available) for s in result.shortages] == [(6, 5)]


def test_restored_units_count_as_available():
    lines = [CandidateLine("kf", SalesChannel.RETAIL, 6)]
    assert price_lines(lines, _snapshot(2), markup=Decimal("0"), restored={"kf": 5}).shortages == []


def test_preview_reports_shortage_and_commit_refuses(db_session, make_item, stock_in):
    item = make_item("KF-650", name="Kingfisher 650ml")
    stock_in(item, 5, "60")
    payload = _report([{"sku": "kf-650", "quantity_sold_units": 8}])

    preview = preview_day_end_report(db_session, payload)
    assert [(s.item_id, s.required, s.available) for s in preview.shortages] == [(item.id, 8, 5)]

    with pytest.raises(InsufficientStock) as excinfo:
        create_day_end_report(db_session, payload)
    assert excinfo.value.shortages[0].required == 8

    db_session.refresh(item)
    assert item.current_stock_units == 5
    assert list_day_end_reports(db_session)[1] == 0


def test_preview_never_moves_stock(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 5, "60")
    preview_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 3}]))
    db_session.refresh(item)
    assert item.current_stock_units == 5


def test_edit_aware_preview(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 7, "60")
    report = create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 5}]))
    db_session.refresh(item)
    assert item.current_stock_units == 2

    ok = preview_day_end_report(
        db_session, _report([{"item_id": item.id, "quantity_sold_units": 6}]), editing_report_id=report.id
    )
    assert ok.shortages == []

    short = preview_day_end_report(
        db_session, _report([{"item_id": item.id, "quantity_sold_units": 8}]), editing_report_id=report.id
    )
    shortage = short.shortages[0]
    assert shortage.required - shortage.available == 1


def test_preview_of_unknown_report(db_session, make_item):
    item = make_item("KF-650")
    with pytest.raises(NotFound):
        preview_day_end_report(
            db_session, _report([{"item_id": item.id, "quantity_sold_units": 1}]), editing_report_id="missing"
        )


def test_commit_stores_priced_lines(db_session, make_item, stock_in):
    item = make_item("KF-650", mrp="100")
    stock_in(item, 10, "60")

    report = create_day_end_report(
        db_session,
        _report(
            [
                {"item_id": item.id, "channel": "primary", "quantity_sold_units": 3},
                {"item_id": item.id, "channel": "SECONDARY", "quantity_sold_units": 2},
            ],
            belt_markup=Decimal("20"),
        ),
        actor_id="clerk-1",
    )

    assert [line.channel for line in report.lines] == [SalesChannel.RETAIL, SalesChannel.BELT]
    assert report.total_sales_amount == Decimal("540.0000")
    assert report.total_units_sold == 5
    assert report.total_profit == Decimal("240.0000")
    assert report.created_by == "clerk-1"
    db_session.refresh(item)
    assert item.current_stock_units == 5


def test_default_markup_comes_from_settings(db_session, make_item, stock_in):
    item = make_item("KF-650", mrp="100")
    stock_in(item, 10, "60")
    report = create_day_end_report(
        db_session, _report([{"item_id": item.id, "channel": "BELT", "quantity_sold_units": 1}])
    )
    assert report.belt_markup == Decimal("20.0000")
    assert report.lines[0].selling_price_per_unit == Decimal("120.0000")


def test_net_profit_uses_landed_cost(db_session, make_item):
    item = make_item("KF-650", mrp="100")
    create_purchase(
        db_session,
        PurchaseCreate(
            purchase_date=date(2026, 10, 1),
            tax_amount=Decimal("30"),
            line_items=[{"item_id": item.id, "quantity_units": 10, "unit_cost_price": "60"}],
        ),
    )
    report = create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 2}]))
    assert report.total_profit == Decimal("80.0000")
    assert report.total_net_profit == Decimal("74.0000")


def test_edit_increasing_quantity_uses_restored_units(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 7, "60")
    report = create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 5}]))

    updated = update_day_end_report(
        db_session, report.id, _report([{"item_id": item.id, "quantity_sold_units": 6}])
    )
    assert updated.total_units_sold == 6
    db_session.refresh(item)
    assert item.current_stock_units == 1

    with pytest.raises(InsufficientStock):
        update_day_end_report(db_session, report.id, _report([{"item_id": item.id, "quantity_sold_units": 8}]))
    db_session.refresh(item)
    assert item.current_stock_units == 1
    assert get_day_end_report(db_session, report.id).total_units_sold == 6


def test_no_op_report_edit_keeps_stock(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 7, "60")
    lines = [{"item_id": item.id, "quantity_sold_units": 5}]
    report = create_day_end_report(db_session, _report(lines))
    update_day_end_report(db_session, report.id, _report(lines))
    db_session.refresh(item)
    assert item.current_stock_units == 2


def test_delete_report_returns_stock(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 7, "60")
    report = create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 5}]))

    delete_day_end_report(db_session, report.id)

    db_session.refresh(item)
    assert item.current_stock_units == 7
    with pytest.raises(NotFound):
        get_day_end_report(db_session, report.id)


def test_one_report_per_date(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 7, "60")
    create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 1}]))

    with pytest.raises(Conflict):
        create_day_end_report(db_session, _report([{"item_id": item.id, "quantity_sold_units": 1}]))
    db_session.refresh(item)
    assert item.current_stock_units == 6


def test_unknown_sku_is_a_validation_error(db_session):
    with pytest.raises(ValidationFailed, match="Unknown item"):
        create_day_end_report(db_session, _report([{"sku": "nope", "quantity_sold_units": 1}]))


def test_line_needs_an_item_reference():
    with pytest.raises(ValueError):
        _report([{"quantity_sold_units": 1}])
