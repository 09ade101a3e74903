from datetime import date

import pytest

from stockroom.core.errors import InsufficientStock, NotFound
from stockroom.schemas.adjustment import StockAdjustIn
from stockroom.schemas.day_end import DayEndReportCreate
from stockroom.services.adjustment_service import create_adjustment, list_adjustments
from stockroom.services.day_end_service import create_day_end_report
from stockroom.services.stock_ledger_service import apply_delta, expected_stock_units, reverse_delta
from stockroom.services.transaction_coordinator import (
    LedgerOperation,
    OperationState,
    StockDelta,
    aggregate_deltas,
    replace,
)


def test_reverse_then_reapply_is_a_no_op(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 12, "10")

    reverse_delta(db_session, item.id, 5)
    apply_delta(db_session, item.id, 5)
    db_session.commit()

    db_session.refresh(item)
    assert item.current_stock_units == 12


def test_apply_delta_refuses_negative_stock(db_session, make_item, stock_in):
    item = make_item("KF-650", name="Kingfisher 650ml")
    stock_in(item, 5, "10")

    with pytest.raises(InsufficientStock) as excinfo:
        apply_delta(db_session, item.id, -8)
    db_session.rollback()

    shortage = excinfo.value.shortages[0]
    assert (shortage.required, shortage.available) == (8, 5)
    assert "Kingfisher 650ml (needs 8, has 5)" in excinfo.value.message
    db_session.refresh(item)
    assert item.current_stock_units == 5


def test_apply_delta_unknown_item(db_session):
    with pytest.raises(NotFound):
        apply_delta(db_session, "missing", 1)


def test_aggregate_deltas_sums_per_item_in_first_seen_order():
    deltas = aggregate_deltas(
        [StockDelta("b", 2), StockDelta("a", -1), StockDelta("b", 3), StockDelta("a", 1)]
    )
    assert deltas == [StockDelta("b", 5)]


def test_replace_reports_every_short_item(db_session, make_item, stock_in):
    first = make_item("A")
    second = make_item("B")
    stock_in(first, 2, "10")
    stock_in(second, 1, "10")

    operation = LedgerOperation("test.sale")
    with pytest.raises(InsufficientStock) as excinfo:
        replace(
            db_session,
            operation,
            previous=[],
            proposed=[StockDelta(first.id, -2), StockDelta(first.id, -1), StockDelta(second.id, -4)],
        )
    db_session.rollback()

    shortages = {s.item_id: (s.required, s.available) for s in excinfo.value.shortages}
    assert shortages == {first.id: (3, 2), second.id: (4, 1)}


def test_replace_refuses_to_strand_sold_units(db_session, make_item, stock_in):
    item = make_item("A")
    stock_in(item, 10, "10")
    create_day_end_report(
        db_session,
        DayEndReportCreate(report_date=date(2026, 10, 2), lines=[{"item_id": item.id, "quantity_sold_units": 8}]),
    )

    with pytest.raises(InsufficientStock) as excinfo:
        replace(db_session, LedgerOperation("test.unstock"), previous=[StockDelta(item.id, 10)], proposed=[])
    db_session.rollback()

    shortage = excinfo.value.shortages[0]
    assert (shortage.required, shortage.available) == (10, 2)
    db_session.refresh(item)
    assert item.current_stock_units == 2


def test_operation_state_machine():
    operation = LedgerOperation("test.op")
    assert operation.state == OperationState.VALIDATED
    operation.advance(OperationState.REVERSED_PRIOR)
    operation.advance(OperationState.APPLYING)
    operation.advance(OperationState.COMMITTED)
    with pytest.raises(RuntimeError):
        operation.advance(OperationState.APPLYING)

    failed = LedgerOperation("test.failed")
    failed.fail(ValueError("boom"))
    assert failed.state == OperationState.FAILED


def test_stock_matches_committed_records(db_session, make_item, stock_in):
    item = make_item("A")
    stock_in(item, 10, "10", purchase_date=date(2026, 10, 1))
    stock_in(item, 6, "12", purchase_date=date(2026, 10, 2))
    create_day_end_report(
        db_session,
        DayEndReportCreate(report_date=date(2026, 10, 3), lines=[{"item_id": item.id, "quantity_sold_units": 7}]),
    )
    create_adjustment(db_session, StockAdjustIn(item_id=item.id, adjustment_units=-2, reason="broken"))

    db_session.refresh(item)
    assert item.current_stock_units == 7
    assert expected_stock_units(db_session, item.id) == 7


def test_adjustment_records_stock_after(db_session, make_item, stock_in):
    item = make_item("A")
    stock_in(item, 4, "10")

    adjustment, stock_after = create_adjustment(
        db_session, StockAdjustIn(item_id=item.id, adjustment_units=3, reason="recount"), actor_id="clerk-1"
    )
    assert stock_after == 7
    assert adjustment.created_by == "clerk-1"

    with pytest.raises(InsufficientStock):
        create_adjustment(db_session, StockAdjustIn(item_id=item.id, adjustment_units=-8))

    rows, total = list_adjustments(db_session, item_id=item.id)
    assert total == 1
    assert rows[0].adjustment_units == 3
    db_session.refresh(item)
    assert item.current_stock_units == 7


def test_zero_adjustment_is_rejected():
    with pytest.raises(ValueError):
        StockAdjustIn(item_id="x", adjustment_units=0)
