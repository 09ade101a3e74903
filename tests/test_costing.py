from datetime import date
from decimal import Decimal

import pytest

from stockroom.core.cost_basis import (
    CaseCost,
    LineTotal,
    UnitCost,
    cost_bases,
    derive_case_stats,
    derive_quantity_units,
    resolve_unit_cost,
)
from stockroom.core.errors import NotFound
from stockroom.core.money import parse_decimal, to_cost
from stockroom.schemas.purchase import PurchaseCreate
from stockroom.services.costing_service import (
    CostEntry,
    allocate_charges,
    compute_weighted_average,
    get_price_history,
    inventory_value,
    line_total,
)
from stockroom.services.purchase_service import create_purchase


def test_weighted_average_of_two_purchases():
    result = compute_weighted_average(
        [
            CostEntry(10, Decimal("100"), date(2026, 10, 1)),
            CostEntry(10, Decimal("200"), date(2026, 10, 2)),
        ]
    )
    assert result.weighted_avg_cost == Decimal("150.0000")
    assert result.total_units_purchased == 20
    assert result.total_value_purchased == Decimal("3000.0000")
    assert [s.weighted_avg_cost for s in result.snapshots] == [Decimal("100.0000"), Decimal("150.0000")]


def test_weighted_average_sorts_history_chronologically():
    result = compute_weighted_average(
        [
            CostEntry(2, Decimal("10.5"), date(2026, 10, 5), "late"),
            CostEntry(1, Decimal("10"), date(2026, 10, 1), "early"),
        ]
    )
    assert [s.entry.reference for s in result.snapshots] == ["early", "late"]
    assert result.snapshots[0].weighted_avg_cost == Decimal("10.0000")
    assert result.weighted_avg_cost == Decimal("10.3333")


def test_weighted_average_of_empty_history_is_zero():
    result = compute_weighted_average([])
    assert result.weighted_avg_cost == Decimal("0.0000")
    assert result.total_units_purchased == 0
    assert result.snapshots == []


def test_line_total_has_no_float_artifacts():
    assert line_total(1, Decimal("8987.0000")) == Decimal("8987.0000")
    assert to_cost(8987 * 1.0) == Decimal("8987.0000")
    assert inventory_value(3, Decimal("6.6667")) == Decimal("20.0001")


def test_allocate_charges_by_line_value():
    allocations = allocate_charges(
        [(10, Decimal("100")), (10, Decimal("300"))],
        tax_amount=Decimal("40"),
        miscellaneous_charges=Decimal("8"),
    )
    assert [a.allocated_tax for a in allocations] == [Decimal("10.0000"), Decimal("30.0000")]
    assert [a.allocated_misc for a in allocations] == [Decimal("2.0000"), Decimal("6.0000")]
    assert [a.unit_landed_cost for a in allocations] == [Decimal("101.2000"), Decimal("303.6000")]


def test_allocate_charges_without_charges_keeps_unit_cost():
    allocations = allocate_charges([(4, Decimal("2.5"))], tax_amount=None, miscellaneous_charges=None)
    assert allocations[0].allocated_tax == Decimal("0.0000")
    assert allocations[0].unit_landed_cost == Decimal("2.5000")


def test_case_cost_resolves_to_four_decimal_unit_cost():
    bases = cost_bases(unit_cost=None, case_cost=Decimal("80"), line_total=None)
    assert bases == [CaseCost(Decimal("80"))]
    assert resolve_unit_cost(bases, quantity_units=120, units_per_pack=12) == Decimal("6.6667")


def test_line_total_basis_divides_by_quantity():
    assert LineTotal(Decimal("100")).resolve(quantity_units=3, units_per_pack=None) == Decimal("33.3333")


def test_unit_cost_takes_precedence_and_is_cross_checked():
    bases = cost_bases(unit_cost=Decimal("6.67"), case_cost=Decimal("80"), line_total=None)
    assert isinstance(bases[0], UnitCost)
    assert resolve_unit_cost(bases, quantity_units=12, units_per_pack=12) == Decimal("6.6700")

    with pytest.raises(ValueError, match="disagree"):
        resolve_unit_cost(
            cost_bases(unit_cost=Decimal("5"), case_cost=Decimal("80"), line_total=None),
            quantity_units=12,
            units_per_pack=12,
        )


def test_cost_requires_some_basis():
    with pytest.raises(ValueError):
        resolve_unit_cost([], quantity_units=1, units_per_pack=None)
    with pytest.raises(ValueError, match="units per pack"):
        CaseCost(Decimal("80")).resolve(quantity_units=10, units_per_pack=None)


def test_quantity_from_cases_and_loose_units():
    assert derive_quantity_units(quantity_units=None, cases=10, units_per_pack=12, loose_units=None) == 120
    assert derive_quantity_units(quantity_units=None, cases=2, units_per_pack=12, loose_units=5) == 29
    assert derive_quantity_units(quantity_units=7, cases=10, units_per_pack=12, loose_units=None) == 7
    assert derive_quantity_units(quantity_units=None, cases=None, units_per_pack=None, loose_units=4) == 4
    with pytest.raises(ValueError):
        derive_quantity_units(quantity_units=None, cases=3, units_per_pack=None, loose_units=None)


def test_case_stats_fill_in_missing_case_fields():
    stats = derive_case_stats(
        quantity_units=120,
        unit_cost=Decimal("6.6667"),
        units_per_pack=12,
        cases_quantity=None,
        case_cost=Decimal("80"),
        line_total=None,
    )
    assert stats.cases_quantity == 10
    assert stats.units_per_case == 12
    assert stats.case_cost_price == Decimal("80.0000")
    assert stats.line_total_price == Decimal("800.0040")


def test_parse_decimal_is_lenient_with_spreadsheet_cells():
    assert parse_decimal(" 1,440.50 ") == Decimal("1440.50")
    assert parse_decimal("") is None
    assert parse_decimal(12.5) == Decimal("12.5")
    with pytest.raises(ValueError):
        parse_decimal("twelve")
    with pytest.raises(ValueError):
        parse_decimal(True)


def test_purchases_drive_item_costing(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 10, "100", purchase_date=date(2026, 10, 1))
    stock_in(item, 10, "200", purchase_date=date(2026, 10, 2))

    db_session.refresh(item)
    assert item.weighted_avg_cost_price == Decimal("150.0000")
    assert item.purchase_cost_price == Decimal("200.0000")
    assert item.current_stock_units == 20
    assert item.total_inventory_value == Decimal("3000.0000")


def test_charges_only_move_the_landed_average(db_session, make_item):
    item = make_item("KF-650")
    create_purchase(
        db_session,
        PurchaseCreate(
            purchase_date=date(2026, 10, 1),
            tax_amount=Decimal("50"),
            line_items=[{"item_id": item.id, "quantity_units": 10, "unit_cost_price": "100"}],
        ),
    )

    db_session.refresh(item)
    assert item.weighted_avg_cost_price == Decimal("100.0000")
    assert item.weighted_avg_landed_cost_price == Decimal("105.0000")


def test_price_history_lists_running_averages(db_session, make_item, stock_in):
    item = make_item("KF-650")
    stock_in(item, 10, "200", purchase_date=date(2026, 10, 2))
    stock_in(item, 10, "100", purchase_date=date(2026, 10, 1))

    history = get_price_history(db_session, item.id)
    assert [entry.purchase_date for entry in history.entries] == [date(2026, 10, 1), date(2026, 10, 2)]
    assert [entry.snapshot.weighted_avg_cost for entry in history.entries] == [
        Decimal("100.0000"),
        Decimal("150.0000"),
    ]
    assert history.result.total_units_purchased == 20


def test_price_history_of_unknown_item(db_session):
    with pytest.raises(NotFound):
        get_price_history(db_session, "missing")
