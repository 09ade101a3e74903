"""Canonical quantity and unit-cost derivation for purchase lines.

A purchase line may state its cost as a unit cost, a case cost or a line
total. Whichever is given is wrapped in one of the ``CostBasis`` variants and
resolved once into a four-decimal unit cost; every other price on the line is
derived from that.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from stockroom.core.money import cost_div, cost_mul, to_cost

CROSS_CHECK_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class UnitCost:
    value: Decimal

    def resolve(self, *, quantity_units: int, units_per_pack: int | None) -> Decimal:
        return to_cost(self.value)


@dataclass(frozen=True)
class CaseCost:
    value: Decimal

    def resolve(self, *, quantity_units: int, units_per_pack: int | None) -> Decimal:
        if not units_per_pack:
            raise ValueError("Case cost given without units per pack")
        return cost_div(self.value, units_per_pack)


@dataclass(frozen=True)
class LineTotal:
    value: Decimal

    def resolve(self, *, quantity_units: int, units_per_pack: int | None) -> Decimal:
        if not quantity_units:
            raise ValueError("Line total given without a quantity")
        return cost_div(self.value, quantity_units)


CostBasis = Union[UnitCost, CaseCost, LineTotal]


def cost_bases(
    *,
    unit_cost: Decimal | None,
    case_cost: Decimal | None,
    line_total: Decimal | None,
) -> list[CostBasis]:
    """Supplied bases in precedence order: unit, case, line total."""
    bases: list[CostBasis] = []
    if unit_cost is not None:
        bases.append(UnitCost(unit_cost))
    if case_cost is not None:
        bases.append(CaseCost(case_cost))
    if line_total is not None:
        bases.append(LineTotal(line_total))
    return bases


def resolve_unit_cost(
    bases: list[CostBasis],
    *,
    quantity_units: int,
    units_per_pack: int | None,
) -> Decimal:
    if not bases:
        raise ValueError("One of unit cost, case cost or line total is required")

    authoritative = bases[0].resolve(quantity_units=quantity_units, units_per_pack=units_per_pack)
    for other in bases[1:]:
        try:
            derived = other.resolve(quantity_units=quantity_units, units_per_pack=units_per_pack)
        except ValueError:
            # Not enough context to cross-check this basis.
            continue
        if abs(derived - authoritative) > CROSS_CHECK_TOLERANCE:
            raise ValueError(
                f"Cost fields disagree: {type(bases[0]).__name__} gives {authoritative}, "
                f"{type(other).__name__} gives {derived}"
            )
    return authoritative


def derive_quantity_units(
    *,
    quantity_units: int | None,
    cases: int | None,
    units_per_pack: int | None,
    loose_units: int | None,
) -> int | None:
    """Return whole units, deriving ``cases * units_per_pack + loose_units`` when needed."""
    if quantity_units is not None:
        return quantity_units
    if cases is None:
        return loose_units
    if cases and not units_per_pack:
        raise ValueError("Cases given without units per pack")
    return cases * (units_per_pack or 0) + (loose_units or 0)


@dataclass(frozen=True)
class CaseStats:
    units_per_case: int | None
    cases_quantity: int | None
    case_cost_price: Decimal | None
    line_total_price: Decimal


def derive_case_stats(
    *,
    quantity_units: int,
    unit_cost: Decimal,
    units_per_pack: int | None,
    cases_quantity: int | None,
    case_cost: Decimal | None,
    line_total: Decimal | None,
) -> CaseStats:
    units_per_case = units_per_pack
    if units_per_case is None and cases_quantity:
        units_per_case = round(quantity_units / cases_quantity) or None

    cases = cases_quantity
    if cases is None and units_per_case:
        cases = quantity_units // units_per_case

    case_cost_price = to_cost(case_cost) if case_cost is not None else None
    if case_cost_price is None and units_per_case:
        case_cost_price = cost_mul(units_per_case, unit_cost)

    line_total_price = to_cost(line_total) if line_total is not None else cost_mul(quantity_units, unit_cost)
    return CaseStats(
        units_per_case=units_per_case,
        cases_quantity=cases,
        case_cost_price=case_cost_price,
        line_total_price=line_total_price,
    )
