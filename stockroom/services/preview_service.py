"""Day-end pricing and shortage detection.

``price_lines`` is a pure function over an item snapshot. Committing a
report uses it over locked rows; previewing uses it over a plain read and
never touches the stock ledger.
"""
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.core.errors import NotFound, Shortage, ValidationFailed
from stockroom.core.money import ZERO_COST, cost_mul, to_cost, to_money
from stockroom.models.day_end import DayEndReport, SalesChannel
from stockroom.models.item import Item
from stockroom.schemas.day_end import DayEndLineIn, DayEndReportCreate


@dataclass(frozen=True)
class ItemSnapshot:
    item_id: str
    name: str
    sku: str
    mrp_price: Decimal
    unit_cost: Decimal
    landed_unit_cost: Decimal
    stock_units: int

    @classmethod
    def from_item(cls, item: Item) -> "ItemSnapshot":
        return cls(
            item_id=item.id,
            name=item.name,
            sku=item.sku,
            mrp_price=to_cost(item.mrp_price),
            unit_cost=to_cost(item.unit_cost_basis),
            landed_unit_cost=to_cost(item.landed_cost_basis),
            stock_units=item.current_stock_units,
        )


@dataclass(frozen=True)
class CandidateLine:
    item_id: str
    channel: SalesChannel
    quantity: int
    selling_price: Decimal | None = None


@dataclass(frozen=True)
class PricedLine:
    item_id: str
    item_name: str
    sku: str
    channel: SalesChannel
    quantity_sold_units: int
    mrp_price: Decimal
    selling_price_per_unit: Decimal
    line_revenue: Decimal
    cost_price_at_sale: Decimal
    line_cost: Decimal
    line_profit: Decimal
    line_net_profit: Decimal


@dataclass(frozen=True)
class PreviewResult:
    belt_markup: Decimal
    total_revenue: Decimal
    retail_revenue: Decimal
    belt_revenue: Decimal
    total_units: int
    total_cost: Decimal
    total_profit: Decimal
    total_net_profit: Decimal
    profit_margin: Decimal
    lines: list[PricedLine]
    shortages: list[Shortage]


def selling_price_for(
    channel: SalesChannel,
    *,
    mrp_price: Decimal,
    markup: Decimal,
    override: Decimal | None = None,
) -> Decimal:
    if override is not None:
        return to_cost(override)
    if channel == SalesChannel.BELT:
        return to_cost(mrp_price + markup)
    return to_cost(mrp_price)


def price_lines(
    lines: Sequence[CandidateLine],
    snapshot: Mapping[str, ItemSnapshot],
    *,
    markup: Decimal,
    restored: Mapping[str, int] | None = None,
) -> PreviewResult:
    """Price every line and compare the summed demand per item with available stock.

    ``restored`` holds units that an edit would put back before applying the
    new lines, so they count as available.
    """
    restored = restored or {}
    priced: list[PricedLine] = []
    demand: dict[str, int] = {}
    retail_revenue = belt_revenue = total_cost = total_net_cost = ZERO_COST
    total_units = 0

    for line in lines:
        item = snapshot[line.item_id]
        selling_price = selling_price_for(
            line.channel, mrp_price=item.mrp_price, markup=markup, override=line.selling_price
        )
        revenue = cost_mul(line.quantity, selling_price)
        cost = cost_mul(line.quantity, item.unit_cost)
        landed_cost = cost_mul(line.quantity, item.landed_unit_cost)
        priced.append(
            PricedLine(
                item_id=item.item_id,
                item_name=item.name,
                sku=item.sku,
                channel=line.channel,
                quantity_sold_units=line.quantity,
                mrp_price=item.mrp_price,
                selling_price_per_unit=selling_price,
                line_revenue=revenue,
                cost_price_at_sale=item.unit_cost,
                line_cost=cost,
                line_profit=to_cost(revenue - cost),
                line_net_profit=to_cost(revenue - landed_cost),
            )
        )
        if line.channel == SalesChannel.BELT:
            belt_revenue += revenue
        else:
            retail_revenue += revenue
        total_cost += cost
        total_net_cost += landed_cost
        total_units += line.quantity
        demand[item.item_id] = demand.get(item.item_id, 0) + line.quantity

    shortages = []
    for item_id, required in demand.items():
        item = snapshot[item_id]
        available = item.stock_units + restored.get(item_id, 0)
        if required > available:
            shortages.append(
                Shortage(item_id=item_id, item_name=item.name, required=required, available=available)
            )

    total_revenue = to_cost(retail_revenue + belt_revenue)
    total_profit = to_cost(total_revenue - total_cost)
    return PreviewResult(
        belt_markup=to_cost(markup),
        total_revenue=total_revenue,
        retail_revenue=to_cost(retail_revenue),
        belt_revenue=to_cost(belt_revenue),
        total_units=total_units,
        total_cost=to_cost(total_cost),
        total_profit=total_profit,
        total_net_profit=to_cost(total_revenue - total_net_cost),
        profit_margin=to_money(total_profit / total_revenue * 100) if total_revenue else to_money(0),
        lines=priced,
        shortages=shortages,
    )


def resolve_markup(markup: Decimal | None) -> Decimal:
    if markup is not None:
        return to_cost(markup)
    return to_cost(settings.default_belt_markup)


def resolve_sale_item(db: Session, line: DayEndLineIn, *, position: int) -> Item:
    item = None
    if line.item_id:
        item = db.get(Item, line.item_id)
    if item is None and line.sku:
        item = db.execute(
            select(Item).where(func.lower(Item.sku) == line.sku.lower())
        ).scalar_one_or_none()
    if item is None:
        reference = line.item_id or line.sku
        raise ValidationFailed(
            f"Unknown item in sales line {position + 1}: {reference}",
            details=[{"field": f"lines.{position}", "message": "Unknown item", "type": "unknown_item"}],
        )
    return item


def candidate_lines(db: Session, lines: Sequence[DayEndLineIn]) -> tuple[list[CandidateLine], list[Item]]:
    candidates = []
    items = []
    for position, line in enumerate(lines):
        item = resolve_sale_item(db, line, position=position)
        items.append(item)
        candidates.append(
            CandidateLine(
                item_id=item.id,
                channel=line.channel,
                quantity=line.quantity_sold_units,
                selling_price=line.selling_price_per_unit,
            )
        )
    return candidates, items


def sold_units_by_item(report: DayEndReport) -> dict[str, int]:
    sold: dict[str, int] = {}
    for line in report.lines:
        sold[line.item_id] = sold.get(line.item_id, 0) + line.quantity_sold_units
    return sold


def preview_day_end_report(
    db: Session,
    payload: DayEndReportCreate,
    *,
    editing_report_id: str | None = None,
) -> PreviewResult:
    restored: dict[str, int] = {}
    if editing_report_id:
        report = db.execute(
            select(DayEndReport).where(DayEndReport.id == editing_report_id)
        ).scalar_one_or_none()
        if report is None:
            raise NotFound("Report not found")
        restored = sold_units_by_item(report)

    candidates, items = candidate_lines(db, payload.lines)
    snapshot = {item.id: ItemSnapshot.from_item(item) for item in items}
    return price_lines(candidates, snapshot, markup=resolve_markup(payload.belt_markup), restored=restored)


__all__ = [
    "CandidateLine",
    "ItemSnapshot",
    "PreviewResult",
    "PricedLine",
    "candidate_lines",
    "preview_day_end_report",
    "price_lines",
    "resolve_markup",
    "selling_price_for",
    "sold_units_by_item",
]
