"""Weighted-average costing.

The pure half (``compute_weighted_average``, ``allocate_charges``) has no I/O.
``refresh_item_costing`` and ``get_price_history`` feed it the committed
purchase history of an item.
"""
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockroom.core.errors import NotFound
from stockroom.core.money import ZERO_COST, cost_div, cost_mul, to_cost
from stockroom.models.item import Item
from stockroom.models.purchase import Purchase, PurchaseLine


@dataclass(frozen=True)
class CostEntry:
    quantity: int
    unit_cost: Decimal
    timestamp: date | datetime
    reference: str | None = None


@dataclass(frozen=True)
class RunningSnapshot:
    entry: CostEntry
    line_value: Decimal
    total_units: int
    total_value: Decimal
    weighted_avg_cost: Decimal


@dataclass(frozen=True)
class CostingResult:
    weighted_avg_cost: Decimal
    total_units_purchased: int
    total_value_purchased: Decimal
    snapshots: list[RunningSnapshot]


def _sort_key(entry: CostEntry) -> datetime:
    if isinstance(entry.timestamp, datetime):
        return entry.timestamp.replace(tzinfo=None)
    return datetime.combine(entry.timestamp, datetime.min.time())


def compute_weighted_average(history: Iterable[CostEntry]) -> CostingResult:
    total_units = 0
    total_value = ZERO_COST
    snapshots: list[RunningSnapshot] = []

    for entry in sorted(history, key=_sort_key):
        line_value = cost_mul(entry.quantity, entry.unit_cost)
        total_units += entry.quantity
        total_value = to_cost(total_value + line_value)
        snapshots.append(
            RunningSnapshot(
                entry=entry,
                line_value=line_value,
                total_units=total_units,
                total_value=total_value,
                weighted_avg_cost=cost_div(total_value, total_units),
            )
        )

    return CostingResult(
        weighted_avg_cost=cost_div(total_value, total_units),
        total_units_purchased=total_units,
        total_value_purchased=total_value,
        snapshots=snapshots,
    )


def line_total(quantity: int, unit_cost: Decimal) -> Decimal:
    return cost_mul(quantity, unit_cost)


def inventory_value(stock_units: int, weighted_avg_cost: Decimal) -> Decimal:
    return cost_mul(stock_units, weighted_avg_cost)


@dataclass(frozen=True)
class ChargeAllocation:
    allocated_tax: Decimal
    allocated_misc: Decimal
    unit_landed_cost: Decimal


def allocate_charges(
    lines: Sequence[tuple[int, Decimal]],
    *,
    tax_amount: Decimal | None,
    miscellaneous_charges: Decimal | None,
) -> list[ChargeAllocation]:
    """Spread record-level tax and misc charges over ``(quantity, unit_cost)`` lines by value."""
    tax = Decimal(tax_amount or 0)
    misc = Decimal(miscellaneous_charges or 0)
    base_values = [cost_mul(quantity, unit_cost) for quantity, unit_cost in lines]
    total_base = sum(base_values, ZERO_COST)

    allocations: list[ChargeAllocation] = []
    for (quantity, unit_cost), base_value in zip(lines, base_values):
        ratio = base_value / total_base if total_base else Decimal(0)
        allocated_tax = to_cost(tax * ratio)
        allocated_misc = to_cost(misc * ratio)
        landed_value = base_value + allocated_tax + allocated_misc
        unit_landed = cost_div(landed_value, quantity) if quantity else to_cost(unit_cost)
        allocations.append(
            ChargeAllocation(
                allocated_tax=allocated_tax,
                allocated_misc=allocated_misc,
                unit_landed_cost=unit_landed,
            )
        )
    return allocations


def _history_rows(db: Session, item_id: str) -> list[tuple[PurchaseLine, Purchase]]:
    rows = db.execute(
        select(PurchaseLine, Purchase)
        .join(Purchase, Purchase.id == PurchaseLine.purchase_id)
        .where(PurchaseLine.item_id == item_id)
        .order_by(Purchase.purchase_date, Purchase.created_at, PurchaseLine.position)
    ).all()
    return [(line, purchase) for line, purchase in rows]


def refresh_item_costing(db: Session, item_ids: Iterable[str]) -> None:
    """Rewrite the derived cost columns of each item from its full purchase history.

    Must run in the same transaction as the purchase mutation so the derived
    values never drift from the committed history.
    """
    db.flush()
    for item_id in dict.fromkeys(item_ids):
        item = db.get(Item, item_id)
        if item is None:
            continue
        history = _history_rows(db, item_id)

        base = compute_weighted_average(
            CostEntry(line.quantity_units, line.unit_cost_price, purchase.purchase_date, line.id)
            for line, purchase in history
        )
        landed = compute_weighted_average(
            CostEntry(line.quantity_units, line.unit_landed_cost_price, purchase.purchase_date, line.id)
            for line, purchase in history
        )
        item.weighted_avg_cost_price = base.weighted_avg_cost
        item.weighted_avg_landed_cost_price = landed.weighted_avg_cost

        if history:
            latest_line, _ = history[-1]
            item.purchase_cost_price = to_cost(latest_line.unit_cost_price)
            if latest_line.mrp_price_at_purchase is not None:
                item.mrp_price = to_cost(latest_line.mrp_price_at_purchase)


@dataclass(frozen=True)
class PriceHistoryEntry:
    purchase_id: str
    purchase_line_id: str
    purchase_date: date
    supplier_name: str | None
    snapshot: RunningSnapshot


@dataclass(frozen=True)
class PriceHistory:
    item: Item
    result: CostingResult
    entries: list[PriceHistoryEntry]


def get_price_history(db: Session, item_id: str) -> PriceHistory:
    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found")

    history = _history_rows(db, item_id)
    by_line_id = {line.id: (line, purchase) for line, purchase in history}
    result = compute_weighted_average(
        CostEntry(line.quantity_units, line.unit_cost_price, purchase.purchase_date, line.id)
        for line, purchase in history
    )

    entries = []
    for snapshot in result.snapshots:
        line, purchase = by_line_id[snapshot.entry.reference]
        entries.append(
            PriceHistoryEntry(
                purchase_id=purchase.id,
                purchase_line_id=line.id,
                purchase_date=purchase.purchase_date,
                supplier_name=purchase.supplier_name,
                snapshot=snapshot,
            )
        )
    return PriceHistory(item=item, result=result, entries=entries)
