from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from stockroom.core.cost_basis import derive_case_stats
from stockroom.core.errors import NotFound, ValidationFailed
from stockroom.core.id_utils import generate_id
from stockroom.core.money import ZERO_COST, to_cost, to_money
from stockroom.models.item import Item
from stockroom.models.purchase import Purchase, PurchaseLine
from stockroom.schemas.purchase import PurchaseCreate, PurchaseLineIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.costing_service import allocate_charges, refresh_item_costing
from stockroom.services.item_service import apply_line_metadata, resolve_purchase_item
from stockroom.services.transaction_coordinator import LedgerOperation, StockDelta, atomic, replace


def _load_purchase(db: Session, purchase_id: str, *, for_update: bool = False) -> Purchase:
    stmt = (
        select(Purchase)
        .where(Purchase.id == purchase_id)
        .options(selectinload(Purchase.lines).selectinload(PurchaseLine.item))
    )
    if for_update:
        stmt = stmt.with_for_update()
    purchase = db.execute(stmt).scalar_one_or_none()
    if purchase is None:
        raise NotFound("Purchase not found")
    return purchase


def _resolve_lines(
    db: Session,
    lines: Sequence[PurchaseLineIn],
    *,
    allow_creation: bool,
) -> list[tuple[PurchaseLineIn, Item]]:
    resolved = []
    for line in lines:
        item = resolve_purchase_item(db, line, allow_creation=allow_creation)
        if not line.is_resolved:
            try:
                line = line.resolved_with_pack_size(item.units_per_pack)
            except ValueError as exc:
                raise ValidationFailed(f"{item.name}: {exc}") from exc
        apply_line_metadata(item, line)
        resolved.append((line, item))
    return resolved


def _build_lines(
    purchase_id: str,
    resolved: Sequence[tuple[PurchaseLineIn, Item]],
    *,
    tax_amount: Decimal | None,
    miscellaneous_charges: Decimal | None,
) -> list[PurchaseLine]:
    allocations = allocate_charges(
        [(line.quantity_units, line.unit_cost_price) for line, _ in resolved],
        tax_amount=tax_amount,
        miscellaneous_charges=miscellaneous_charges,
    )

    records = []
    for position, ((line, item), allocation) in enumerate(zip(resolved, allocations)):
        unit_cost = to_cost(line.unit_cost_price)
        stats = derive_case_stats(
            quantity_units=line.quantity_units,
            unit_cost=unit_cost,
            units_per_pack=line.units_per_pack or item.units_per_pack,
            cases_quantity=line.cases_quantity,
            case_cost=line.case_cost_price,
            line_total=line.line_total_price,
        )
        records.append(
            PurchaseLine(
                id=generate_id(),
                purchase_id=purchase_id,
                item_id=item.id,
                position=position,
                quantity_units=line.quantity_units,
                cases_quantity=stats.cases_quantity,
                units_per_case=stats.units_per_case,
                unit_cost_price=unit_cost,
                case_cost_price=stats.case_cost_price,
                line_total_price=stats.line_total_price,
                allocated_tax_amount=allocation.allocated_tax or None,
                allocated_misc_charges=allocation.allocated_misc or None,
                unit_landed_cost_price=allocation.unit_landed_cost,
                mrp_price_at_purchase=to_cost(line.mrp_price) if line.mrp_price is not None else None,
                brand_number=line.brand_number or item.brand_number,
                size_code=line.size_code or item.size_code,
                pack_type=line.pack_type or item.pack_type,
            )
        )
    return records


def _deltas(lines: Sequence[PurchaseLine]) -> list[StockDelta]:
    return [StockDelta(line.item_id, line.quantity_units) for line in lines]


def _charges(payload: PurchaseCreate) -> dict[str, Decimal | None]:
    return {
        "tax_amount": to_money(payload.tax_amount) if payload.tax_amount is not None else None,
        "miscellaneous_charges": (
            to_money(payload.miscellaneous_charges) if payload.miscellaneous_charges is not None else None
        ),
    }


def _audit_metadata(purchase: Purchase) -> dict:
    return {
        "purchase_date": purchase.purchase_date.isoformat(),
        "supplier_name": purchase.supplier_name,
        "line_count": len(purchase.lines),
        "total_quantity": sum(line.quantity_units for line in purchase.lines),
    }


def create_purchase(db: Session, payload: PurchaseCreate, *, actor_id: str | None = None) -> Purchase:
    purchase_id = generate_id()
    operation = LedgerOperation("purchase.create", purchase_id)
    with atomic(db, operation):
        resolved = _resolve_lines(db, payload.line_items, allow_creation=payload.allow_item_creation)
        charges = _charges(payload)
        purchase = Purchase(
            id=purchase_id,
            purchase_date=payload.purchase_date,
            supplier_name=payload.supplier_name,
            notes=payload.notes,
            created_by=actor_id,
            **charges,
        )
        purchase.lines = _build_lines(purchase_id, resolved, **charges)
        db.add(purchase)

        replace(db, operation, previous=[], proposed=_deltas(purchase.lines), action_label="create purchase")
        refresh_item_costing(db, [item.id for _, item in resolved])
        log_audit_event(
            db,
            actor_id=actor_id,
            action="purchase.create",
            target_type="purchase",
            target_id=purchase_id,
            metadata_json=_audit_metadata(purchase),
        )
    return get_purchase(db, purchase_id)


def update_purchase(
    db: Session,
    purchase_id: str,
    payload: PurchaseCreate,
    *,
    actor_id: str | None = None,
) -> Purchase:
    operation = LedgerOperation("purchase.update", purchase_id)
    with atomic(db, operation):
        purchase = _load_purchase(db, purchase_id, for_update=True)
        previous = _deltas(purchase.lines)

        resolved = _resolve_lines(db, payload.line_items, allow_creation=payload.allow_item_creation)
        charges = _charges(payload)
        purchase.purchase_date = payload.purchase_date
        purchase.supplier_name = payload.supplier_name
        purchase.notes = payload.notes
        purchase.tax_amount = charges["tax_amount"]
        purchase.miscellaneous_charges = charges["miscellaneous_charges"]

        # The old line set is dropped whole; the new one is built from scratch.
        purchase.lines.clear()
        db.flush()
        purchase.lines.extend(_build_lines(purchase_id, resolved, **charges))

        replace(
            db,
            operation,
            previous=previous,
            proposed=_deltas(purchase.lines),
            action_label="update purchase",
        )
        refresh_item_costing(db, [d.item_id for d in previous] + [item.id for _, item in resolved])
        log_audit_event(
            db,
            actor_id=actor_id,
            action="purchase.update",
            target_type="purchase",
            target_id=purchase_id,
            metadata_json=_audit_metadata(purchase),
        )
    return get_purchase(db, purchase_id)


def delete_purchase(db: Session, purchase_id: str, *, actor_id: str | None = None) -> None:
    operation = LedgerOperation("purchase.delete", purchase_id)
    with atomic(db, operation):
        purchase = _load_purchase(db, purchase_id, for_update=True)
        previous = _deltas(purchase.lines)
        metadata = _audit_metadata(purchase)

        replace(db, operation, previous=previous, proposed=[], action_label="delete purchase")
        db.delete(purchase)
        refresh_item_costing(db, [d.item_id for d in previous])
        log_audit_event(
            db,
            actor_id=actor_id,
            action="purchase.delete",
            target_type="purchase",
            target_id=purchase_id,
            metadata_json=metadata,
        )


def get_purchase(db: Session, purchase_id: str) -> Purchase:
    return _load_purchase(db, purchase_id)


@dataclass(frozen=True)
class PurchaseSummary:
    id: str
    purchase_date: date
    supplier_name: str | None
    line_count: int
    total_quantity: int
    total_cost: Decimal


def list_purchases(
    db: Session,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseSummary], int]:
    filters = []
    if date_from is not None:
        filters.append(Purchase.purchase_date >= date_from)
    if date_to is not None:
        filters.append(Purchase.purchase_date <= date_to)

    total = int(db.execute(select(func.count(Purchase.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(
            Purchase.id,
            Purchase.purchase_date,
            Purchase.supplier_name,
            func.count(PurchaseLine.id),
            func.coalesce(func.sum(PurchaseLine.quantity_units), 0),
            func.coalesce(func.sum(PurchaseLine.line_total_price), 0),
        )
        .outerjoin(PurchaseLine, PurchaseLine.purchase_id == Purchase.id)
        .where(*filters)
        .group_by(Purchase.id, Purchase.purchase_date, Purchase.supplier_name, Purchase.created_at)
        .order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).all()

    summaries = [
        PurchaseSummary(
            id=purchase_id,
            purchase_date=purchase_date,
            supplier_name=supplier_name,
            line_count=int(line_count),
            total_quantity=int(total_quantity),
            total_cost=to_cost(total_cost or ZERO_COST),
        )
        for purchase_id, purchase_date, supplier_name, line_count, total_quantity, total_cost in rows
    ]
    return summaries, total
