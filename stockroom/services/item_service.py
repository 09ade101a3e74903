import re

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.core.errors import Conflict, NotFound, UnresolvedCatalogMatch, ValidationFailed
from stockroom.core.id_utils import generate_id, generate_short_token
from stockroom.core.money import to_cost
from stockroom.models.item import Item
from stockroom.schemas.item import ItemCreate, ItemUpdate
from stockroom.schemas.purchase import PurchaseLineIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.transaction_coordinator import atomic

_NATURAL_KEY_FIELDS = ("brand_number", "size_code", "pack_type")
_DESCRIPTIVE_FIELDS = ("brand", "pack_size_label", "units_per_pack", "category", "volume_ml", "reorder_level")
_REQUIRED_FIELDS = {"sku", "name", "mrp_price", "is_active"}


def derive_sku(
    *,
    sku: str | None = None,
    brand_number: str | None = None,
    size_code: str | None = None,
    pack_type: str | None = None,
    volume_ml: int | None = None,
    name: str | None = None,
) -> str:
    if sku:
        return sku
    parts = [re.sub(r"\s+", "", part).upper() for part in (brand_number, size_code, pack_type) if part]
    if len(parts) >= 2:
        return "-".join(parts)
    if brand_number and volume_ml:
        return f"{brand_number}-{volume_ml}"
    if name:
        return re.sub(r"[^A-Z0-9]", "-", name.upper())[:20]
    return f"SKU-{generate_short_token()}"


def get_item(db: Session, item_id: str) -> Item:
    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def find_by_sku(db: Session, sku: str) -> Item | None:
    return db.execute(
        select(Item).where(func.lower(Item.sku) == sku.strip().lower())
    ).scalar_one_or_none()


def find_by_natural_key(
    db: Session,
    *,
    brand_number: str,
    size_code: str,
    pack_type: str | None = None,
) -> Item | None:
    stmt = select(Item).where(
        func.upper(Item.brand_number) == brand_number.strip().upper(),
        func.upper(Item.size_code) == size_code.strip().upper(),
    )
    if pack_type:
        stmt = stmt.where(func.upper(Item.pack_type) == pack_type.strip().upper())
    return db.execute(stmt.order_by(Item.created_at).limit(1)).scalars().first()


def find_catalog_match(
    db: Session,
    *,
    item_id: str | None = None,
    sku: str | None = None,
    brand_number: str | None = None,
    size_code: str | None = None,
    pack_type: str | None = None,
) -> Item | None:
    """Explicit id, then SKU, then the composite natural key."""
    if item_id:
        return db.get(Item, item_id)
    if sku:
        item = find_by_sku(db, sku)
        if item is not None:
            return item
    if brand_number and size_code:
        return find_by_natural_key(
            db, brand_number=brand_number, size_code=size_code, pack_type=pack_type
        )
    return None


def _describe_line(line: PurchaseLineIn) -> str:
    if line.sku:
        return f"SKU {line.sku}"
    if line.brand_number and line.size_code:
        key = "/".join(part for part in (line.brand_number, line.size_code, line.pack_type) if part)
        return f"brand/size/pack {key}"
    return f"item '{line.name}'"


def _unique_sku(db: Session, candidate: str) -> str:
    if find_by_sku(db, candidate) is None:
        return candidate
    return f"{candidate}-{generate_short_token(4)}"


def resolve_purchase_item(
    db: Session,
    line: PurchaseLineIn,
    *,
    allow_creation: bool,
    row_number: int | None = None,
) -> Item:
    """Find the catalog item for a purchase line, creating it when allowed."""
    if line.item_id:
        item = db.get(Item, line.item_id)
        if item is None:
            raise NotFound(f"Item not found: {line.item_id}")
        return item

    item = find_catalog_match(
        db,
        sku=line.sku,
        brand_number=line.brand_number,
        size_code=line.size_code,
        pack_type=line.pack_type,
    )
    if item is not None:
        return item

    if not allow_creation:
        raise UnresolvedCatalogMatch(
            f"No catalog item matches {_describe_line(line)} and item creation is disabled",
            row_number=row_number,
        )
    if not line.name:
        raise UnresolvedCatalogMatch(
            f"No catalog item matches {_describe_line(line)}; new items require a name",
            row_number=row_number,
        )
    if not line.is_resolved:
        raise ValidationFailed(
            f"No catalog item matches {_describe_line(line)}; give units per pack to create it from cases"
        )

    unit_cost = to_cost(line.unit_cost_price)
    item = Item(
        id=generate_id(),
        sku=_unique_sku(
            db,
            derive_sku(
                sku=line.sku,
                brand_number=line.brand_number,
                size_code=line.size_code,
                pack_type=line.pack_type,
                volume_ml=line.volume_ml,
                name=line.name,
            ),
        ),
        name=line.name,
        brand=line.brand,
        brand_number=line.brand_number,
        size_code=line.size_code,
        pack_type=line.pack_type,
        pack_size_label=line.pack_size_label,
        units_per_pack=line.units_per_pack,
        category=line.category,
        volume_ml=line.volume_ml,
        # Cost stands in for MRP until a purchase or edit supplies one.
        mrp_price=to_cost(line.mrp_price) if line.mrp_price is not None else unit_cost,
        purchase_cost_price=unit_cost,
        current_stock_units=0,
        reorder_level=line.reorder_level,
        is_active=True,
    )
    db.add(item)
    db.flush()
    return item


def apply_line_metadata(item: Item, line: PurchaseLineIn) -> None:
    """Copy catalog details carried by a purchase line onto its item and reactivate it."""
    for field in _DESCRIPTIVE_FIELDS:
        value = getattr(line, field)
        if value is not None:
            setattr(item, field, value)
    # Natural key fields are only filled in, never overwritten.
    for field in _NATURAL_KEY_FIELDS:
        value = getattr(line, field)
        if value is not None and getattr(item, field) is None:
            setattr(item, field, value)
    item.is_active = True


def _ensure_unique_identifiers(
    db: Session,
    *,
    item_id: str | None,
    sku: str | None,
    brand_number: str | None,
    size_code: str | None,
    pack_type: str | None,
) -> None:
    if sku:
        existing = find_by_sku(db, sku)
        if existing is not None and existing.id != item_id:
            raise Conflict(f"SKU already exists: {sku}")
    if brand_number and size_code:
        stmt = select(Item.id).where(
            func.upper(Item.brand_number) == brand_number.upper(),
            func.upper(Item.size_code) == size_code.upper(),
        )
        stmt = stmt.where(
            func.upper(Item.pack_type) == pack_type.upper() if pack_type else Item.pack_type.is_(None)
        )
        if item_id:
            stmt = stmt.where(Item.id != item_id)
        if db.execute(stmt.limit(1)).scalar_one_or_none() is not None:
            raise Conflict("Another item already uses this brand number, size code and pack type")


def create_item(db: Session, payload: ItemCreate, *, actor_id: str | None = None) -> Item:
    sku = derive_sku(
        sku=payload.sku,
        brand_number=payload.brand_number,
        size_code=payload.size_code,
        pack_type=payload.pack_type,
        volume_ml=payload.volume_ml,
        name=payload.name,
    )
    with atomic(db):
        _ensure_unique_identifiers(
            db,
            item_id=None,
            sku=sku,
            brand_number=payload.brand_number,
            size_code=payload.size_code,
            pack_type=payload.pack_type,
        )
        item = Item(
            id=generate_id(),
            sku=sku,
            name=payload.name.strip(),
            brand=payload.brand,
            brand_number=payload.brand_number,
            size_code=payload.size_code,
            pack_type=payload.pack_type,
            pack_size_label=payload.pack_size_label,
            units_per_pack=payload.units_per_pack,
            category=payload.category,
            volume_ml=payload.volume_ml,
            mrp_price=to_cost(payload.mrp_price),
            purchase_cost_price=(
                to_cost(payload.purchase_cost_price) if payload.purchase_cost_price is not None else None
            ),
            current_stock_units=0,
            reorder_level=payload.reorder_level,
            is_active=True,
        )
        db.add(item)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="item.create",
            target_type="item",
            target_id=item.id,
            metadata_json={"sku": sku, "name": item.name},
        )
    db.refresh(item)
    return item


def update_item(db: Session, item_id: str, payload: ItemUpdate, *, actor_id: str | None = None) -> Item:
    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field not in _REQUIRED_FIELDS
    }
    with atomic(db):
        item = get_item(db, item_id)
        merged = {field: changes.get(field, getattr(item, field)) for field in ("sku", *_NATURAL_KEY_FIELDS)}
        _ensure_unique_identifiers(db, item_id=item.id, **merged)
        for field, value in changes.items():
            if field == "mrp_price" and value is not None:
                value = to_cost(value)
            setattr(item, field, value)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="item.update",
            target_type="item",
            target_id=item.id,
            metadata_json={"fields": sorted(changes)},
        )
    db.refresh(item)
    return item


def archive_item(db: Session, item_id: str, *, actor_id: str | None = None) -> Item:
    """Soft delete: the row stays so purchase and sales history keep their references."""
    with atomic(db):
        item = get_item(db, item_id)
        item.is_active = False
        log_audit_event(
            db,
            actor_id=actor_id,
            action="item.archive",
            target_type="item",
            target_id=item.id,
            metadata_json={"stock_units": item.current_stock_units},
        )
    db.refresh(item)
    return item


def list_items(
    db: Session,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Item], int]:
    stmt = select(Item)
    count_stmt = select(func.count(Item.id))
    if not include_inactive:
        stmt = stmt.where(Item.is_active.is_(True))
        count_stmt = count_stmt.where(Item.is_active.is_(True))
    if search:
        pattern = f"%{search.strip().lower()}%"
        condition = or_(
            func.lower(Item.name).like(pattern),
            func.lower(Item.sku).like(pattern),
            func.lower(Item.brand_number).like(pattern),
        )
        stmt = stmt.where(condition)
        count_stmt = count_stmt.where(condition)

    total = int(db.execute(count_stmt).scalar_one())
    items = db.execute(stmt.order_by(Item.name).offset(offset).limit(limit)).scalars().all()
    return list(items), total


def low_stock_threshold(item: Item, threshold: int | None = None) -> int:
    if threshold is not None:
        return threshold
    if item.reorder_level is not None:
        return item.reorder_level
    return settings.low_stock_default_threshold


def list_low_stock(db: Session, *, threshold: int | None = None) -> list[Item]:
    items = db.execute(
        select(Item).where(Item.is_active.is_(True)).order_by(Item.current_stock_units, Item.name)
    ).scalars().all()
    return [item for item in items if item.current_stock_units <= low_stock_threshold(item, threshold)]
