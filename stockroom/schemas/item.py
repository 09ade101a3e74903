from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.schemas.common import PaginationMeta, blank_to_none


class ItemCreate(BaseModel):
    sku: str | None = Field(default=None, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    brand: str | None = Field(default=None, max_length=100)
    brand_number: str | None = Field(default=None, max_length=50)
    size_code: str | None = Field(default=None, max_length=50)
    pack_type: str | None = Field(default=None, max_length=50)
    pack_size_label: str | None = Field(default=None, max_length=50)
    units_per_pack: int | None = Field(default=None, gt=0)
    category: str | None = Field(default=None, max_length=100)
    volume_ml: int | None = Field(default=None, gt=0)
    mrp_price: Decimal = Field(ge=0)
    purchase_cost_price: Decimal | None = Field(default=None, ge=0)
    reorder_level: int | None = Field(default=None, ge=0)

    @field_validator(
        "sku", "brand", "brand_number", "size_code", "pack_type", "pack_size_label", "category",
        mode="before",
    )
    @classmethod
    def strip_optional_strings(cls, value):
        return blank_to_none(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Kingfisher Premium 650ml",
                "brand": "Kingfisher",
                "brand_number": "5012",
                "size_code": "650",
                "pack_type": "G",
                "units_per_pack": 12,
                "mrp_price": 180.0,
                "reorder_level": 24,
            }
        }
    )


class ItemUpdate(BaseModel):
    """Catalog fields only. Stock and derived cost columns move through the ledger."""

    sku: str | None = Field(default=None, max_length=100)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    brand: str | None = Field(default=None, max_length=100)
    brand_number: str | None = Field(default=None, max_length=50)
    size_code: str | None = Field(default=None, max_length=50)
    pack_type: str | None = Field(default=None, max_length=50)
    pack_size_label: str | None = Field(default=None, max_length=50)
    units_per_pack: int | None = Field(default=None, gt=0)
    category: str | None = Field(default=None, max_length=100)
    volume_ml: int | None = Field(default=None, gt=0)
    mrp_price: Decimal | None = Field(default=None, ge=0)
    reorder_level: int | None = Field(default=None, ge=0)
    is_active: bool | None = None

    model_config = ConfigDict(extra="forbid")


class ItemOut(BaseModel):
    id: str
    sku: str
    name: str
    brand: str | None = None
    brand_number: str | None = None
    size_code: str | None = None
    pack_type: str | None = None
    pack_size_label: str | None = None
    units_per_pack: int | None = None
    category: str | None = None
    volume_ml: int | None = None
    mrp_price: Decimal
    purchase_cost_price: Decimal | None = None
    weighted_avg_cost_price: Decimal
    weighted_avg_landed_cost_price: Decimal
    current_stock_units: int
    total_inventory_value: Decimal
    reorder_level: int | None = None
    is_active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ItemListOut(BaseModel):
    items: list[ItemOut]
    pagination: PaginationMeta


class LowStockItemOut(BaseModel):
    item_id: str
    sku: str
    name: str
    reorder_level: int
    stock: int


class LowStockListOut(BaseModel):
    items: list[LowStockItemOut]
    pagination: PaginationMeta


class PriceHistoryEntryOut(BaseModel):
    purchase_id: str
    purchase_line_id: str
    purchase_date: date
    supplier_name: str | None = None
    quantity_units: int
    unit_cost_price: Decimal
    line_value: Decimal
    running_total_units: int
    running_total_value: Decimal
    running_weighted_avg_cost: Decimal


class PriceHistoryOut(BaseModel):
    item_id: str
    weighted_avg_cost: Decimal
    total_units_purchased: int
    total_value_purchased: Decimal
    current_stock_units: int
    total_inventory_value: Decimal
    entries: list[PriceHistoryEntryOut]
