from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockroom.core.cost_basis import cost_bases, derive_quantity_units, resolve_unit_cost
from stockroom.schemas.common import PaginationMeta, blank_to_none


class PurchaseLineIn(BaseModel):
    """One stock-in line.

    Quantity may be given directly or as cases plus loose units; cost may be
    given per unit, per case or as a line total. After validation
    ``quantity_units`` and ``unit_cost_price`` hold the canonical values,
    except on a catalog-referenced line that counts in cases without its own
    ``units_per_pack``: that line is resolved against the matched item's pack
    size by ``resolved_with_pack_size``.
    """

    item_id: str | None = None
    sku: str | None = Field(default=None, max_length=100)
    name: str | None = Field(default=None, max_length=255)
    brand: str | None = Field(default=None, max_length=100)
    brand_number: str | None = Field(default=None, max_length=50)
    size_code: str | None = Field(default=None, max_length=50)
    pack_type: str | None = Field(default=None, max_length=50)
    pack_size_label: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    volume_ml: int | None = Field(default=None, gt=0)
    reorder_level: int | None = Field(default=None, ge=0)

    units_per_pack: int | None = Field(default=None, gt=0)
    cases_quantity: int | None = Field(default=None, ge=0)
    loose_units: int | None = Field(default=None, ge=0)
    quantity_units: int | None = Field(default=None, gt=0)

    unit_cost_price: Decimal | None = Field(default=None, ge=0)
    case_cost_price: Decimal | None = Field(default=None, ge=0)
    line_total_price: Decimal | None = Field(default=None, ge=0)
    mrp_price: Decimal | None = Field(default=None, ge=0)

    @field_validator(
        "item_id", "sku", "name", "brand", "brand_number", "size_code", "pack_type",
        "pack_size_label", "category",
        mode="before",
    )
    @classmethod
    def strip_optional_strings(cls, value):
        return blank_to_none(value)

    @property
    def has_catalog_reference(self) -> bool:
        return bool(self.item_id or self.sku or (self.brand_number and self.size_code))

    @property
    def needs_pack_size(self) -> bool:
        """Cases or a case cost were given but no units per pack to convert them with."""
        if self.units_per_pack is not None:
            return False
        cases_only = self.quantity_units is None and bool(self.cases_quantity)
        case_cost_only = self.unit_cost_price is None and self.case_cost_price is not None
        return cases_only or case_cost_only

    @property
    def is_resolved(self) -> bool:
        return self.quantity_units is not None and self.unit_cost_price is not None

    def _resolve(self, units_per_pack: int | None) -> None:
        quantity = derive_quantity_units(
            quantity_units=self.quantity_units,
            cases=self.cases_quantity,
            units_per_pack=units_per_pack,
            loose_units=self.loose_units,
        )
        if not quantity:
            raise ValueError("Quantity must be positive: give quantity_units or cases with units_per_pack")

        bases = cost_bases(
            unit_cost=self.unit_cost_price,
            case_cost=self.case_cost_price,
            line_total=self.line_total_price,
        )
        self.unit_cost_price = resolve_unit_cost(bases, quantity_units=quantity, units_per_pack=units_per_pack)
        self.quantity_units = quantity

    def resolved_with_pack_size(self, units_per_pack: int | None) -> "PurchaseLineIn":
        """Copy of a deferred line resolved with the catalog item's units per pack."""
        line = self.model_copy()
        line.units_per_pack = units_per_pack
        line._resolve(units_per_pack)
        return line

    @model_validator(mode="after")
    def resolve_quantity_and_cost(self) -> "PurchaseLineIn":
        if not (self.has_catalog_reference or self.name):
            raise ValueError("Line needs item_id, sku, brand_number + size_code, or a name")
        if self.needs_pack_size and self.has_catalog_reference:
            # Left for the purchase service, which knows the matched item's pack size.
            return self
        self._resolve(self.units_per_pack)
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "brand_number": "5012",
                "size_code": "650",
                "pack_type": "G",
                "name": "Kingfisher Premium 650ml",
                "units_per_pack": 12,
                "cases_quantity": 10,
                "loose_units": 3,
                "case_cost_price": 1440.0,
                "mrp_price": 180.0,
            }
        }
    )


class PurchaseCreate(BaseModel):
    purchase_date: date
    supplier_name: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)
    tax_amount: Decimal | None = Field(default=None, ge=0)
    miscellaneous_charges: Decimal | None = Field(default=None, ge=0)
    line_items: list[PurchaseLineIn] = Field(min_length=1)
    allow_item_creation: bool = True

    @field_validator("supplier_name", "notes", mode="before")
    @classmethod
    def strip_optional_strings(cls, value):
        return blank_to_none(value)


class PurchaseLineOut(BaseModel):
    id: str
    item_id: str
    item_name: str
    sku: str
    position: int
    quantity_units: int
    cases_quantity: int | None = None
    units_per_case: int | None = None
    unit_cost_price: Decimal
    case_cost_price: Decimal | None = None
    line_total_price: Decimal
    allocated_tax_amount: Decimal | None = None
    allocated_misc_charges: Decimal | None = None
    unit_landed_cost_price: Decimal
    mrp_price_at_purchase: Decimal | None = None


class PurchaseOut(BaseModel):
    id: str
    purchase_date: date
    supplier_name: str | None = None
    notes: str | None = None
    tax_amount: Decimal | None = None
    miscellaneous_charges: Decimal | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    total_quantity: int
    total_cost: Decimal
    line_items: list[PurchaseLineOut]


class PurchaseSummaryOut(BaseModel):
    id: str
    purchase_date: date
    supplier_name: str | None = None
    line_count: int
    total_quantity: int
    total_cost: Decimal

    model_config = ConfigDict(from_attributes=True)


class PurchaseListOut(BaseModel):
    items: list[PurchaseSummaryOut]
    pagination: PaginationMeta
