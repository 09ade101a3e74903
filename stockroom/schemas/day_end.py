from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockroom.models.day_end import SalesChannel
from stockroom.schemas.common import PaginationMeta, blank_to_none

_CHANNEL_ALIASES = {
    "PRIMARY": SalesChannel.RETAIL,
    "SECONDARY": SalesChannel.BELT,
}


class DayEndLineIn(BaseModel):
    item_id: str | None = None
    sku: str | None = Field(default=None, max_length=100)
    channel: SalesChannel = SalesChannel.RETAIL
    quantity_sold_units: int = Field(gt=0)
    selling_price_per_unit: Decimal | None = Field(
        default=None,
        ge=0,
        description="Overrides the MRP (retail) or MRP + markup (belt) price when set.",
    )

    @field_validator("item_id", "sku", mode="before")
    @classmethod
    def strip_optional_strings(cls, value):
        return blank_to_none(value)

    @field_validator("channel", mode="before")
    @classmethod
    def normalize_channel(cls, value):
        if isinstance(value, str):
            upper = value.strip().upper()
            return _CHANNEL_ALIASES.get(upper, upper)
        return value

    @model_validator(mode="after")
    def require_item_reference(self) -> "DayEndLineIn":
        if not (self.item_id or self.sku):
            raise ValueError("Line needs item_id or sku")
        return self


class DayEndReportCreate(BaseModel):
    report_date: date
    belt_markup: Decimal | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=2000)
    lines: list[DayEndLineIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "report_date": "2026-10-18",
                "belt_markup": 20.0,
                "lines": [
                    {"sku": "5012-650-G", "channel": "RETAIL", "quantity_sold_units": 18},
                    {"sku": "5012-650-G", "channel": "BELT", "quantity_sold_units": 6},
                ],
            }
        }
    )


class ShortageOut(BaseModel):
    item_id: str
    item_name: str
    required: int
    available: int


class PricedLineOut(BaseModel):
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


class DayEndPreviewOut(BaseModel):
    belt_markup: Decimal
    total_revenue: Decimal
    retail_revenue: Decimal
    belt_revenue: Decimal
    total_units: int
    total_cost: Decimal
    total_profit: Decimal
    total_net_profit: Decimal
    profit_margin: Decimal
    lines: list[PricedLineOut]
    shortages: list[ShortageOut]


class DayEndLineOut(BaseModel):
    id: str
    item_id: str
    position: int
    channel: SalesChannel
    quantity_sold_units: int
    mrp_price: Decimal
    selling_price_per_unit: Decimal
    line_revenue: Decimal
    cost_price_at_sale: Decimal
    line_cost: Decimal
    line_profit: Decimal
    line_net_profit: Decimal

    model_config = ConfigDict(from_attributes=True)


class DayEndReportOut(BaseModel):
    id: str
    report_date: date
    belt_markup: Decimal
    notes: str | None = None
    total_sales_amount: Decimal
    total_units_sold: int
    retail_revenue: Decimal
    belt_revenue: Decimal
    total_cost: Decimal
    total_profit: Decimal
    total_net_profit: Decimal
    created_by: str | None = None
    created_at: datetime | None = None
    lines: list[DayEndLineOut]

    model_config = ConfigDict(from_attributes=True)


class DayEndReportListOut(BaseModel):
    items: list[DayEndReportOut]
    pagination: PaginationMeta
