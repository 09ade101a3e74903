from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.schemas.common import PaginationMeta


class StockAdjustIn(BaseModel):
    item_id: str
    adjustment_units: int = Field(
        ..., description="Positive adds stock, negative removes stock. Cannot be zero."
    )
    reason: str | None = Field(default=None, max_length=255)

    @field_validator("adjustment_units")
    @classmethod
    def validate_non_zero_adjustment(cls, value: int) -> int:
        if value == 0:
            raise ValueError("adjustment_units cannot be zero")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "adjustment_units": -2,
                "reason": "2 bottles broken while shelving",
            }
        }
    )


class StockAdjustmentOut(BaseModel):
    id: str
    item_id: str
    adjustment_units: int
    reason: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    stock_after: int | None = None

    model_config = ConfigDict(from_attributes=True)


class StockAdjustmentListOut(BaseModel):
    items: list[StockAdjustmentOut]
    pagination: PaginationMeta
