from pydantic import BaseModel

from stockroom.schemas.day_end import DayEndLineIn
from stockroom.schemas.purchase import PurchaseLineIn, PurchaseOut


class PurchaseImportRowOut(BaseModel):
    row_number: int
    raw_name: str | None = None
    payload: PurchaseLineIn | None = None
    issues: list[str]


class PurchaseImportParseOut(BaseModel):
    rows: list[PurchaseImportRowOut]
    clean_rows: int
    rows_with_issues: int


class DayEndImportRowOut(BaseModel):
    row_number: int
    raw_name: str | None = None
    payload: DayEndLineIn | None = None
    issues: list[str]


class DayEndImportParseOut(BaseModel):
    rows: list[DayEndImportRowOut]
    clean_rows: int
    rows_with_issues: int


class ImportRejectedRowOut(BaseModel):
    row_number: int
    reasons: list[str]


class PurchaseImportBatchOut(BaseModel):
    accepted: bool
    purchase: PurchaseOut | None = None
    rejected_rows: list[ImportRejectedRowOut]
