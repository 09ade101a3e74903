"""Spreadsheet imports for purchases and day-end sales.

Parsing is pure: every data row becomes a ``ParsedImportRow`` carrying the
payload it would submit plus every problem found on it, so a whole upload can
be reviewed at once. Only ``import_purchase_batch`` writes, and it refuses
while any row still has issues.
"""
import csv
import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, BinaryIO
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.core.errors import ValidationFailed
from stockroom.core.money import parse_decimal
from stockroom.models.purchase import Purchase
from stockroom.schemas.day_end import DayEndLineIn
from stockroom.schemas.purchase import PurchaseCreate, PurchaseLineIn
from stockroom.services.item_service import find_catalog_match
from stockroom.services.purchase_service import create_purchase

logger = logging.getLogger("stockroom.imports")

FIRST_DATA_ROW = 2
_RESERVED_KEYS = {"__proto__", "constructor", "prototype"}

PURCHASE_COLUMNS: dict[str, tuple[str, ...]] = {
    "item_id": ("item_id",),
    "sku": ("sku", "item_code", "code"),
    "name": ("item_name", "name", "description", "product"),
    "brand": ("brand", "brand_name"),
    "brand_number": ("brand_number", "brand_no", "brand_num", "brandno"),
    "size_code": ("size_code", "size"),
    "pack_type": ("pack_type", "issue_type", "pack", "packing"),
    "pack_size_label": ("pack_size_label", "pack_size"),
    "category": ("category",),
    "volume_ml": ("volume_ml", "volume", "ml"),
    "reorder_level": ("reorder_level",),
    "units_per_pack": ("units_per_pack", "units_per_case", "bottles_per_case", "pack_qty"),
    "cases_quantity": ("cases_quantity", "cases", "case_qty"),
    "loose_units": ("loose_units", "loose", "loose_bottles"),
    "quantity_units": ("quantity_units", "quantity", "qty", "units"),
    "unit_cost_price": ("unit_cost_price", "unit_cost", "cost", "rate"),
    "case_cost_price": ("case_cost_price", "case_cost", "case_rate"),
    "line_total_price": ("line_total_price", "line_total", "total", "amount"),
    "mrp_price": ("mrp_price", "mrp"),
}
_PURCHASE_TEXT = (
    "item_id", "sku", "name", "brand", "brand_number", "size_code", "pack_type",
    "pack_size_label", "category",
)
_PURCHASE_INTEGERS = ("volume_ml", "reorder_level", "units_per_pack", "cases_quantity", "loose_units",
                      "quantity_units")
_PURCHASE_DECIMALS = ("unit_cost_price", "case_cost_price", "line_total_price", "mrp_price")

DAY_END_COLUMNS: dict[str, tuple[str, ...]] = {
    "item_id": ("item_id",),
    "sku": ("sku", "item_code", "code"),
    "name": ("item_name", "name"),
    "channel": ("channel", "sale_channel", "sales_channel"),
    "quantity_sold_units": ("quantity_sold_units", "quantity", "qty", "units"),
    "selling_price_per_unit": ("selling_price_per_unit", "selling_price", "price"),
}
_CHANNELS = {"RETAIL", "BELT", "PRIMARY", "SECONDARY"}


@dataclass
class ParsedImportRow:
    row_number: int
    payload: Any = None
    issues: list[str] = field(default_factory=list)
    raw_name: str | None = None

    @property
    def is_clean(self) -> bool:
        return not self.issues and self.payload is not None


@dataclass
class RejectedRow:
    row_number: int
    reasons: list[str]


@dataclass
class ImportBatchResult:
    accepted: bool
    purchase: Purchase | None = None
    rejected_rows: list[RejectedRow] = field(default_factory=list)


def normalize_header(key: Any) -> str | None:
    """Fold a header to ``snake_case``; ``None`` for blank or reserved-name keys."""
    if key is None:
        return None
    raw = str(key).strip().lower()
    if not raw or raw in _RESERVED_KEYS or (raw.startswith("__") and raw.endswith("__")):
        return None
    folded = re.sub(r"[^a-z0-9]+", "_", raw).strip("_")
    return folded or None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_row(row: Mapping[Any, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in row.items():
        clean_key = normalize_header(key)
        if clean_key is None:
            continue
        # Duplicate headers: first non-blank cell wins.
        if clean_key not in normalized or _is_blank(normalized[clean_key]):
            normalized[clean_key] = value
    return normalized


def _pick(row: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    for alias in aliases:
        value = row.get(alias)
        if not _is_blank(value):
            return value
    return None


def _text(value: Any) -> str | None:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet cells holding codes like 5012 come back as 5012.0.
        value = int(value)
    return str(value).strip()


def _integer(value: Any) -> int | None:
    parsed = parse_decimal(value)
    if parsed is None:
        return None
    if parsed != parsed.to_integral_value():
        raise ValueError(f"Not a whole number: {value!r}")
    return int(parsed)


def _label(field_name: str) -> str:
    return field_name.replace("_", " ")


def _validation_messages(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        location = ".".join(str(part) for part in error.get("loc", ()) if part)
        messages.append(f"{_label(location)}: {message}" if location else message)
    return messages


def _row_limit_error() -> ValidationFailed:
    return ValidationFailed(f"Upload has more than the {settings.import_max_rows} row limit")


def _read_csv(content: bytes) -> list[dict[str, Any]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationFailed("CSV file must be UTF-8 encoded") from exc
    reader = csv.DictReader(StringIO(text))
    if not reader.fieldnames:
        raise ValidationFailed("Header row is missing")
    rows: list[dict[str, Any]] = []
    for row in reader:
        if len(rows) == settings.import_max_rows:
            raise _row_limit_error()
        # Extra cells beyond the header land under the ``None`` key.
        rows.append({key: value for key, value in row.items() if key is not None})
    return rows


def _read_xlsx(content: bytes) -> list[dict[str, Any]]:
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise ValidationFailed("Could not read the spreadsheet; upload a valid .xlsx file") from exc

    rows: list[dict[str, Any]] = []
    blanks: list[dict[str, Any]] = []
    try:
        sheet = workbook.worksheets[0]
        values = sheet.iter_rows(values_only=True)
        header = next(values, None)
        if not header or all(_is_blank(cell) for cell in header):
            raise ValidationFailed("Header row is missing")
        for values_row in values:
            row = {key: cell for key, cell in zip(header, values_row) if key is not None}
            # Blank rows only count once a filled row follows them; trailing ones are dropped.
            if all(_is_blank(value) for value in row.values()):
                blanks.append(row)
                continue
            if len(rows) + len(blanks) >= settings.import_max_rows:
                raise _row_limit_error()
            rows.extend(blanks)
            blanks.clear()
            rows.append(row)
    finally:
        workbook.close()
    return rows


def read_tabular_upload(filename: str | None, content: bytes) -> list[dict[str, Any]]:
    """Read the first sheet of a CSV or XLSX upload into header-keyed rows.

    Both readers stop at the first row past ``import_max_rows`` instead of
    loading the whole sheet.
    """
    if len(content) > settings.import_max_upload_bytes:
        raise ValidationFailed(
            f"Upload is larger than the {settings.import_max_upload_bytes} byte limit"
        )

    extension = Path(filename or "").suffix.lower()
    if extension == ".csv":
        rows = _read_csv(content)
    elif extension in {".xlsx", ".xlsm"}:
        rows = _read_xlsx(content)
    else:
        raise ValidationFailed("Unsupported file type; upload a .csv or .xlsx file")

    logger.info(json.dumps({"event": "import.read", "filename": filename, "rows": len(rows)}))
    return rows


def read_upload_bytes(stream: BinaryIO) -> bytes:
    """Read an uploaded file, stopping one byte past the size limit."""
    return stream.read(settings.import_max_upload_bytes + 1)


def _parse_purchase_row(row_number: int, row: Mapping[str, Any]) -> ParsedImportRow:
    issues: list[str] = []
    values: dict[str, Any] = {}

    for name in _PURCHASE_TEXT:
        values[name] = _text(_pick(row, PURCHASE_COLUMNS[name]))
    for name in _PURCHASE_INTEGERS:
        try:
            values[name] = _integer(_pick(row, PURCHASE_COLUMNS[name]))
        except ValueError:
            issues.append(f"Invalid {_label(name)}")
    for name in _PURCHASE_DECIMALS:
        try:
            values[name] = parse_decimal(_pick(row, PURCHASE_COLUMNS[name]))
        except ValueError:
            issues.append(f"Invalid {_label(name)}")

    parsed = ParsedImportRow(row_number=row_number, raw_name=values.get("name"))
    if not (values.get("item_id") or values.get("sku") or (values.get("brand_number") and values.get("size_code"))):
        issues.append("Need SKU or brand number + size code")

    if values.get("quantity_units") is None and values.get("cases_quantity") is None:
        if not values.get("loose_units"):
            issues.append("Missing quantity")
    if all(values.get(name) is None for name in ("unit_cost_price", "case_cost_price", "line_total_price")):
        issues.append("Missing cost: give unit cost, case cost or line total")

    if not issues:
        try:
            parsed.payload = PurchaseLineIn(**values)
        except ValidationError as exc:
            issues.extend(_validation_messages(exc))
    parsed.issues = issues
    return parsed


def parse_purchase_rows(rows: Sequence[Mapping[Any, Any]]) -> list[ParsedImportRow]:
    parsed = []
    for row_number, raw in enumerate(rows, start=FIRST_DATA_ROW):
        row = normalize_row(raw)
        if all(_is_blank(value) for value in row.values()):
            continue
        parsed.append(_parse_purchase_row(row_number, row))

    logger.info(
        json.dumps(
            {
                "event": "import.parse",
                "kind": "purchase",
                "rows": len(parsed),
                "rows_with_issues": sum(1 for row in parsed if row.issues),
            }
        )
    )
    return parsed


def _parse_day_end_row(row_number: int, row: Mapping[str, Any]) -> ParsedImportRow:
    issues: list[str] = []
    item_id = _text(_pick(row, DAY_END_COLUMNS["item_id"]))
    sku = _text(_pick(row, DAY_END_COLUMNS["sku"]))
    name = _text(_pick(row, DAY_END_COLUMNS["name"]))
    parsed = ParsedImportRow(row_number=row_number, raw_name=name)

    if not (item_id or sku):
        issues.append("Need SKU")

    channel = (_text(_pick(row, DAY_END_COLUMNS["channel"])) or "").upper()
    if not channel:
        issues.append("Missing channel")
    elif channel not in _CHANNELS:
        issues.append(f"Unknown channel: {channel}")

    quantity = None
    try:
        quantity = _integer(_pick(row, DAY_END_COLUMNS["quantity_sold_units"]))
    except ValueError:
        issues.append("Invalid quantity")
    else:
        if not quantity or quantity < 0:
            issues.append("Missing quantity")

    selling_price = None
    try:
        selling_price = parse_decimal(_pick(row, DAY_END_COLUMNS["selling_price_per_unit"]))
    except ValueError:
        issues.append("Invalid selling price")

    if not issues:
        try:
            parsed.payload = DayEndLineIn(
                item_id=item_id,
                sku=sku,
                channel=channel,
                quantity_sold_units=quantity,
                selling_price_per_unit=selling_price,
            )
        except ValidationError as exc:
            issues.extend(_validation_messages(exc))
    parsed.issues = issues
    return parsed


def parse_day_end_rows(rows: Sequence[Mapping[Any, Any]]) -> list[ParsedImportRow]:
    parsed = []
    for row_number, raw in enumerate(rows, start=FIRST_DATA_ROW):
        row = normalize_row(raw)
        if all(_is_blank(value) for value in row.values()):
            continue
        parsed.append(_parse_day_end_row(row_number, row))

    logger.info(
        json.dumps(
            {
                "event": "import.parse",
                "kind": "day_end",
                "rows": len(parsed),
                "rows_with_issues": sum(1 for row in parsed if row.issues),
            }
        )
    )
    return parsed


def _unmatched_reason(db: Session, line: PurchaseLineIn, *, allow_item_creation: bool) -> str | None:
    if line.item_id:
        match = find_catalog_match(db, item_id=line.item_id)
        if match is None:
            return f"Item not found: {line.item_id}"
    else:
        match = find_catalog_match(
            db,
            sku=line.sku,
            brand_number=line.brand_number,
            size_code=line.size_code,
            pack_type=line.pack_type,
        )
    if match is not None:
        if not line.is_resolved and not match.units_per_pack:
            return f"Need units per pack: {match.name} has none in the catalog"
        return None
    if not line.is_resolved:
        return "Need units per pack to count cases for a new item"
    if not allow_item_creation:
        return "No matching catalog item and item creation is disabled"
    if not line.name:
        return "No matching catalog item; a name is required to create one"
    return None


def import_purchase_batch(
    db: Session,
    rows: Sequence[ParsedImportRow],
    *,
    purchase_date: date,
    supplier_name: str | None = None,
    allow_item_creation: bool = True,
    tax_amount: Decimal | None = None,
    miscellaneous_charges: Decimal | None = None,
    actor_id: str | None = None,
) -> ImportBatchResult:
    """Commit parsed rows as one purchase, or report every row that blocks it."""
    rejected = [RejectedRow(row.row_number, list(row.issues)) for row in rows if not row.is_clean]
    if not rows:
        raise ValidationFailed("Upload has no data rows")

    # Catalog problems are reported alongside parse problems so one pass shows every bad row.
    for row in rows:
        if not row.is_clean:
            continue
        reason = _unmatched_reason(db, row.payload, allow_item_creation=allow_item_creation)
        if reason:
            rejected.append(RejectedRow(row.row_number, [reason]))
    rejected.sort(key=lambda row: row.row_number)

    if rejected:
        logger.info(
            json.dumps(
                {
                    "event": "import.rejected",
                    "rows": len(rows),
                    "rejected_rows": [row.row_number for row in rejected],
                }
            )
        )
        return ImportBatchResult(accepted=False, rejected_rows=rejected)

    payload = PurchaseCreate(
        purchase_date=purchase_date,
        supplier_name=supplier_name,
        tax_amount=tax_amount,
        miscellaneous_charges=miscellaneous_charges,
        line_items=[row.payload for row in rows],
        allow_item_creation=allow_item_creation,
    )
    purchase = create_purchase(db, payload, actor_id=actor_id)
    logger.info(
        json.dumps(
            {"event": "import.committed", "purchase_id": purchase.id, "rows": len(rows)}
        )
    )
    return ImportBatchResult(accepted=True, purchase=purchase)
