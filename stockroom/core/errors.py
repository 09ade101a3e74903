from dataclasses import asdict, dataclass
from typing import Any


class LedgerError(Exception):
    """Base for errors raised by the ledger services and mapped to HTTP by the API layer."""

    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(LedgerError):
    status_code = 422
    code = "validation_error"


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class Conflict(LedgerError):
    status_code = 409
    code = "conflict"


@dataclass(frozen=True)
class Shortage:
    item_id: str
    item_name: str
    required: int
    available: int


class InsufficientStock(LedgerError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, shortages: list[Shortage], *, action: str = "commit") -> None:
        summary = ", ".join(
            f"{s.item_name} (needs {s.required}, has {s.available})" for s in shortages
        )
        super().__init__(
            f"Cannot {action}. Items with insufficient stock: {summary}",
            details=[asdict(s) for s in shortages],
        )
        self.shortages = shortages


class UnresolvedCatalogMatch(LedgerError):
    status_code = 422
    code = "unresolved_catalog_match"

    def __init__(self, message: str, *, row_number: int | None = None) -> None:
        super().__init__(
            message,
            details=[{"row_number": row_number, "message": message}] if row_number else None,
        )
        self.row_number = row_number
