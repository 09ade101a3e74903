from stockroom.schemas.common import ErrorOut

# Example bodies shown in the OpenAPI docs, keyed by status code.
_LEDGER_ERROR_EXAMPLES: dict[int, dict] = {
    404: {
        "code": "not_found",
        "message": "Item not found",
        "path": "/items/unknown-id",
        "details": None,
    },
    409: {
        "code": "insufficient_stock",
        "message": "Cannot commit day-end report. Items with insufficient stock: Kingfisher 650ml (needs 8, has 5)",
        "path": "/day-end",
        "details": [{"item_id": "item-id", "item_name": "Kingfisher 650ml", "required": 8, "available": 5}],
    },
    422: {
        "code": "validation_error",
        "message": "Validation failed",
        "path": "/purchases",
        "details": [{"field": "line_items.0.quantity_units", "message": "Input should be greater than 0"}],
    },
    500: {
        "code": "internal_error",
        "message": "Internal server error",
        "path": "/day-end",
        "details": None,
    },
}

_DESCRIPTIONS = {
    404: "Record not found",
    409: "Stock shortage or duplicate record",
    422: "Invalid payload, upload or catalog reference",
    500: "Internal server error",
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    """OpenAPI ``responses`` entries sharing the ledger error envelope."""
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        example = _LEDGER_ERROR_EXAMPLES.get(
            status_code,
            {"code": "http_error", "message": "HTTP error", "path": "/", "details": None},
        )
        responses[status_code] = {
            "model": ErrorOut,
            "description": _DESCRIPTIONS.get(status_code, "HTTP error"),
            "content": {
                "application/json": {
                    "example": {"error": {**example, "request_id": "request-id"}},
                }
            },
        }
    return responses
