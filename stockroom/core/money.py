from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
COST_QUANT = Decimal("0.0001")
ZERO_MONEY = Decimal("0.00")
ZERO_COST = Decimal("0.0000")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_cost(value: Decimal | int | float | str) -> Decimal:
    """Quantize to four decimal places.

    Floats go through ``str`` first so ``8987 * 1.0`` never turns into
    ``8986.9999``.
    """
    return Decimal(str(value)).quantize(COST_QUANT, rounding=ROUND_HALF_UP)


def cost_mul(quantity: Decimal | int, unit_cost: Decimal | int) -> Decimal:
    return to_cost(Decimal(quantity) * Decimal(unit_cost))


def cost_div(numerator: Decimal | int, denominator: Decimal | int) -> Decimal:
    if not denominator:
        return ZERO_COST
    return to_cost(Decimal(numerator) / Decimal(denominator))


def parse_decimal(value: object) -> Decimal | None:
    """Lenient conversion used for spreadsheet cells; blanks become ``None``."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    cleaned = str(value).strip().replace(",", "")
    if not cleaned:
        return None
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return parsed
