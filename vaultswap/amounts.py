from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, InvalidOperation

# Ledger balances and record fields are signed 64-bit columns.
MAX_UNITS = 2**63 - 1


def to_decimal(value: str | float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount {value!r}") from exc


def to_base_units(value: str | float | int | Decimal, decimals: int) -> int:
    scaled = to_decimal(value) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(units: int, decimals: int) -> Decimal:
    scale = Decimal(1).scaleb(-decimals)
    return (Decimal(units) * scale).quantize(scale, rounding=ROUND_DOWN)


def format_amount(units: int, decimals: int) -> str:
    return f"{from_base_units(units, decimals):.{decimals}f}"


def parse_units(value) -> int:
    """Parse a raw base-unit integer as it arrives in a request body."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"Expected integer, got {value!r}")
    number = int(value)
    if number < 0 or number > MAX_UNITS:
        raise ValueError(f"Value {number} out of range")
    return number
