"""Decimal arithmetic utilities for money fields.

All stakes, payouts, commissions and balances are decimal.Decimal. No float.
Columns are NUMERIC(14, 2); amounts are quantized to the currency's minor
unit with ROUND_HALF_UP before they are persisted.
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Minor units per ISO currency; anything not listed uses 2.
CURRENCY_MINOR_UNITS: dict[str, int] = {
    "CRC": 2,
    "USD": 2,
    "JPY": 0,
}


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an int/str/Decimal into Decimal. Floats are rejected."""
    if isinstance(value, float):
        raise TypeError("float is not allowed for money values")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def quantize_money(value: Decimal | int | str, currency: str = "CRC") -> Decimal:
    """Round to the currency's minor unit: 10.005 -> 10.01 (CRC)."""
    places = CURRENCY_MINOR_UNITS.get(currency, 2)
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal, currency: str = "CRC") -> Decimal:
    """amount x percent / 100, rounded to the minor unit."""
    return quantize_money(amount * percent / HUNDRED, currency)


def money_to_display(value: Decimal, currency: str = "CRC") -> str:
    """Display string: Decimal('1500') -> '1,500.00', Decimal('-12.5') -> '-12.50'."""
    q = quantize_money(value, currency)
    places = CURRENCY_MINOR_UNITS.get(currency, 2)
    if q < 0:
        return f"-{-q:,.{places}f}"
    return f"{q:,.{places}f}"
