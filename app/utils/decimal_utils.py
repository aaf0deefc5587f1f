"""Decimal and minor-unit arithmetic helpers"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

# ISO 4217 minor-unit exponents other than 2
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "UGX"}
THREE_DECIMAL_CURRENCIES = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}

# Scale of stored money columns; must cover the largest exponent above
MONEY_SCALE = 3


def currency_exponent(currency: str) -> int:
    """Number of decimal places in the currency's minimum unit"""
    code = currency.upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def round_decimal(value: Decimal, decimal_places: int = 2) -> Decimal:
    """
    Round a decimal value to specified decimal places.

    Args:
        value: Decimal value to round
        decimal_places: Number of decimal places (default 2)

    Returns:
        Rounded decimal value
    """
    quantize_value = Decimal(10) ** -decimal_places
    return value.quantize(quantize_value, rounding=ROUND_HALF_UP)


def sum_decimals(values: Iterable[Decimal]) -> Decimal:
    """
    Sum decimal values.

    Args:
        values: Decimal values

    Returns:
        Sum of all values
    """
    return sum(values, Decimal("0"))


def to_minor_units(value: Decimal, currency: str) -> int:
    """
    Convert an amount to an integer count of minimum currency units.

    Raises:
        ValueError: If the amount has more precision than the currency allows
    """
    scaled = value * (Decimal(10) ** currency_exponent(currency))
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {value} exceeds {currency} precision")
    return int(scaled)


def from_minor_units(units: int, currency: str) -> Decimal:
    """Convert minimum currency units back to a quantized Decimal"""
    places = currency_exponent(currency)
    return round_decimal(Decimal(units) / (Decimal(10) ** places), places)
