"""
Display formatting for market values.
"""

import math
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Final

BILLION: Final[float] = 1e9
MILLION: Final[float] = 1e6
THOUSAND: Final[float] = 1e3
SMALL_PRICE_THRESHOLD: Final[float] = 0.01
NUMBER_MAX_FRACTION_DIGITS: Final[int] = 3

# wide enough for meme-coin supplies with fraction digits
_CONTEXT: Final[Context] = Context(prec=80)


def _non_finite(value: float, infinity: str) -> str:
    if math.isnan(value):
        return "NaN"
    return infinity if value > 0 else f"-{infinity}"


def _quantize(value: float, digits: int) -> Decimal:
    exponent = Decimal(1).scaleb(-digits)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP, context=_CONTEXT)


def _fixed(value: float, digits: int) -> str:
    """
    Render a value with a fixed number of decimals.

    Ties are rounded away from zero on the exact binary value, which is how
    browsers render prices, so 0.125 becomes "0.13" rather than "0.12".
    Infinities and NaN are spelled out as browsers do.
    """
    if not math.isfinite(value):
        return _non_finite(value, "Infinity")
    return f"{_quantize(value, digits):f}"


def format_currency(value: float) -> str:
    """Format a USD amount with a B/M/K magnitude suffix."""
    if value >= BILLION:
        return f"${_fixed(value / BILLION, 2)}B"
    if value >= MILLION:
        return f"${_fixed(value / MILLION, 2)}M"
    if value >= THOUSAND:
        return f"${_fixed(value / THOUSAND, 2)}K"
    if 0 < value < SMALL_PRICE_THRESHOLD:
        return f"${_fixed(value, 6)}"
    return f"${_fixed(value, 2)}"


def format_percentage(value: float) -> str:
    """Format a percentage change, always signed."""
    sign = "+" if value >= 0 else ""
    return f"{sign}{_fixed(value, 2)}%"


def format_number(value: float) -> str:
    """Format a count with en-US thousands grouping and no currency symbol."""
    if not math.isfinite(value):
        return _non_finite(value, "∞")
    text = f"{_quantize(value, NUMBER_MAX_FRACTION_DIGITS):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text
