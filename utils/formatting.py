"""Output formatting utilities for the enforcement dashboard.

The rendering layer treats these strings as literal contracts:

- currency: ``£`` prefix, thousands separators, two decimals
  (``£100,333.33``)
- percentages: one decimal place and a trailing ``%`` (``66.7%``)
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from utils.strings import safe_decimal

CURRENCY_UNIT = "£"
_CENT = Decimal("0.01")


def quantize_money(value) -> Decimal:
    """Round a money amount to whole pence (half-up).

    Malformed or missing values count as zero.

    Examples:
        quantize_money(Decimal("100333.3333")) -> Decimal("100333.33")
        quantize_money(None) -> Decimal("0.00")
    """
    return safe_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def format_currency(value, unit: str = CURRENCY_UNIT) -> str:
    """Format a money amount for display.

    Args:
        value: Amount (Decimal, int, float, numeric string or None)
        unit: Currency symbol prefix (default: "£")

    Returns:
        Formatted string like "£1,234,567.00"

    Examples:
        format_currency(Decimal("100333.33")) -> "£100,333.33"
        format_currency(None) -> "£0.00"
        format_currency(-250) -> "-£250.00"
    """
    amount = quantize_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}{unit}{abs(amount):,.2f}"


def percentage(part: int, whole: int, precision: int = 1) -> float:
    """*part* as a percentage of *whole*, rounded half-up like money.

    Examples:
        percentage(2, 3) -> 66.7
        percentage(1, 16) -> 6.3
        percentage(1, 0) -> 0.0
    """
    if not whole:
        return 0.0
    step = Decimal(1).scaleb(-precision)
    share = Decimal(part * 100) / Decimal(whole)
    return float(share.quantize(step, rounding=ROUND_HALF_UP))


def format_percent(value: Optional[float], precision: int = 1) -> str:
    """Format a percentage for display, rounding half-up.

    Args:
        value: Percentage value (0.0 to 100.0)
        precision: Decimal places (default: 1)

    Returns:
        Formatted string like "42.5%"

    Examples:
        format_percent(66.66667) -> "66.7%"
        format_percent(0) -> "0.0%"
        format_percent(None) -> "-"
    """
    if value is None:
        return "-"
    step = Decimal(1).scaleb(-precision)
    return f"{safe_decimal(value).quantize(step, rounding=ROUND_HALF_UP)}%"


def format_count(value: Optional[int]) -> str:
    """Format a count with thousands separator.

    Examples:
        format_count(1234567) -> "1,234,567"
        format_count(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:,d}"


def format_date(value) -> str:
    """ISO date string, or "N/A" when there is no date."""
    if value is None:
        return "N/A"
    return value.isoformat()
