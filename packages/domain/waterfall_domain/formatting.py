"""Display helpers for waterfall amounts.

The calculations never round; these helpers are the only place values are
rounded, and only for display.
"""

from decimal import Decimal, ROUND_HALF_UP


def format_waterfall_currency(value) -> str:
    """Whole US dollars with thousands separators.

    Examples:
        format_waterfall_currency(Decimal("1200000"))  # "$1,200,000"
        format_waterfall_currency(-5000)               # "-$5,000"
    """
    amount = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}"


def format_waterfall_percent(value) -> str:
    """Percentage points to two decimals, e.g. 12.5 -> "12.50%"."""
    points = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{points:.2f}%"
