"""Stateless display formatting for prices, dates and percentages."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional


def format_price(
    value: Optional[float],
    currency: Optional[str] = "SAR",
    decimals: int = 0,
    thousands_separator: str = ",",
    decimal_separator: str = ".",
) -> Optional[str]:
    """Render ``value`` with grouping and a trailing currency code.

    Missing and zero prices render as ``None`` so callers can hide the field.
    """

    if value is None or not value or (isinstance(value, float) and math.isnan(value)):
        return None
    text = f"{value:,.{decimals}f}"
    text = text.replace(",", "\0").replace(".", decimal_separator).replace("\0", thousands_separator)
    return f"{text} {currency}" if currency else text


def format_date(value: Optional[datetime], pattern: str = "%b %d, %Y") -> str:
    if value is None:
        return ""
    return value.strftime(pattern)


def format_percentage(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{int(value)}%" if float(value).is_integer() else f"{value:.1f}%"


def format_float(value: Optional[float]) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    return f"{float(value):,.2f}"


__all__ = ["format_date", "format_float", "format_percentage", "format_price"]
