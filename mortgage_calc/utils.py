"""Utility functions for the mortgage calculator.

This module provides helpers for parsing user input into Python data types,
for handling dates (adding months, normalizing year-month strings) and for
rounding monetary values to cents. It also holds the currency metadata table,
which is a plain constant with no lifecycle beyond import.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP, getcontext
import calendar
from typing import Dict, Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")

CURRENCIES: Dict[str, Dict[str, str]] = {
    "USD": {"symbol": "$", "name": "US Dollar"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "GBP": {"symbol": "£", "name": "British Pound"},
    "JPY": {"symbol": "¥", "name": "Japanese Yen"},
    "CAD": {"symbol": "C$", "name": "Canadian Dollar"},
    "AUD": {"symbol": "A$", "name": "Australian Dollar"},
    "CHF": {"symbol": "CHF", "name": "Swiss Franc"},
    "PLN": {"symbol": "zł", "name": "Polish Złoty"},
}


def currency_symbol(code: str) -> str:
    """Return the display symbol for ``code``, falling back to USD."""
    meta = CURRENCIES.get((code or "").upper(), CURRENCIES["USD"])
    return meta["symbol"]


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert ``value`` into a ``Decimal`` without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_to_cents(amount: Union[Decimal, int, float, str]) -> Decimal:
    """Round a monetary amount to two decimal places (half up)."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_year_month(ym: str) -> date:
    """Return the first day of the month named by a ``"YYYY-MM"`` string.

    A trailing day (``"2025-03-15"``) is accepted and dropped, so payment
    dates always fall on the first of the month. Anything else raises
    ``ValueError``.
    """
    try:
        year, month = ym.split("-")[:2]
        return date(int(year), int(month), 1)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def add_months(dt: date, months: int) -> date:
    """Date of the payment ``months`` payments after the one due on ``dt``.

    Payments keep their day of month; a day the target month lacks falls back
    to its last day, so a loan paid on the 31st pays on Feb 28 (or 29).
    """
    year, month_index = divmod(dt.year * 12 + dt.month - 1 + months, 12)
    last_day = calendar.monthrange(year, month_index + 1)[1]
    return dt.replace(year=year, month=month_index + 1, day=min(dt.day, last_day))


def months_between(start: date, end: date) -> int:
    """Number of whole calendar months from ``start`` to ``end``."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        return Decimal(cleaned)
    except ArithmeticError as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
