"""
MarketLens — Shared Formatters

Human-readable formatting for currency, counts, tickers, and day
countdowns. Used to build alert descriptions and display values.
"""

from __future__ import annotations


def format_currency(value: float | int, decimals: int = 2) -> str:
    """Format a numeric value as USD currency.

    >>> format_currency(1234.5)
    '$1,234.50'
    >>> format_currency(-789.1)
    '-$789.10'
    """
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_count(value: float | int) -> str:
    """Thousands-separated integer count.

    >>> format_count(123456.0)
    '123,456'
    """
    return f"{int(round(value)):,}"


def format_ticker(raw: str) -> str:
    """Normalize a ticker symbol to uppercase, stripped of whitespace.

    >>> format_ticker('  aapl ')
    'AAPL'
    """
    return (raw or "").strip().upper()


def format_days_until(days: int) -> str:
    """Render an exact day countdown.

    >>> format_days_until(0)
    'Today'
    >>> format_days_until(13)
    'In 13 days'
    """
    if days <= 0:
        return "Today"
    return f"In {days} day{'s' if days > 1 else ''}"
