# Shared utilities — formatters
from marketlens.utils.formatters import (
    format_count,
    format_currency,
    format_days_until,
    format_ticker,
)

__all__ = [
    "format_count",
    "format_currency",
    "format_days_until",
    "format_ticker",
]
