"""
MarketLens — Options Expiration Engine

Groups options flow alerts by expiry date inside a forward window and rates
how much flow is concentrated on each upcoming expiration.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Optional, Sequence

import structlog

from marketlens.models import ExpirationAlert, FlowAlert, Impact
from marketlens.utils.formatters import format_count

log = structlog.get_logger(__name__)

DEFAULT_DAYS_AHEAD = 30

HIGH_PREMIUM = 100_000_000
HIGH_VOLUME = 100_000
MEDIUM_PREMIUM = 50_000_000
MEDIUM_VOLUME = 50_000


def classify_expiration_impact(total_premium: float, total_volume: float) -> Impact:
    """Impact of the flow expiring on one date."""
    if total_premium > HIGH_PREMIUM or total_volume > HIGH_VOLUME:
        return Impact.HIGH
    if total_premium > MEDIUM_PREMIUM or total_volume > MEDIUM_VOLUME:
        return Impact.MEDIUM
    return Impact.LOW


class ExpirationEngine:
    """Upcoming expiration aggregation."""

    def detect_upcoming_expirations(
        self,
        alerts: Optional[Sequence[FlowAlert]],
        days_ahead: int = DEFAULT_DAYS_AHEAD,
        now: Optional[datetime | date] = None,
    ) -> list[ExpirationAlert]:
        """Aggregate flow by expiry for the next `days_ahead` days.

        Days are counted in whole calendar days from `now`'s date, so an
        expiry today has `days_until == 0`. Expired contracts and expiries
        past the window are dropped, as are alerts without an expiry.

        Args:
            alerts: Options flow alerts.
            days_ahead: Forward window, inclusive.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            One ExpirationAlert per expiry date, soonest first.
        """
        if not alerts:
            return []

        today = self._as_date(now)
        groups: dict[date, list[FlowAlert]] = defaultdict(list)

        for alert in alerts:
            if alert.expiry is None:
                continue
            days_until = (alert.expiry - today).days
            if days_until < 0 or days_until > days_ahead:
                continue
            groups[alert.expiry].append(alert)

        expirations = []
        for expiry, group in groups.items():
            total_volume = sum(a.volume for a in group)
            total_premium = sum(a.premium for a in group)
            strike_count = len({a.strike for a in group})

            expirations.append(
                ExpirationAlert(
                    expiry=expiry,
                    days_until=(expiry - today).days,
                    strike_count=strike_count,
                    total_volume=total_volume,
                    total_premium=total_premium,
                    impact=classify_expiration_impact(total_premium, total_volume),
                    description=f"{strike_count} strikes • {format_count(total_volume)} volume",
                )
            )

        expirations.sort(key=lambda e: e.days_until)
        log.debug("expirations.detected", alerts=len(alerts), expiries=len(expirations), days_ahead=days_ahead)
        return expirations

    @staticmethod
    def _as_date(now: Optional[datetime | date]) -> date:
        if now is None:
            return datetime.now(timezone.utc).date()
        if isinstance(now, datetime):
            return now.date()
        return now
