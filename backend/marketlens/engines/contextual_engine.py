"""
MarketLens — Contextual Alert Engine

Runs the key level, expiration, and volatility detectors for one ticker and
condenses each into a single human-readable alert. Categories always come out
in the same order (whale support, expiration, dark pool cluster, volatility
spike) and are not re-ranked by impact. A detector that fails or has nothing
to report simply leaves its category out.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional, Sequence

import structlog

from marketlens.config import Settings, get_settings
from marketlens.engines.cluster_engine import ClusterEngine, filter_whale_transactions
from marketlens.engines.expiration_engine import ExpirationEngine
from marketlens.engines.volatility_engine import VolatilityEngine
from marketlens.models import (
    AlertCategory,
    ClusterMethod,
    ContextualAlert,
    FlowAlert,
    Impact,
    Transaction,
)
from marketlens.utils.formatters import format_count, format_currency, format_days_until, format_ticker

log = structlog.get_logger(__name__)


class ContextualAlertEngine:
    """Composes per-ticker contextual alerts from the detectors."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clusters: Optional[ClusterEngine] = None,
        expirations: Optional[ExpirationEngine] = None,
        volatility: Optional[VolatilityEngine] = None,
        cluster_method: ClusterMethod = ClusterMethod.GREEDY,
    ):
        self.settings = settings or get_settings()
        self.clusters = clusters or ClusterEngine()
        self.expirations = expirations or ExpirationEngine()
        self.volatility = volatility or VolatilityEngine()
        self.cluster_method = cluster_method

    def generate_contextual_alerts(
        self,
        ticker: str,
        alerts: Optional[Sequence[FlowAlert]] = None,
        transactions: Optional[Sequence[Transaction]] = None,
        now: Optional[datetime | date] = None,
        min_premium: Optional[float] = None,
    ) -> list[ContextualAlert]:
        """Build at most one alert per category.

        Args:
            ticker: Symbol, used for logging.
            alerts: Options flow alerts for the ticker.
            transactions: Dark pool prints for the ticker.
            now: Reference time for expiration countdowns.
            min_premium: When set, whale support only considers prints
                with at least this premium.

        Returns:
            Alerts in fixed category order.
        """
        ticker = format_ticker(ticker)
        alerts = list(alerts or [])
        transactions = list(transactions or [])

        builders: list[tuple[AlertCategory, Callable[[], Optional[ContextualAlert]]]] = [
            (AlertCategory.WHALE_SUPPORT, lambda: self._whale_support(transactions, min_premium)),
            (AlertCategory.EXPIRATION, lambda: self._next_expiration(alerts, now)),
            (AlertCategory.DARK_POOL_CLUSTER, lambda: self._dark_pool_cluster(transactions)),
            (AlertCategory.VOLATILITY_SPIKE, lambda: self._volatility_spike(alerts)),
        ]

        contextual = []
        for category, build in builders:
            try:
                alert = build()
            except Exception as e:
                log.warning("contextual.detector_failed", ticker=ticker, category=category.value, error=str(e))
                continue
            if alert is not None:
                contextual.append(alert)

        log.info("contextual.generated", ticker=ticker, alerts=[a.category.value for a in contextual])
        return contextual

    # ──────────────────────────────────────────────
    # Per-Category Builders
    # ──────────────────────────────────────────────

    def _whale_support(
        self,
        transactions: list[Transaction],
        min_premium: Optional[float],
    ) -> Optional[ContextualAlert]:
        if min_premium is not None:
            transactions = filter_whale_transactions(transactions, min_premium)
        if not transactions:
            return None

        levels = self.clusters.detect_whale_support_levels(
            transactions, threshold=self.settings.key_level_threshold
        )
        if not levels:
            return None

        strongest = levels[0]
        return ContextualAlert(
            category=AlertCategory.WHALE_SUPPORT,
            title="Whale Support",
            description=f"{strongest.transaction_count} dark pool prints detected",
            value=format_currency(strongest.price),
            impact=Impact(strongest.strength.value),
        )

    def _next_expiration(
        self,
        alerts: list[FlowAlert],
        now: Optional[datetime | date],
    ) -> Optional[ContextualAlert]:
        if not alerts:
            return None

        expirations = self.expirations.detect_upcoming_expirations(
            alerts, days_ahead=self.settings.expiration_days_ahead, now=now
        )
        if not expirations:
            return None

        soonest = expirations[0]
        return ContextualAlert(
            category=AlertCategory.EXPIRATION,
            title="Next Major Expiration",
            description=f"{soonest.strike_count} strikes • {format_count(soonest.total_volume)} volume",
            value=format_days_until(soonest.days_until),
            impact=soonest.impact,
            timestamp=soonest.expiry.isoformat(),
        )

    def _dark_pool_cluster(self, transactions: list[Transaction]) -> Optional[ContextualAlert]:
        if not transactions:
            return None

        clusters = self.clusters.detect_dark_pool_clusters(
            transactions,
            threshold=self.settings.key_level_threshold,
            radius=self.settings.cluster_radius,
            method=self.cluster_method,
        )
        if not clusters:
            return None

        strongest = clusters[0]
        return ContextualAlert(
            category=AlertCategory.DARK_POOL_CLUSTER,
            title="Dark Pool Cluster Detected",
            description=f"{strongest.transaction_count} clustered prints",
            value=format_currency(strongest.price),
            impact=Impact(strongest.strength.value),
        )

    def _volatility_spike(self, alerts: list[FlowAlert]) -> Optional[ContextualAlert]:
        if not alerts:
            return None

        report = self.volatility.detect_volatility_spikes(
            alerts,
            threshold=self.settings.iv_spike_threshold,
            high_count=self.settings.iv_spike_high_count,
        )
        if report.impact is None:
            return None

        return ContextualAlert(
            category=AlertCategory.VOLATILITY_SPIKE,
            title="Volatility Spike",
            description=f"{report.count} alerts with IV +{self.settings.iv_spike_threshold:.0%}",
            value=f"{report.count} alert{'s' if report.count > 1 else ''}",
            impact=report.impact,
        )
