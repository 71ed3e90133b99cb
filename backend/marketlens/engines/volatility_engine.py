"""
MarketLens — Implied Volatility Spike Engine

Flags flow alerts whose implied volatility jumped between the first
observation and execution.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from marketlens.models import FlowAlert, Impact, VolatilitySpike, VolatilitySpikeReport

log = structlog.get_logger(__name__)

DEFAULT_SPIKE_THRESHOLD = 0.05  # +5% relative IV change
DEFAULT_HIGH_COUNT = 10


class VolatilityEngine:
    """IV spike detection over a batch of flow alerts."""

    def detect_volatility_spikes(
        self,
        alerts: Optional[Sequence[FlowAlert]],
        threshold: float = DEFAULT_SPIKE_THRESHOLD,
        high_count: int = DEFAULT_HIGH_COUNT,
    ) -> VolatilitySpikeReport:
        """Find alerts with (iv_end - iv_start) / iv_start > threshold.

        Alerts with iv_start == 0 have no defined relative change and are
        skipped. Impact is HIGH above `high_count` spikes, MEDIUM for any
        spike, None when there are none.
        """
        if not alerts:
            return VolatilitySpikeReport()

        spikes = []
        for alert in alerts:
            change = self.relative_iv_change(alert)
            if change is not None and change > threshold:
                spikes.append(VolatilitySpike(alert=alert, relative_change=change))

        impact = None
        if len(spikes) > high_count:
            impact = Impact.HIGH
        elif spikes:
            impact = Impact.MEDIUM

        log.debug("volatility.spikes", alerts=len(alerts), spikes=len(spikes))
        return VolatilitySpikeReport(spikes=spikes, impact=impact)

    @staticmethod
    def relative_iv_change(alert: FlowAlert) -> Optional[float]:
        """Relative IV move, or None when iv_start is zero."""
        if alert.iv_start == 0:
            return None
        return (alert.iv_end - alert.iv_start) / alert.iv_start
