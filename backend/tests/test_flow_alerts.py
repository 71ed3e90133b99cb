"""
MarketLens — Options Flow Tests

Tests for:
- Upcoming expiration aggregation (window, grouping, impact tiers)
- Implied volatility spike detection
"""

from datetime import date, datetime, timezone

import pytest

NOW = datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc)


def _alert(expiry=None, strike=100.0, premium=10_000.0, volume=100.0, iv_start=0.0, iv_end=0.0):
    from marketlens.models import FlowAlert

    return FlowAlert(
        ticker="SPY",
        strike=strike,
        expiry=expiry,
        premium=premium,
        volume=volume,
        iv_start=iv_start,
        iv_end=iv_end,
    )


# ═══════════════════════════════════════════════
#  EXPIRATIONS
# ═══════════════════════════════════════════════

class TestUpcomingExpirations:

    def test_window_and_order(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        alerts = [
            _alert(date(2024, 7, 11)),   # +40
            _alert(date(2024, 6, 11)),   # +10
            _alert(date(2024, 5, 31)),   # -1
            _alert(date(2024, 6, 1)),    # 0
        ]
        expirations = ExpirationEngine().detect_upcoming_expirations(alerts, days_ahead=30, now=NOW)
        assert [e.days_until for e in expirations] == [0, 10]
        assert [e.expiry for e in expirations] == [date(2024, 6, 1), date(2024, 6, 11)]

    def test_window_inclusive(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        alerts = [_alert(date(2024, 7, 1)), _alert(date(2024, 7, 2))]
        expirations = ExpirationEngine().detect_upcoming_expirations(alerts, days_ahead=30, now=NOW)
        assert [e.days_until for e in expirations] == [30]

    def test_grouping_and_totals(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        expiry = date(2024, 6, 7)
        alerts = [
            _alert(expiry, strike=500.0, premium=1_000.0, volume=10),
            _alert(expiry, strike=500.0, premium=2_000.0, volume=20),
            _alert(expiry, strike=510.0, premium=3_000.0, volume=30),
        ]
        [exp] = ExpirationEngine().detect_upcoming_expirations(alerts, now=NOW)
        assert exp.strike_count == 2
        assert exp.total_volume == 60
        assert exp.total_premium == 6_000.0
        assert exp.days_until == 6
        assert exp.description == "2 strikes • 60 volume"

    def test_missing_expiry_skipped(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        alerts = [_alert(None), _alert(date(2024, 6, 3))]
        expirations = ExpirationEngine().detect_upcoming_expirations(alerts, now=NOW)
        assert len(expirations) == 1

    def test_accepts_plain_date(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        expirations = ExpirationEngine().detect_upcoming_expirations(
            [_alert(date(2024, 6, 2))], now=date(2024, 6, 1)
        )
        assert expirations[0].days_until == 1

    def test_empty(self):
        from marketlens.engines.expiration_engine import ExpirationEngine
        assert ExpirationEngine().detect_upcoming_expirations([], now=NOW) == []
        assert ExpirationEngine().detect_upcoming_expirations(None) == []

    @pytest.mark.parametrize("premium,volume,expected", [
        (100_000_001, 0, "high"),
        (0, 100_001, "high"),
        (100_000_000, 100_000, "medium"),
        (50_000_001, 0, "medium"),
        (0, 50_001, "medium"),
        (50_000_000, 50_000, "low"),
        (0, 0, "low"),
    ])
    def test_impact_tiers(self, premium, volume, expected):
        from marketlens.engines.expiration_engine import classify_expiration_impact
        assert classify_expiration_impact(premium, volume).value == expected


# ═══════════════════════════════════════════════
#  VOLATILITY SPIKES
# ═══════════════════════════════════════════════

class TestVolatilitySpikes:

    def test_zero_iv_start_excluded(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        alerts = [_alert(iv_start=0.0, iv_end=0.9), _alert(iv_start=0.5, iv_end=0.6)]
        report = VolatilityEngine().detect_volatility_spikes(alerts)
        assert report.count == 1
        assert report.spikes[0].alert.iv_start == 0.5
        assert report.spikes[0].relative_change == pytest.approx(0.2)

    def test_small_moves_ignored(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        alerts = [_alert(iv_start=0.5, iv_end=0.52), _alert(iv_start=0.5, iv_end=0.4)]
        report = VolatilityEngine().detect_volatility_spikes(alerts)
        assert report.spikes == []
        assert report.impact is None

    def test_impact_medium(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        from marketlens.models import Impact
        alerts = [_alert(iv_start=0.3, iv_end=0.4) for _ in range(10)]
        report = VolatilityEngine().detect_volatility_spikes(alerts)
        assert report.count == 10
        assert report.impact == Impact.MEDIUM

    def test_impact_high(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        from marketlens.models import Impact
        alerts = [_alert(iv_start=0.3, iv_end=0.4) for _ in range(11)]
        report = VolatilityEngine().detect_volatility_spikes(alerts)
        assert report.impact == Impact.HIGH

    def test_relative_change(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        assert VolatilityEngine.relative_iv_change(_alert(iv_start=0.4, iv_end=0.3)) == pytest.approx(-0.25)
        assert VolatilityEngine.relative_iv_change(_alert(iv_start=0.0, iv_end=0.3)) is None

    def test_empty(self):
        from marketlens.engines.volatility_engine import VolatilityEngine
        report = VolatilityEngine().detect_volatility_spikes([])
        assert report.count == 0
        assert report.impact is None
