"""
MarketLens — Dark Pool Key Level Tests

Tests for:
- Whale support levels (exact cent-rounded price grouping)
- Dark pool clusters (greedy anchor and sorted merge)
- Strength classification, aggregation, institution capping
"""

from datetime import datetime, timedelta

import pytest


def _prints(prices: list[float], volume: float = 1_000, premium: float = 600_000, institutions=None):
    """Helper: create Transactions from prices."""
    from marketlens.models import Transaction

    base = datetime(2024, 3, 1, 14, 30)
    out = []
    for i, price in enumerate(prices):
        out.append(Transaction(
            price=price,
            volume=volume,
            premium=premium,
            executed_at=base + timedelta(minutes=i),
            institution=institutions[i] if institutions else None,
        ))
    return out


# ═══════════════════════════════════════════════
#  WHALE SUPPORT
# ═══════════════════════════════════════════════

class TestWhaleSupportLevels:

    def test_threshold_excludes_thin_groups(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        from marketlens.models import LevelKind, Strength
        levels = ClusterEngine().detect_whale_support_levels(_prints([100.0] * 6 + [150.0] * 4), threshold=5)
        assert len(levels) == 1
        assert levels[0].price == 100.0
        assert levels[0].kind == LevelKind.WHALE_SUPPORT
        assert levels[0].strength == Strength.LOW
        assert levels[0].transaction_count == 6

    def test_prices_rounded_to_cent(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        prices = [100.001, 100.004, 99.996, 100.0, 100.002]
        levels = ClusterEngine().detect_whale_support_levels(_prints(prices))
        assert len(levels) == 1
        assert levels[0].price == 100.0
        assert levels[0].transaction_count == 5

    def test_half_cent_rounds_up(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        prices = [100.125, 100.125, 100.13, 100.125, 100.13]
        levels = ClusterEngine().detect_whale_support_levels(_prints(prices))
        assert len(levels) == 1
        assert levels[0].price == 100.13
        assert levels[0].transaction_count == 5
        assert levels[0].description == "5 dark pool prints at $100.13"

    def test_round_to_cent(self):
        from marketlens.engines.cluster_engine import round_to_cent
        assert round_to_cent(100.125) == 100.13
        assert round_to_cent(0.375) == 0.38
        assert round_to_cent(100.004) == 100.0

    def test_strength_tiers(self):
        from marketlens.engines.cluster_engine import classify_strength
        from marketlens.models import Strength
        assert classify_strength(5) == Strength.LOW
        assert classify_strength(6) == Strength.LOW
        assert classify_strength(7) == Strength.MEDIUM
        assert classify_strength(9) == Strength.MEDIUM
        assert classify_strength(10) == Strength.HIGH

    def test_totals_summed(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        levels = ClusterEngine().detect_whale_support_levels(
            _prints([42.5] * 5, volume=2_000, premium=85_000)
        )
        assert levels[0].total_volume == 10_000
        assert levels[0].total_premium == 425_000

    def test_institutions_distinct_and_capped(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        names = ["A", "B", "A", None, "C", "D", "E", "F", "G"]
        levels = ClusterEngine().detect_whale_support_levels(_prints([20.0] * 9, institutions=names))
        assert levels[0].institutions == ["A", "B", "C", "D", "E"]

    def test_sorted_by_count(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        from marketlens.models import Strength
        levels = ClusterEngine().detect_whale_support_levels(_prints([50.0] * 7 + [60.0] * 10))
        assert [lvl.price for lvl in levels] == [60.0, 50.0]
        assert levels[0].strength == Strength.HIGH
        assert levels[1].strength == Strength.MEDIUM

    def test_description(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        levels = ClusterEngine().detect_whale_support_levels(_prints([1234.5] * 5))
        assert levels[0].description == "5 dark pool prints at $1,234.50"

    def test_empty(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        assert ClusterEngine().detect_whale_support_levels([]) == []
        assert ClusterEngine().detect_whale_support_levels(None) == []


class TestWhaleFilter:

    def test_min_premium(self):
        from marketlens.engines.cluster_engine import filter_whale_transactions
        prints = _prints([10.0], premium=499_999) + _prints([11.0], premium=500_000)
        kept = filter_whale_transactions(prints)
        assert [t.price for t in kept] == [11.0]

    def test_none_input(self):
        from marketlens.engines.cluster_engine import filter_whale_transactions
        assert filter_whale_transactions(None) == []


# ═══════════════════════════════════════════════
#  DARK POOL CLUSTERS
# ═══════════════════════════════════════════════

class TestDarkPoolClusters:

    def test_cluster_mean_price(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        from marketlens.models import LevelKind
        prices = [100.0, 100.3, 100.5, 100.6, 100.2, 99.8]
        clusters = ClusterEngine().detect_dark_pool_clusters(_prints(prices), threshold=5, radius=0.5)
        assert len(clusters) == 1
        assert clusters[0].kind == LevelKind.DARK_POOL_CLUSTER
        assert clusters[0].transaction_count == 5
        assert clusters[0].price == pytest.approx(100.16)

    def test_cluster_price_half_cent_rounds_up(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        prices = [100.0, 100.25, 100.25, 100.0, 100.125]  # mean 100.125
        clusters = ClusterEngine().detect_dark_pool_clusters(_prints(prices), threshold=5, radius=0.5)
        assert clusters[0].price == 100.13

    def test_below_threshold_excluded(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        clusters = ClusterEngine().detect_dark_pool_clusters(_prints([10.0, 10.1, 10.2, 30.0]), threshold=5)
        assert clusters == []

    def test_sorted_by_count(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        prices = [10.0] * 5 + [20.0] * 8
        clusters = ClusterEngine().detect_dark_pool_clusters(_prints(prices))
        assert [c.transaction_count for c in clusters] == [8, 5]

    def test_partition_covers_every_print_once(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        prices = [100.0, 100.4, 100.8, 101.3, 99.7, 100.1, 105.0, 104.6, 100.9, 99.5]
        prints = _prints(prices)
        groups = ClusterEngine().partition_by_proximity(prints, radius=0.5)
        seen = [id(t) for g in groups for t in g]
        assert len(seen) == len(set(seen)) == len(prints)
        assert set(seen) == {id(t) for t in prints}

    def test_greedy_is_order_dependent(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        engine = ClusterEngine()
        a = engine.partition_by_proximity(_prints([100.0, 100.4, 100.8]), radius=0.5)
        b = engine.partition_by_proximity(_prints([100.4, 100.0, 100.8]), radius=0.5)
        assert [len(g) for g in a] == [2, 1]
        assert [len(g) for g in b] == [3]

    def test_sorted_method_is_order_independent(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        from marketlens.models import ClusterMethod
        engine = ClusterEngine()
        a = engine.partition_by_proximity(_prints([100.0, 105.0, 100.4]), radius=0.5, method=ClusterMethod.SORTED)
        b = engine.partition_by_proximity(_prints([105.0, 100.4, 100.0]), radius=0.5, method=ClusterMethod.SORTED)
        assert [[t.price for t in g] for g in a] == [[100.0, 100.4], [105.0]]
        assert [[t.price for t in g] for g in b] == [[100.0, 100.4], [105.0]]

    def test_sorted_method_clusters(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        from marketlens.models import ClusterMethod
        prices = [50.2, 70.0, 50.0, 50.4, 70.1, 50.1, 50.3]
        clusters = ClusterEngine().detect_dark_pool_clusters(
            _prints(prices), threshold=5, radius=0.5, method=ClusterMethod.SORTED
        )
        assert len(clusters) == 1
        assert clusters[0].price == pytest.approx(50.2)

    def test_empty(self):
        from marketlens.engines.cluster_engine import ClusterEngine
        assert ClusterEngine().detect_dark_pool_clusters([]) == []
