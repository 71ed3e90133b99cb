"""
MarketLens — Dark Pool Key Level Engine

Finds price levels where dark pool prints concentrate:

- Whale support: prints grouped on the exact (cent-rounded) price.
- Dark pool clusters: prints grouped within a fixed price radius.

The default clustering is greedy: the first unassigned print in input order
anchors a cluster and takes every unassigned print within the radius of the
anchor. Results depend on input order. `ClusterMethod.SORTED` instead sorts by
price and merges neighbours, which is order independent.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Optional, Sequence

import structlog

from marketlens.models import ClusterMethod, KeyLevel, LevelKind, Strength, Transaction
from marketlens.utils.formatters import format_currency

log = structlog.get_logger(__name__)

DEFAULT_THRESHOLD = 5
DEFAULT_RADIUS = 0.5
MAX_INSTITUTIONS = 5
WHALE_MIN_PREMIUM = 500_000


def round_to_cent(price: float) -> float:
    """Round to the cent with halves going up (100.125 -> 100.13)."""
    return math.floor(price * 100 + 0.5) / 100


def classify_strength(count: int) -> Strength:
    """Strength from the number of prints at a level."""
    if count >= 10:
        return Strength.HIGH
    if count >= 7:
        return Strength.MEDIUM
    return Strength.LOW


def filter_whale_transactions(
    transactions: Optional[Sequence[Transaction]],
    min_premium: float = WHALE_MIN_PREMIUM,
) -> list[Transaction]:
    """Keep prints whose premium reaches the whale threshold."""
    return [t for t in transactions or [] if t.premium >= min_premium]


class ClusterEngine:
    """Key level detection over dark pool prints.

    Usage:
        engine = ClusterEngine()
        levels = engine.detect_whale_support_levels(prints)
        clusters = engine.detect_dark_pool_clusters(prints, radius=0.5)
    """

    def detect_whale_support_levels(
        self,
        transactions: Optional[Sequence[Transaction]],
        threshold: int = DEFAULT_THRESHOLD,
    ) -> list[KeyLevel]:
        """Group prints by price rounded to the cent.

        Args:
            transactions: Prints, already filtered by premium/size.
            threshold: Minimum prints at one price to form a level.

        Returns:
            Key levels sorted by transaction count, highest first.
        """
        if not transactions:
            return []

        groups: dict[float, list[Transaction]] = defaultdict(list)
        for t in transactions:
            groups[round_to_cent(t.price)].append(t)

        levels = [
            self._build_level(
                price=price,
                group=group,
                kind=LevelKind.WHALE_SUPPORT,
                description=f"{len(group)} dark pool prints at {format_currency(price)}",
            )
            for price, group in groups.items()
            if len(group) >= threshold
        ]

        levels.sort(key=lambda lvl: lvl.transaction_count, reverse=True)
        log.debug("levels.whale_support", prints=len(transactions), levels=len(levels))
        return levels

    def detect_dark_pool_clusters(
        self,
        transactions: Optional[Sequence[Transaction]],
        threshold: int = DEFAULT_THRESHOLD,
        radius: float = DEFAULT_RADIUS,
        method: ClusterMethod = ClusterMethod.GREEDY,
    ) -> list[KeyLevel]:
        """Group prints lying within `radius` of each other.

        Returns:
            Clusters with at least `threshold` prints, priced at the mean
            member price, sorted by transaction count, highest first.
        """
        if not transactions:
            return []

        clusters = []
        for group in self.partition_by_proximity(transactions, radius=radius, method=method):
            if len(group) < threshold:
                continue
            price = round_to_cent(sum(t.price for t in group) / len(group))
            clusters.append(
                self._build_level(
                    price=price,
                    group=group,
                    kind=LevelKind.DARK_POOL_CLUSTER,
                    description=f"Cluster of {len(group)} prints around {format_currency(price)}",
                )
            )

        clusters.sort(key=lambda lvl: lvl.transaction_count, reverse=True)
        log.debug(
            "levels.dark_pool_clusters",
            prints=len(transactions),
            clusters=len(clusters),
            method=ClusterMethod(method).value,
        )
        return clusters

    def partition_by_proximity(
        self,
        transactions: Sequence[Transaction],
        radius: float = DEFAULT_RADIUS,
        method: ClusterMethod = ClusterMethod.GREEDY,
    ) -> list[list[Transaction]]:
        """Split prints into disjoint groups, qualifying or not.

        Every input print lands in exactly one group.
        """
        if ClusterMethod(method) is ClusterMethod.SORTED:
            return self._merge_sorted(transactions, radius)
        return self._greedy_anchor(transactions, radius)

    # ──────────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────────

    @staticmethod
    def _greedy_anchor(transactions: Sequence[Transaction], radius: float) -> list[list[Transaction]]:
        assigned = [False] * len(transactions)
        groups = []

        for i, anchor in enumerate(transactions):
            if assigned[i]:
                continue
            members = []
            for j in range(i, len(transactions)):
                if not assigned[j] and abs(transactions[j].price - anchor.price) <= radius:
                    assigned[j] = True
                    members.append(transactions[j])
            groups.append(members)

        return groups

    @staticmethod
    def _merge_sorted(transactions: Sequence[Transaction], radius: float) -> list[list[Transaction]]:
        ordered = sorted(transactions, key=lambda t: t.price)
        if not ordered:
            return []

        groups = [[ordered[0]]]
        for t in ordered[1:]:
            if t.price - groups[-1][-1].price <= radius:
                groups[-1].append(t)
            else:
                groups.append([t])
        return groups

    @staticmethod
    def _build_level(
        price: float,
        group: list[Transaction],
        kind: LevelKind,
        description: str,
    ) -> KeyLevel:
        institutions: list[str] = []
        for t in group:
            if t.institution and t.institution not in institutions:
                institutions.append(t.institution)

        return KeyLevel(
            price=price,
            kind=kind,
            strength=classify_strength(len(group)),
            transaction_count=len(group),
            total_volume=sum(t.volume for t in group),
            total_premium=sum(t.premium for t in group),
            institutions=institutions[:MAX_INSTITUTIONS],
            description=description,
        )
