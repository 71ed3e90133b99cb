"""
MarketLens — Pydantic Models

All I/O schemas for the analytics core. Data-access collaborators hand these
in, engines return these, the presentation layer serializes these.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class LevelKind(str, Enum):
    """How a key level was found."""
    WHALE_SUPPORT = "whale-support"
    DARK_POOL_CLUSTER = "dark-pool-cluster"


class Strength(str, Enum):
    """Key level strength, from transaction count."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Impact(str, Enum):
    """Expected market impact of an alert."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertCategory(str, Enum):
    """Contextual alert categories, in display order."""
    WHALE_SUPPORT = "whale-support"
    EXPIRATION = "expiration"
    DARK_POOL_CLUSTER = "dark-pool-cluster"
    VOLATILITY_SPIKE = "volatility-spike"


class ClusterMethod(str, Enum):
    """Proximity clustering strategy."""
    GREEDY = "greedy"    # anchor in input order
    SORTED = "sorted"    # sort by price, merge neighbours


# ──────────────────────────────────────────────
# Price Series & Regression Models
# ──────────────────────────────────────────────

class PricePoint(BaseModel):
    """Single bar of an ordered price series. Only `close` is used."""
    date: date
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None


class RegressionPoint(BaseModel):
    """Observed price with the fitted channel at the same date."""
    date: date
    price: float
    regression: float
    plus_1_sigma: float
    plus_2_sigma: float
    minus_1_sigma: float
    minus_2_sigma: float


class RegressionResult(BaseModel):
    """Log-linear fit. Slope and intercept are in ln(price) space."""
    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    standard_deviation: float = Field(0.0, ge=0)
    points: list[RegressionPoint] = []


class RegressionServiceResponse(BaseModel):
    """Envelope returned to the presentation layer."""
    success: bool
    ticker: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None
    points: list[RegressionPoint] = []
    regression: RegressionResult = Field(default_factory=RegressionResult)
    projection: list[RegressionPoint] = []


# ──────────────────────────────────────────────
# Dark Pool Models
# ──────────────────────────────────────────────

class Transaction(BaseModel):
    """Single dark pool execution print."""
    price: float = Field(gt=0)
    volume: float = Field(0, ge=0)
    premium: float = Field(0, ge=0)
    executed_at: Optional[datetime] = None
    institution: Optional[str] = None  # market center / venue


class KeyLevel(BaseModel):
    """Price level with a dense concentration of prints."""
    price: float
    kind: LevelKind
    strength: Strength
    transaction_count: int
    total_volume: float = 0
    total_premium: float = 0
    institutions: list[str] = Field(default_factory=list, max_length=5)
    description: str = ""


# ──────────────────────────────────────────────
# Options Flow Models
# ──────────────────────────────────────────────

class FlowAlert(BaseModel):
    """Options flow alert. Missing IV readings arrive as 0."""
    ticker: str
    strike: float
    expiry: Optional[date] = None
    premium: float = Field(0, ge=0)
    volume: float = Field(0, ge=0)
    iv_start: float = 0.0
    iv_end: float = 0.0


class ExpirationAlert(BaseModel):
    """Flow concentrated on one upcoming expiry date."""
    expiry: date
    days_until: int = Field(ge=0)
    strike_count: int
    total_volume: float
    total_premium: float
    impact: Impact
    description: str = ""


class VolatilitySpike(BaseModel):
    """Flow alert whose IV rose sharply before execution."""
    alert: FlowAlert
    relative_change: float


class VolatilitySpikeReport(BaseModel):
    """All spikes in a batch. `impact` is None when nothing spiked."""
    spikes: list[VolatilitySpike] = []
    impact: Optional[Impact] = None

    @property
    def count(self) -> int:
        return len(self.spikes)


# ──────────────────────────────────────────────
# Contextual Alerts
# ──────────────────────────────────────────────

class ContextualAlert(BaseModel):
    """Human-readable alert shown next to a ticker."""
    category: AlertCategory
    title: str
    description: str
    value: str
    impact: Impact
    timestamp: Optional[str] = None
