"""
MarketLens — Regression Channel Service

Calling layer around RegressionEngine: fetches bars through an injected
data-access callable, fits the channel, and memoizes successful responses in
an injected TTL cache keyed by (ticker, candle size, limit).

The engine itself stays pure; only this layer knows about caching.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

import structlog

from marketlens.cache import get_cache
from marketlens.config import Settings, get_settings
from marketlens.engines.regression_engine import DateStepper, RegressionEngine, add_calendar_days
from marketlens.models import PricePoint, RegressionServiceResponse
from marketlens.utils.formatters import format_ticker

log = structlog.get_logger(__name__)

# (ticker, candle_size, limit) -> ordered bars
BarFetcher = Callable[[str, str, int], Sequence[PricePoint]]

CACHE_PREFIX = "regression"


class RegressionService:
    """Cached regression channels per ticker.

    Usage:
        service = RegressionService(fetch_bars=ohlc_client.get_bars, cache=MemoryCache())
        response = service.get_regression_data("AAPL", candle_size="1d", limit=200)
    """

    def __init__(
        self,
        fetch_bars: BarFetcher,
        cache=None,
        engine: Optional[RegressionEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.fetch_bars = fetch_bars
        self.cache = cache if cache is not None else get_cache()
        self.engine = engine or RegressionEngine(price_floor=self.settings.price_floor)

    @staticmethod
    def cache_key(ticker: str, candle_size: str, limit: Optional[int]) -> str:
        return f"{CACHE_PREFIX}:{format_ticker(ticker)}:{candle_size}:{limit or 'default'}"

    def get_regression_data(
        self,
        ticker: str,
        candle_size: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> RegressionServiceResponse:
        """Regression channel for a ticker, from cache when fresh.

        Args:
            ticker: Symbol to fetch.
            candle_size: Bar size (e.g. '1d', '1w'). Defaults from settings.
            limit: Number of bars. Defaults from settings.

        Returns:
            RegressionServiceResponse. Fetch failures and empty series come
            back as `success=False`; failures are not cached.
        """
        ticker = format_ticker(ticker)
        candle_size = candle_size or self.settings.regression_candle_size
        limit = limit or self.settings.regression_limit
        key = self.cache_key(ticker, candle_size, limit)

        hit = self.cache.get(key)
        if hit is not None:
            log.debug("regression.cache_hit", key=key)
            if isinstance(hit, dict):
                hit = RegressionServiceResponse.model_validate(hit)
            return hit

        try:
            bars = self.fetch_bars(ticker, candle_size, limit)
        except Exception as e:
            log.warning("regression.fetch_failed", ticker=ticker, candle_size=candle_size, error=str(e))
            return self.engine.compute_regression([], ticker=ticker).model_copy(
                update={"error": str(e) or "Failed to fetch price data"}
            )

        response = self.engine.compute_regression(bars, ticker=ticker)
        if response.success:
            self.cache.set(key, response, ttl=self.settings.regression_cache_ttl)
        else:
            log.info("regression.unavailable", ticker=ticker, error=response.error)
        return response

    def get_projection(
        self,
        ticker: str,
        projection_days: Optional[int] = None,
        candle_size: Optional[str] = None,
        limit: Optional[int] = None,
        step: DateStepper = add_calendar_days,
    ) -> RegressionServiceResponse:
        """Regression channel plus its projection into the future."""
        response = self.get_regression_data(ticker, candle_size=candle_size, limit=limit)
        if not response.success:
            return response

        days = projection_days if projection_days is not None else self.settings.projection_days
        projection = self.engine.extrapolate(response.regression, projection_days=days, step=step)
        return response.model_copy(update={"projection": projection})

    def clear_cache(self, ticker: Optional[str] = None) -> int:
        """Drop cached channels, for one ticker or all of them."""
        prefix = f"{CACHE_PREFIX}:{format_ticker(ticker)}" if ticker else CACHE_PREFIX
        return self.cache.clear_prefix(prefix)
