"""
MarketLens — Regression Channel Engine

Pure domain logic for fitting a log-linear trend channel to a price series:
ordinary least squares on ln(close) against bar index, sigma bands from the
residual standard deviation, and projection of the fit into the future.

Bands are computed in log space and exponentiated, so they are multiplicative
in price space (+1σ and -1σ are equal percentage moves, not equal dollar
moves).
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

import numpy as np
import structlog

from marketlens.models import (
    PricePoint,
    RegressionPoint,
    RegressionResult,
    RegressionServiceResponse,
)
from marketlens.utils.formatters import format_ticker

log = structlog.get_logger(__name__)

# Closes at or below zero are floored before ln()
PRICE_FLOOR = 0.01

DateStepper = Callable[[date, int], date]


# ──────────────────────────────────────────────
# Date Stepping
# ──────────────────────────────────────────────

def add_calendar_days(start: date, steps: int) -> date:
    """Date `steps` calendar days after `start` (weekends and holidays included)."""
    return start + timedelta(days=steps)


def add_business_days(start: date, steps: int) -> date:
    """Date `steps` weekdays after `start`. Holidays are not skipped."""
    offset = np.busday_offset(np.datetime64(start, "D"), steps, roll="forward")
    return offset.astype("datetime64[D]").item()


class RegressionEngine:
    """Log-linear regression channel.

    Usage:
        engine = RegressionEngine()
        response = engine.compute_regression(price_points, ticker="AAPL")
        future = engine.extrapolate(response.regression, projection_days=30)
    """

    def __init__(self, price_floor: float = PRICE_FLOOR):
        self.price_floor = price_floor

    def compute_regression(
        self,
        points: Optional[Sequence[PricePoint]],
        ticker: str = "",
    ) -> RegressionServiceResponse:
        """Fit the channel to an ordered price series.

        Args:
            points: Price points ordered by date ascending (minimum 2).
            ticker: Symbol echoed back in the response.

        Returns:
            RegressionServiceResponse. On empty, short, or malformed input
            `success` is False and `error` describes why; this method does
            not raise.
        """
        ticker = format_ticker(ticker)

        if not points:
            return self._failure(ticker, "No price data available")
        if len(points) < 2:
            return self._failure(ticker, "At least 2 price points are required")

        try:
            bars = [p if isinstance(p, PricePoint) else PricePoint.model_validate(p) for p in points]
            closes = np.array([b.close for b in bars], dtype=float)
            if not np.all(np.isfinite(closes)):
                return self._failure(ticker, "Price series contains non-finite closes")

            slope, intercept, r_squared, std_dev = self.fit_log_linear(closes)

            channel = [
                RegressionPoint(
                    date=bar.date,
                    price=bar.close,
                    **self._channel_at(slope * i + intercept, std_dev),
                )
                for i, bar in enumerate(bars)
            ]

            result = RegressionResult(
                slope=slope,
                intercept=intercept,
                r_squared=r_squared,
                standard_deviation=std_dev,
                points=channel,
            )
            log.debug(
                "regression.fitted",
                ticker=ticker,
                bars=len(bars),
                slope=round(slope, 6),
                r_squared=round(r_squared, 4),
            )
            return RegressionServiceResponse(
                success=True,
                ticker=ticker,
                points=channel,
                regression=result,
            )

        except Exception as e:
            log.warning("regression.failed", ticker=ticker, error=str(e))
            return self._failure(ticker, str(e) or "Regression computation failed")

    def fit_log_linear(self, closes: Sequence[float]) -> tuple[float, float, float, float]:
        """Ordinary least squares of ln(close) on bar index.

        Returns:
            (slope, intercept, r_squared, standard_deviation), all in log space.
            Degenerate inputs fall back to 0 rather than raising: slope when
            every x is the same, r_squared when ln(close) has no variance,
            standard deviation below 3 points.
        """
        y = np.log(np.maximum(np.asarray(closes, dtype=float), self.price_floor))
        n = len(y)
        if n == 0:
            return 0.0, 0.0, 0.0, 0.0

        x = np.arange(n, dtype=float)
        sum_x = float(x.sum())
        sum_y = float(y.sum())
        sum_xy = float(np.dot(x, y))
        sum_xx = float(np.dot(x, x))

        denominator = n * sum_xx - sum_x * sum_x
        slope = (n * sum_xy - sum_x * sum_y) / denominator if denominator != 0 else 0.0
        intercept = (sum_y - slope * sum_x) / n

        residuals = y - (slope * x + intercept)
        ss_res = float(np.dot(residuals, residuals))
        ss_tot = float(np.sum((y - sum_y / n) ** 2))

        # ptp guards against rounding noise in the mean of a flat series
        if ss_tot == 0 or np.ptp(y) == 0:
            r_squared = 0.0
        else:
            r_squared = 1.0 - ss_res / ss_tot

        std_dev = math.sqrt(ss_res / (n - 2)) if n >= 3 else 0.0

        return float(slope), float(intercept), float(r_squared), std_dev

    def extrapolate(
        self,
        regression: RegressionResult,
        projection_days: int = 365,
        current_length: Optional[int] = None,
        step: DateStepper = add_calendar_days,
    ) -> list[RegressionPoint]:
        """Continue the fitted line past the last observed bar.

        Args:
            regression: A fit produced by `compute_regression`.
            projection_days: Number of future steps.
            current_length: Index of the first projected step. Defaults to
                the number of fitted points.
            step: Maps (last known date, step number >= 1) to a date.
                Defaults to one calendar day per step.

        Returns:
            Projected points; `price` repeats the fitted value.
        """
        if projection_days <= 0:
            return []

        n = len(regression.points) if current_length is None else current_length
        start = regression.points[-1].date if regression.points else date.today()

        projection = []
        for i in range(1, projection_days + 1):
            channel = self._channel_at(
                regression.slope * (n + i - 1) + regression.intercept,
                regression.standard_deviation,
            )
            projection.append(
                RegressionPoint(date=step(start, i), price=channel["regression"], **channel)
            )
        return projection

    # ──────────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────────

    @staticmethod
    def _channel_at(predicted_log: float, std_dev: float) -> dict:
        """Fitted price and sigma bands for one ln(price) prediction."""
        return {
            "regression": math.exp(predicted_log),
            "plus_1_sigma": math.exp(predicted_log + std_dev),
            "plus_2_sigma": math.exp(predicted_log + 2 * std_dev),
            "minus_1_sigma": math.exp(predicted_log - std_dev),
            "minus_2_sigma": math.exp(predicted_log - 2 * std_dev),
        }

    @staticmethod
    def _failure(ticker: str, error: str) -> RegressionServiceResponse:
        return RegressionServiceResponse(
            success=False,
            ticker=ticker,
            error=error,
            regression=RegressionResult(),
        )
