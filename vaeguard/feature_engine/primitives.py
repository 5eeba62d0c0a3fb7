"""
Primitive Indicator Module

Basic building blocks for feature computation.
All transforms are causal (no lookahead) and deterministic.

Two smoothing conventions live side by side here:
    - ema():        α = 2/(period+1), seeded with the first observation
    - rsi_wilder(): α = 1/period, seeded with the plain mean of `period` deltas
They are NOT interchangeable.
"""

from typing import NamedTuple
import logging

import numpy as np
import pandas as pd

LOG = logging.getLogger(__name__)

# Average loss below this is treated as zero (RSI pinned at 100)
RSI_ZERO_LOSS = 1e-10


class MACDResult(NamedTuple):
    macd: pd.Series
    signal: pd.Series
    histogram: pd.Series


class BollingerBands(NamedTuple):
    upper: pd.Series
    middle: pd.Series
    lower: pd.Series


def _as_series(values) -> pd.Series:
    """Coerce array-like input to a float Series (None -> NaN)"""
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


class IndicatorPrimitives:
    """
    Primitive indicators used by the feature matrix builder.

    All functions:
        - Accept a Series or array-like
        - Return Series of the same length and index
        - Represent "not yet defined" as NaN
        - Use only data <= t for value at t
    """

    @staticmethod
    def ema(series, period: int) -> pd.Series:
        """
        Exponential moving average, α = 2/(period+1).

        Seeded with the first non-missing value (pandas ewm(adjust=False)
        behaviour). Missing inputs repeat the last computed EMA instead of
        resetting state.
        """
        s = _as_series(series)
        values = s.to_numpy()
        alpha = 2.0 / (period + 1)

        result = np.full(len(values), np.nan)
        ema_val = np.nan

        for i, v in enumerate(values):
            if np.isnan(v):
                result[i] = ema_val
                continue
            ema_val = v if np.isnan(ema_val) else v * alpha + ema_val * (1 - alpha)
            result[i] = ema_val

        return pd.Series(result, index=s.index)

    @staticmethod
    def rsi_wilder(closes, period: int = 14) -> pd.Series:
        """
        Wilder's RSI (matches pandas_ta rsi(length=period)).

        avg gain/loss seeded with the mean of the first `period` deltas, then
        avg = (avg * (period - 1) + x) / period.

        Returns:
            RSI series (NaN for indices < period)
        """
        s = _as_series(closes)
        values = s.to_numpy()
        n = len(values)
        result = np.full(n, np.nan)

        if n < period + 1:
            return pd.Series(result, index=s.index)

        deltas = np.diff(values)
        gains = np.where(deltas > 0, deltas, 0.0)
        losses = np.where(deltas < 0, -deltas, 0.0)

        def to_rsi(avg_gain: float, avg_loss: float) -> float:
            if avg_loss < RSI_ZERO_LOSS:
                return 100.0
            return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

        avg_gain = gains[:period].sum() / period
        avg_loss = losses[:period].sum() / period
        result[period] = to_rsi(avg_gain, avg_loss)

        for i in range(period, len(gains)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            result[i + 1] = to_rsi(avg_gain, avg_loss)

        return pd.Series(result, index=s.index)

    @staticmethod
    def macd(
        closes,
        fast: int = 12,
        slow: int = 26,
        signal: int = 9
    ) -> MACDResult:
        """
        MACD line, signal line and histogram.

        The signal EMA runs over the compacted (NaN-stripped) MACD line and is
        re-aligned starting at the first defined MACD index.
        """
        s = _as_series(closes)
        ema_fast = IndicatorPrimitives.ema(s, fast).to_numpy()
        ema_slow = IndicatorPrimitives.ema(s, slow).to_numpy()

        # NaN wherever either EMA is undefined
        macd_line = ema_fast - ema_slow

        defined = ~np.isnan(macd_line)
        signal_line = np.full(len(macd_line), np.nan)

        if defined.any():
            first_idx = int(np.argmax(defined))
            compact = IndicatorPrimitives.ema(macd_line[defined], signal).to_numpy()
            signal_line[first_idx:first_idx + len(compact)] = compact

        histogram = macd_line - signal_line

        return MACDResult(
            macd=pd.Series(macd_line, index=s.index),
            signal=pd.Series(signal_line, index=s.index),
            histogram=pd.Series(histogram, index=s.index),
        )

    @staticmethod
    def sma(series, period: int) -> pd.Series:
        """Simple moving average (NaN for indices < period-1)"""
        s = _as_series(series)
        return s.rolling(window=period, min_periods=period).mean()

    @staticmethod
    def bollinger_bands(
        closes,
        period: int = 20,
        multiplier: float = 2.0
    ) -> BollingerBands:
        """
        Bollinger Bands with population standard deviation (ddof=0).

        upper/lower = mean ± multiplier * σ over the trailing window.
        """
        s = _as_series(closes)
        values = s.to_numpy()
        n = len(values)

        middle = np.full(n, np.nan)
        upper = np.full(n, np.nan)
        lower = np.full(n, np.nan)

        if n >= period:
            windows = np.lib.stride_tricks.sliding_window_view(values, period)
            mean = windows.mean(axis=1)
            sd = np.sqrt(((windows - mean[:, None]) ** 2).sum(axis=1) / period)

            middle[period - 1:] = mean
            upper[period - 1:] = mean + multiplier * sd
            lower[period - 1:] = mean - multiplier * sd

        return BollingerBands(
            upper=pd.Series(upper, index=s.index),
            middle=pd.Series(middle, index=s.index),
            lower=pd.Series(lower, index=s.index),
        )
