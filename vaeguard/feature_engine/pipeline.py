"""
Feature Matrix Pipeline

Builds the (N, 7) feature matrix from OHLCV bars.

Pipeline Stages:
    1. Input validation
    2. Indicator primitives (RSI, MACD, Bollinger, SMAs)
    3. Per-bar feature derivation
    4. Null handling (SMA_Ratio prior → forward fill → backward fill)

A new matrix is built on every call; nothing is cached or mutated in place.
"""

from datetime import datetime
from typing import List, Optional, Tuple
import logging

import numpy as np
import pandas as pd

from vaeguard.feature_engine.config import FeatureEngineConfig
from vaeguard.feature_engine.primitives import IndicatorPrimitives
from vaeguard.feature_engine.schemas import (
    FEATURE_COLUMNS,
    BarInput,
    FeatureMatrixMetadata,
    bars_to_frame,
)
from vaeguard.feature_engine.validation import BarInputValidator

LOG = logging.getLogger(__name__)


class FeatureMatrixBuilder:
    """
    Feature matrix computation.

    Column order is fixed (FEATURE_COLUMNS):
        RSI14, MACD, MACD_Hist, BB_Position, Vol_Ratio, Momentum, SMA_Ratio
    """

    def __init__(self, config: Optional[FeatureEngineConfig] = None):
        self.config = config or FeatureEngineConfig()
        self.validator = BarInputValidator(self.config)

    def compute_raw_matrix(self, bars: BarInput) -> pd.DataFrame:
        """
        Compute the unfilled feature matrix.

        Many cells are NaN for early rows; use fill_nulls() before windowing.
        """
        df = bars_to_frame(bars)
        closes = df['close'].to_numpy(dtype=float) if len(df) else np.empty(0)
        volumes = df['volume'].to_numpy(dtype=float) if len(df) else np.empty(0)
        n = len(closes)

        ind = self.config.indicators
        eps = self.config.fill.range_epsilon

        rsi = IndicatorPrimitives.rsi_wilder(closes, ind.rsi_period).to_numpy()
        macd = IndicatorPrimitives.macd(
            closes, ind.macd_fast, ind.macd_slow, ind.macd_signal
        )
        bb = IndicatorPrimitives.bollinger_bands(closes, ind.bb_period, ind.bb_multiplier)
        sma_ratio_base = IndicatorPrimitives.sma(closes, ind.sma_ratio_period).to_numpy()
        vol_sma = IndicatorPrimitives.sma(volumes, ind.volume_sma_period).to_numpy()

        upper = bb.upper.to_numpy()
        lower = bb.lower.to_numpy()

        with np.errstate(divide='ignore', invalid='ignore'):
            # BB position: flat bands collapse to the midpoint
            band_range = upper - lower
            bb_pos = np.where(
                band_range > eps,
                (closes - lower) / band_range,
                self.config.fill.bb_flat_position,
            )
            bb_pos[np.isnan(upper) | np.isnan(lower)] = np.nan

            # Volume relative to its 20-bar average
            vol_ratio = np.where(vol_sma > 0, volumes / vol_sma, np.nan)

            # Percent change over the momentum period
            p = ind.momentum_period
            momentum = np.full(n, np.nan)
            if n > p:
                prev = closes[:-p]
                momentum[p:] = np.where(
                    prev > 0, (closes[p:] - prev) / prev * 100, np.nan
                )

            # Close relative to its 50-bar SMA
            sma_ratio = np.where(sma_ratio_base > 0, closes / sma_ratio_base, np.nan)

        return pd.DataFrame(
            {
                'RSI14': rsi,
                'MACD': macd.macd.to_numpy(),
                'MACD_Hist': macd.histogram.to_numpy(),
                'BB_Position': bb_pos,
                'Vol_Ratio': vol_ratio,
                'Momentum': momentum,
                'SMA_Ratio': sma_ratio,
            },
            columns=FEATURE_COLUMNS,
        )

    def fill_nulls(self, raw: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
        """
        Fill nulls in the raw feature matrix.

        Order matters:
            1. SMA_Ratio leading nulls -> 1.0 (not forward-filled from the
               first real ratio)
            2. Forward fill each column
            3. Backward fill remaining leading nulls
            4. Columns with no observation at all -> neutral default

        Returns:
            (filled_matrix, defaulted_columns)
        """
        filled = raw.copy()

        observed = filled['SMA_Ratio'].notna()
        leading = ~observed.cummax()
        filled.loc[leading, 'SMA_Ratio'] = self.config.fill.sma_ratio_leading_value

        filled = filled.ffill().bfill()

        defaulted = []
        if len(filled) > 0:
            for col in FEATURE_COLUMNS:
                if filled[col].isna().all():
                    filled[col] = self.config.fill.unobserved_defaults[col]
                    defaulted.append(col)

        if defaulted:
            LOG.warning(f"No observations for {defaulted}; filled with neutral defaults")

        return filled, defaulted

    def compute_features(self, bars: BarInput) -> Tuple[pd.DataFrame, FeatureMatrixMetadata]:
        """
        Validate bars and build the filled feature matrix.

        Returns:
            (feature_matrix, metadata)

        Raises:
            ValueError: bar input failed validation
        """
        df = bars_to_frame(bars)

        is_valid, df_valid, errors = self.validator.validate_input(df)
        if not is_valid:
            error_msg = f"Input validation failed: {errors}"
            LOG.error(error_msg)
            raise ValueError(error_msg)

        raw = self.compute_raw_matrix(df_valid)
        first_observed = {
            col: (int(raw[col].notna().to_numpy().argmax()) if raw[col].notna().any() else None)
            for col in FEATURE_COLUMNS
        }

        filled, defaulted = self.fill_nulls(raw)

        warnings = []
        if not self.validator.check_sufficient_history(df_valid):
            warnings.append(
                f"Insufficient history: {len(df_valid)} bars < "
                f"window size {self.config.window.window_size}"
            )

        metadata = FeatureMatrixMetadata(
            processing_timestamp=datetime.utcnow(),
            config_version=self.config.config_version,
            config_hash=self.config.get_config_hash(),
            total_bars_input=len(df),
            feature_names=list(FEATURE_COLUMNS),
            first_observed_index=first_observed,
            defaulted_columns=defaulted,
            warnings=warnings,
        )

        if self.config.verbose_logging:
            LOG.info(f"✓ Feature matrix built ({len(filled)} rows)")

        return filled, metadata

    def build(self, bars: BarInput) -> pd.DataFrame:
        """Filled feature matrix for `bars`"""
        matrix, _ = self.compute_features(bars)
        return matrix
