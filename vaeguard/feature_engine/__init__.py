"""
VAEGUARD Feature Engine

Transforms OHLCV bars into scaled sliding-window tensors for the encoder.

Philosophy:
    - Causality: No lookahead, all windows end at time t
    - Determinism: Same input → same output, bit-for-bit across runs
    - Fixed layout: 7 features in a fixed column order, never reordered
    - Fresh state: Indicators always recomputed from the full series

Feature order (matches the training notebook):
    [RSI14, MACD, MACD_Hist, BB_Position, Vol_Ratio, Momentum, SMA_Ratio]
"""

from vaeguard.feature_engine.config import FeatureEngineConfig
from vaeguard.feature_engine.normalization import FeatureScaler, ScalerParamsError
from vaeguard.feature_engine.pipeline import FeatureMatrixBuilder
from vaeguard.feature_engine.primitives import IndicatorPrimitives
from vaeguard.feature_engine.schemas import (
    FEATURE_COLUMNS,
    Bar,
    FeatureMatrixMetadata,
    bars_to_frame,
)
from vaeguard.feature_engine.windowing import build_windows, latest_window

__all__ = [
    'FEATURE_COLUMNS',
    'Bar',
    'FeatureEngineConfig',
    'FeatureMatrixBuilder',
    'FeatureMatrixMetadata',
    'FeatureScaler',
    'IndicatorPrimitives',
    'ScalerParamsError',
    'bars_to_frame',
    'build_windows',
    'latest_window',
]

__version__ = '1.0.0'
