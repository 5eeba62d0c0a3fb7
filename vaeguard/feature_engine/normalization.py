"""
Normalization Module

Applies the fixed per-feature MinMax transform the encoder was trained with.

Rules:
    - Parameters are loaded once and never re-fit from observed data
    - Output clipped to [0, 1]
    - Zero scale or NaN result maps to 0
"""

from typing import Dict, Sequence
import logging

import numpy as np

from vaeguard.feature_engine.schemas import FEATURE_COLUMNS

LOG = logging.getLogger(__name__)


class ScalerParamsError(ValueError):
    """Malformed scaler parameters"""


class FeatureScaler:
    """
    Fixed MinMax scaler.

    Formula:
        scaled[j] = clip((x[j] - min[j]) / scale[j], 0, 1)

    Applied independently per row; the source array is never mutated.
    """

    def __init__(self, data_min: Sequence[float], scale: Sequence[float]):
        data_min = np.array(data_min, dtype=np.float64)
        scale = np.array(scale, dtype=np.float64)

        n_features = len(FEATURE_COLUMNS)
        if data_min.shape != (n_features,) or scale.shape != (n_features,):
            raise ScalerParamsError(
                f"Scaler params must have {n_features} entries, "
                f"got min={data_min.shape} scale={scale.shape}"
            )

        # Immutable for the lifetime of the session
        data_min.setflags(write=False)
        scale.setflags(write=False)
        self._min = data_min
        self._scale = scale

    @property
    def data_min(self) -> np.ndarray:
        return self._min

    @property
    def scale(self) -> np.ndarray:
        return self._scale

    @classmethod
    def from_dict(cls, params: Dict) -> 'FeatureScaler':
        """
        Create scaler from a scaler_params.json payload.

        Expected: {"min": float[7], "scale": float[7]}
        """
        if not isinstance(params, dict):
            raise ScalerParamsError(f"Scaler params must be an object, got {type(params).__name__}")

        missing = [key for key in ('min', 'scale') if key not in params]
        if missing:
            raise ScalerParamsError(f"Scaler params missing keys: {missing}")

        try:
            return cls(params['min'], params['scale'])
        except ScalerParamsError:
            raise
        except (TypeError, ValueError) as e:
            raise ScalerParamsError(f"Invalid scaler params: {e}") from e

    def transform(self, values: np.ndarray) -> np.ndarray:
        """
        Scale a row (F,), a window (W, F) or a batch (B, W, F).

        Returns:
            New float64 array of the same shape, every value in [0, 1]
        """
        values = np.asarray(values, dtype=np.float64)

        with np.errstate(divide='ignore', invalid='ignore'):
            scaled = (values - self._min) / self._scale

        scaled = np.where(np.isnan(scaled), 0.0, scaled)
        scaled = np.clip(scaled, 0.0, 1.0)
        # Zero-scale features are pinned to 0 regardless of input
        scaled[..., self._scale == 0] = 0.0

        return scaled

    def to_dict(self) -> dict:
        return {'min': self._min.tolist(), 'scale': self._scale.tolist()}
