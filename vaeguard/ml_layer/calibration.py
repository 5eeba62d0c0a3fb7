"""
Threshold Calibration

Runs the encoder over every historical window of one ticker, collects the
per-window reconstruction errors and takes the 95th percentile as the
anomaly threshold.

Percentile rule (kept exactly as the encoder was validated with):
    threshold = sorted_errors[min(floor(0.95 * N), N - 1)]
No interpolation.
"""

from typing import List, Optional
import asyncio
import logging
import math

import numpy as np

from vaeguard.feature_engine.normalization import FeatureScaler
from vaeguard.ml_layer.config import CalibrationConfig, ErrorConfig
from vaeguard.ml_layer.reconstruction import compute_batch_errors
from vaeguard.ml_layer.schemas import CalibrationState, EncoderAdapter

LOG = logging.getLogger(__name__)


def percentile_threshold(errors: np.ndarray, percentile: float = 0.95) -> Optional[float]:
    """
    Floor-rank percentile of a set of errors.

    Args:
        errors: Per-window errors (any order)
        percentile: Rank fraction in [0, 1]

    Returns:
        The error at rank min(floor(percentile * N), N - 1), or None if empty
    """
    errors = np.sort(np.asarray(errors, dtype=np.float64))
    n = len(errors)
    if n == 0:
        return None

    rank = min(int(math.floor(percentile * n)), n - 1)
    return float(errors[rank])


class Calibrator:
    """
    Computes a CalibrationState from a window batch.

    Windows are processed in fixed-size batches in index order, so the
    error vector (and therefore the threshold) is deterministic for a
    deterministic adapter.
    """

    def __init__(
        self,
        adapter: EncoderAdapter,
        scaler: FeatureScaler,
        config: Optional[CalibrationConfig] = None,
        error_config: Optional[ErrorConfig] = None
    ):
        self.adapter = adapter
        self.scaler = scaler
        self.config = config or CalibrationConfig()
        self.error_config = error_config or ErrorConfig()

    def _batch_errors(self, chunk: np.ndarray) -> np.ndarray:
        scaled = self.scaler.transform(chunk)
        output = self.adapter.infer(scaled)
        return compute_batch_errors(scaled, output, len(chunk), self.error_config)

    def _batches(self, windows: np.ndarray):
        batch_size = self.config.batch_size
        for start in range(0, len(windows), batch_size):
            yield windows[start:start + batch_size]

    def _finalize(self, errors: List[np.ndarray], n_windows: int) -> CalibrationState:
        all_errors = np.concatenate(errors)
        threshold = percentile_threshold(all_errors, self.config.percentile)
        is_reliable = n_windows >= self.config.min_reliable_windows

        if not is_reliable:
            LOG.warning(f"Only {n_windows} windows available "
                        f"(< {self.config.min_reliable_windows}); threshold is unreliable")

        LOG.info(f"✓ Calibrated on {n_windows} windows: threshold={threshold:.6f}")

        return CalibrationState(
            threshold=threshold,
            window_count=n_windows,
            is_reliable=is_reliable,
        )

    def calibrate(self, windows: np.ndarray) -> CalibrationState:
        """
        Calibrate the anomaly threshold.

        Args:
            windows: (N, W, F) unscaled window batch

        Returns:
            CalibrationState; (None, 0, False) when N == 0
        """
        windows = np.asarray(windows, dtype=np.float64)
        n_windows = len(windows)

        if n_windows == 0:
            LOG.warning("No windows to calibrate on")
            return CalibrationState(threshold=None, window_count=0, is_reliable=False)

        errors = [self._batch_errors(chunk) for chunk in self._batches(windows)]
        return self._finalize(errors, n_windows)

    async def calibrate_async(self, windows: np.ndarray) -> CalibrationState:
        """
        Same as calibrate(), yielding to the event loop every few batches.

        If the coroutine is cancelled or a batch fails, the collected errors
        are dropped and nothing is returned.
        """
        windows = np.asarray(windows, dtype=np.float64)
        n_windows = len(windows)

        if n_windows == 0:
            LOG.warning("No windows to calibrate on")
            return CalibrationState(threshold=None, window_count=0, is_reliable=False)

        errors: List[np.ndarray] = []
        for i, chunk in enumerate(self._batches(windows), start=1):
            errors.append(self._batch_errors(chunk))
            if i % self.config.yield_every_batches == 0:
                await asyncio.sleep(0)

        return self._finalize(errors, n_windows)
