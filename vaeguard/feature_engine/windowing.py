"""
Sliding Window Module

Slices a filled feature matrix into fixed-length overlapping windows.
"""

from typing import Optional, Union
import logging

import numpy as np
import pandas as pd

from vaeguard.feature_engine.schemas import FEATURE_COLUMNS

LOG = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 20


def _matrix_values(matrix: Union[pd.DataFrame, np.ndarray]) -> np.ndarray:
    if isinstance(matrix, pd.DataFrame):
        return matrix[FEATURE_COLUMNS].to_numpy(dtype=np.float64)
    values = np.asarray(matrix, dtype=np.float64)
    if values.ndim != 2:
        raise ValueError(f"Feature matrix must be 2-D, got shape {values.shape}")
    return values


def build_windows(
    matrix: Union[pd.DataFrame, np.ndarray],
    window_size: int = DEFAULT_WINDOW_SIZE
) -> np.ndarray:
    """
    Build all sliding windows from a filled feature matrix.

    Window k covers rows [k .. k + window_size - 1], i.e. the window ending at
    row i = k + window_size - 1. Consecutive windows overlap by
    window_size - 1 rows; the last window is the most recent one.

    Args:
        matrix: Filled (N, F) feature matrix
        window_size: Rows per window

    Returns:
        Array of shape (N - window_size + 1, window_size, F);
        shape (0, window_size, F) when N < window_size
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")

    values = _matrix_values(matrix)
    n_rows, n_features = values.shape

    if n_rows < window_size:
        LOG.debug(f"Matrix has {n_rows} rows < window size {window_size}; no windows")
        return np.empty((0, window_size, n_features), dtype=np.float64)

    views = np.lib.stride_tricks.sliding_window_view(values, (window_size, n_features))
    # (N-W+1, 1, W, F) read-only view -> owned contiguous copy
    return views[:, 0].copy()


def latest_window(
    matrix: Union[pd.DataFrame, np.ndarray],
    window_size: int = DEFAULT_WINDOW_SIZE
) -> Optional[np.ndarray]:
    """Most recent (window_size, F) window, or None if the matrix is too short"""
    values = _matrix_values(matrix)
    if len(values) < window_size:
        return None
    return values[-window_size:].copy()
