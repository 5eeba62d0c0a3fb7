"""
Shared fixtures for the VAEGUARD test suite.

Encoder stubs implement the EncoderAdapter protocol without torch.
"""

import numpy as np
import pandas as pd
import pytest

from vaeguard.feature_engine.normalization import FeatureScaler


# ============================================================================
# BAR GENERATION
# ============================================================================

def make_bars(n_bars: int, seed: int = 42, start: float = 100.0) -> pd.DataFrame:
    """Random-walk daily OHLCV bars, date ascending"""
    rng = np.random.RandomState(seed)
    returns = rng.normal(0.0005, 0.01, n_bars)
    close = start * np.cumprod(1 + returns)
    high = close * (1 + rng.uniform(0, 0.005, n_bars))
    low = close * (1 - rng.uniform(0, 0.005, n_bars))
    open_ = low + rng.uniform(0, 1, n_bars) * (high - low)
    volume = rng.uniform(1e5, 1e6, n_bars)

    return pd.DataFrame({
        'date': pd.date_range('2024-01-01', periods=n_bars, freq='D'),
        'open': open_,
        'high': high,
        'low': low,
        'close': close,
        'volume': volume,
    })


@pytest.fixture
def bar_factory():
    """Build random-walk bars of any length"""
    return make_bars


@pytest.fixture
def sample_bars():
    """300 bars: enough for every indicator and > 200 windows"""
    return make_bars(300)


# ============================================================================
# ENCODER STUBS
# ============================================================================

class RecordingAdapter:
    """Base stub: records the size of every batch it sees"""

    def __init__(self):
        self.calls = []

    def infer(self, batch):
        self.calls.append(len(batch))
        return self._output(np.asarray(batch))

    def _output(self, batch):
        raise NotImplementedError


class KLZeroAdapter(RecordingAdapter):
    """z_mean = 0, z_log_var = 0 → KL exactly 0"""

    def _output(self, batch):
        zeros = np.zeros((len(batch), 4))
        return [zeros, zeros.copy()]


class ReconstructionAdapter(RecordingAdapter):
    """Same-shape reconstruction at 90% of the input"""

    def _output(self, batch):
        return batch * 0.9


class LatentMeanAdapter(RecordingAdapter):
    """Latent = per-feature mean over the window, (B, F)"""

    def _output(self, batch):
        return batch.mean(axis=1)


@pytest.fixture
def kl_zero_adapter():
    return KLZeroAdapter()


@pytest.fixture
def reconstruction_adapter():
    return ReconstructionAdapter()


@pytest.fixture
def latent_adapter():
    return LatentMeanAdapter()


@pytest.fixture
def identity_scaler():
    """min = 0, scale = 1: values pass through (clipped to [0, 1])"""
    return FeatureScaler([0.0] * 7, [1.0] * 7)


@pytest.fixture
def feature_scaler():
    """Scaler roughly matching the feature ranges of random-walk bars"""
    return FeatureScaler(
        data_min=[0.0, -5.0, -2.0, -0.5, 0.0, -20.0, 0.7],
        scale=[100.0, 10.0, 4.0, 2.0, 5.0, 40.0, 0.6],
    )
