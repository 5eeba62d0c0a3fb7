"""
Tests for output classification and per-sample reconstruction errors.

Run: pytest tests/test_reconstruction.py -v
"""

import numpy as np
import pytest

from vaeguard.ml_layer.config import ErrorConfig
from vaeguard.ml_layer.reconstruction import (
    compute_batch_errors,
    kl_divergence_errors,
    l2_norm_errors,
    mse_errors,
)
from vaeguard.ml_layer.schemas import (
    KLPair,
    LatentTensor,
    OutputFormat,
    SameShapeTensor,
    classify_output,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def scaled_batch():
    rng = np.random.RandomState(7)
    return rng.uniform(0, 1, size=(8, 20, 7))


# ============================================================================
# CLASSIFICATION
# ============================================================================

class TestClassifyOutput:
    """Test encoder output tagging"""

    def test_pair_is_kl(self, scaled_batch):
        out = classify_output(scaled_batch.shape, [np.zeros((8, 4)), np.zeros((8, 4))])
        assert isinstance(out, KLPair)
        assert out.format == OutputFormat.KL_PAIR

    def test_pair_wins_over_same_shape(self, scaled_batch):
        """Two tensors → KL even when both match the input shape"""
        out = classify_output(scaled_batch.shape, [scaled_batch, scaled_batch])
        assert isinstance(out, KLPair)

    def test_same_shape(self, scaled_batch):
        out = classify_output(scaled_batch.shape, scaled_batch * 0.5)
        assert isinstance(out, SameShapeTensor)

    def test_same_shape_ignores_batch_dim(self, scaled_batch):
        out = classify_output(scaled_batch.shape, np.zeros((3, 20, 7)))
        assert isinstance(out, SameShapeTensor)

    def test_single_item_list_unwrapped(self, scaled_batch):
        out = classify_output(scaled_batch.shape, [scaled_batch])
        assert isinstance(out, SameShapeTensor)

    def test_latent(self, scaled_batch):
        out = classify_output(scaled_batch.shape, np.zeros((8, 16)))
        assert isinstance(out, LatentTensor)
        assert out.format == OutputFormat.LATENT

    def test_flattened_reconstruction_is_latent(self, scaled_batch):
        """A (B, W*F) output does not match (B, W, F)"""
        out = classify_output(scaled_batch.shape, np.zeros((8, 140)))
        assert isinstance(out, LatentTensor)

    def test_empty_list(self, scaled_batch):
        with pytest.raises(ValueError):
            classify_output(scaled_batch.shape, [])


# ============================================================================
# ERROR FORMULAS
# ============================================================================

class TestErrorFormulas:
    """Test the three reductions"""

    def test_kl_zero_for_standard_normal(self):
        errors = kl_divergence_errors(np.zeros((4, 3)), np.zeros((4, 3)), 4)
        np.testing.assert_array_equal(errors, np.zeros(4))

    def test_kl_value(self):
        """μ = 1, logvar = 0 → 0.5 per dim"""
        errors = kl_divergence_errors(np.ones((2, 3)), np.zeros((2, 3)), 2)
        np.testing.assert_allclose(errors, [0.5, 0.5])

    def test_kl_logvar_clipped(self):
        """Huge log-variance is clipped before exp() and stays finite"""
        errors = kl_divergence_errors(np.zeros((1, 2)), np.full((1, 2), 1e4), 1)
        assert np.isfinite(errors).all()
        expected = -0.5 * (1 + 50.0 - np.exp(50.0))
        assert errors[0] == pytest.approx(expected)

    def test_kl_never_negative(self):
        rng = np.random.RandomState(1)
        errors = kl_divergence_errors(rng.normal(size=(50, 8)), rng.normal(size=(50, 8)), 50)
        assert (errors >= 0).all()

    def test_mse_value(self):
        x = np.ones((2, 20, 7))
        errors = mse_errors(x, x * 0.5, 2)
        np.testing.assert_allclose(errors, [0.25, 0.25])

    def test_l2_value(self):
        errors = l2_norm_errors(np.array([[3.0, 4.0], [0.0, 0.0]]), 2)
        np.testing.assert_allclose(errors, [5.0, 0.0])

    def test_nan_treated_as_zero(self):
        errors = l2_norm_errors(np.array([[3.0, np.nan, 4.0]]), 1)
        assert errors[0] == pytest.approx(5.0)


# ============================================================================
# BATCH ERRORS
# ============================================================================

class TestComputeBatchErrors:
    """Test dispatch over raw encoder outputs"""

    def test_three_formats(self, scaled_batch, kl_zero_adapter, reconstruction_adapter, latent_adapter):
        """Every format yields a non-negative array of length batch_size"""
        for adapter in (kl_zero_adapter, reconstruction_adapter, latent_adapter):
            errors = compute_batch_errors(scaled_batch, adapter.infer(scaled_batch), len(scaled_batch))
            assert errors.shape == (8,)
            assert (errors >= 0).all()

    def test_same_shape_uses_mse(self, scaled_batch):
        errors = compute_batch_errors(scaled_batch, scaled_batch * 0.9, 8)
        expected = ((scaled_batch * 0.1) ** 2).reshape(8, -1).mean(axis=1)
        np.testing.assert_allclose(errors, expected)

    def test_tagged_output_accepted(self, scaled_batch):
        errors = compute_batch_errors(scaled_batch, LatentTensor(np.ones((8, 4))), 8)
        np.testing.assert_allclose(errors, np.full(8, 2.0))

    def test_custom_logvar_clip(self, scaled_batch):
        config = ErrorConfig(logvar_min=-1.0, logvar_max=1.0)
        errors = compute_batch_errors(
            scaled_batch, [np.zeros((8, 2)), np.full((8, 2), 10.0)], 8, config
        )
        np.testing.assert_allclose(errors, np.full(8, -0.5 * (1 + 1.0 - np.exp(1.0))))

    def test_short_output_rejected(self, scaled_batch):
        with pytest.raises(ValueError):
            compute_batch_errors(scaled_batch, np.zeros((3, 4)), 8)

    def test_unbatched_latent_single_sample(self, scaled_batch):
        """A rank-1 latent for one window is reduced over all its dims"""
        np.testing.assert_allclose(l2_norm_errors(np.array([3.0, 4.0]), 1), [5.0])

        errors = compute_batch_errors(scaled_batch[:1], np.array([3.0, 4.0]), 1)
        np.testing.assert_allclose(errors, [5.0])

    def test_unbatched_kl_single_sample(self):
        errors = kl_divergence_errors(np.ones(3), np.zeros(3), 1)
        np.testing.assert_allclose(errors, [0.5])

    def test_unbatched_output_rejected_for_batch(self, scaled_batch):
        with pytest.raises(ValueError):
            compute_batch_errors(scaled_batch, np.zeros(8), 8)
