"""
Reconstruction Error Module

Reduces an encoder output batch to one non-negative scalar per sample.

Supported output formats (tagged at the adapter boundary):
    KLPair           -> per-sample mean KL divergence from N(0, I)
    SameShapeTensor  -> per-sample MSE against the scaled input
    LatentTensor     -> per-sample L2 norm (distance from origin)

NaN cells are treated as 0, matching the notebook export the encoder was
validated against.
"""

from typing import Optional
import logging

import numpy as np

from vaeguard.ml_layer.config import ErrorConfig
from vaeguard.ml_layer.schemas import (
    KLPair,
    LatentTensor,
    RawModelOutput,
    SameShapeTensor,
    ModelOutput,
    classify_output,
)

LOG = logging.getLogger(__name__)


def _per_sample(values: np.ndarray, batch_size: int) -> np.ndarray:
    """Flatten to (batch_size, -1) with NaN -> 0"""
    values = np.asarray(values, dtype=np.float64)
    if values.ndim < 2:
        # Unbatched output is only unambiguous for a single sample
        if batch_size != 1:
            raise ValueError(
                f"Encoder output of shape {values.shape} has no batch axis for a batch of {batch_size}"
            )
        return np.where(np.isnan(values), 0.0, values).reshape(1, -1)
    flat = values.reshape(len(values), -1)[:batch_size]
    return np.where(np.isnan(flat), 0.0, flat)


def kl_divergence_errors(
    z_mean: np.ndarray,
    z_log_var: np.ndarray,
    batch_size: int,
    logvar_min: float = -10.0,
    logvar_max: float = 50.0
) -> np.ndarray:
    """
    Mean KL divergence of N(μ, σ²) from N(0, 1) over latent dims.

    kl_d = -0.5 * (1 + logvar_d - μ_d² - exp(logvar_d))

    logvar is clipped to [logvar_min, logvar_max] before exp() to avoid
    overflow.
    """
    mu = _per_sample(z_mean, batch_size)
    logvar = np.clip(_per_sample(z_log_var, batch_size), logvar_min, logvar_max)

    kl = -0.5 * (1.0 + logvar - mu * mu - np.exp(logvar))
    return np.maximum(0.0, kl.mean(axis=1))


def mse_errors(inputs: np.ndarray, reconstruction: np.ndarray, batch_size: int) -> np.ndarray:
    """Mean squared difference over all W*F elements per sample"""
    x = _per_sample(inputs, batch_size)
    x_hat = _per_sample(reconstruction, batch_size)
    diff = x - x_hat
    return np.maximum(0.0, (diff * diff).mean(axis=1))


def l2_norm_errors(latent: np.ndarray, batch_size: int) -> np.ndarray:
    """Euclidean norm of each latent vector"""
    z = _per_sample(latent, batch_size)
    return np.maximum(0.0, np.sqrt((z * z).sum(axis=1)))


def compute_batch_errors(
    input_batch: np.ndarray,
    output: RawModelOutput,
    batch_size: int,
    config: Optional[ErrorConfig] = None
) -> np.ndarray:
    """
    Per-sample errors for one encoder call.

    Args:
        input_batch: Scaled input, (batch, W, F)
        output: Tagged ModelOutput or raw encoder output
        batch_size: Number of samples to reduce
        config: Error constants (defaults if None)

    Returns:
        float64 array of length batch_size, all >= 0
    """
    config = config or ErrorConfig()
    input_batch = np.asarray(input_batch, dtype=np.float64)
    tagged: ModelOutput = classify_output(input_batch.shape, output)

    if isinstance(tagged, KLPair):
        errors = kl_divergence_errors(
            tagged.z_mean, tagged.z_log_var, batch_size,
            config.logvar_min, config.logvar_max
        )
    elif isinstance(tagged, SameShapeTensor):
        errors = mse_errors(input_batch, tagged.reconstruction, batch_size)
    elif isinstance(tagged, LatentTensor):
        errors = l2_norm_errors(tagged.latent, batch_size)
    else:
        raise TypeError(f"Unsupported encoder output: {type(tagged).__name__}")

    if len(errors) != batch_size:
        raise ValueError(
            f"Encoder returned {len(errors)} samples for a batch of {batch_size}"
        )

    LOG.debug(f"{tagged.format.value}: reduced {batch_size} samples")

    return errors
