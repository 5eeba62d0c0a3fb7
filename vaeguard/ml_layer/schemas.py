"""
ML Layer Output Schemas

Defines calibration/score results and the tagged union of encoder outputs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Union
import numpy as np


class OutputFormat(str, Enum):
    """Encoder output format (auto-detected at the adapter boundary)"""
    KL_PAIR = "KL_PAIR"            # [z_mean, z_log_var] -> KL divergence
    SAME_SHAPE = "SAME_SHAPE"      # reconstruction of the input -> MSE
    LATENT = "LATENT"              # bare latent vector -> L2 norm


@dataclass(frozen=True, eq=False)
class KLPair:
    """Latent mean / log-variance pair, each (batch, latent_dim)"""
    z_mean: np.ndarray
    z_log_var: np.ndarray
    format = OutputFormat.KL_PAIR


@dataclass(frozen=True, eq=False)
class SameShapeTensor:
    """Full encode-decode reconstruction, (batch, W, F)"""
    reconstruction: np.ndarray
    format = OutputFormat.SAME_SHAPE


@dataclass(frozen=True, eq=False)
class LatentTensor:
    """Encoder-only latent vector, (batch, latent_dim)"""
    latent: np.ndarray
    format = OutputFormat.LATENT


ModelOutput = Union[KLPair, SameShapeTensor, LatentTensor]
RawModelOutput = Union[np.ndarray, Sequence[np.ndarray]]


class EncoderAdapter(Protocol):
    """Anything that maps a scaled (B, W, F) window batch to encoder outputs"""

    def infer(self, batch: np.ndarray) -> Union[np.ndarray, List[np.ndarray]]:
        ...


def classify_output(input_shape: Sequence[int], raw: RawModelOutput) -> ModelOutput:
    """
    Tag a raw encoder output.

    Precedence (must not change):
        1. Two or more tensors      -> KLPair (first two)
        2. Same shape as the input  -> SameShapeTensor
        3. Anything else            -> LatentTensor

    Args:
        input_shape: Shape of the scaled input batch, (batch, W, F)
        raw: Single array or ordered list of arrays from the encoder
    """
    if isinstance(raw, (KLPair, SameShapeTensor, LatentTensor)):
        return raw

    if isinstance(raw, (list, tuple)):
        if len(raw) == 0:
            raise ValueError("Encoder returned no output tensors")
        if len(raw) >= 2:
            return KLPair(
                z_mean=np.asarray(raw[0], dtype=np.float64),
                z_log_var=np.asarray(raw[1], dtype=np.float64),
            )
        raw = raw[0]

    out = np.asarray(raw, dtype=np.float64)
    input_shape = tuple(input_shape)

    # Batch dimension is not compared; window and feature dims must match
    if out.ndim == len(input_shape) and out.shape[1:] == input_shape[1:]:
        return SameShapeTensor(reconstruction=out)

    return LatentTensor(latent=out)


@dataclass(frozen=True)
class CalibrationState:
    """
    Result of one calibration run.

    threshold is None iff window_count == 0.
    is_reliable iff window_count >= the reliability floor (200 by default).
    """

    threshold: Optional[float]
    window_count: int
    is_reliable: bool

    @property
    def is_calibrated(self) -> bool:
        return self.threshold is not None

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'threshold': float(self.threshold) if self.threshold is not None else None,
            'window_count': int(self.window_count),
            'is_reliable': bool(self.is_reliable),
        }


@dataclass(frozen=True)
class ScoreResult:
    """Anomaly verdict for a single window"""

    recon_error: float
    confidence: float   # clip(1 - recon_error / threshold, 0, 1)
    is_anomaly: bool    # recon_error > threshold
    threshold: float

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'recon_error': float(self.recon_error),
            'confidence': float(self.confidence),
            'is_anomaly': bool(self.is_anomaly),
            'threshold': float(self.threshold),
        }


@dataclass(frozen=True)
class AnomalyReport:
    """
    Score of the most recent window plus the calibration it was judged by.

    Handed to the presentation / rule-based scoring collaborators.
    """

    recon_error: float
    confidence: float
    is_anomaly: bool
    threshold: float
    window_count: int
    is_reliable: bool

    @classmethod
    def from_results(cls, score: ScoreResult, state: CalibrationState) -> 'AnomalyReport':
        return cls(
            recon_error=score.recon_error,
            confidence=score.confidence,
            is_anomaly=score.is_anomaly,
            threshold=score.threshold,
            window_count=state.window_count,
            is_reliable=state.is_reliable,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'recon_error': float(self.recon_error),
            'confidence': float(self.confidence),
            'is_anomaly': bool(self.is_anomaly),
            'threshold': float(self.threshold),
            'window_count': int(self.window_count),
            'is_reliable': bool(self.is_reliable),
        }
