"""
Window Scoring

Scores a single window against a calibrated threshold and hands the
result to the rule-based scorer.
"""

from typing import Optional, Tuple
import logging

import numpy as np

from vaeguard.feature_engine.normalization import FeatureScaler
from vaeguard.ml_layer.config import ErrorConfig
from vaeguard.ml_layer.exceptions import CalibrationRequiredError
from vaeguard.ml_layer.reconstruction import compute_batch_errors
from vaeguard.ml_layer.schemas import (
    AnomalyReport,
    CalibrationState,
    EncoderAdapter,
    ScoreResult,
)

LOG = logging.getLogger(__name__)

ANOMALY_WARNING = (
    "Current market state is outside normal historical patterns for this ticker. "
    "Confidence reduced."
)


def error_confidence(recon_error: float, threshold: float) -> float:
    """
    clip(1 - recon_error / threshold, 0, 1).

    A zero threshold means every calibration window reconstructed perfectly:
    only a perfect window keeps full confidence.
    """
    if threshold <= 0:
        return 1.0 if recon_error <= 0 else 0.0
    return float(np.clip(1.0 - recon_error / threshold, 0.0, 1.0))


class Scorer:
    """
    Scores windows against one CalibrationState.

    Construction fails without a calibrated threshold, so a Scorer instance
    can always score.
    """

    def __init__(
        self,
        adapter: EncoderAdapter,
        scaler: FeatureScaler,
        state: Optional[CalibrationState],
        error_config: Optional[ErrorConfig] = None
    ):
        if state is None or state.threshold is None:
            raise CalibrationRequiredError(
                "Scoring requires a calibrated threshold; run calibrate() first"
            )

        self.adapter = adapter
        self.scaler = scaler
        self.state = state
        self.error_config = error_config or ErrorConfig()

    @property
    def threshold(self) -> float:
        return self.state.threshold

    def score(self, window: np.ndarray) -> ScoreResult:
        """
        Score one (W, F) window.

        Returns:
            ScoreResult with recon_error, confidence and the anomaly flag
        """
        window = np.asarray(window, dtype=np.float64)
        if window.ndim != 2:
            raise ValueError(f"Expected a single (W, F) window, got shape {window.shape}")

        scaled = self.scaler.transform(window[np.newaxis, ...])
        output = self.adapter.infer(scaled)
        recon_error = float(compute_batch_errors(scaled, output, 1, self.error_config)[0])

        confidence = error_confidence(recon_error, self.threshold)
        is_anomaly = recon_error > self.threshold

        LOG.debug(f"Window scored: error={recon_error:.6f} threshold={self.threshold:.6f} "
                  f"confidence={confidence:.3f} anomaly={is_anomaly}")

        return ScoreResult(
            recon_error=recon_error,
            confidence=confidence,
            is_anomaly=is_anomaly,
            threshold=self.threshold,
        )


def apply_anomaly_confidence(
    base_confidence: float,
    report: Optional[AnomalyReport]
) -> Tuple[float, Optional[str]]:
    """
    Fold an anomaly report into an external directional confidence.

    Args:
        base_confidence: Confidence from the rule-based scorer
        report: Latest AnomalyReport, or None if the encoder is unavailable

    Returns:
        (adjusted_confidence, warning_reason or None)
    """
    if report is None:
        return base_confidence, None

    adjusted = base_confidence * report.confidence
    reason = ANOMALY_WARNING if report.is_anomaly else None

    return adjusted, reason
