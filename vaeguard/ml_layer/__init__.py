"""
ML Layer - Per-ticker Market State Anomaly Detection

Runs a pretrained encoder over sliding windows of technical features,
calibrates a reconstruction-error threshold per ticker and scores the most
recent window against it.

CRITICAL PRINCIPLE:
    The anomaly score never predicts direction. It only scales the
    confidence of the rule-based scorer and flags unusual market states.

Flow:
    Bars → Feature Engine → Windows → Calibration → Score → Rule-based scorer
"""

from vaeguard.ml_layer.config import AnomalyConfig
from vaeguard.ml_layer.exceptions import (
    AnomalyEngineError,
    CalibrationRequiredError,
    ConcurrentUseError,
    ModelLoadError,
    NotReadyError,
    PreconditionViolation,
)
from vaeguard.ml_layer.schemas import (
    AnomalyReport,
    CalibrationState,
    EncoderAdapter,
    KLPair,
    LatentTensor,
    SameShapeTensor,
    ScoreResult,
)
from vaeguard.ml_layer.calibration import Calibrator
from vaeguard.ml_layer.scoring import Scorer, apply_anomaly_confidence
from vaeguard.ml_layer.inference import AnomalyInferenceEngine
from vaeguard.ml_layer.monitoring import AnomalyMonitor
from vaeguard.ml_layer.model_registry import ModelRegistry

__version__ = "1.0.0"

__all__ = [
    'AnomalyConfig',
    'AnomalyEngineError',
    'AnomalyInferenceEngine',
    'AnomalyMonitor',
    'AnomalyReport',
    'CalibrationRequiredError',
    'CalibrationState',
    'Calibrator',
    'ConcurrentUseError',
    'EncoderAdapter',
    'KLPair',
    'LatentTensor',
    'ModelLoadError',
    'ModelRegistry',
    'NotReadyError',
    'PreconditionViolation',
    'SameShapeTensor',
    'ScoreResult',
    'Scorer',
    'apply_anomaly_confidence',
]
