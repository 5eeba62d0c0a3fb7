"""
ML Layer Exceptions

Load failures (ModelLoadError, ScalerParamsError) are caught by the inference
engine and turned into a persistent not-ready state. Everything else is raised
to the immediate caller.
"""

from vaeguard.feature_engine.normalization import ScalerParamsError


class AnomalyEngineError(Exception):
    """Base class for anomaly engine errors"""


class NotReadyError(AnomalyEngineError):
    """Encoder was never loaded or failed to load"""


class ModelLoadError(AnomalyEngineError):
    """Encoder artifact missing or unloadable"""


class PreconditionViolation(AnomalyEngineError):
    """Operation called out of order"""


class CalibrationRequiredError(PreconditionViolation):
    """Scoring attempted without a calibrated threshold"""


class ConcurrentUseError(AnomalyEngineError):
    """Overlapping requests against a single-owner encoder adapter"""


__all__ = [
    'AnomalyEngineError',
    'NotReadyError',
    'ModelLoadError',
    'PreconditionViolation',
    'CalibrationRequiredError',
    'ConcurrentUseError',
    'ScalerParamsError',
]
