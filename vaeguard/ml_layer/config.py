"""
ML Layer Configuration

Defines calibration thresholds, error-reduction constants, artifact locations
and encoder runtime settings.
"""

from dataclasses import dataclass, field
import hashlib
import json
import os

from vaeguard.feature_engine.config import FeatureEngineConfig


@dataclass
class CalibrationConfig:
    """Configuration for threshold calibration"""

    # Windows per encoder call (bounds peak memory)
    batch_size: int = 32

    # Threshold rank: sorted_errors[floor(percentile * N)]
    percentile: float = 0.95

    # Below this many windows the threshold is flagged unreliable
    min_reliable_windows: int = 200

    # Async calibration yields to the event loop every N batches
    yield_every_batches: int = 8


@dataclass
class ErrorConfig:
    """Configuration for per-sample error reduction"""

    # log-variance clip before exp() (KL format)
    logvar_min: float = -10.0
    logvar_max: float = 50.0


@dataclass
class ArtifactConfig:
    """Encoder artifact locations"""

    artifact_dir: str = "vae"
    model_file: str = "encoder.pt"
    scaler_file: str = "scaler_params.json"
    config_file: str = "vae_config.json"

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'artifact_dir': self.artifact_dir,
            'model_file': self.model_file,
            'scaler_file': self.scaler_file,
            'config_file': self.config_file,
        }


@dataclass
class RuntimeConfig:
    """Encoder runtime (numeric backend) settings"""

    # Pinned for the whole session
    device: str = "cpu"
    num_threads: int = 1
    deterministic: bool = True


@dataclass
class AnomalyConfig:
    """
    Master configuration for the anomaly ML Layer.

    All thresholds, parameters, and operational settings.
    """

    config_version: str = "1.0.0"

    # Sub-configurations
    features: FeatureEngineConfig = field(default_factory=FeatureEngineConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    errors: ErrorConfig = field(default_factory=ErrorConfig)
    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary"""
        return {
            'config_version': self.config_version,
            'features': self.features.to_dict(),
            'calibration': {
                'batch_size': self.calibration.batch_size,
                'percentile': self.calibration.percentile,
                'min_reliable_windows': self.calibration.min_reliable_windows,
                'yield_every_batches': self.calibration.yield_every_batches,
            },
            'errors': {
                'logvar_min': self.errors.logvar_min,
                'logvar_max': self.errors.logvar_max,
            },
            'artifacts': self.artifacts.to_dict(),
            'runtime': {
                'device': self.runtime.device,
                'num_threads': self.runtime.num_threads,
                'deterministic': self.runtime.deterministic,
            },
        }

    def get_config_hash(self) -> str:
        """
        Generate deterministic hash of configuration.
        Used for versioning and reproducibility.
        """
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'AnomalyConfig':
        """Create config from dictionary"""
        features = config_dict.get('features', {})
        features = {k: v for k, v in features.items() if k != 'config_hash'}
        return cls(
            config_version=config_dict.get('config_version', '1.0.0'),
            features=FeatureEngineConfig.from_dict(features),
            calibration=CalibrationConfig(**config_dict.get('calibration', {})),
            errors=ErrorConfig(**config_dict.get('errors', {})),
            artifacts=ArtifactConfig(**config_dict.get('artifacts', {})),
            runtime=RuntimeConfig(**config_dict.get('runtime', {})),
        )

    @classmethod
    def from_env(cls) -> 'AnomalyConfig':
        """
        Default config with environment overrides.

        VAEGUARD_ARTIFACT_DIR   encoder artifact directory
        VAEGUARD_NUM_THREADS    encoder CPU threads
        VAEGUARD_BATCH_SIZE     calibration batch size
        """
        config = cls()
        if os.environ.get('VAEGUARD_ARTIFACT_DIR'):
            config.artifacts.artifact_dir = os.environ['VAEGUARD_ARTIFACT_DIR']
        if os.environ.get('VAEGUARD_NUM_THREADS'):
            config.runtime.num_threads = int(os.environ['VAEGUARD_NUM_THREADS'])
        if os.environ.get('VAEGUARD_BATCH_SIZE'):
            config.calibration.batch_size = int(os.environ['VAEGUARD_BATCH_SIZE'])
        return config
