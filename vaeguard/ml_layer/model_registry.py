"""
Model Registry

Locates and loads the encoder artifact bundle:

    <artifact_dir>/
        encoder.pt            TorchScript encoder
        scaler_params.json    {"min": float[7], "scale": float[7]}
        vae_config.json       free-form, informational (e.g. latent_dim)
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
import logging

from vaeguard.feature_engine.normalization import FeatureScaler
from vaeguard.ml_layer.config import ArtifactConfig, RuntimeConfig
from vaeguard.ml_layer.schemas import EncoderAdapter
from vaeguard.ml_layer.exceptions import ModelLoadError

LOG = logging.getLogger(__name__)


@dataclass
class EncoderArtifacts:
    """Everything needed to run the encoder for one session"""
    adapter: EncoderAdapter
    scaler: FeatureScaler
    vae_config: Dict = field(default_factory=dict)
    artifact_dir: Optional[str] = None


class ModelRegistry:
    """
    Registry for the encoder artifact bundle.

    Loading is all-or-nothing: a missing or malformed file raises
    ModelLoadError / ScalerParamsError and nothing is returned.
    """

    def __init__(
        self,
        config: Optional[ArtifactConfig] = None,
        runtime: Optional[RuntimeConfig] = None
    ):
        self.config = config or ArtifactConfig()
        self.runtime = runtime or RuntimeConfig()
        self.artifact_dir = Path(self.config.artifact_dir)

    @property
    def model_path(self) -> Path:
        return self.artifact_dir / self.config.model_file

    @property
    def scaler_path(self) -> Path:
        return self.artifact_dir / self.config.scaler_file

    @property
    def config_path(self) -> Path:
        return self.artifact_dir / self.config.config_file

    def _read_json(self, path: Path):
        if not path.exists():
            raise ModelLoadError(f"{path.name} not found in {self.artifact_dir}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ModelLoadError(f"{path.name} is not valid JSON: {e}") from e
        except OSError as e:
            raise ModelLoadError(f"{path.name} could not be read: {e}") from e

    def load_scaler(self) -> FeatureScaler:
        """Load fixed MinMax parameters"""
        return FeatureScaler.from_dict(self._read_json(self.scaler_path))

    def load_vae_config(self) -> Dict:
        """Load the informational encoder config"""
        vae_config = self._read_json(self.config_path)
        if not isinstance(vae_config, dict):
            raise ModelLoadError(f"{self.config_path.name} must contain a JSON object")
        return vae_config

    def load_encoder(self) -> EncoderAdapter:
        """Load the TorchScript encoder on the pinned backend"""
        from vaeguard.ml_layer.encoder import TorchEncoderAdapter
        return TorchEncoderAdapter.load(self.model_path, self.runtime)

    def load(self) -> EncoderArtifacts:
        """
        Load the full artifact bundle.

        Raises:
            ModelLoadError: missing / unreadable file or encoder
            ScalerParamsError: malformed scaler parameters
        """
        # Companion files first: they are cheap and fail fast
        scaler = self.load_scaler()
        vae_config = self.load_vae_config()
        adapter = self.load_encoder()

        LOG.info(f"✓ Encoder artifacts loaded from {self.artifact_dir} (config: {vae_config})")

        return EncoderArtifacts(
            adapter=adapter,
            scaler=scaler,
            vae_config=vae_config,
            artifact_dir=str(self.artifact_dir),
        )

    def describe(self) -> Dict:
        """Artifact paths and whether each exists"""
        return {
            'artifact_dir': str(self.artifact_dir),
            'model': {'path': str(self.model_path), 'exists': self.model_path.exists()},
            'scaler': {'path': str(self.scaler_path), 'exists': self.scaler_path.exists()},
            'config': {'path': str(self.config_path), 'exists': self.config_path.exists()},
        }
