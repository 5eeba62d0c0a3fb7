"""
Anomaly Inference Engine

Orchestrates the per-ticker anomaly flow:
    Bars → Feature Matrix → Windows → Calibration → Score (latest window)

The engine owns one encoder adapter. Loading is attempted once; a failure
leaves the engine permanently not-ready and every operation raises
NotReadyError instead of retrying.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
import logging

import numpy as np

from vaeguard.feature_engine.normalization import FeatureScaler, ScalerParamsError
from vaeguard.feature_engine.pipeline import FeatureMatrixBuilder
from vaeguard.feature_engine.schemas import BarInput
from vaeguard.feature_engine.windowing import build_windows
from vaeguard.ml_layer.calibration import Calibrator
from vaeguard.ml_layer.config import AnomalyConfig
from vaeguard.ml_layer.exceptions import (
    ConcurrentUseError,
    ModelLoadError,
    NotReadyError,
)
from vaeguard.ml_layer.model_registry import ModelRegistry
from vaeguard.ml_layer.monitoring import AnomalyMonitor
from vaeguard.ml_layer.schemas import (
    AnomalyReport,
    CalibrationState,
    EncoderAdapter,
    ScoreResult,
)
from vaeguard.ml_layer.scoring import Scorer

LOG = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class AnomalyInferenceEngine:
    """
    Anomaly inference engine.

    Orchestrates:
        1. Feature matrix + windows from raw bars
        2. Threshold calibration over all windows
        3. Scoring of the most recent window

    The CalibrationState is returned to the caller and passed back in for
    scoring; the engine keeps no per-ticker state of its own.
    """

    def __init__(
        self,
        config: Optional[AnomalyConfig] = None,
        monitor: Optional[AnomalyMonitor] = None
    ):
        """
        Initialize engine (does not load the encoder).

        Args:
            config: Anomaly configuration (uses defaults if None)
            monitor: Optional monitor receiving every calibration and score
        """
        self.config = config or AnomalyConfig()
        self.monitor = monitor

        self.builder = FeatureMatrixBuilder(self.config.features)
        self.registry = ModelRegistry(self.config.artifacts, self.config.runtime)

        self.adapter: Optional[EncoderAdapter] = None
        self.scaler: Optional[FeatureScaler] = None
        self.vae_config: Dict = {}

        self._ready = False
        self.load_error: Optional[str] = None
        self._lock = threading.Lock()

        self.config_hash = self.config.get_config_hash()

        LOG.info(f"Anomaly Inference Engine initialized (config hash: {self.config_hash})")

    # ========================================
    # LIFECYCLE
    # ========================================

    def load(
        self,
        adapter: Optional[EncoderAdapter] = None,
        scaler: Optional[FeatureScaler] = None,
        vae_config: Optional[Dict] = None
    ) -> bool:
        """
        Load the encoder session. Never raises.

        Args:
            adapter: Pre-built adapter (skips loading encoder.pt)
            scaler: Pre-built scaler (skips loading scaler_params.json)
            vae_config: Informational encoder config

        Returns:
            True if the engine is ready
        """
        try:
            if adapter is None:
                artifacts = self.registry.load()
                adapter = artifacts.adapter
                scaler = scaler or artifacts.scaler
                vae_config = vae_config if vae_config is not None else artifacts.vae_config
            elif scaler is None:
                scaler = self.registry.load_scaler()
        except (ModelLoadError, ScalerParamsError) as e:
            self._ready = False
            self.load_error = str(e)
            LOG.warning(f"Anomaly detection unavailable: {e}")
            return False

        self.adapter = adapter
        self.scaler = scaler
        self.vae_config = vae_config or {}
        self._ready = True
        self.load_error = None

        LOG.info("✓ Anomaly engine ready")
        return True

    @property
    def ready(self) -> bool:
        return self._ready

    def _require_ready(self):
        if not self._ready:
            reason = self.load_error or "encoder not loaded"
            raise NotReadyError(f"Anomaly engine not ready: {reason}")

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Single-owner access to the adapter"""
        if not self._lock.acquire(blocking=False):
            raise ConcurrentUseError("Anomaly engine is busy with another request")
        try:
            yield
        finally:
            self._lock.release()

    # ========================================
    # PIPELINE
    # ========================================

    def build_windows(self, bars: BarInput) -> np.ndarray:
        """
        Bars → (N, W, F) window batch.

        Raises:
            ValueError: bar input failed validation
        """
        matrix = self.builder.build(bars)
        return build_windows(matrix, self.config.features.window.window_size)

    def _calibrator(self) -> Calibrator:
        return Calibrator(
            self.adapter,
            self.scaler,
            self.config.calibration,
            self.config.errors,
        )

    def _run_calibration(self, windows: np.ndarray, session_key: str) -> CalibrationState:
        start_time = time.time()
        state = self._calibrator().calibrate(windows)
        self._record_calibration(session_key, state, start_time)
        return state

    def _record_calibration(self, session_key: str, state: CalibrationState, start_time: float):
        if self.monitor is not None:
            elapsed_ms = (time.time() - start_time) * 1000
            self.monitor.record_calibration(session_key, state, elapsed_ms)

    def _run_score(self, window: np.ndarray, state: CalibrationState, session_key: str) -> ScoreResult:
        start_time = time.time()
        scorer = Scorer(self.adapter, self.scaler, state, self.config.errors)
        result = scorer.score(window)

        if self.monitor is not None:
            elapsed_ms = (time.time() - start_time) * 1000
            self.monitor.record_score(session_key, result, elapsed_ms, self.config_hash)

        return result

    def calibrate(self, windows: np.ndarray, session_key: Optional[str] = None) -> CalibrationState:
        """
        Calibrate a threshold from historical windows.

        Raises:
            NotReadyError: encoder not loaded
            ConcurrentUseError: another request holds the adapter
        """
        self._require_ready()
        with self._exclusive():
            return self._run_calibration(windows, session_key or DEFAULT_SESSION)

    async def calibrate_async(
        self,
        windows: np.ndarray,
        session_key: Optional[str] = None
    ) -> CalibrationState:
        """calibrate() that yields to the event loop between batches"""
        self._require_ready()
        with self._exclusive():
            start_time = time.time()
            state = await self._calibrator().calibrate_async(windows)
            self._record_calibration(session_key or DEFAULT_SESSION, state, start_time)
            return state

    def score(
        self,
        window: np.ndarray,
        state: Optional[CalibrationState],
        session_key: Optional[str] = None
    ) -> ScoreResult:
        """
        Score one (W, F) window against a calibration.

        Raises:
            NotReadyError: encoder not loaded
            CalibrationRequiredError: state is None or uncalibrated
            ConcurrentUseError: another request holds the adapter
        """
        self._require_ready()
        with self._exclusive():
            return self._run_score(window, state, session_key or DEFAULT_SESSION)

    def analyze(self, bars: BarInput, session_key: Optional[str] = None) -> Optional[AnomalyReport]:
        """
        Full flow for one ticker: calibrate on every window, score the latest.

        Returns:
            AnomalyReport, or None when the bars yield no windows
        """
        self._require_ready()
        session_key = session_key or DEFAULT_SESSION

        windows = self.build_windows(bars)
        if len(windows) == 0:
            LOG.warning(f"{session_key}: not enough bars for a single window")
            return None

        with self._exclusive():
            state = self._run_calibration(windows, session_key)
            result = self._run_score(windows[-1], state, session_key)

        report = AnomalyReport.from_results(result, state)

        LOG.info(f"{session_key}: error={report.recon_error:.6f} "
                 f"threshold={report.threshold:.6f} anomaly={report.is_anomaly} "
                 f"(windows={report.window_count}, reliable={report.is_reliable})")

        return report

    async def analyze_async(
        self,
        bars: BarInput,
        session_key: Optional[str] = None
    ) -> Optional[AnomalyReport]:
        """analyze() with an event-loop friendly calibration"""
        self._require_ready()
        session_key = session_key or DEFAULT_SESSION

        windows = self.build_windows(bars)
        if len(windows) == 0:
            LOG.warning(f"{session_key}: not enough bars for a single window")
            return None

        with self._exclusive():
            start_time = time.time()
            state = await self._calibrator().calibrate_async(windows)
            self._record_calibration(session_key, state, start_time)
            result = self._run_score(windows[-1], state, session_key)

        return AnomalyReport.from_results(result, state)

    def get_status(self) -> Dict:
        """Readiness and artifact summary"""
        return {
            'ready': self._ready,
            'load_error': self.load_error,
            'config_hash': self.config_hash,
            'config_version': self.config.config_version,
            'vae_config': self.vae_config,
            'artifacts': self.registry.describe(),
        }
