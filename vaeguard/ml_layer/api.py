"""
Anomaly Engine FastAPI Interface

REST endpoints for the per-ticker anomaly flow:
- Calibration (threshold per symbol/timeframe session)
- Scoring of the latest window against a stored calibration
- One-shot analysis (calibrate + score)
- Health & monitoring
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
import asyncio
import logging

from vaeguard.feature_engine.windowing import latest_window
from vaeguard.ml_layer.config import AnomalyConfig
from vaeguard.ml_layer.exceptions import (
    CalibrationRequiredError,
    ConcurrentUseError,
    NotReadyError,
)
from vaeguard.ml_layer.inference import AnomalyInferenceEngine
from vaeguard.ml_layer.monitoring import AnomalyMonitor
from vaeguard.ml_layer.schemas import CalibrationState

LOG = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(
    title="VAEGuard Anomaly API",
    description="Per-ticker market state anomaly detection",
    version="1.0.0"
)

# Global instances (initialized on startup)
engine: Optional[AnomalyInferenceEngine] = None
monitor: Optional[AnomalyMonitor] = None
sessions: Dict[str, CalibrationState] = {}

# One request at a time against the encoder (created with the engine)
engine_lock: Optional[asyncio.Lock] = None


# ============================================================================
# Pydantic Models (Request/Response Schemas)
# ============================================================================

class BarModel(BaseModel):
    """Single OHLCV bar"""
    date: str = Field(..., description="Bar date (ISO 8601)")
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: float = Field(..., description="Close price")
    volume: float = Field(..., description="Traded volume")


class BarsRequest(BaseModel):
    """Bars for one symbol/timeframe session"""
    symbol: str = Field(..., description="Ticker (e.g., AAPL)")
    timeframe: str = Field("1D", description="Bar timeframe")
    bars: List[BarModel] = Field(..., description="Bars, date ascending")

    @property
    def session_key(self) -> str:
        return f"{self.symbol}:{self.timeframe}"

    def bar_records(self) -> List[dict]:
        return [bar.model_dump() for bar in self.bars]


# ============================================================================
# Startup/Shutdown
# ============================================================================

def init_engine(
    anomaly_engine: Optional[AnomalyInferenceEngine] = None,
    anomaly_monitor: Optional[AnomalyMonitor] = None
):
    """
    Install the global engine and monitor.

    With no arguments the engine is built from environment config and the
    encoder artifacts are loaded; a load failure leaves it not-ready.
    """
    global engine, monitor, engine_lock

    monitor = anomaly_monitor or AnomalyMonitor()
    if anomaly_engine is None:
        anomaly_engine = AnomalyInferenceEngine(AnomalyConfig.from_env(), monitor)
        anomaly_engine.load()
    elif anomaly_engine.monitor is None:
        anomaly_engine.monitor = monitor

    engine = anomaly_engine
    engine_lock = asyncio.Lock()
    sessions.clear()


@app.on_event("startup")
async def startup_event():
    """Initialize the anomaly engine on startup"""
    init_engine()

    LOG.info("✓ Anomaly API started")
    LOG.info(f"  Config hash: {engine.config_hash}")
    LOG.info(f"  Encoder ready: {engine.ready}")


def _require_engine() -> AnomalyInferenceEngine:
    if engine is None or engine_lock is None:
        raise HTTPException(status_code=503, detail="Anomaly engine not initialized")
    if not engine.ready:
        raise HTTPException(status_code=503, detail=f"Anomaly engine not ready: {engine.load_error}")
    return engine


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotReadyError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, (CalibrationRequiredError, ConcurrentUseError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Health & Status
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy" if engine is not None and engine.ready else "degraded",
        "timestamp": datetime.now().isoformat(),
        "ready": engine.ready if engine else False,
        "load_error": engine.load_error if engine else "not initialized",
        "config_hash": engine.config_hash if engine else None,
        "uptime_seconds": monitor.get_uptime() if monitor else 0,
    }


@app.get("/status")
async def get_status():
    """Detailed status and metrics"""
    if monitor is None or engine is None:
        raise HTTPException(status_code=503, detail="Monitor not initialized")

    return {
        "timestamp": datetime.now().isoformat(),
        "engine": engine.get_status(),
        "metrics": monitor.get_current_metrics(),
        "sessions": {key: state.to_dict() for key, state in sessions.items()},
    }


# ============================================================================
# Anomaly Endpoints
# ============================================================================

@app.post("/calibrate")
async def calibrate(request: BarsRequest):
    """Calibrate and store the threshold for a symbol/timeframe session"""
    anomaly_engine = _require_engine()

    async with engine_lock:
        try:
            windows = anomaly_engine.build_windows(request.bar_records())
            state = await anomaly_engine.calibrate_async(windows, request.session_key)
        except Exception as e:
            LOG.error(f"Calibration failed for {request.session_key}: {e}")
            raise _to_http_error(e)

    if state.is_calibrated:
        sessions[request.session_key] = state
    else:
        # A failed recalibration invalidates the previous threshold
        sessions.pop(request.session_key, None)

    return {
        "symbol": request.symbol,
        "timeframe": request.timeframe,
        "calibration": state.to_dict(),
    }


@app.post("/score")
async def score(request: BarsRequest):
    """Score the latest window against the stored session calibration"""
    anomaly_engine = _require_engine()

    state = sessions.get(request.session_key)
    if state is None:
        raise HTTPException(
            status_code=409,
            detail=f"Session {request.session_key} is not calibrated"
        )

    async with engine_lock:
        try:
            matrix = anomaly_engine.builder.build(request.bar_records())
            window = latest_window(matrix, anomaly_engine.config.features.window.window_size)
            if window is None:
                raise ValueError(
                    f"Need at least {anomaly_engine.config.features.window.window_size} bars to score"
                )
            result = anomaly_engine.score(window, state, request.session_key)
        except Exception as e:
            LOG.error(f"Scoring failed for {request.session_key}: {e}")
            raise _to_http_error(e)

    return {
        "symbol": request.symbol,
        "timeframe": request.timeframe,
        "score": result.to_dict(),
        "calibration": state.to_dict(),
    }


@app.post("/analyze")
async def analyze(request: BarsRequest):
    """Calibrate on all windows and score the latest one"""
    anomaly_engine = _require_engine()

    async with engine_lock:
        try:
            report = await anomaly_engine.analyze_async(request.bar_records(), request.session_key)
        except Exception as e:
            LOG.error(f"Analysis failed for {request.session_key}: {e}")
            raise _to_http_error(e)

    if report is None:
        sessions.pop(request.session_key, None)
        return {
            "symbol": request.symbol,
            "timeframe": request.timeframe,
            "report": None,
            "message": "Not enough bars for a single window",
        }

    sessions[request.session_key] = CalibrationState(
        threshold=report.threshold,
        window_count=report.window_count,
        is_reliable=report.is_reliable,
    )

    return {
        "symbol": request.symbol,
        "timeframe": request.timeframe,
        "report": report.to_dict(),
    }
