"""
Anomaly Engine Monitoring

Tracks calibration and scoring activity:
- Calibration counts, reliability and latest threshold per session
- Score counts, anomaly rate and latency
- Optional JSONL audit log of every score
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from vaeguard.ml_layer.schemas import CalibrationState, ScoreResult

LOG = logging.getLogger(__name__)


@dataclass
class ScoreLog:
    """Single score log entry"""
    timestamp: str
    session: str
    recon_error: float
    confidence: float
    is_anomaly: bool
    threshold: float
    processing_time_ms: float
    config_hash: str

    def to_dict(self) -> Dict:
        return asdict(self)


class AnomalyMonitor:
    """
    In-memory monitor for one engine process.

    Tracks:
    - Calibrations (total, unreliable, threshold per session)
    - Scores (total, anomalies, processing times)
    """

    def __init__(self, log_dir: Optional[str] = None, buffer_size: int = 10000):
        """
        Initialize monitor.

        Args:
            log_dir: Directory for the score audit log (disabled if None)
            buffer_size: Number of recent scores kept in memory
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.score_file = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.score_file = self.log_dir / "scores.jsonl"

        self.score_buffer: deque = deque(maxlen=buffer_size)
        self.session_thresholds: Dict[str, Dict] = {}

        self.start_time = datetime.now()
        self.metrics = {
            'total_calibrations': 0,
            'unreliable_calibrations': 0,
            'empty_calibrations': 0,
            'total_scores': 0,
            'anomalies': 0,
            'processing_times': deque(maxlen=1000),
        }

        LOG.info(f"Anomaly Monitor initialized: log_dir={log_dir}")

    def record_calibration(
        self,
        session: str,
        state: CalibrationState,
        processing_time_ms: float = 0.0
    ):
        """Record one calibration run"""
        self.metrics['total_calibrations'] += 1
        if state.window_count == 0:
            self.metrics['empty_calibrations'] += 1
        if not state.is_reliable:
            self.metrics['unreliable_calibrations'] += 1

        self.session_thresholds[session] = {
            **state.to_dict(),
            'calibrated_at': datetime.now().isoformat(),
        }
        self.metrics['processing_times'].append(processing_time_ms)

    def record_score(
        self,
        session: str,
        result: ScoreResult,
        processing_time_ms: float = 0.0,
        config_hash: str = ""
    ):
        """Record one window score"""
        entry = ScoreLog(
            timestamp=datetime.now().isoformat(),
            session=session,
            recon_error=float(result.recon_error),
            confidence=float(result.confidence),
            is_anomaly=bool(result.is_anomaly),
            threshold=float(result.threshold),
            processing_time_ms=processing_time_ms,
            config_hash=config_hash,
        )

        self.score_buffer.append(entry)
        self.metrics['total_scores'] += 1
        if entry.is_anomaly:
            self.metrics['anomalies'] += 1
        self.metrics['processing_times'].append(processing_time_ms)

        if self.score_file is not None:
            self._write_to_disk(entry)

    def _write_to_disk(self, entry: ScoreLog):
        """Append score to log file"""
        try:
            with open(self.score_file, 'a') as f:
                f.write(json.dumps(entry.to_dict()) + '\n')
        except OSError as e:
            LOG.error(f"Error writing score log: {e}")

    def get_current_metrics(self) -> Dict:
        """
        Get current monitoring metrics.

        Returns:
            Dictionary of metrics
        """
        total_scores = self.metrics['total_scores']
        anomalies = self.metrics['anomalies']

        metrics = {
            'total_calibrations': self.metrics['total_calibrations'],
            'unreliable_calibrations': self.metrics['unreliable_calibrations'],
            'empty_calibrations': self.metrics['empty_calibrations'],
            'total_scores': total_scores,
            'anomalies': anomalies,
            'anomaly_rate': anomalies / max(total_scores, 1),
            'calibrated_sessions': len(self.session_thresholds),
            'uptime_seconds': self.get_uptime(),
        }

        if self.metrics['processing_times']:
            times = list(self.metrics['processing_times'])
            metrics['avg_processing_time_ms'] = float(np.mean(times))
            metrics['p95_processing_time_ms'] = float(np.percentile(times, 95))
            metrics['max_processing_time_ms'] = float(np.max(times))

        if self.score_buffer:
            recent = [s.confidence for s in list(self.score_buffer)[-100:]]
            metrics['avg_confidence'] = float(np.mean(recent))

        return metrics

    def get_session_thresholds(self) -> Dict[str, Dict]:
        """Latest calibration per session"""
        return dict(self.session_thresholds)

    def get_score_history(self, limit: int = 100) -> List[Dict]:
        """
        Get recent scores.

        Args:
            limit: Maximum number of scores to return
        """
        recent = list(self.score_buffer)[-limit:]
        return [entry.to_dict() for entry in recent]

    def get_uptime(self) -> float:
        """Get uptime in seconds"""
        return (datetime.now() - self.start_time).total_seconds()

    def export_metrics(self, filepath: str):
        """
        Export metrics to JSON file.

        Args:
            filepath: Output file path
        """
        export_data = {
            'timestamp': datetime.now().isoformat(),
            'uptime_seconds': self.get_uptime(),
            'metrics': self.get_current_metrics(),
            'sessions': self.get_session_thresholds(),
            'recent_scores': self.get_score_history(limit=50),
        }

        with open(filepath, 'w') as f:
            json.dump(export_data, f, indent=2)

        LOG.info(f"Metrics exported to {filepath}")
