"""
Tests for the anomaly REST API.

Run: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from vaeguard.ml_layer import api
from vaeguard.ml_layer.config import AnomalyConfig
from vaeguard.ml_layer.inference import AnomalyInferenceEngine
from vaeguard.ml_layer.monitoring import AnomalyMonitor


# ============================================================================
# FIXTURES
# ============================================================================

def to_payload(bars, symbol="AAPL", timeframe="1D"):
    records = [
        {
            'date': row.date.strftime('%Y-%m-%d'),
            'open': float(row.open),
            'high': float(row.high),
            'low': float(row.low),
            'close': float(row.close),
            'volume': float(row.volume),
        }
        for row in bars.itertuples()
    ]
    return {'symbol': symbol, 'timeframe': timeframe, 'bars': records}


@pytest.fixture
def client(latent_adapter, feature_scaler):
    engine = AnomalyInferenceEngine(AnomalyConfig())
    engine.load(adapter=latent_adapter, scaler=feature_scaler)
    api.init_engine(engine, AnomalyMonitor())
    yield TestClient(api.app)
    api.engine = None
    api.monitor = None
    api.engine_lock = None
    api.sessions.clear()


@pytest.fixture
def unready_client(tmp_path):
    config = AnomalyConfig()
    config.artifacts.artifact_dir = str(tmp_path)
    engine = AnomalyInferenceEngine(config)
    engine.load()
    api.init_engine(engine, AnomalyMonitor())
    yield TestClient(api.app)
    api.engine = None
    api.monitor = None
    api.engine_lock = None
    api.sessions.clear()


# ============================================================================
# HEALTH & STATUS
# ============================================================================

class TestHealth:
    """Test health and status endpoints"""

    def test_health_ready(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body['ready'] is True
        assert body['status'] == "healthy"

    def test_health_not_ready(self, unready_client):
        body = unready_client.get("/health").json()
        assert body['ready'] is False
        assert body['status'] == "degraded"
        assert body['load_error']

    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        assert response.json()['metrics']['total_scores'] == 0


# ============================================================================
# ANOMALY ENDPOINTS
# ============================================================================

class TestAnomalyEndpoints:
    """Test calibrate / score / analyze"""

    def test_calibrate_then_score(self, client, sample_bars):
        payload = to_payload(sample_bars)

        response = client.post("/calibrate", json=payload)
        assert response.status_code == 200
        calibration = response.json()['calibration']
        assert calibration['window_count'] == 281
        assert calibration['is_reliable'] is True

        response = client.post("/score", json=payload)
        assert response.status_code == 200
        score = response.json()['score']
        assert score['threshold'] == calibration['threshold']
        assert 0.0 <= score['confidence'] <= 1.0

        status = client.get("/status").json()
        assert "AAPL:1D" in status['sessions']

    def test_score_without_calibration(self, client, sample_bars):
        response = client.post("/score", json=to_payload(sample_bars))
        assert response.status_code == 409

    def test_sessions_are_per_symbol(self, client, sample_bars):
        client.post("/calibrate", json=to_payload(sample_bars, symbol="AAPL"))
        response = client.post("/score", json=to_payload(sample_bars, symbol="MSFT"))
        assert response.status_code == 409

    def test_calibrate_short_history(self, client, bar_factory):
        """No windows → empty calibration, nothing stored"""
        payload = to_payload(bar_factory(5))
        response = client.post("/calibrate", json=payload)
        assert response.status_code == 200
        assert response.json()['calibration']['threshold'] is None

        assert client.post("/score", json=payload).status_code == 409

    def test_analyze(self, client, sample_bars):
        response = client.post("/analyze", json=to_payload(sample_bars))
        assert response.status_code == 200
        report = response.json()['report']
        assert report['window_count'] == 281

        # analyze stores the calibration for later scoring
        assert client.post("/score", json=to_payload(sample_bars)).status_code == 200

    def test_analyze_short_history(self, client, bar_factory):
        response = client.post("/analyze", json=to_payload(bar_factory(10)))
        assert response.status_code == 200
        assert response.json()['report'] is None

    def test_invalid_bars(self, client, sample_bars):
        """Descending dates fail validation"""
        response = client.post("/analyze", json=to_payload(sample_bars.iloc[::-1]))
        assert response.status_code == 422

    def test_missing_field(self, client):
        response = client.post("/analyze", json={'symbol': 'AAPL', 'bars': [{'date': '2024-01-01'}]})
        assert response.status_code == 422

    def test_not_ready(self, unready_client, sample_bars):
        response = unready_client.post("/analyze", json=to_payload(sample_bars))
        assert response.status_code == 503

    def test_short_recalibration_invalidates_session(self, client, sample_bars, bar_factory):
        """Recalibrating with too few bars drops the previous threshold"""
        assert client.post("/calibrate", json=to_payload(sample_bars)).status_code == 200

        response = client.post("/calibrate", json=to_payload(bar_factory(10)))
        assert response.json()['calibration']['threshold'] is None

        assert client.post("/score", json=to_payload(sample_bars)).status_code == 409
        assert "AAPL:1D" not in client.get("/status").json()['sessions']

    def test_short_analyze_invalidates_session(self, client, sample_bars, bar_factory):
        assert client.post("/analyze", json=to_payload(sample_bars)).status_code == 200
        assert client.post("/analyze", json=to_payload(bar_factory(10))).json()['report'] is None
        assert client.post("/score", json=to_payload(sample_bars)).status_code == 409


class TestEngineLock:
    """Test request serialisation setup"""

    def test_lock_created_per_engine(self, latent_adapter, feature_scaler):
        engine = AnomalyInferenceEngine(AnomalyConfig())
        engine.load(adapter=latent_adapter, scaler=feature_scaler)

        api.init_engine(engine, AnomalyMonitor())
        first = api.engine_lock
        api.init_engine(engine, AnomalyMonitor())
        try:
            assert first is not None
            assert api.engine_lock is not first
            assert not api.engine_lock.locked()
        finally:
            api.engine = None
            api.monitor = None
            api.engine_lock = None
            api.sessions.clear()

    def test_uninitialized(self):
        api.engine = None
        api.engine_lock = None
        response = TestClient(api.app).post(
            "/analyze", json={'symbol': 'AAPL', 'bars': []}
        )
        assert response.status_code == 503
