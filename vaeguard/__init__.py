"""
VAEGUARD - Market State Anomaly Detection

Sub-packages:
    feature_engine  Bars → technical feature matrix → sliding windows
    ml_layer        Encoder adapter, calibration, scoring, REST API
"""

__version__ = "1.0.0"
