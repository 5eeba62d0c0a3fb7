"""
Start Anomaly API Server

Launches the FastAPI server for per-ticker anomaly detection.
Encoder artifacts are read from VAEGUARD_ARTIFACT_DIR (default: ./vae).
"""

import os
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

if __name__ == "__main__":
    port = int(os.environ.get("VAEGUARD_PORT", "8010"))

    print("="*60)
    print("Starting Anomaly API Server")
    print("="*60)
    print(f"Artifacts: {os.environ.get('VAEGUARD_ARTIFACT_DIR', 'vae')}")
    print(f"API Documentation: http://localhost:{port}/docs")
    print(f"Health Check: http://localhost:{port}/health")
    print("="*60)

    uvicorn.run(
        "vaeguard.ml_layer.api:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info"
    )
