"""
Entry point for running the relay server.

Usage:
    python -m relay_server

Host and port come from RELAY_HOST / RELAY_PORT (default 0.0.0.0:8000).
"""
import uvicorn

from logging_setup import setup_logging
from .config import get_config

if __name__ == "__main__":
    setup_logging(level="INFO", use_json=True)

    config = get_config()
    uvicorn.run(
        "relay_server.server:app",
        host=config.host,
        port=config.port,
        log_level="info"
    )
