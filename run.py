#!/usr/bin/env python3
"""
Run the Evidence Engine API server.

Usage:
    python run.py
    API_HOST=0.0.0.0 API_PORT=8080 python run.py
"""

import os

import uvicorn


def main():
    host = os.environ.get("API_HOST", "127.0.0.1")
    port = int(os.environ.get("API_PORT", "8000"))

    print("Starting Evidence Engine API...")
    print(f"URL: http://{host}:{port}")

    uvicorn.run(
        "evidence_engine.api.main:app",
        host=host,
        port=port,
        log_level=os.environ.get("API_LOG_LEVEL", "info"),
    )


if __name__ == "__main__":
    main()
