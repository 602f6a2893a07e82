#!/usr/bin/env python3
"""
Simple run script for the AccelFlow server.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 LLM_GATEWAY_URL=http://localhost:9000/complete python run.py
"""

import uvicorn
import os


def main():
    """Run the FastAPI application."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "true").lower() == "true"

    print(f"""
╔═══════════════════════════════════════════════════════════════╗
║                      AccelFlow                                ║
║                                                               ║
║  Workflow execution engine for LLM pipelines                  ║
╠═══════════════════════════════════════════════════════════════╣
║  Server:     http://{host}:{port}
║  API Docs:   http://{host}:{port}/docs
║  Templates:  http://{host}:{port}/workflows/templates
╚═══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "accelflow.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
