#!/usr/bin/env python3
"""
Run the Synexa API locally with uvicorn and hot reloading.

Defaults to a SQLite database in the working directory; set DATABASE_URL to
point at PostgreSQL instead.
"""

import os
import sys
import uvicorn
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

DEV_DEFAULTS = {
    "ENVIRONMENT": "development",
    "DEBUG": "true",
    "VERSION": "1.0.0",
    "DATABASE_URL": "sqlite:///./synexa.db",
    "TZ": "Europe/Paris",
}


def main():
    """Run the FastAPI application in development mode."""
    for key, value in DEV_DEFAULTS.items():
        os.environ.setdefault(key, value)
    port = int(os.environ.get("PORT", "8080"))

    print("Starting Synexa API")
    for key in ("ENVIRONMENT", "DATABASE_URL", "TZ"):
        print(f"   {key}: {os.environ[key]}")
    print(f"   Docs: http://localhost:{port}/docs")
    print()

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info",
        reload_dirs=[str(project_root / name) for name in ("api", "engine", "observability", "scheduler")]
    )


if __name__ == "__main__":
    main()
