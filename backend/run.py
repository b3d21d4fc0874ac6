"""Serve the backend with uvicorn on the configured port."""

import os

import uvicorn

from articlegen.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "backend.main:app",
        host=os.environ.get("ARTICLEGEN_HOST", "0.0.0.0"),
        port=settings.port,
        # Background generation runs in worker threads; reloading would kill them
        reload=False,
        log_level="info",
    )
