"""FastAPI backend: start, poll and cancel article generation jobs."""

import logging
import sys
import time
from collections import deque
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from articlegen import __version__
from articlegen.config import get_settings

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

settings = get_settings()

app = FastAPI(
    title="articlegen API",
    description="Keyword-to-article generation pipeline.",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)


# ---------------------------------------------------------------------------
# Per-client throttle on job creation: each job costs several model calls
# ---------------------------------------------------------------------------
_job_starts: dict[str, deque[float]] = {}
JOB_WINDOW_SECONDS = 60


def _prune_job_starts(now: float) -> None:
    """Drop timestamps older than the window and forget clients left with none."""
    for client in list(_job_starts):
        window = _job_starts[client]
        while window and now - window[0] >= JOB_WINDOW_SECONDS:
            window.popleft()
        if not window:
            del _job_starts[client]


@app.middleware("http")
async def throttle_job_creation(request: Request, call_next):
    """Sliding window over POST /api/pipeline, ``articlegen_jobs_per_minute`` per client."""
    if request.method != "POST" or request.url.path.rstrip("/") != "/api/pipeline":
        return await call_next(request)

    client = request.client.host if request.client else "unknown"
    now = time.monotonic()
    _prune_job_starts(now)
    window = _job_starts.get(client)
    if window is not None and len(window) >= settings.articlegen_jobs_per_minute:
        logger.warning("Throttled job creation for %s", client)
        return JSONResponse({"detail": "Too many jobs started. Try again in a minute."}, status_code=429)
    _job_starts.setdefault(client, deque()).append(now)
    return await call_next(request)


# CORS is added last so it wraps the throttle (Starlette middleware is LIFO)
logger.info("CORS configured for origins: %s", settings.cors_origin_list)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
class HealthResponse(BaseModel):
    status: str
    data_dir: str
    job_store: str


@app.get("/health", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        data_dir=str(settings.data_dir),
        job_store="postgres" if settings.articlegen_database_url else "file",
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
from backend.routes import pipeline  # noqa: E402

app.include_router(pipeline.router, prefix="/api", tags=["pipeline"])
