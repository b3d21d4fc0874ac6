"""Article pipeline API.

POST /api/pipeline
  → Creates a job for one keyword and returns { job_id } immediately.
  → A background task runs the stages:
      keyword analysis → structure → draft → SEO → proofreading

GET /api/pipeline-jobs/{job_id}
  → Poll for status, current stage, progress, stage records and review flags.

POST /api/pipeline-jobs/{job_id}/cancel
  → Cooperative cancel; takes effect at the next stage boundary.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field

from articlegen.config import get_settings
from articlegen.jobs import GenerationJob, JobNotFound, StageRecord
from articlegen.pipeline import PipelineOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class StartPipelineRequest(BaseModel):
    """Body for POST /api/pipeline."""

    keyword: str = Field(min_length=1)
    user_id: str = ""
    category_id: str = ""
    author_id: str = ""
    brand_id: str = ""
    # Category / author / brand / knowledge items, resolved by the caller
    context: dict[str, Any] = Field(default_factory=dict)


class PipelineStartResponse(BaseModel):
    """Immediate response for POST /api/pipeline."""

    job_id: str = ""
    status: str = "PENDING"


class StageInfo(BaseModel):
    stage: int
    stage_name: str
    status: str
    error_code: str | None = None
    error_message: str | None = None
    tokens_used: int | None = None
    started_at: str | None = None
    completed_at: str | None = None


class PipelineJobStatusResponse(BaseModel):
    """Response for GET /api/pipeline-jobs/{job_id}."""

    job_id: str = ""
    keyword: str = ""
    status: str = ""
    progress: int = 0
    current_stage: int = 0
    status_message: str = ""
    error_message: str | None = None
    needs_review: bool = False
    review_reasons: list[str] = Field(default_factory=list)
    quality: dict[str, Any] = Field(default_factory=dict)
    article_id: str | None = None
    tokens_used: int = 0
    stages: list[StageInfo] = Field(default_factory=list)
    stage_outputs: dict[str, Any] | None = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_orchestrator: PipelineOrchestrator | None = None


def get_orchestrator() -> PipelineOrchestrator:
    """Singleton orchestrator built from settings (overridden in tests)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(get_settings())
    return _orchestrator


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _stage_info(record: StageRecord) -> StageInfo:
    return StageInfo(
        stage=record.stage,
        stage_name=record.stage_name,
        status=record.status.value,
        error_code=record.error_code,
        error_message=record.error_message,
        tokens_used=record.tokens_used,
        started_at=_iso(record.started_at),
        completed_at=_iso(record.completed_at),
    )


def _status_response(
    job: GenerationJob, stages: list[StageRecord], include_outputs: bool
) -> PipelineJobStatusResponse:
    return PipelineJobStatusResponse(
        job_id=job.job_id,
        keyword=job.keyword,
        status=job.status.value,
        progress=job.progress,
        current_stage=job.current_stage,
        status_message=job.status_message,
        error_message=job.error_message,
        needs_review=job.needs_review,
        review_reasons=job.review_reasons,
        quality=job.quality,
        article_id=job.article_id,
        tokens_used=job.tokens_used,
        stages=[_stage_info(r) for r in stages],
        stage_outputs=job.stage_outputs if include_outputs else None,
        created_at=_iso(job.created_at) or "",
        updated_at=_iso(job.updated_at) or "",
    )


# ---------------------------------------------------------------------------
# Background task
# ---------------------------------------------------------------------------

def _run_pipeline(orchestrator: PipelineOrchestrator, job_id: str) -> None:
    """Run the job to a terminal state; failures are recorded on the job."""
    try:
        job = orchestrator.start_pipeline(job_id)
        logger.info("Pipeline job %s finished: %s", job_id, job.status.value)
    except Exception:
        logger.exception("Pipeline job %s crashed", job_id)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post(
    "/pipeline",
    response_model=PipelineStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start generating an article for one keyword",
    description="Creates a job and runs the stages in the background. "
    "Poll GET /api/pipeline-jobs/{job_id} for progress.",
)
async def start_pipeline(
    body: StartPipelineRequest,
    background_tasks: BackgroundTasks,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    job = orchestrator.create_job(
        keyword=body.keyword,
        user_id=body.user_id,
        category_id=body.category_id,
        author_id=body.author_id,
        brand_id=body.brand_id,
        context=body.context,
    )
    background_tasks.add_task(_run_pipeline, orchestrator, job.job_id)
    return PipelineStartResponse(job_id=job.job_id, status=job.status.value)


@router.get(
    "/pipeline-jobs/{job_id}",
    response_model=PipelineJobStatusResponse,
    summary="Poll pipeline job status",
)
async def get_pipeline_job(
    job_id: str,
    include_outputs: bool = False,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Return job status, stage records and (optionally) stage outputs."""
    try:
        job = orchestrator.get_job(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _status_response(job, orchestrator.list_stages(job_id), include_outputs)


@router.post(
    "/pipeline-jobs/{job_id}/cancel",
    response_model=PipelineJobStatusResponse,
    summary="Request cancellation at the next stage boundary",
)
async def cancel_pipeline_job(
    job_id: str,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    try:
        job = orchestrator.cancel_pipeline(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _status_response(job, orchestrator.list_stages(job_id), include_outputs=False)
