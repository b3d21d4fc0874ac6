"""Generation job and stage record schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_JOB


_TERMINAL_JOB = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
}


class StageStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.SUCCEEDED, StageStatus.FAILED, StageStatus.SKIPPED)


class InvalidStatusTransition(ValueError):
    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id}: cannot move from {current.value} to {target.value}")


class GenerationJob(BaseModel):
    """One keyword-to-article request, persisted for polling and resume."""

    job_id: str = ""
    user_id: str = ""
    category_id: str = ""
    author_id: str = ""
    brand_id: str = ""
    keyword: str = ""
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    current_stage: int = 0
    status_message: str = ""
    # Append-only: stage name -> that stage's validated output
    stage_outputs: dict[str, dict[str, Any]] = Field(default_factory=dict)
    error_message: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    # HTML stage name -> QualityReport dump
    quality: dict[str, dict[str, Any]] = Field(default_factory=dict)
    needs_review: bool = False
    review_reasons: list[str] = Field(default_factory=list)
    tokens_used: int = 0
    article_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    def transition_to(self, target: JobStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStatusTransition(self.job_id, self.status, target)
        self.status = target
        self.updated_at = _utcnow()
        if target.is_terminal:
            self.completed_at = self.updated_at

    def advance_progress(self, value: int) -> None:
        """Progress never moves backwards."""
        self.progress = max(self.progress, min(100, value))

    def record_output(self, stage_name: str, output: dict[str, Any]) -> None:
        if stage_name in self.stage_outputs:
            raise ValueError(f"Job {self.job_id}: output for {stage_name} already recorded")
        self.stage_outputs[stage_name] = output

    def flag_for_review(self, reason: str) -> None:
        self.needs_review = True
        if reason not in self.review_reasons:
            self.review_reasons.append(reason)


class StageRecord(BaseModel):
    """One row per (job, stage). Immutable once terminal."""

    job_id: str
    stage: int
    stage_name: str
    status: StageStatus = StageStatus.PENDING
    output: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_excerpt: str | None = None
    tokens_used: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def finish(self, status: StageStatus, **fields: Any) -> StageRecord:
        """Return a terminal copy of this record."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal stage status")
        return self.model_copy(update={"status": status, "completed_at": _utcnow(), **fields})
