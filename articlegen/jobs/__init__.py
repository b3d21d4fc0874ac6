"""Generation job storage and retrieval."""

from articlegen.jobs.models import (
    GenerationJob,
    InvalidStatusTransition,
    JobStatus,
    StageRecord,
    StageStatus,
)
from articlegen.jobs.store import (
    FileJobStore,
    JobNotFound,
    JobStore,
    PostgresJobStore,
    StageRecordLocked,
    get_job_store,
    new_job_id,
)

__all__ = [
    "FileJobStore",
    "GenerationJob",
    "InvalidStatusTransition",
    "JobNotFound",
    "JobStatus",
    "JobStore",
    "PostgresJobStore",
    "StageRecord",
    "StageRecordLocked",
    "StageStatus",
    "get_job_store",
    "new_job_id",
]
