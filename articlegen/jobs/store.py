"""Job and stage record storage: Postgres (preferred) or file-based fallback."""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Protocol

from articlegen.config import Settings, get_settings
from articlegen.jobs.models import GenerationJob, JobStatus, StageRecord, StageStatus

logger = logging.getLogger(__name__)


class JobNotFound(KeyError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class StageRecordLocked(RuntimeError):
    """A terminal stage record cannot be overwritten."""

    def __init__(self, job_id: str, stage: int, status: StageStatus):
        self.job_id = job_id
        self.stage = stage
        super().__init__(f"Job {job_id} stage {stage} is {status.value} and cannot be changed")


class JobStore(Protocol):
    def create(self, job: GenerationJob) -> GenerationJob: ...
    def get(self, job_id: str) -> GenerationJob | None: ...
    def update(self, job: GenerationJob) -> None: ...
    def list_stages(self, job_id: str) -> list[StageRecord]: ...
    def get_stage(self, job_id: str, stage: int) -> StageRecord | None: ...
    def save_stage(self, record: StageRecord) -> StageRecord: ...


def _json_or_none(value: Any) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value: Any, default: Any = None) -> Any:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

_JOB_COLUMNS = (
    "job_id, user_id, category_id, author_id, brand_id, keyword, status, progress, "
    "current_stage, status_message, stage_outputs, error_message, context, quality, "
    "needs_review, review_reasons, tokens_used, article_id, created_at, updated_at, completed_at"
)

_STAGE_COLUMNS = (
    "job_id, stage, stage_name, status, output, error_code, error_message, raw_excerpt, "
    "tokens_used, started_at, completed_at"
)


class PostgresJobStore:
    """Persist jobs and stage records in Postgres. Survives restarts."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS articlegen_generation_jobs (
                job_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                category_id TEXT NOT NULL,
                author_id TEXT NOT NULL,
                brand_id TEXT NOT NULL,
                keyword TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INT NOT NULL DEFAULT 0,
                current_stage INT NOT NULL DEFAULT 0,
                status_message TEXT NOT NULL DEFAULT '',
                stage_outputs JSONB NOT NULL DEFAULT '{}',
                error_message TEXT,
                context JSONB NOT NULL DEFAULT '{}',
                quality JSONB NOT NULL DEFAULT '{}',
                needs_review BOOLEAN NOT NULL DEFAULT FALSE,
                review_reasons JSONB NOT NULL DEFAULT '[]',
                tokens_used INT NOT NULL DEFAULT 0,
                article_id TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                completed_at TIMESTAMPTZ
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS articlegen_generation_stages (
                job_id TEXT NOT NULL REFERENCES articlegen_generation_jobs (job_id),
                stage INT NOT NULL,
                stage_name TEXT NOT NULL,
                status TEXT NOT NULL,
                output JSONB,
                error_code TEXT,
                error_message TEXT,
                raw_excerpt TEXT,
                tokens_used INT,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                PRIMARY KEY (job_id, stage)
            )
        """)
        return conn

    def create(self, job: GenerationJob) -> GenerationJob:
        self._conn.execute(
            f"""
            INSERT INTO articlegen_generation_jobs ({_JOB_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s::jsonb,
                    %s::jsonb, %s, %s::jsonb, %s, %s, %s, %s, %s)
            """,
            self._job_row(job),
        )
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        row = self._conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM articlegen_generation_jobs WHERE job_id = %s",
            (job_id,),
        ).fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def update(self, job: GenerationJob) -> None:
        cur = self._conn.execute(
            """
            UPDATE articlegen_generation_jobs SET
                status = %s, progress = %s, current_stage = %s, status_message = %s,
                stage_outputs = %s::jsonb, error_message = %s, quality = %s::jsonb,
                needs_review = %s, review_reasons = %s::jsonb, tokens_used = %s,
                article_id = %s, updated_at = %s, completed_at = %s
            WHERE job_id = %s
            """,
            (
                job.status.value, job.progress, job.current_stage, job.status_message,
                json.dumps(job.stage_outputs, default=str), job.error_message,
                json.dumps(job.quality, default=str), job.needs_review,
                json.dumps(job.review_reasons), job.tokens_used, job.article_id,
                job.updated_at, job.completed_at, job.job_id,
            ),
        )
        if cur.rowcount == 0:
            raise JobNotFound(job.job_id)

    def list_stages(self, job_id: str) -> list[StageRecord]:
        rows = self._conn.execute(
            f"SELECT {_STAGE_COLUMNS} FROM articlegen_generation_stages "
            "WHERE job_id = %s ORDER BY stage",
            (job_id,),
        ).fetchall()
        return [self._row_to_stage(r) for r in rows]

    def get_stage(self, job_id: str, stage: int) -> StageRecord | None:
        row = self._conn.execute(
            f"SELECT {_STAGE_COLUMNS} FROM articlegen_generation_stages "
            "WHERE job_id = %s AND stage = %s",
            (job_id, stage),
        ).fetchone()
        return self._row_to_stage(row) if row else None

    def save_stage(self, record: StageRecord) -> StageRecord:
        # The WHERE clause keeps terminal rows untouched even under a race
        cur = self._conn.execute(
            f"""
            INSERT INTO articlegen_generation_stages ({_STAGE_COLUMNS})
            VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (job_id, stage) DO UPDATE SET
                status = EXCLUDED.status, output = EXCLUDED.output,
                error_code = EXCLUDED.error_code, error_message = EXCLUDED.error_message,
                raw_excerpt = EXCLUDED.raw_excerpt, tokens_used = EXCLUDED.tokens_used,
                started_at = EXCLUDED.started_at, completed_at = EXCLUDED.completed_at
            WHERE articlegen_generation_stages.status IN ('PENDING', 'RUNNING')
            """,
            (
                record.job_id, record.stage, record.stage_name, record.status.value,
                _json_or_none(record.output), record.error_code, record.error_message,
                record.raw_excerpt, record.tokens_used, record.started_at, record.completed_at,
            ),
        )
        if cur.rowcount == 0:
            existing = self.get_stage(record.job_id, record.stage)
            raise StageRecordLocked(
                record.job_id, record.stage, existing.status if existing else record.status
            )
        return record

    @staticmethod
    def _job_row(job: GenerationJob) -> tuple:
        return (
            job.job_id, job.user_id, job.category_id, job.author_id, job.brand_id,
            job.keyword, job.status.value, job.progress, job.current_stage,
            job.status_message, json.dumps(job.stage_outputs, default=str),
            job.error_message, json.dumps(job.context, default=str),
            json.dumps(job.quality, default=str), job.needs_review,
            json.dumps(job.review_reasons), job.tokens_used, job.article_id,
            job.created_at, job.updated_at, job.completed_at,
        )

    @staticmethod
    def _row_to_job(row) -> GenerationJob:
        return GenerationJob(
            job_id=row[0],
            user_id=row[1],
            category_id=row[2],
            author_id=row[3],
            brand_id=row[4],
            keyword=row[5],
            status=JobStatus(row[6]),
            progress=row[7],
            current_stage=row[8],
            status_message=row[9],
            stage_outputs=_loads(row[10], {}),
            error_message=row[11],
            context=_loads(row[12], {}),
            quality=_loads(row[13], {}),
            needs_review=row[14],
            review_reasons=_loads(row[15], []),
            tokens_used=row[16],
            article_id=row[17],
            created_at=row[18],
            updated_at=row[19],
            completed_at=row[20],
        )

    @staticmethod
    def _row_to_stage(row) -> StageRecord:
        return StageRecord(
            job_id=row[0],
            stage=row[1],
            stage_name=row[2],
            status=StageStatus(row[3]),
            output=_loads(row[4]),
            error_code=row[5],
            error_message=row[6],
            raw_excerpt=row[7],
            tokens_used=row[8],
            started_at=row[9],
            completed_at=row[10],
        )


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs and stage records as JSON files under ``<data_dir>/jobs``."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    def _stage_dir(self, job_id: str) -> Path:
        return self._dir / job_id

    def _stage_path(self, job_id: str, stage: int) -> Path:
        return self._stage_dir(job_id) / f"stage_{stage}.json"

    def create(self, job: GenerationJob) -> GenerationJob:
        with self._lock:
            if self._job_path(job.job_id).exists():
                raise ValueError(f"Job already exists: {job.job_id}")
            self._write(self._job_path(job.job_id), job.model_dump(mode="json"))
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return GenerationJob.model_validate(self._read(path))

    def update(self, job: GenerationJob) -> None:
        with self._lock:
            path = self._job_path(job.job_id)
            if not path.exists():
                raise JobNotFound(job.job_id)
            self._write(path, job.model_dump(mode="json"))

    def list_stages(self, job_id: str) -> list[StageRecord]:
        stage_dir = self._stage_dir(job_id)
        if not stage_dir.exists():
            return []
        records = [StageRecord.model_validate(self._read(p)) for p in stage_dir.glob("stage_*.json")]
        return sorted(records, key=lambda r: r.stage)

    def get_stage(self, job_id: str, stage: int) -> StageRecord | None:
        path = self._stage_path(job_id, stage)
        if not path.exists():
            return None
        return StageRecord.model_validate(self._read(path))

    def save_stage(self, record: StageRecord) -> StageRecord:
        with self._lock:
            existing = self.get_stage(record.job_id, record.stage)
            if existing is not None and existing.status.is_terminal:
                raise StageRecordLocked(record.job_id, record.stage, existing.status)
            path = self._stage_path(record.job_id, record.stage)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._write(path, record.model_dump(mode="json"))
        return record

    @staticmethod
    def _write(path: Path, data: dict[str, Any]) -> None:
        # Write-then-rename so pollers never read a half-written file
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        os.replace(tmp, path)

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStore | None = None


def get_job_store(settings: Settings | None = None) -> JobStore:
    """Return singleton job store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = settings or get_settings()
    if settings.articlegen_database_url:
        try:
            _store = PostgresJobStore(settings.articlegen_database_url)
            logger.info("Using Postgres job store")
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
            _store = FileJobStore(settings.data_dir)
    else:
        _store = FileJobStore(settings.data_dir)
        logger.info("Using file-based job store (ARTICLEGEN_DATA_DIR/jobs)")
    return _store


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"
