"""Pipeline orchestrator: drives one job through the ordered stages.

State machine: ``PENDING -> RUNNING -> {COMPLETED, FAILED, CANCELLED}``.
While RUNNING, ``current_stage`` is the ordinal of the next stage to run.

- Every job write re-reads the stored job first, so a cancel written by
  another thread is never overwritten.
- Cancellation is checked only between stages; an in-flight stage always
  finishes and is recorded.
- A stage whose record is already SUCCEEDED is never executed again.
- Any stage failure fails the job. There are no automatic retries.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from articlegen.articles import ArticleDraft, ArticleSink, FileArticleSink
from articlegen.config import Settings
from articlegen.content.placeholders import extract_placeholders
from articlegen.jobs.models import GenerationJob, JobStatus, StageRecord, StageStatus
from articlegen.jobs.store import JobNotFound, JobStore, get_job_store, new_job_id
from articlegen.llm.gateway import ErrorCode
from articlegen.pipeline.events import EventSink, FileEventSink, ImageGenerationRequest
from articlegen.pipeline.notifications import (
    FileNotificationSink,
    Notification,
    NotificationSink,
    completed_notification,
    failed_notification,
)
from articlegen.pipeline.stages import STAGE_LABELS, StageExecutor, StageResult, build_executor
from articlegen.schemas.context import JobContext
from articlegen.schemas.stage_outputs import load_stage_output

logger = logging.getLogger(__name__)

FINAL_STAGE = "proofreading"

# Leading characters of an unparseable response copied into the job error
JOB_EXCERPT_CHARS = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineOrchestrator:
    def __init__(
        self,
        store: JobStore,
        executor: StageExecutor,
        events: EventSink,
        articles: ArticleSink,
        settings: Settings,
        notifications: NotificationSink | None = None,
    ):
        self._store = store
        self._executor = executor
        self._events = events
        self._articles = articles
        self._settings = settings
        self._notifications = notifications
        self._stages = executor.stage_names

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_job(
        self,
        *,
        keyword: str,
        user_id: str = "",
        category_id: str = "",
        author_id: str = "",
        brand_id: str = "",
        context: JobContext | dict[str, Any] | None = None,
    ) -> GenerationJob:
        """Persist a new PENDING job with its context."""
        ctx = self._coerce_context(context, keyword)
        job = GenerationJob(
            job_id=new_job_id(),
            user_id=user_id,
            category_id=category_id or ctx.category.id,
            author_id=author_id or ctx.author.id,
            brand_id=brand_id or ctx.brand.id,
            keyword=keyword,
            status_message="Queued",
            context=ctx.model_dump(),
        )
        self._store.create(job)
        logger.info("Created job %s for keyword %r", job.job_id, keyword)
        return job

    def start_pipeline(
        self, job_id: str, context: JobContext | dict[str, Any] | None = None
    ) -> GenerationJob:
        """Run (or resume) the job until it completes, fails or is cancelled.

        Terminal jobs are returned untouched.
        """
        job = self._get(job_id)
        if job.status.is_terminal:
            logger.info("Job %s is already %s, not starting", job_id, job.status.value)
            return job

        ctx = self._coerce_context(context if context is not None else job.context, job.keyword)

        def begin(latest: GenerationJob) -> None:
            latest.context = ctx.model_dump()
            if latest.status == JobStatus.PENDING:
                latest.transition_to(JobStatus.RUNNING)
                latest.current_stage = 0

        job = self._persist(job_id, begin)
        if job.status != JobStatus.RUNNING:
            return job
        logger.info("Job %s running from stage %d", job_id, job.current_stage)

        total = len(self._stages)
        while True:
            # Cancellation is only honoured here, between stages
            job = self._get(job_id)
            if job.status != JobStatus.RUNNING:
                logger.info("Job %s halted before stage %d: %s", job_id, job.current_stage, job.status.value)
                return job
            if job.current_stage >= total:
                break

            ordinal = job.current_stage
            stage_name = self._stages[ordinal]
            existing = self._store.get_stage(job_id, ordinal)
            if existing is not None and existing.status == StageStatus.SUCCEEDED:
                logger.info("Job %s: stage %s already succeeded, reusing output", job_id, stage_name)
                try:
                    output = load_stage_output(existing.output or {}).model_dump()
                except ValidationError as e:
                    logger.error("Job %s: stored output for %s is unreadable: %s", job_id, stage_name, e)
                    return self._fail_job(
                        job_id,
                        f"{ErrorCode.INTERNAL_ERROR.value}: Stored output for {stage_name} is unreadable",
                        status_message=f"Failed at {stage_name}",
                    )
                self._commit_stage(job_id, ordinal, stage_name, StageResult(ok=True, output=output))
                continue
            if existing is not None and existing.status.is_terminal:
                # The stage failed but the job was never marked: finish failing it
                logger.warning("Job %s: stage %s already %s, failing job", job_id, stage_name, existing.status.value)
                return self._fail_job(
                    job_id,
                    self._job_error(
                        existing.error_code or ErrorCode.INTERNAL_ERROR.value,
                        existing.error_message or f"Stage {stage_name} ended {existing.status.value}",
                        existing.raw_excerpt,
                    ),
                    status_message=f"Failed at {stage_name}",
                )

            record = self._store.save_stage(StageRecord(
                job_id=job_id,
                stage=ordinal,
                stage_name=stage_name,
                status=StageStatus.RUNNING,
                started_at=_utcnow(),
            ))
            self._persist(job_id, lambda j: setattr(j, "status_message", STAGE_LABELS[stage_name]))

            result = self._run_stage(stage_name, ctx, job.stage_outputs)
            if not result.ok:
                return self._fail_stage(record, result)

            self._store.save_stage(record.finish(
                StageStatus.SUCCEEDED,
                output=result.output,
                tokens_used=result.tokens_used,
            ))
            self._commit_stage(job_id, ordinal, stage_name, result)

        return self._complete(job_id, ctx)

    def cancel_pipeline(self, job_id: str) -> GenerationJob:
        """Flip a PENDING or RUNNING job to CANCELLED. No-op on terminal jobs."""

        def cancel(latest: GenerationJob) -> None:
            if latest.status.is_terminal:
                return
            latest.transition_to(JobStatus.CANCELLED)
            latest.status_message = "Cancelled"
            latest.error_message = None

        job = self._persist(job_id, cancel)
        logger.info("Job %s cancel requested -> %s", job_id, job.status.value)
        return job

    def get_job(self, job_id: str) -> GenerationJob:
        return self._get(job_id)

    def list_stages(self, job_id: str) -> list[StageRecord]:
        return self._store.list_stages(job_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, job_id: str) -> GenerationJob:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def _persist(self, job_id: str, mutate: Callable[[GenerationJob], None]) -> GenerationJob:
        """Apply ``mutate`` to the freshly stored job and write it back."""
        latest = self._get(job_id)
        mutate(latest)
        latest.updated_at = _utcnow()
        self._store.update(latest)
        return latest

    @staticmethod
    def _coerce_context(context: JobContext | dict[str, Any] | None, keyword: str) -> JobContext:
        if isinstance(context, JobContext):
            return context
        data = dict(context or {})
        data.setdefault("keyword", keyword)
        return JobContext.model_validate(data)

    def _run_stage(
        self, stage_name: str, ctx: JobContext, prior_outputs: dict[str, dict[str, Any]]
    ) -> StageResult:
        try:
            return self._executor.execute(stage_name, ctx, dict(prior_outputs))
        except Exception as e:
            logger.exception("Stage %s raised", stage_name)
            return StageResult.failure(ErrorCode.INTERNAL_ERROR, f"Unexpected error: {e}")

    def _commit_stage(self, job_id: str, ordinal: int, stage_name: str, result: StageResult) -> GenerationJob:
        total = len(self._stages)

        def commit(latest: GenerationJob) -> None:
            if stage_name not in latest.stage_outputs:
                latest.record_output(stage_name, result.output or {})
            latest.current_stage = max(latest.current_stage, ordinal + 1)
            latest.advance_progress(latest.current_stage * 100 // total)
            latest.tokens_used += result.tokens_used or 0
            if result.quality is not None:
                latest.quality[stage_name] = result.quality.model_dump(mode="json")
            if result.unrepaired_tables:
                latest.flag_for_review(
                    f"{ErrorCode.REPAIR_UNRESOLVED.value}: {len(result.unrepaired_tables)} "
                    f"table(s) in {stage_name} could not be repaired"
                )

        job = self._persist(job_id, commit)
        logger.info("Job %s: stage %s succeeded (%d%%)", job_id, stage_name, job.progress)
        return job

    def _fail_stage(self, record: StageRecord, result: StageResult) -> GenerationJob:
        code = result.error_code or ErrorCode.INTERNAL_ERROR
        self._store.save_stage(record.finish(
            StageStatus.FAILED,
            error_code=code.value,
            error_message=result.error,
            raw_excerpt=result.raw_excerpt,
            tokens_used=result.tokens_used,
        ))
        logger.error("Job %s: stage %s failed: %s: %s", record.job_id, record.stage_name, code.value, result.error)
        return self._fail_job(
            record.job_id,
            self._job_error(code.value, result.error, result.raw_excerpt),
            tokens_used=result.tokens_used or 0,
            status_message=f"Failed at {record.stage_name}",
        )

    @staticmethod
    def _job_error(code: str, error: str | None, raw_excerpt: str | None) -> str:
        message = f"{code}: {error}"
        if code == ErrorCode.PARSE_ERROR.value and raw_excerpt:
            message += f" (response began: {raw_excerpt[:JOB_EXCERPT_CHARS]!r})"
        return message

    def _fail_job(
        self, job_id: str, message: str, *, tokens_used: int = 0, status_message: str = "Failed"
    ) -> GenerationJob:
        failed = False

        def fail(latest: GenerationJob) -> None:
            nonlocal failed
            latest.tokens_used += tokens_used
            # A cancel that landed mid-stage wins; cancelled jobs carry no error
            if latest.status != JobStatus.RUNNING:
                return
            latest.error_message = message
            latest.status_message = status_message
            latest.transition_to(JobStatus.FAILED)
            failed = True

        job = self._persist(job_id, fail)
        if failed:
            self._notify(failed_notification(
                user_id=job.user_id, job_id=job_id, keyword=job.keyword, error=message,
            ))
        return job

    def _notify(self, notification: Notification) -> None:
        if self._notifications is None:
            return
        try:
            self._notifications.notify(notification)
        except Exception:
            logger.exception("Sending %s notification failed", notification.type.value)

    def _complete(self, job_id: str, ctx: JobContext) -> GenerationJob:
        job = self._get(job_id)
        outputs = job.stage_outputs
        final = outputs.get(FINAL_STAGE, {})
        seo = outputs.get("seo", {})
        structure = outputs.get("structure", {})
        html = final.get("html", "")
        title = structure.get("title", "") or job.keyword

        reasons = list(job.review_reasons)
        report = job.quality.get(FINAL_STAGE)
        threshold = self._settings.articlegen_quality_review_threshold
        score = None
        if report is not None:
            score = max(0, min(100, int(report.get("score", 100))))
            if score < threshold:
                reasons.append(f"Quality score {score} below review threshold {threshold}")

        try:
            article = self._articles.save(ArticleDraft(
                job_id=job_id,
                title=title,
                slug=structure.get("slug") or seo.get("slug") or "",
                html=html,
                meta_title=seo.get("meta_title", ""),
                meta_description=seo.get("meta_description", ""),
                needs_review=bool(reasons),
            ))
        except Exception as e:
            logger.exception("Job %s: saving article failed", job_id)
            return self._fail_job(job_id, f"{ErrorCode.INTERNAL_ERROR.value}: Saving article failed: {e}")

        request = ImageGenerationRequest(
            article_id=article.article_id,
            job_id=job_id,
            image_placeholders=extract_placeholders(html),
            article_title=title,
            category_name=ctx.category.name,
            brand_tone=ctx.brand.tone,
        )
        try:
            self._events.emit(request)
        except Exception:
            # Images can be re-requested later; the article itself is done
            logger.exception("Job %s: emitting image generation request failed", job_id)

        def complete(latest: GenerationJob) -> None:
            latest.article_id = article.article_id
            for reason in reasons:
                latest.flag_for_review(reason)
            if latest.status != JobStatus.RUNNING:
                return
            latest.advance_progress(100)
            latest.status_message = "Completed"
            latest.transition_to(JobStatus.COMPLETED)

        job = self._persist(job_id, complete)
        if job.status != JobStatus.COMPLETED:
            return job
        logger.info(
            "Job %s completed: article %s, %d placeholder(s), needs_review=%s",
            job_id, article.article_id, len(request.image_placeholders), job.needs_review,
        )
        self._notify(completed_notification(
            user_id=job.user_id,
            job_id=job_id,
            article_id=article.article_id,
            article_title=title,
            score=score if score is not None else 0,
            warnings=list(report.get("issues", [])) if report else [],
            tokens_used=job.tokens_used,
        ))
        return job


def build_orchestrator(settings: Settings) -> PipelineOrchestrator:
    """Orchestrator wired to the configured store, provider and file sinks."""
    return PipelineOrchestrator(
        store=get_job_store(settings),
        executor=build_executor(settings),
        events=FileEventSink(settings.events_dir),
        articles=FileArticleSink(settings.articles_dir),
        settings=settings,
        notifications=FileNotificationSink(settings.notifications_dir),
    )
