"""Celery tasks for subtitle rendering and job retention."""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Any, Optional

import redis
from celery.signals import worker_process_init

from captionburn.celery_app import celery_app
from captionburn.config import Settings, get_settings
from captionburn.exceptions import CaptionBurnError, EncoderError
from captionburn.render.encoder import get_encoder
from captionburn.render.pipeline import SubtitleRenderPipeline
from captionburn.schemas.render import ExportPayload
from captionburn.services.job_store import JobStore
from captionburn.services.start_limiter import get_start_limiter
from captionburn.services.storage_service import (
    LocalStorageService,
    get_storage_service,
    job_prefix,
    output_key,
)

logger = logging.getLogger(__name__)

settings = get_settings()

# Minimum progress step written to the job row
PROGRESS_WRITE_STEP = 0.5


@dataclass(frozen=True)
class JobOutcome:
    """What one attempt did to a job."""

    job_id: str
    status: str
    attempt: int = 0
    retry: bool = False
    retry_delay: float = 0.0
    error: Optional[str] = None
    output_size: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def retry_delay(attempt: int, backoff_s: float) -> float:
    """Exponential backoff before the attempt after ``attempt``: 1s, 2s, 4s, ..."""
    return backoff_s * 2 ** (attempt - 1)


class _ProgressWriter:
    """Throttles progress writes to the job row."""

    def __init__(self, store: JobStore, job_id: str):
        self.store = store
        self.job_id = job_id
        self.last = 0.0

    def __call__(self, progress: float) -> None:
        if progress < 100.0 and progress - self.last < PROGRESS_WRITE_STEP:
            return
        self.last = progress
        self.store.update_progress(self.job_id, progress, stage="Rendering")


def execute_render_job(
    job_id: str,
    *,
    attempt: int,
    store: JobStore,
    storage: LocalStorageService,
    pipeline: SubtitleRenderPipeline,
    max_attempts: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> JobOutcome:
    """
    Run one attempt of a render job and record its outcome on the job row.

    Never raises for render failures: retryable errors with attempts left move
    the job back to ``waiting`` and ask for a retry, anything else fails the
    job. The result file is stored before the job is marked completed.

    Args:
        job_id: Job to run
        attempt: 1-based attempt number
        max_attempts: Attempt limit (defaults to the job row's)
    """
    settings = settings or get_settings()

    job = store.find(job_id)
    if job is None:
        logger.warning(f"[WORKER] Job {job_id} no longer exists, skipping")
        return JobOutcome(job_id=job_id, status="missing", attempt=attempt)
    if job.is_terminal:
        logger.info(f"[WORKER] Job {job_id} is already {job.status}, skipping")
        return JobOutcome(job_id=job_id, status=job.status, attempt=attempt)

    max_attempts = max_attempts or job.max_attempts
    if not store.mark_active(job_id, attempt):
        return JobOutcome(job_id=job_id, status=job.status, attempt=attempt)

    started = time.monotonic()
    try:
        payload = ExportPayload.model_validate({"cues": job.cues_data, "style": job.style_data})
        cues, style = payload.to_domain()
        video_bytes = storage.read_bytes(job.input_key)

        result = pipeline.render(job_id, video_bytes, cues, style, progress=_ProgressWriter(store, job_id))

        key = output_key(job_id)
        size = storage.write_bytes(key, result)
    except CaptionBurnError as e:
        reason = e.message
        if e.retryable and attempt < max_attempts:
            delay = retry_delay(attempt, settings.render_retry_backoff_s)
            logger.warning(
                f"[WORKER] Job {job_id} attempt {attempt}/{max_attempts} failed "
                f"({e.code}), retrying in {delay:.1f}s: {reason}"
            )
            store.mark_waiting(job_id, reason)
            return JobOutcome(
                job_id=job_id,
                status="waiting",
                attempt=attempt,
                retry=True,
                retry_delay=delay,
                error=reason,
            )
        reason = f"{reason} (attempt {attempt}/{max_attempts})"
        store.mark_failed(job_id, reason)
        return JobOutcome(job_id=job_id, status="failed", attempt=attempt, error=reason)
    except Exception as e:
        logger.exception(f"[WORKER] Job {job_id} crashed on attempt {attempt}")
        reason = f"Unexpected error: {type(e).__name__}: {e}"
        store.mark_failed(job_id, reason)
        return JobOutcome(job_id=job_id, status="failed", attempt=attempt, error=reason)

    if not store.mark_completed(job_id, key, size):
        logger.warning(f"[WORKER] Job {job_id} left the active state before completion was recorded")
    logger.info(f"[WORKER] Job {job_id} finished in {time.monotonic() - started:.1f}s")
    return JobOutcome(job_id=job_id, status="completed", attempt=attempt, output_size=size)


def prune_expired_jobs(
    store: JobStore,
    storage: LocalStorageService,
    settings: Optional[Settings] = None,
) -> list[str]:
    """Delete finished jobs past their retention period, with their files."""
    settings = settings or get_settings()
    expired = store.expired_job_ids(
        completed_ttl=timedelta(hours=settings.completed_job_ttl_hours),
        failed_ttl=timedelta(hours=settings.failed_job_ttl_hours),
    )
    for job_id in expired:
        storage.delete_prefix(job_prefix(job_id))
        store.delete(job_id)
    if expired:
        logger.info(f"[WORKER] Pruned {len(expired)} expired render jobs")
    return expired


@lru_cache
def get_job_store() -> JobStore:
    return JobStore()


@lru_cache
def get_pipeline() -> SubtitleRenderPipeline:
    return SubtitleRenderPipeline(settings=settings)


@worker_process_init.connect
def resolve_encoder(**kwargs) -> None:
    """Resolve the ffmpeg binary once per worker process."""
    try:
        encoder = get_encoder()
    except EncoderError as e:
        logger.error(f"[WORKER] {e.message}; render jobs will fail until ffmpeg is installed")
        return
    logger.info(f"[WORKER] Using ffmpeg at {encoder.ffmpeg_path}")


@celery_app.task(
    bind=True,
    name="captionburn.render_video",
    max_retries=None,
)
def render_video_task(self, job_id: str, attempt: int = 1) -> dict:
    """
    Execute a render job as a Celery task.

    Starts are throttled across all workers by the shared start limiter. A
    start deferred by the limiter is re-queued with the same attempt number,
    so only real render failures count against ``max_attempts``.

    Args:
        job_id: Id of the RenderJob to process
        attempt: 1-based render attempt

    Returns:
        dict with the outcome of this attempt
    """
    try:
        wait_s = get_start_limiter().acquire()
    except redis.RedisError as e:
        logger.warning(f"[WORKER] Start limiter unavailable for job {job_id}, deferring: {e}")
        wait_s = settings.render_retry_backoff_s
    if wait_s > 0:
        raise self.retry(countdown=wait_s, args=[job_id], kwargs={"attempt": attempt})

    outcome = execute_render_job(
        job_id,
        attempt=attempt,
        store=get_job_store(),
        storage=get_storage_service(),
        pipeline=get_pipeline(),
        settings=settings,
    )
    if outcome.retry:
        raise self.retry(countdown=outcome.retry_delay, args=[job_id], kwargs={"attempt": attempt + 1})
    return outcome.to_dict()


@celery_app.task(name="captionburn.prune_render_jobs")
def prune_render_jobs() -> dict:
    """Periodic retention sweep (see beat_schedule)."""
    expired = prune_expired_jobs(get_job_store(), get_storage_service(), settings)
    return {"pruned": len(expired)}
