"""Submit-export and poll-status contract of the render queue."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Sequence, Union

from pydantic import ValidationError

from captionburn.config import Settings, get_settings
from captionburn.exceptions import (
    InvalidExportRequestError,
    JobNotCompletedError,
    QueueUnavailableError,
)
from captionburn.models.render_job import JobState, RenderJob
from captionburn.schemas.render import CueSchema, ExportPayload, StyleSchema
from captionburn.services.job_store import JobStore
from captionburn.services.storage_service import (
    LocalStorageService,
    get_storage_service,
    input_key,
    job_prefix,
)

logger = logging.getLogger(__name__)

Dispatch = Callable[[str], None]


def celery_dispatch(job_id: str) -> None:
    """Hand a job to the Celery worker pool; the task id is the job id."""
    from captionburn.tasks.render_task import render_video_task

    render_video_task.apply_async(args=[job_id], task_id=job_id)


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of a render job as seen by a polling client."""

    job_id: str
    status: str
    progress: float
    attempts: int
    max_attempts: int
    current_stage: Optional[str] = None
    result: Optional[bytes] = None
    failure_reason: Optional[str] = None
    output_size: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobState.COMPLETED.value, JobState.FAILED.value)


class RenderQueue:
    """Validates and enqueues export jobs and reports their status."""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        storage: Optional[LocalStorageService] = None,
        dispatch: Optional[Dispatch] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or JobStore()
        self.storage = storage or get_storage_service()
        self.dispatch = dispatch or celery_dispatch

    def submit(
        self,
        video_bytes: bytes,
        cues: Sequence[Union[CueSchema, dict[str, Any]]],
        style: Union[StyleSchema, dict[str, Any]],
    ) -> str:
        """
        Validate an export and enqueue it.

        Returns:
            The new job id; the job starts out ``waiting``

        Raises:
            InvalidExportRequestError: If the video is empty or cues/style are invalid
            QueueUnavailableError: If the job could not be handed to the broker
        """
        if not video_bytes:
            raise InvalidExportRequestError("Video data is empty")
        try:
            payload = ExportPayload.model_validate({"cues": list(cues), "style": style})
        except ValidationError as e:
            raise InvalidExportRequestError(_format_validation_error(e))

        job_id = str(uuid.uuid4())
        key = input_key(job_id)
        self.storage.write_bytes(key, video_bytes)
        try:
            self.store.create(
                job_id,
                cues_data=payload.cues_data(),
                style_data=payload.style_data(),
                input_key=key,
                max_attempts=self.settings.render_max_attempts,
            )
        except Exception:
            logger.error(f"[QUEUE] Failed to record job {job_id}, removing its input")
            self.storage.delete_prefix(job_prefix(job_id))
            raise

        try:
            self.dispatch(job_id)
        except Exception as e:
            logger.error(f"[QUEUE] Failed to dispatch job {job_id}: {e}")
            self.store.delete(job_id)
            self.storage.delete_prefix(job_prefix(job_id))
            raise QueueUnavailableError(f"Could not enqueue render job: {e}") from e

        logger.info(f"[QUEUE] Enqueued job {job_id} ({len(payload.cues)} cues, {len(video_bytes)} bytes)")
        return job_id

    def get_status(self, job_id: str, include_result: bool = True) -> JobStatus:
        """
        Current status of a job. Repeated calls have no side effects.

        Raises:
            JobNotFoundError: If no job has this id
        """
        job = self.store.get(job_id)
        result = None
        if include_result and job.status == JobState.COMPLETED.value and job.output_key:
            result = self.storage.read_bytes(job.output_key)
        return _to_status(job, result)

    def get_result(self, job_id: str) -> bytes:
        """
        Encoded video of a completed job.

        Raises:
            JobNotFoundError: If no job has this id
            JobNotCompletedError: If the job has not completed
        """
        job = self.store.get(job_id)
        if job.status != JobState.COMPLETED.value or not job.output_key:
            raise JobNotCompletedError(job_id, job.status)
        return self.storage.read_bytes(job.output_key)


def _to_status(job: RenderJob, result: Optional[bytes]) -> JobStatus:
    failed = job.status == JobState.FAILED.value
    return JobStatus(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        current_stage=job.current_stage,
        result=result,
        failure_reason=job.error_message if failed else None,
        output_size=job.output_size,
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        updated_at=job.updated_at,
    )


def _format_validation_error(e: ValidationError) -> str:
    messages = []
    for error in e.errors():
        loc = " -> ".join(str(x) for x in error.get("loc", []))
        msg = error.get("msg", "Validation error")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages) or "Invalid export request"
