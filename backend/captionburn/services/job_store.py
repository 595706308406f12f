"""Render job rows and their state transitions.

Every transition is a single UPDATE guarded by the current status, so a
stale worker (redelivered task, late progress callback) can never move a job
out of a terminal state or make its progress go backwards.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from captionburn.exceptions import JobNotFoundError
from captionburn.models.render_job import TERMINAL_STATES, JobState, RenderJob

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """Persistence of render jobs through an injected session factory."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        if session_factory is None:
            from captionburn.models.database import sync_session_maker

            session_factory = sync_session_maker
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create(
        self,
        job_id: str,
        cues_data: list[dict[str, Any]],
        style_data: dict[str, Any],
        input_key: str,
        max_attempts: int = 3,
    ) -> RenderJob:
        job = RenderJob(
            id=job_id,
            status=JobState.WAITING.value,
            progress=0.0,
            current_stage="Queued",
            cues_data=cues_data,
            style_data=style_data,
            input_key=input_key,
            attempts=0,
            max_attempts=max_attempts,
            celery_task_id=job_id,
        )
        with self._session() as db:
            db.add(job)
        logger.info(f"[QUEUE] Created render job {job_id} ({len(cues_data)} cues)")
        return job

    def find(self, job_id: str) -> Optional[RenderJob]:
        with self._session() as db:
            return db.execute(select(RenderJob).where(RenderJob.id == job_id)).scalar_one_or_none()

    def get(self, job_id: str) -> RenderJob:
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _transition(self, job_id: str, *conditions, **values) -> bool:
        values.setdefault("updated_at", _now())
        with self._session() as db:
            result = db.execute(
                update(RenderJob)
                .where(RenderJob.id == job_id, *conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def mark_active(self, job_id: str, attempt: int) -> bool:
        """waiting -> active for ``attempt`` (1-based). Also accepts a redelivered active job."""
        now = _now()
        changed = self._transition(
            job_id,
            RenderJob.status.in_([JobState.WAITING.value, JobState.ACTIVE.value]),
            status=JobState.ACTIVE.value,
            attempts=attempt,
            progress=0.0,
            current_stage="Rendering",
            started_at=now,
            updated_at=now,
        )
        if changed:
            logger.info(f"[QUEUE] Job {job_id} active (attempt {attempt})")
        return changed

    def update_progress(self, job_id: str, progress: float, stage: Optional[str] = None) -> bool:
        """Raise progress of an active job; lower or equal values are ignored."""
        progress = max(0.0, min(100.0, float(progress)))
        values: dict[str, Any] = {"progress": progress}
        if stage is not None:
            values["current_stage"] = stage
        return self._transition(
            job_id,
            RenderJob.status == JobState.ACTIVE.value,
            RenderJob.progress < progress,
            **values,
        )

    def mark_waiting(self, job_id: str, reason: str) -> bool:
        """active -> waiting ahead of a retry; progress restarts from zero."""
        changed = self._transition(
            job_id,
            RenderJob.status == JobState.ACTIVE.value,
            status=JobState.WAITING.value,
            progress=0.0,
            current_stage="Waiting for retry",
            error_message=reason,
        )
        if changed:
            logger.warning(f"[QUEUE] Job {job_id} back to waiting: {reason}")
        return changed

    def mark_completed(self, job_id: str, output_key: str, output_size: int) -> bool:
        """active -> completed; progress, output and finish time land in one commit."""
        now = _now()
        changed = self._transition(
            job_id,
            RenderJob.status == JobState.ACTIVE.value,
            status=JobState.COMPLETED.value,
            progress=100.0,
            current_stage="Complete",
            output_key=output_key,
            output_size=output_size,
            error_message=None,
            finished_at=now,
            updated_at=now,
        )
        if changed:
            logger.info(f"[QUEUE] Job {job_id} completed ({output_size} bytes)")
        return changed

    def mark_failed(self, job_id: str, reason: str) -> bool:
        """Any non-terminal state -> failed."""
        now = _now()
        changed = self._transition(
            job_id,
            RenderJob.status.not_in(TERMINAL_STATES),
            status=JobState.FAILED.value,
            current_stage="Failed",
            error_message=reason,
            finished_at=now,
            updated_at=now,
        )
        if changed:
            logger.error(f"[QUEUE] Job {job_id} failed: {reason}")
        return changed

    def expired_job_ids(
        self,
        now: Optional[datetime] = None,
        completed_ttl: timedelta = timedelta(hours=24),
        failed_ttl: timedelta = timedelta(days=7),
    ) -> list[str]:
        """Ids of finished jobs older than their retention period."""
        now = now or _now()
        stmt = select(RenderJob.id).where(
            or_(
                and_(
                    RenderJob.status == JobState.COMPLETED.value,
                    RenderJob.finished_at < now - completed_ttl,
                ),
                and_(
                    RenderJob.status == JobState.FAILED.value,
                    RenderJob.finished_at < now - failed_ttl,
                ),
            )
        )
        with self._session() as db:
            return list(db.execute(stmt).scalars().all())

    def delete(self, job_id: str) -> bool:
        with self._session() as db:
            result = db.execute(delete(RenderJob).where(RenderJob.id == job_id))
            return result.rowcount > 0
