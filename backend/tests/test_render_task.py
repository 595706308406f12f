"""Tests for render job execution, retries and retention."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import redis
from celery.exceptions import Retry
from sqlalchemy import update

from captionburn.exceptions import GraphInputMismatchError
from captionburn.models.render_job import RenderJob
from captionburn.render.pipeline import SubtitleRenderPipeline
from captionburn.services.render_queue import RenderQueue
from captionburn.tasks import render_task
from captionburn.tasks.render_task import (
    JobOutcome,
    execute_render_job,
    prune_expired_jobs,
    retry_delay,
)

FIVE_CUES = [
    {"id": f"c{i}", "text": f"line {i}", "start": float(i), "end": i + 0.9}
    for i in range(5)
]


@pytest.fixture
def queue(job_store, storage, settings):
    return RenderQueue(store=job_store, storage=storage, dispatch=MagicMock(), settings=settings)


def _pipeline(encoder, prober, fonts, settings, batch_size=200):
    return SubtitleRenderPipeline(
        encoder=encoder,
        prober=prober,
        fonts=fonts,
        settings=settings.model_copy(update={"render_batch_size": batch_size}),
    )


def _run(job_id, attempt, job_store, storage, pipeline, settings):
    return execute_render_job(
        job_id,
        attempt=attempt,
        store=job_store,
        storage=storage,
        pipeline=pipeline,
        settings=settings,
    )


class TestRetryDelay:
    """Tests for the backoff schedule."""

    def test_exponential(self):
        assert [retry_delay(a, 1.0) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]


class TestExecuteRenderJob:
    """Tests for execute_render_job."""

    def test_success(self, queue, job_store, storage, fake_encoder, fake_prober, fonts, settings, scratch_dir):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        pipeline = _pipeline(fake_encoder, fake_prober, fonts, settings)

        outcome = _run(job_id, 1, job_store, storage, pipeline, settings)

        assert outcome.status == "completed"
        assert outcome.retry is False
        status = queue.get_status(job_id)
        assert status.status == "completed"
        assert status.progress == 100
        assert status.result == b"video|batch"
        assert status.attempts == 1
        assert list(scratch_dir.iterdir()) == []

    def test_batch_failure_exhausts_retries(
        self, queue, job_store, storage, make_encoder, fake_prober, fonts, settings, scratch_dir
    ):
        """Batch 2 of 3 fails on every attempt: two retries, then failed with no result."""
        job_id = queue.submit(b"video", FIVE_CUES, {})
        encoder = make_encoder(fail_calls={2, 4, 6})
        pipeline = _pipeline(encoder, fake_prober, fonts, settings, batch_size=2)

        first = _run(job_id, 1, job_store, storage, pipeline, settings)
        assert first.retry is True
        assert first.retry_delay == 1.0
        assert queue.get_status(job_id).status == "waiting"
        assert queue.get_status(job_id).progress == 0

        second = _run(job_id, 2, job_store, storage, pipeline, settings)
        assert second.retry is True
        assert second.retry_delay == 2.0

        third = _run(job_id, 3, job_store, storage, pipeline, settings)
        assert third.retry is False
        assert third.status == "failed"

        status = queue.get_status(job_id)
        assert status.status == "failed"
        assert status.result is None
        assert "Batch 2/3 failed" in status.failure_reason
        assert status.attempts == 3
        assert len(encoder.calls) == 6
        assert not (storage.base_path / f"jobs/{job_id}/output.mp4").exists()
        assert list(scratch_dir.iterdir()) == []

    def test_retry_then_success(self, queue, job_store, storage, make_encoder, fake_prober, fonts, settings):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        pipeline = _pipeline(make_encoder(fail_calls={1}), fake_prober, fonts, settings)

        assert _run(job_id, 1, job_store, storage, pipeline, settings).retry is True
        assert _run(job_id, 2, job_store, storage, pipeline, settings).status == "completed"
        assert queue.get_result(job_id) == b"video|batch"

    def test_unexpected_error_is_not_retried(self, queue, job_store, storage, settings):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        pipeline = MagicMock()
        pipeline.render.side_effect = OSError("No space left on device")

        outcome = _run(job_id, 1, job_store, storage, pipeline, settings)

        assert outcome.status == "failed"
        assert outcome.retry is False
        assert "No space left on device" in queue.get_status(job_id).failure_reason

    def test_non_retryable_error_fails_immediately(self, queue, job_store, storage, settings):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        pipeline = MagicMock()
        pipeline.render.side_effect = GraphInputMismatchError(2, 1)

        outcome = _run(job_id, 1, job_store, storage, pipeline, settings)

        assert outcome.status == "failed"
        assert "cues=2, images=1" in queue.get_status(job_id).failure_reason

    def test_progress_is_recorded(self, queue, job_store, storage, settings):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        seen = []

        def render(job_id_, video_bytes, cues, style, progress=None):
            progress(40.0)
            seen.append(job_store.get(job_id_).progress)
            progress(40.2)
            seen.append(job_store.get(job_id_).progress)
            return b"out"

        pipeline = MagicMock()
        pipeline.render.side_effect = render

        _run(job_id, 1, job_store, storage, pipeline, settings)

        # Small steps are throttled
        assert seen == [40.0, 40.0]
        assert queue.get_status(job_id).progress == 100

    def test_terminal_job_is_skipped(self, queue, job_store, storage, settings):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        job_store.mark_failed(job_id, "cancelled")
        pipeline = MagicMock()

        outcome = _run(job_id, 1, job_store, storage, pipeline, settings)

        assert outcome.status == "failed"
        pipeline.render.assert_not_called()

    def test_missing_job(self, job_store, storage, settings):
        pipeline = MagicMock()
        outcome = _run("missing", 1, job_store, storage, pipeline, settings)

        assert outcome.status == "missing"
        pipeline.render.assert_not_called()


class TestPruneExpiredJobs:
    """Tests for retention."""

    def _complete(self, job_id, job_store, storage):
        job_store.mark_active(job_id, attempt=1)
        storage.write_bytes(f"jobs/{job_id}/output.mp4", b"out")
        job_store.mark_completed(job_id, f"jobs/{job_id}/output.mp4", 3)

    def _age(self, job_id, session_factory, hours):
        finished = datetime.now(timezone.utc) - timedelta(hours=hours)
        with session_factory() as db:
            db.execute(update(RenderJob).where(RenderJob.id == job_id).values(finished_at=finished))
            db.commit()

    def test_removes_expired_rows_and_files(self, queue, job_store, storage, settings, session_factory):
        old_id = queue.submit(b"video", FIVE_CUES, {})
        fresh_id = queue.submit(b"video", FIVE_CUES, {})
        self._complete(old_id, job_store, storage)
        self._complete(fresh_id, job_store, storage)
        self._age(old_id, session_factory, hours=25)

        pruned = prune_expired_jobs(job_store, storage, settings)

        assert pruned == [old_id]
        assert job_store.find(old_id) is None
        assert not (storage.base_path / f"jobs/{old_id}").exists()
        assert job_store.find(fresh_id) is not None
        assert (storage.base_path / f"jobs/{fresh_id}/output.mp4").exists()

    def test_failed_jobs_kept_for_a_week(self, queue, job_store, storage, settings, session_factory):
        job_id = queue.submit(b"video", FIVE_CUES, {})
        job_store.mark_failed(job_id, "broken")

        self._age(job_id, session_factory, hours=25)
        assert prune_expired_jobs(job_store, storage, settings) == []

        self._age(job_id, session_factory, hours=24 * 7 + 1)
        assert prune_expired_jobs(job_store, storage, settings) == [job_id]
        assert not (storage.base_path / f"jobs/{job_id}/input.mp4").exists()


class TestRenderVideoTask:
    """Tests for the Celery task wrapper."""

    @pytest.fixture(autouse=True)
    def limiter(self):
        limiter = MagicMock()
        limiter.acquire.return_value = 0.0
        with patch.object(render_task, "get_job_store"), patch.object(
            render_task, "get_storage_service"
        ), patch.object(render_task, "get_pipeline"), patch.object(
            render_task, "get_start_limiter", return_value=limiter
        ):
            yield limiter

    def test_returns_outcome(self):
        outcome = JobOutcome(job_id="job-1", status="completed", attempt=1, output_size=10)
        with patch.object(render_task, "execute_render_job", return_value=outcome) as execute:
            result = render_task.render_video_task.run("job-1")

        assert result["status"] == "completed"
        assert execute.call_args.kwargs["attempt"] == 1

    def test_requests_retry_with_backoff(self):
        outcome = JobOutcome(job_id="job-1", status="waiting", attempt=1, retry=True, retry_delay=1.0)
        with patch.object(render_task, "execute_render_job", return_value=outcome), patch.object(
            render_task.render_video_task, "retry", return_value=Retry()
        ) as retry:
            with pytest.raises(Retry):
                render_task.render_video_task.run("job-1")

        retry.assert_called_once_with(countdown=1.0, args=["job-1"], kwargs={"attempt": 2})

    def test_attempt_is_passed_through(self):
        outcome = JobOutcome(job_id="job-1", status="completed", attempt=3)
        with patch.object(render_task, "execute_render_job", return_value=outcome) as execute:
            render_task.render_video_task.run("job-1", attempt=3)

        assert execute.call_args.kwargs["attempt"] == 3

    def test_over_limit_start_is_deferred(self, limiter):
        """A throttled start is re-queued without using up a render attempt."""
        limiter.acquire.return_value = 0.25
        with patch.object(render_task, "execute_render_job") as execute, patch.object(
            render_task.render_video_task, "retry", return_value=Retry()
        ) as retry:
            with pytest.raises(Retry):
                render_task.render_video_task.run("job-1", attempt=2)

        execute.assert_not_called()
        retry.assert_called_once_with(countdown=0.25, args=["job-1"], kwargs={"attempt": 2})

    def test_limiter_outage_defers_start(self, limiter):
        limiter.acquire.side_effect = redis.ConnectionError("redis down")
        with patch.object(render_task, "execute_render_job") as execute, patch.object(
            render_task.render_video_task, "retry", return_value=Retry()
        ) as retry:
            with pytest.raises(Retry):
                render_task.render_video_task.run("job-1")

        execute.assert_not_called()
        assert retry.call_args.kwargs["kwargs"] == {"attempt": 1}
