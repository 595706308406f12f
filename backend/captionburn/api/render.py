"""Export API endpoints - thin adapter over the render queue."""

import logging

from fastapi import APIRouter, Request, Response, status

from captionburn.api.deps import Queue
from captionburn.models.render_job import JobState
from captionburn.schemas.render import ExportCreatedResponse, ExportRequest, ExportStatusResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/exports",
    response_model=ExportCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def create_export(export_request: ExportRequest, queue: Queue) -> ExportCreatedResponse:
    """
    Submit a subtitle burn-in export.

    Returns as soon as the job is queued; poll the status endpoint for progress.
    """
    job_id = queue.submit(
        export_request.video_bytes(),
        export_request.cues,
        export_request.style,
    )
    return ExportCreatedResponse(job_id=job_id)


@router.get("/exports/{job_id}", response_model=ExportStatusResponse)
def get_export_status(job_id: str, queue: Queue, request: Request) -> ExportStatusResponse:
    """Get the status of an export job."""
    job = queue.get_status(job_id, include_result=False)
    result_url = None
    if job.status == JobState.COMPLETED.value:
        result_url = str(request.url_for("download_export", job_id=job_id))
    return ExportStatusResponse(
        job_id=job.job_id,
        status=job.status,
        progress=job.progress,
        current_stage=job.current_stage,
        failure_reason=job.failure_reason,
        result_url=result_url,
        output_size=job.output_size,
        attempts=job.attempts,
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        updated_at=job.updated_at,
    )


@router.get("/exports/{job_id}/result", name="download_export")
def download_export(job_id: str, queue: Queue) -> Response:
    """Download the rendered video of a completed export."""
    data = queue.get_result(job_id)
    return Response(
        content=data,
        media_type="video/mp4",
        headers={"Content-Disposition": f'attachment; filename="export_{job_id}.mp4"'},
    )
