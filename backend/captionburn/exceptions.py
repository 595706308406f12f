"""Custom exceptions for the captionburn backend.

Every error carries a machine-readable code, the HTTP status it maps to and
whether the render queue may retry the job attempt that raised it.
"""

from typing import Any


class CaptionBurnError(Exception):
    """Base exception for all captionburn application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and job failure records."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# Validation Errors (fatal, never retried)
# =============================================================================


class InvalidExportRequestError(CaptionBurnError):
    """Export payload violates the cue/style invariants."""

    code = "VALIDATION_ERROR"
    status_code = 422
    message = "Invalid export request"


class GraphInputMismatchError(CaptionBurnError):
    """Overlay graph was asked to combine unequal cue and image lists."""

    code = "GRAPH_INPUT_MISMATCH"
    message = "Number of cues and images must match"

    def __init__(self, cue_count: int, image_count: int):
        super().__init__(
            f"Number of cues and images must match (cues={cue_count}, images={image_count})"
        )
        self.cue_count = cue_count
        self.image_count = image_count


# =============================================================================
# External Tool Errors (retryable)
# =============================================================================


class MediaProbeError(CaptionBurnError):
    """ffprobe failed or found no usable video stream."""

    code = "PROBE_FAILED"
    message = "Failed to probe video"
    retryable = True


class EncoderError(CaptionBurnError):
    """ffmpeg exited with a non-zero status."""

    code = "ENCODER_FAILED"
    message = "Video encoder failed"
    retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        returncode: int | None = None,
        stderr_tail: str = "",
        retryable: bool | None = None,
    ):
        if message is None and returncode is not None:
            message = f"ffmpeg exited with code {returncode}"
        if stderr_tail:
            message = f"{message or self.message}: {stderr_tail}"
        super().__init__(message, retryable=retryable)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


# =============================================================================
# Queue Errors
# =============================================================================


class JobNotFoundError(CaptionBurnError):
    """Render job not found."""

    code = "JOB_NOT_FOUND"
    status_code = 404
    message = "Render job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Render job not found: {job_id}" if job_id else self.message
        super().__init__(message)


class JobNotCompletedError(CaptionBurnError):
    """Result requested for a job that has not completed."""

    code = "JOB_NOT_COMPLETED"
    status_code = 409
    message = "Render job has not completed"

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Render job {job_id} is {status}, no result available")


class QueueUnavailableError(CaptionBurnError):
    """The job could not be handed to the task broker."""

    code = "QUEUE_UNAVAILABLE"
    status_code = 503
    message = "Render queue is unavailable"
    retryable = True
