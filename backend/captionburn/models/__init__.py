from captionburn.models.base import Base
from captionburn.models.render_job import JobState, RenderJob

__all__ = [
    "Base",
    "JobState",
    "RenderJob",
]
