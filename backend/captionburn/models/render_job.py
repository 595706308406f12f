from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from captionburn.models.base import Base, TimestampMixin


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (JobState.COMPLETED.value, JobState.FAILED.value)


class RenderJob(Base, TimestampMixin):
    __tablename__ = "render_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Status: waiting, active, completed, failed
    status: Mapped[str] = mapped_column(String(20), default=JobState.WAITING.value, index=True)
    progress: Mapped[float] = mapped_column(Float, default=0.0)
    current_stage: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Input
    cues_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    style_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    input_key: Mapped[str] = mapped_column(Text, nullable=False)

    # Output
    output_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Attempts
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Celery task tracking
    celery_task_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Failure reason
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def __repr__(self) -> str:
        return f"<RenderJob {self.id} ({self.status})>"
