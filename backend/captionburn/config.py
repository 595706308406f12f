import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "captionburn"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Queue broker / result backend
    redis_url: str = "redis://localhost:6379/0"

    # Job records
    database_url: str = "sqlite:///./captionburn.db"
    database_echo: bool = False

    # Job input/output files
    local_storage_path: str = "/tmp/captionburn-storage"
    # Parent directory for per-job scratch directories (None = system temp dir)
    temp_dir: str | None = None

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:3000"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from a comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Encoding
    render_video_codec: str = "libx264"
    render_preset: str = "medium"
    render_crf: int = 23
    render_threads: int = 0

    # Overlays per ffmpeg invocation (bounds filter graph size and argv length)
    render_batch_size: int = 200
    # Threads used to rasterize cue images inside one job
    raster_max_workers: int = 4

    # Retry policy
    render_max_attempts: int = 3
    render_retry_backoff_s: float = 1.0

    # Worker pool
    worker_concurrency: int = 1
    # Job starts allowed per window across all workers (shared Redis counter)
    start_limit_max: int = 10
    start_limit_window_ms: int = 1000
    task_time_limit_s: int = 3600

    # Fonts
    font_dirs: list[str] = [
        "/usr/share/fonts/truetype",
        "/usr/share/fonts/opentype",
        "/usr/local/share/fonts",
        "/Library/Fonts",
        "/System/Library/Fonts/Supplemental",
    ]
    font_map: dict[str, str] = {}
    default_font_path: str | None = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"

    # Retention of finished jobs
    completed_job_ttl_hours: int = 24
    failed_job_ttl_hours: int = 7 * 24


@lru_cache
def get_settings() -> Settings:
    return Settings()
