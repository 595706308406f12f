"""
Pytest fixtures for captionburn backend tests.

Most tests run against fakes for ffmpeg/ffprobe, an in-memory SQLite database
and storage under tmp_path.

CI/CD Note:
Tests that need real ffmpeg/ffprobe binaries are marked with
@pytest.mark.requires_ffmpeg and skipped when the binaries are not on PATH.
"""

import shutil
from pathlib import Path
from types import SimpleNamespace
from typing import Iterable, Optional

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from captionburn.config import Settings
from captionburn.exceptions import EncoderError, MediaProbeError
from captionburn.models.database import init_db
from captionburn.render.cues import Cue, Style, WordTiming
from captionburn.render.fonts import FontRegistry
from captionburn.services.job_store import JobStore
from captionburn.services.storage_service import LocalStorageService
from captionburn.utils.media_info import VideoInfo


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg and ffprobe on PATH",
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip tests that run the real encoder when ffmpeg is missing."""
    if _ffmpeg_available():
        return
    skip_ffmpeg = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip_ffmpeg)


# =============================================================================
# Fakes
# =============================================================================


class FakeEncoder:
    """Stands in for FFmpegEncoder.

    Each call copies the input video to the output with a ``|batch`` marker
    appended and yields the configured progress fractions. Calls listed in
    ``fail_calls`` (1-based, counted across runs) write a partial output and
    raise EncoderError.
    """

    def __init__(self, fail_calls: Iterable[int] = (), steps: Iterable[float] = (0.25, 0.5, 1.0)):
        self.fail_calls = set(fail_calls)
        self.steps = tuple(steps)
        self.calls: list[SimpleNamespace] = []

    def overlay(self, input_video, image_paths, graph, output_path, duration_s):
        image_sizes = [Image.open(p).size for p in image_paths if Path(p).exists()]
        # Earlier batch outputs still on disk, plus the one this call writes
        live_outputs = sum(c.output_path.exists() for c in self.calls) + 1
        self.calls.append(
            SimpleNamespace(
                input_video=Path(input_video),
                live_outputs=live_outputs,
                image_paths=list(image_paths),
                image_sizes=image_sizes,
                graph=graph,
                output_path=Path(output_path),
                duration_s=duration_s,
            )
        )
        data = Path(input_video).read_bytes()
        if len(self.calls) in self.fail_calls:
            Path(output_path).write_bytes(b"partial")
            raise EncoderError(returncode=1, stderr_tail="simulated ffmpeg failure")
        for fraction in self.steps:
            yield fraction
        Path(output_path).write_bytes(data + b"|batch")


class FakeProber:
    """Stands in for probe_video."""

    def __init__(self, info: Optional[VideoInfo] = None, error: Optional[Exception] = None):
        self.info = info or VideoInfo(width=1280, height=720, duration_s=10.0, has_audio=True)
        self.error = error
        self.paths: list[str] = []

    def __call__(self, path: str) -> VideoInfo:
        self.paths.append(path)
        if self.error is not None:
            raise self.error
        return self.info


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    """Parent of every job arena created in a test."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, scratch_dir: Path) -> Settings:
    return Settings(
        local_storage_path=str(tmp_path / "storage"),
        temp_dir=str(scratch_dir),
        font_dirs=[],
        font_map={},
        default_font_path=None,
        render_batch_size=200,
        raster_max_workers=4,
        render_max_attempts=3,
        render_retry_backoff_s=1.0,
    )


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    """Session factory over a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(engine, class_=Session, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def storage(settings: Settings) -> LocalStorageService:
    return LocalStorageService(settings.local_storage_path)


@pytest.fixture
def fonts() -> FontRegistry:
    """Registry that always falls back to Pillow's built-in font (deterministic)."""
    return FontRegistry(font_dirs=[], default_font_path=None)


@pytest.fixture
def style() -> Style:
    return Style()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def make_encoder():
    """Factory for encoders that fail on chosen calls."""
    return FakeEncoder


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def failing_prober() -> FakeProber:
    return FakeProber(error=MediaProbeError("ffprobe failed: moov atom not found"))


@pytest.fixture
def word_cues() -> list[Cue]:
    """Two cues of three timed words each."""
    return [
        Cue(
            id="c1",
            text="hello brave world",
            start=0.0,
            end=3.0,
            words=(
                WordTiming("hello", 0.0, 1.0),
                WordTiming("brave", 1.0, 2.0),
                WordTiming("world", 2.0, 3.0),
            ),
        ),
        Cue(
            id="c2",
            text="see you soon",
            start=4.0,
            end=7.0,
            words=(
                WordTiming("see", 4.0, 5.0),
                WordTiming("you", 5.0, 6.0),
                WordTiming("soon", 6.0, 7.0),
            ),
        ),
    ]
