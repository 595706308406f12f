"""Split cue overlays into bounded ffmpeg batches and chain their outputs.

A single filter graph with thousands of overlays exhausts ffmpeg (argv length,
open inputs, graph size). Batches of ``batch_size`` images are burned one after
another, each batch reading the previous batch's output video.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from captionburn.exceptions import EncoderError
from captionburn.render.artifacts import TempArena
from captionburn.render.cues import Style
from captionburn.render.encoder import FFmpegEncoder
from captionburn.render.filter_graph import build_overlay_graph
from captionburn.render.rasterizer import RasterArtifact

logger = logging.getLogger(__name__)

ProgressSink = Callable[[float], None]


@dataclass(frozen=True)
class Batch:
    """A contiguous slice of cue images burned by one ffmpeg run."""

    index: int
    total: int
    artifacts: tuple[RasterArtifact, ...]
    offset: float
    weight: float


def plan_batches(artifacts: Sequence[RasterArtifact], batch_size: int) -> list[Batch]:
    """Partition ``artifacts`` into ``ceil(len / batch_size)`` weighted batches."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if not artifacts:
        return []

    total = math.ceil(len(artifacts) / batch_size)
    weight = 100 / total
    return [
        Batch(
            index=index,
            total=total,
            artifacts=tuple(artifacts[index * batch_size:(index + 1) * batch_size]),
            offset=index * weight,
            weight=weight,
        )
        for index in range(total)
    ]


class ProgressTracker:
    """Forwards progress to a sink, never decreasing and never above 100."""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink
        self.value = 0.0

    def report(self, value: float) -> None:
        value = min(100.0, value)
        if value <= self.value:
            return
        self.value = value
        if self.sink:
            self.sink(value)

    def finish(self) -> None:
        if self.value < 100.0:
            self.value = 100.0
            if self.sink:
                self.sink(100.0)


class BatchScheduler:
    """Runs overlay batches sequentially inside one job's arena."""

    def __init__(self, encoder: FFmpegEncoder, arena: TempArena, batch_size: int = 200):
        self.encoder = encoder
        self.arena = arena
        self.batch_size = batch_size

    def run(
        self,
        base_video: Path,
        artifacts: Sequence[RasterArtifact],
        style: Style,
        frame_size: tuple[int, int],
        duration_s: float,
        progress: Optional[ProgressSink] = None,
    ) -> Path:
        """Burn every artifact into ``base_video`` and return the final video.

        ``base_video`` is never deleted here. Each intermediate output is
        released as soon as the next batch has consumed it; on failure all
        intermediates are released before the error propagates.

        Returns:
            Path of the final video (``base_video`` itself when there is nothing to burn)
        """
        tracker = ProgressTracker(progress)
        batches = plan_batches(artifacts, self.batch_size)
        if not batches:
            logger.info("[BATCH] No cues to burn, keeping the source video")
            tracker.finish()
            return base_video

        frame_width, frame_height = frame_size
        current_video = base_video
        for batch in batches:
            output_path = self.arena.create(".mp4", name=f"batch{batch.index:03d}")
            logger.info(
                f"[BATCH] Processing batch {batch.index + 1}/{batch.total} "
                f"({len(batch.artifacts)} overlays)"
            )
            try:
                graph = build_overlay_graph(
                    [a.sub_cue for a in batch.artifacts],
                    batch.artifacts,
                    style,
                    frame_width,
                    frame_height,
                )
                for fraction in self.encoder.overlay(
                    current_video,
                    [a.path for a in batch.artifacts],
                    graph,
                    output_path,
                    duration_s,
                ):
                    tracker.report(batch.offset + fraction * batch.weight)
            except EncoderError as e:
                self._release_intermediates(base_video, current_video, output_path)
                raise EncoderError(
                    f"Batch {batch.index + 1}/{batch.total} failed: {e.message}",
                    returncode=e.returncode,
                    retryable=e.retryable,
                ) from e
            except BaseException:
                self._release_intermediates(base_video, current_video, output_path)
                raise

            if current_video != base_video:
                self.arena.release(current_video)
            current_video = output_path
            tracker.report(batch.offset + batch.weight)

        tracker.finish()
        return current_video

    def _release_intermediates(self, base_video: Path, *paths: Path) -> None:
        for path in paths:
            if path != base_video:
                self.arena.release(path)
