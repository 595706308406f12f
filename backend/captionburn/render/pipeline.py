"""
Subtitle burn-in pipeline for one render job.

This module orchestrates a single render:
1. Write the input video into a job-scoped scratch arena
2. Probe dimensions and duration
3. Expand animated cues into sub-cues and lay out their text
4. Rasterize every sub-cue in a thread pool
5. Burn the images in bounded ffmpeg batches
6. Read back the final video

Every temporary file lives in the arena and is gone when ``render`` returns or
raises.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Optional, Sequence

from captionburn.config import Settings, get_settings
from captionburn.render.artifacts import TempArena
from captionburn.render.batching import BatchScheduler, ProgressSink
from captionburn.render.cues import Cue, EffectType, Style, SubCue
from captionburn.render.effects import expand
from captionburn.render.encoder import FFmpegEncoder, get_encoder
from captionburn.render.fonts import FontRegistry
from captionburn.render.layout import LayoutMetrics, compute_layout
from captionburn.render.rasterizer import CueRasterizer, RasterArtifact
from captionburn.utils.media_info import VideoInfo, probe_video

logger = logging.getLogger(__name__)

Prober = Callable[[str], VideoInfo]


@dataclass(frozen=True)
class RasterPlan:
    """One sub-cue with the layout and canvas it will be drawn with."""

    sub_cue: SubCue
    layout: LayoutMetrics
    canvas_size: Optional[tuple[int, int]] = None


class SubtitleRenderPipeline:
    """Burns cues into a video and returns the encoded bytes."""

    def __init__(
        self,
        encoder: Optional[FFmpegEncoder] = None,
        prober: Optional[Prober] = None,
        fonts: Optional[FontRegistry] = None,
        settings: Optional[Settings] = None,
        arena_factory: Callable[..., TempArena] = TempArena,
    ):
        self.settings = settings or get_settings()
        self._encoder = encoder
        self.prober = prober or partial(probe_video, ffprobe_path=self.settings.ffprobe_path)
        self.fonts = fonts or FontRegistry.from_settings(self.settings)
        self.rasterizer = CueRasterizer(self.fonts)
        self.arena_factory = arena_factory

    @property
    def encoder(self) -> FFmpegEncoder:
        if self._encoder is None:
            self._encoder = get_encoder()
        return self._encoder

    def plan(
        self,
        cues: Sequence[Cue],
        style: Style,
        frame_width: int,
        frame_height: int,
    ) -> list[RasterPlan]:
        """Expand cues and compute the layout of every sub-cue, in cue order.

        Animated steps share one fixed canvas per cue, sized to fit both the
        fully revealed text and the step's own text, so the box does not jump
        around while words appear.
        """
        layout_for = partial(
            compute_layout,
            style=style,
            frame_width=frame_width,
            frame_height=frame_height,
            fonts=self.fonts,
        )
        effect_type = EffectType(style.effect_type)

        plans: list[RasterPlan] = []
        for cue in cues:
            sub_cues = expand(cue, effect_type)
            if effect_type == EffectType.NONE:
                plans.extend(RasterPlan(sub, layout_for(sub.text)) for sub in sub_cues)
                continue

            full_layout = layout_for(cue.text)
            for sub in sub_cues:
                layout = layout_for(sub.text)
                canvas = (
                    max(full_layout.box_width, layout.box_width),
                    max(full_layout.box_height, layout.box_height),
                )
                plans.append(RasterPlan(sub, layout, canvas))
        return plans

    def rasterize(self, plans: Sequence[RasterPlan], style: Style, arena: TempArena) -> list[RasterArtifact]:
        """Render every planned sub-cue; results keep the order of ``plans``."""
        if not plans:
            return []

        def _render(plan: RasterPlan) -> RasterArtifact:
            return self.rasterizer.rasterize(plan.sub_cue, style, plan.layout, arena, plan.canvas_size)

        workers = max(1, min(self.settings.raster_max_workers, len(plans)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="raster") as executor:
            return list(executor.map(_render, plans))

    def render(
        self,
        job_id: str,
        video_bytes: bytes,
        cues: Sequence[Cue],
        style: Style,
        progress: Optional[ProgressSink] = None,
    ) -> bytes:
        """
        Burn ``cues`` into ``video_bytes``.

        Args:
            job_id: Render job id, used to name the scratch directory
            video_bytes: Source video file contents
            cues: Timed cues in display order
            style: Style shared by all cues
            progress: Called with monotonically increasing values up to 100

        Returns:
            Encoded MP4 file contents

        Raises:
            MediaProbeError: If the source video cannot be probed
            EncoderError: If any ffmpeg batch fails
        """
        started = time.monotonic()
        with self.arena_factory(prefix=f"captionburn_{job_id}_", parent_dir=self.settings.temp_dir) as arena:
            input_path = arena.create(".mp4", name="input")
            input_path.write_bytes(video_bytes)

            info = self.prober(str(input_path))
            logger.info(
                f"[RENDER] Job {job_id}: {info.width}x{info.height}, "
                f"{info.duration_s:.2f}s, {len(cues)} cues, effect={EffectType(style.effect_type).value}"
            )

            plans = self.plan(cues, style, info.width, info.height)
            artifacts = self.rasterize(plans, style, arena)
            logger.info(f"[RENDER] Job {job_id}: rasterized {len(artifacts)} cue images")

            scheduler = BatchScheduler(self.encoder, arena, self.settings.render_batch_size)
            final_path: Path = scheduler.run(
                input_path,
                artifacts,
                style,
                (info.width, info.height),
                info.duration_s,
                progress,
            )
            result = final_path.read_bytes()

        logger.info(
            f"[RENDER] Job {job_id}: done in {time.monotonic() - started:.1f}s "
            f"({len(result)} bytes)"
        )
        return result
