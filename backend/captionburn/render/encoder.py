"""ffmpeg invocation for one overlay batch, with streamed progress."""

import logging
import shutil
import subprocess
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional, Sequence

from captionburn.config import Settings, get_settings
from captionburn.exceptions import EncoderError
from captionburn.render.filter_graph import OverlayGraph

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


def resolve_executable(path: str) -> str:
    """Resolve a configured binary name or path to an absolute executable path."""
    resolved = shutil.which(path)
    if resolved is None:
        raise EncoderError(f"Executable not found: {path}", retryable=False)
    return resolved


def parse_progress_line(line: str, duration_s: float) -> Optional[float]:
    """Turn one ``-progress`` key=value line into a completion fraction.

    Returns None for lines that carry no usable progress.
    """
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 1.0
    # out_time_ms is microseconds as well (historical ffmpeg naming)
    if key in ("out_time_us", "out_time_ms") and duration_s > 0:
        try:
            time_us = int(value)
        except ValueError:
            return None
        return max(0.0, min(1.0, time_us / 1_000_000 / duration_s))
    return None


class FFmpegEncoder:
    """Runs ffmpeg to burn one batch of cue images into a video."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        video_codec: str = "libx264",
        preset: str = "medium",
        crf: int = 23,
        threads: int = 0,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.video_codec = video_codec
        self.preset = preset
        self.crf = crf
        self.threads = threads

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FFmpegEncoder":
        settings = settings or get_settings()
        return cls(
            ffmpeg_path=resolve_executable(settings.ffmpeg_path),
            video_codec=settings.render_video_codec,
            preset=settings.render_preset,
            crf=settings.render_crf,
            threads=settings.render_threads,
        )

    def build_overlay_command(
        self,
        input_video: Path,
        image_paths: Sequence[Path],
        graph: OverlayGraph,
        output_path: Path,
    ) -> list[str]:
        """Build the ffmpeg argv for one batch without executing it."""
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-nostats", "-nostdin", "-i", str(input_video)]
        for image_path in image_paths:
            cmd.extend(["-i", str(image_path)])
        if graph.stages:
            cmd.extend(["-filter_complex", graph.expression])
        cmd.extend([
            "-map", graph.map_target,
            "-map", "0:a?",
            "-c:a", "copy",
            "-c:v", self.video_codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-threads", str(self.threads),
            "-filter_complex_threads", str(self.threads),
            "-progress", "pipe:1",
            str(output_path),
        ])
        return cmd

    def overlay(
        self,
        input_video: Path,
        image_paths: Sequence[Path],
        graph: OverlayGraph,
        output_path: Path,
        duration_s: float,
    ) -> Iterator[float]:
        """Run one batch, yielding completion fractions in [0, 1].

        The generator finishes when ffmpeg exits. Closing it early kills the
        process.

        Raises:
            EncoderError: If ffmpeg exits with a non-zero status
        """
        cmd = self.build_overlay_command(input_video, image_paths, graph, output_path)
        logger.info(
            f"[FFMPEG] Spawning overlay of {len(image_paths)} images: "
            f"{input_video.name} -> {output_path.name}"
        )
        logger.debug(f"[FFMPEG] filter_complex: {graph.expression}")

        with tempfile.TemporaryFile() as stderr_file:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                text=True,
            )
            try:
                for line in proc.stdout:
                    fraction = parse_progress_line(line, duration_s)
                    if fraction is not None:
                        yield fraction
                returncode = proc.wait()
            finally:
                if proc.poll() is None:
                    logger.warning(f"[FFMPEG] Killing unfinished ffmpeg process {proc.pid}")
                    proc.kill()
                    proc.wait()
                proc.stdout.close()

            if returncode != 0:
                stderr_file.seek(0)
                stderr_text = stderr_file.read().decode("utf-8", errors="replace")
                logger.error(f"[FFMPEG] Exited with code {returncode}: {stderr_text[-STDERR_TAIL_CHARS:]}")
                raise EncoderError(
                    returncode=returncode,
                    stderr_tail=stderr_text[-STDERR_TAIL_CHARS:].strip(),
                )


@lru_cache
def get_encoder() -> FFmpegEncoder:
    """Process-wide encoder, resolved once when the worker starts."""
    return FFmpegEncoder.from_settings()
