"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass
from typing import Optional

from captionburn.config import get_settings
from captionburn.exceptions import MediaProbeError


@dataclass(frozen=True)
class VideoInfo:
    """What the render pipeline needs to know about its source video."""

    width: int
    height: int
    duration_s: float
    has_audio: bool = False
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None


def _run_ffprobe(file_path: str, *args, ffprobe_path: Optional[str] = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    cmd = [
        ffprobe_path or get_settings().ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise MediaProbeError(f"ffprobe could not be started: {e}")
    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed: {result.stderr.strip()}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}")


def probe_video(file_path: str, ffprobe_path: Optional[str] = None) -> VideoInfo:
    """
    Probe dimensions, duration and stream codecs in a single ffprobe call.

    Args:
        file_path: Path to video file
        ffprobe_path: Override for the configured ffprobe binary

    Returns:
        VideoInfo of the first video stream

    Raises:
        MediaProbeError: If ffprobe fails or the file has no usable video stream
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams", ffprobe_path=ffprobe_path)

    video_stream = None
    audio_stream = None
    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and video_stream is None:
            video_stream = stream
        elif codec_type == "audio" and audio_stream is None:
            audio_stream = stream

    if video_stream is None:
        raise MediaProbeError(f"No video stream found in: {file_path}")

    width = video_stream.get("width")
    height = video_stream.get("height")
    if not width or not height:
        raise MediaProbeError(f"Video dimensions not found in: {file_path}")

    duration = data.get("format", {}).get("duration") or video_stream.get("duration")
    try:
        duration_s = float(duration) if duration is not None else 0.0
    except ValueError:
        duration_s = 0.0

    return VideoInfo(
        width=int(width),
        height=int(height),
        duration_s=duration_s,
        has_audio=audio_stream is not None,
        video_codec=video_stream.get("codec_name"),
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
    )
