"""Build the ffmpeg filter_complex that overlays cue images onto a video."""

import logging
from dataclasses import dataclass
from typing import Sequence

from captionburn.exceptions import GraphInputMismatchError
from captionburn.render.cues import Style, SubCue, SubtitlePosition
from captionburn.render.layout import REFERENCE_HEIGHT, round_half_up
from captionburn.render.rasterizer import RasterArtifact

logger = logging.getLogger(__name__)

# Distance of top/bottom aligned boxes from the frame edge, in pixels
VERTICAL_MARGIN = 50

BASE_VIDEO_LABEL = "0:v"


@dataclass(frozen=True)
class OverlayGraph:
    """A chained overlay filter graph for one batch."""

    stages: tuple[str, ...]
    output_label: str
    input_count: int

    @property
    def expression(self) -> str:
        return ";".join(self.stages)

    @property
    def map_target(self) -> str:
        """Value for ``-map``: a filter label in brackets, or the raw input stream."""
        if self.stages:
            return f"[{self.output_label}]"
        return self.output_label


def overlay_position(
    style: Style,
    image_width: int,
    image_height: int,
    frame_width: int,
    frame_height: int,
) -> tuple[int, int]:
    """Top-left pixel position of a cue image inside the frame."""
    if (
        style.position == SubtitlePosition.CUSTOM
        and style.custom_x is not None
        and style.custom_y is not None
    ):
        # Drag positions are stored in preview pixels
        scale = frame_height / REFERENCE_HEIGHT
        return round_half_up(style.custom_x * scale), round_half_up(style.custom_y * scale)

    x = (frame_width - image_width) // 2
    if style.position == SubtitlePosition.TOP:
        y = VERTICAL_MARGIN
    elif style.position == SubtitlePosition.MIDDLE:
        y = (frame_height - image_height) // 2
    else:
        y = frame_height - image_height - VERTICAL_MARGIN
    return x, y


def enable_expr(start: float, end: float) -> str:
    """Half-open visibility window ``[start, end)``."""
    return f"gte(t,{start:.6f})*lt(t,{end:.6f})"


def build_overlay_graph(
    sub_cues: Sequence[SubCue],
    images: Sequence[RasterArtifact],
    style: Style,
    frame_width: int,
    frame_height: int,
) -> OverlayGraph:
    """Chain one overlay per sub-cue onto the base video (input 0).

    Image ``i`` is expected as ffmpeg input ``i + 1``. Each stage consumes the
    previous stage's output so later cues are drawn above earlier ones.

    Raises:
        GraphInputMismatchError: If the cue and image lists differ in length
    """
    if len(sub_cues) != len(images):
        raise GraphInputMismatchError(len(sub_cues), len(images))

    stages: list[str] = []
    prev_label = BASE_VIDEO_LABEL
    for index, (sub_cue, image) in enumerate(zip(sub_cues, images)):
        x, y = overlay_position(style, image.width, image.height, frame_width, frame_height)
        next_label = f"v{index + 1}"
        stages.append(
            f"[{prev_label}][{index + 1}:v]overlay=x={x}:y={y}:"
            f"enable='{enable_expr(sub_cue.start, sub_cue.end)}'"
            f"[{next_label}]"
        )
        prev_label = next_label

    logger.debug(f"[GRAPH] Built {len(stages)} overlay stages, output={prev_label}")
    return OverlayGraph(
        stages=tuple(stages),
        output_label=prev_label,
        input_count=len(images) + 1,
    )
