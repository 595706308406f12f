"""Text measurement, word wrapping and box sizing for subtitle images.

Sizes are authored against a fixed preview height in the editor. Scaling by
``frame_height / REFERENCE_HEIGHT`` keeps the exported text visually identical
to the preview at any output resolution; the extra shrink factor keeps the
rendered PNGs (and the animation frames built from them) small.
"""

import math
import re
from dataclasses import dataclass

from captionburn.render.cues import Style
from captionburn.render.fonts import FontRegistry

REFERENCE_HEIGHT = 500
ANIMATION_SHRINK_FACTOR = 1.5
BASE_PADDING = 24
LINE_HEIGHT_RATIO = 1.5
MAX_TEXT_WIDTH_RATIO = 0.8

# Real newlines plus the literal "\N" (ASS) and "\n" escapes the editor emits
_LINE_BREAK_RE = re.compile(r"\\N|\\n|\n")


@dataclass(frozen=True)
class LayoutMetrics:
    """Wrapped lines and box geometry for one text under one style."""

    lines: tuple[str, ...]
    line_widths: tuple[float, ...]
    line_height: float
    text_width: float
    text_height: float
    box_width: int
    box_height: int
    font_size: int
    padding: float
    corner_radius: float
    scale_factor: float


def scale_factor_for(frame_height: int) -> float:
    return (frame_height / REFERENCE_HEIGHT) / ANIMATION_SHRINK_FACTOR


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_up_even(value: float) -> int:
    """Round up to the next even integer (yuv420p needs even dimensions)."""
    rounded = math.ceil(value)
    return rounded + 1 if rounded % 2 else rounded


def wrap_text(text: str, measure, max_width: float) -> list[str]:
    """Greedy word wrap; a single overlong word keeps a line of its own."""
    lines: list[str] = []
    for segment in _LINE_BREAK_RE.split(text):
        current = ""
        for word in segment.split(" "):
            candidate = f"{current} {word}" if current else word
            if current and measure(candidate) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current:
            lines.append(current)
    return lines


def compute_layout(
    text: str,
    style: Style,
    frame_width: int,
    frame_height: int,
    fonts: FontRegistry,
) -> LayoutMetrics:
    """Compute the wrapped lines and padded box for ``text``.

    Args:
        text: Cue or sub-cue text
        style: Export style (font family/size, border radius)
        frame_width: Output video width in pixels
        frame_height: Output video height in pixels
        fonts: Registry used to measure text

    Returns:
        LayoutMetrics; identical inputs always give equal metrics
    """
    scale = scale_factor_for(frame_height)
    font_size = max(1, round_half_up(style.font_size * scale))
    font = fonts.get_font(style.font_family, font_size)

    line_height = font_size * LINE_HEIGHT_RATIO
    max_text_width = frame_width * MAX_TEXT_WIDTH_RATIO

    lines = wrap_text(text, font.getlength, max_text_width)
    line_widths = tuple(min(float(font.getlength(line)), max_text_width) for line in lines)

    text_width = max(line_widths, default=0.0)
    text_height = len(lines) * line_height
    padding = BASE_PADDING * scale

    return LayoutMetrics(
        lines=tuple(lines),
        line_widths=line_widths,
        line_height=line_height,
        text_width=text_width,
        text_height=text_height,
        box_width=round_up_even(text_width + 2 * padding),
        box_height=round_up_even(text_height + 2 * padding),
        font_size=font_size,
        padding=padding,
        corner_radius=style.border_radius * scale,
        scale_factor=scale,
    )
