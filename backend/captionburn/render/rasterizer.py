"""Render a cue's background box and wrapped text into a transparent PNG."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageColor, ImageDraw

from captionburn.render.artifacts import TempArena
from captionburn.render.cues import Style, SubCue
from captionburn.render.fonts import FontRegistry
from captionburn.render.layout import LayoutMetrics

logger = logging.getLogger(__name__)

TRANSPARENT = "transparent"


@dataclass(frozen=True)
class RasterArtifact:
    """A rendered cue image on disk."""

    path: Path
    sub_cue: SubCue
    layout: LayoutMetrics
    width: int
    height: int


def parse_color(color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Parse a CSS-like colour; an embedded alpha (#RRGGBBAA) is scaled by ``alpha``."""
    rgba = ImageColor.getrgb(color)
    if len(rgba) == 4:
        r, g, b, a = rgba
        return (r, g, b, round(a * alpha / 255))
    r, g, b = rgba
    return (r, g, b, alpha)


class CueRasterizer:
    """Draws cue images with fonts from a shared registry."""

    def __init__(self, fonts: FontRegistry):
        self.fonts = fonts

    def render_image(
        self,
        style: Style,
        layout: LayoutMetrics,
        canvas_size: Optional[tuple[int, int]] = None,
    ) -> Image.Image:
        """Render the box and text into an RGBA image.

        Args:
            style: Export style (colours, opacity, font family)
            layout: Metrics of the text being drawn
            canvas_size: Fixed canvas for animation frames; lines are centred in it

        Returns:
            RGBA image, transparent wherever nothing is drawn
        """
        width, height = canvas_size or (layout.box_width, layout.box_height)
        img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)

        bg_alpha = round(max(0.0, min(1.0, style.bg_opacity)) * 255)
        if style.bg_color.lower() != TRANSPARENT and bg_alpha > 0:
            fill = parse_color(style.bg_color, bg_alpha)
            radius = min(layout.corner_radius, width / 2, height / 2)
            draw.rounded_rectangle(
                [(0, 0), (width - 1, height - 1)],
                radius=radius,
                fill=fill,
            )

        font = self.fonts.get_font(style.font_family, layout.font_size)
        text_fill = parse_color(style.text_color)

        y = layout.padding
        for line, line_width in zip(layout.lines, layout.line_widths):
            if canvas_size is not None:
                x = (width - line_width) / 2
            else:
                x = layout.padding
            draw.text((x, y), line, font=font, fill=text_fill)
            y += layout.line_height

        return img

    def rasterize(
        self,
        sub_cue: SubCue,
        style: Style,
        layout: LayoutMetrics,
        arena: TempArena,
        canvas_size: Optional[tuple[int, int]] = None,
    ) -> RasterArtifact:
        """Render ``sub_cue`` and save it as a PNG issued by ``arena``."""
        img = self.render_image(style, layout, canvas_size)
        output_path = arena.create(".png", name="cue")
        img.save(output_path, "PNG")
        logger.debug(
            f"[TEXT] Rendered cue {sub_cue.id} -> {output_path.name} ({img.width}x{img.height})"
        )
        return RasterArtifact(
            path=output_path,
            sub_cue=sub_cue,
            layout=layout,
            width=img.width,
            height=img.height,
        )
