"""Thread-safe font registry shared by layout and rasterization."""

import logging
import os
import threading
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from PIL import ImageFont

from captionburn.config import Settings, get_settings

logger = logging.getLogger(__name__)

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

FONT_EXTENSIONS = (".ttf", ".otf", ".ttc")


def primary_family(font_family: str) -> str:
    """Return the first family of a CSS font list without quotes."""
    first = font_family.split(",")[0].strip()
    return first.strip("'\"").strip() or "Arial"


def _normalize(name: str) -> str:
    return "".join(name.lower().split()).replace("-", "").replace("_", "")


class FontRegistry:
    """Lazily resolves font families to files and caches loaded fonts.

    Failures never propagate: a family that cannot be loaded falls back to
    the configured default font file, then to Pillow's built-in font.
    """

    def __init__(
        self,
        font_map: Optional[Mapping[str, str]] = None,
        font_dirs: Iterable[str] = (),
        default_font_path: Optional[str] = None,
    ):
        self._paths: dict[str, str] = {
            _normalize(family): path for family, path in (font_map or {}).items()
        }
        self._font_dirs = [Path(d) for d in font_dirs]
        self._default_font_path = default_font_path
        self._fonts: dict[tuple[str, int], Font] = {}
        self._index: Optional[dict[str, str]] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FontRegistry":
        settings = settings or get_settings()
        return cls(
            font_map=settings.font_map,
            font_dirs=settings.font_dirs,
            default_font_path=settings.default_font_path,
        )

    def register(self, family: str, path: str) -> None:
        """Map a family name to a font file, dropping cached sizes of it."""
        key = _normalize(primary_family(family))
        with self._lock:
            self._paths[key] = path
            for cached in [k for k in self._fonts if k[0] == key]:
                del self._fonts[cached]

    def resolve_path(self, family: str) -> Optional[str]:
        key = _normalize(primary_family(family))
        with self._lock:
            if key in self._paths:
                return self._paths[key]
            return self._scan_font_dirs().get(key)

    def get_font(self, family: str, size: int) -> Font:
        key = (_normalize(primary_family(family)), size)
        with self._lock:
            font = self._fonts.get(key)
        if font is not None:
            return font

        font = self._load(family, size)
        with self._lock:
            # Another thread may have loaded it meanwhile; keep the first one
            return self._fonts.setdefault(key, font)

    def _load(self, family: str, size: int) -> Font:
        path = self.resolve_path(family)
        if path:
            try:
                return ImageFont.truetype(path, size)
            except OSError as e:
                logger.warning(f"[TEXT] Failed to load font '{family}' from {path}: {e}")
        else:
            logger.warning(f"[TEXT] No font file found for '{family}', using default font")

        if self._default_font_path:
            try:
                return ImageFont.truetype(self._default_font_path, size)
            except OSError as e:
                logger.warning(f"[TEXT] Failed to load default font {self._default_font_path}: {e}")

        return ImageFont.load_default(size=size)

    def _scan_font_dirs(self) -> dict[str, str]:
        # Caller holds the lock
        if self._index is None:
            index: dict[str, str] = {}
            for font_dir in self._font_dirs:
                if not font_dir.is_dir():
                    continue
                for root, _dirs, files in os.walk(font_dir):
                    for filename in sorted(files):
                        stem, ext = os.path.splitext(filename)
                        if ext.lower() in FONT_EXTENSIONS:
                            index.setdefault(_normalize(stem), os.path.join(root, filename))
            self._index = index
        return self._index
