"""Cue and style values consumed by the render pipeline."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SubtitlePosition(str, Enum):
    """Vertical placement of the cue box."""

    TOP = "top"
    MIDDLE = "middle"
    BOTTOM = "bottom"
    CUSTOM = "custom"


class EffectType(str, Enum):
    """Word reveal animations."""

    NONE = "none"
    CUMULATIVE_POP_ON = "cumulativePopOn"
    WORD_BY_WORD = "wordByWord"


@dataclass(frozen=True)
class WordTiming:
    """One transcribed word with its own time window (seconds)."""

    word: str
    start: float
    end: float


@dataclass(frozen=True)
class Cue:
    """A timed text entry."""

    id: str
    text: str
    start: float
    end: float
    words: Optional[tuple[WordTiming, ...]] = None

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class SubCue:
    """A time slice of a cue produced by the effect expander."""

    id: str
    original_id: str
    text: str
    start: float
    end: float

    @classmethod
    def from_cue(cls, cue: Cue) -> "SubCue":
        return cls(id=cue.id, original_id=cue.id, text=cue.text, start=cue.start, end=cue.end)


@dataclass(frozen=True)
class Style:
    """Subtitle styling shared by every cue of one export."""

    font_family: str = "Arial"
    font_size: float = 24
    text_color: str = "#ffffff"
    bg_color: str = "#000000"
    bg_opacity: float = 0.7
    border_radius: float = 8
    position: SubtitlePosition = SubtitlePosition.BOTTOM
    custom_x: Optional[float] = None
    custom_y: Optional[float] = None
    effect_type: EffectType = EffectType.NONE
