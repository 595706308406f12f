from captionburn.render.cues import Cue, EffectType, Style, SubCue, SubtitlePosition, WordTiming
from captionburn.render.fonts import FontRegistry
from captionburn.render.pipeline import SubtitleRenderPipeline

__all__ = [
    "Cue",
    "EffectType",
    "FontRegistry",
    "Style",
    "SubCue",
    "SubtitlePosition",
    "SubtitleRenderPipeline",
    "WordTiming",
]
