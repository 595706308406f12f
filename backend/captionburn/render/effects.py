"""Expand animated cues into time-sliced sub-cues."""

import logging
from typing import Sequence

from captionburn.render.cues import Cue, EffectType, SubCue, WordTiming

logger = logging.getLogger(__name__)

MIN_STEP_DURATION = 0.01


def synthesize_word_timings(cue: Cue) -> tuple[WordTiming, ...]:
    """Spread the whitespace-separated words of ``cue.text`` evenly over the cue."""
    words = cue.text.split()
    if not words:
        return ()
    step = cue.duration / len(words)
    timings = []
    for i, word in enumerate(words):
        start = cue.start + i * step
        end = cue.end if i == len(words) - 1 else cue.start + (i + 1) * step
        timings.append(WordTiming(word=word, start=start, end=end))
    return tuple(timings)


def _sub_cue_id(cue: Cue, index: int) -> str:
    return f"{cue.id}:{index}"


def _word_by_word(cue: Cue, words: Sequence[WordTiming]) -> list[SubCue]:
    return [
        SubCue(
            id=_sub_cue_id(cue, i),
            original_id=cue.id,
            text=word.word,
            start=word.start,
            end=word.end,
        )
        for i, word in enumerate(words)
    ]


def _cumulative_pop_on(cue: Cue, words: Sequence[WordTiming]) -> list[SubCue]:
    steps: list[SubCue] = []
    for i, word in enumerate(words):
        start = word.start
        end = words[i + 1].start if i + 1 < len(words) else cue.end
        end = min(max(end, start + MIN_STEP_DURATION), cue.end)
        if end <= start:
            continue
        steps.append(
            SubCue(
                id=_sub_cue_id(cue, i),
                original_id=cue.id,
                text=" ".join(w.word for w in words[: i + 1]),
                start=start,
                end=end,
            )
        )

    # The fully revealed text stays up until the cue ends
    if steps and steps[-1].end != cue.end:
        last = steps[-1]
        steps[-1] = SubCue(
            id=last.id,
            original_id=last.original_id,
            text=last.text,
            start=last.start,
            end=cue.end,
        )
    return steps


def expand(cue: Cue, effect_type: EffectType) -> list[SubCue]:
    """Expand one cue into the sub-cues shown for ``effect_type``.

    Never returns an empty list: whenever an animation yields no usable step
    the cue is shown unanimated.
    """
    effect_type = EffectType(effect_type)
    if effect_type == EffectType.NONE:
        return [SubCue.from_cue(cue)]

    words = cue.words
    if not words:
        words = synthesize_word_timings(cue)
        logger.debug(f"[EFFECT] Cue {cue.id} has no word timings, splitting text evenly")

    if effect_type == EffectType.WORD_BY_WORD:
        sub_cues = _word_by_word(cue, words)
    else:
        sub_cues = _cumulative_pop_on(cue, words)

    if not sub_cues:
        logger.info(f"[EFFECT] Cue {cue.id} produced no {effect_type.value} steps, rendering unanimated")
        return [SubCue.from_cue(cue)]
    return sub_cues
