"""Tests for word-reveal effect expansion."""

import pytest

from captionburn.render.cues import Cue, EffectType, SubCue, WordTiming
from captionburn.render.effects import MIN_STEP_DURATION, expand, synthesize_word_timings


def _cue(words=None, text="hello brave new world", start=0.0, end=4.0):
    return Cue(id="c1", text=text, start=start, end=end, words=words)


TIMED_WORDS = (
    WordTiming("hello", 0.0, 1.0),
    WordTiming("brave", 1.0, 2.0),
    WordTiming("new", 2.0, 3.0),
    WordTiming("world", 3.0, 3.5),
)


class TestNoEffect:
    """Tests for effect type none."""

    def test_single_sub_cue(self):
        cue = _cue(words=TIMED_WORDS)
        assert expand(cue, EffectType.NONE) == [
            SubCue(id="c1", original_id="c1", text=cue.text, start=0.0, end=4.0)
        ]

    def test_accepts_wire_value(self):
        assert len(expand(_cue(), "none")) == 1


class TestWordByWord:
    """Tests for wordByWord expansion."""

    def test_one_sub_cue_per_word(self):
        subs = expand(_cue(words=TIMED_WORDS), EffectType.WORD_BY_WORD)

        assert [s.text for s in subs] == ["hello", "brave", "new", "world"]
        assert [(s.start, s.end) for s in subs] == [(w.start, w.end) for w in TIMED_WORDS]
        assert [s.id for s in subs] == ["c1:0", "c1:1", "c1:2", "c1:3"]
        assert all(s.original_id == "c1" for s in subs)

    def test_windows_tile_the_cue(self):
        """Each window starts where the previous one ended."""
        subs = expand(_cue(words=TIMED_WORDS[:3], end=3.0), EffectType.WORD_BY_WORD)
        for prev, nxt in zip(subs, subs[1:]):
            assert nxt.start == prev.end
        assert subs[0].start == 0.0
        assert subs[-1].end == 3.0


class TestCumulativePopOn:
    """Tests for cumulativePopOn expansion."""

    def test_prefix_growth(self):
        subs = expand(_cue(words=TIMED_WORDS), EffectType.CUMULATIVE_POP_ON)

        assert [s.text for s in subs] == [
            "hello",
            "hello brave",
            "hello brave new",
            "hello brave new world",
        ]
        for prev, nxt in zip(subs, subs[1:]):
            assert nxt.text.startswith(prev.text)

    def test_windows_run_to_next_word_and_cue_end(self):
        subs = expand(_cue(words=TIMED_WORDS), EffectType.CUMULATIVE_POP_ON)

        assert [(s.start, s.end) for s in subs] == [
            (0.0, 1.0),
            (1.0, 2.0),
            (2.0, 3.0),
            (3.0, 4.0),
        ]
        assert subs[-1].end == 4.0

    def test_simultaneous_words_get_min_duration(self):
        words = (WordTiming("a", 1.0, 1.0), WordTiming("b", 1.0, 2.0))
        subs = expand(_cue(words=words, text="a b", end=2.0), EffectType.CUMULATIVE_POP_ON)

        assert subs[0].end == pytest.approx(1.0 + MIN_STEP_DURATION)
        assert subs[-1].text == "a b"
        assert subs[-1].end == 2.0

    def test_step_with_empty_window_is_dropped(self):
        """A word starting at the cue end has no room; the last surviving step runs to the end."""
        words = (WordTiming("a", 0.0, 0.5), WordTiming("b", 1.0, 1.0))
        subs = expand(_cue(words=words, text="a b", end=1.0), EffectType.CUMULATIVE_POP_ON)

        assert [(s.text, s.start, s.end) for s in subs] == [("a", 0.0, 1.0)]

    def test_no_surviving_steps_falls_back_to_plain_cue(self):
        words = (WordTiming("late", 1.0, 1.0),)
        cue = _cue(words=words, text="late", end=1.0)

        assert expand(cue, EffectType.CUMULATIVE_POP_ON) == [SubCue.from_cue(cue)]


class TestMissingWordTimings:
    """Tests for cues without word timings."""

    def test_synthesized_timings_split_evenly(self):
        timings = synthesize_word_timings(_cue(text="one two three four", end=2.0))

        assert [t.word for t in timings] == ["one", "two", "three", "four"]
        assert [(t.start, t.end) for t in timings] == [
            (0.0, 0.5),
            (0.5, 1.0),
            (1.0, 1.5),
            (1.5, 2.0),
        ]

    def test_word_by_word_without_timings(self):
        subs = expand(_cue(text="one two", end=2.0), EffectType.WORD_BY_WORD)
        assert [(s.text, s.start, s.end) for s in subs] == [("one", 0.0, 1.0), ("two", 1.0, 2.0)]

    def test_empty_text_never_expands_to_nothing(self):
        cue = _cue(text="   ")
        for effect in EffectType:
            assert expand(cue, effect) == [SubCue.from_cue(cue)]
