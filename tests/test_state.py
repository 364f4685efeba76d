"""Tests for state classification, text resolution and debounce."""

import pytest

from mewt.state import (
    DEFAULT_STATE_TEXTS,
    DebouncedStateMachine,
    classify_state,
    resolve_text,
)
from mewt.types import EmotionResult, PresenceState

from conftest import SEC

IDLE = PresenceState.IDLE
VISUAL = PresenceState.VISUAL_ONLY
AUDIO = PresenceState.AUDIO_ONLY
BOTH = PresenceState.BOTH


class TestClassifyState:
    @pytest.mark.parametrize("has_visual,has_audio,expected", [
        (False, False, IDLE),
        (True, False, VISUAL),
        (False, True, AUDIO),
        (True, True, BOTH),
    ])
    def test_table(self, has_visual, has_audio, expected):
        assert classify_state(has_visual, has_audio) == expected

    def test_flags_round_trip(self):
        for state in PresenceState:
            assert classify_state(state.has_visual, state.has_audio) == state

    def test_from_string(self):
        assert PresenceState.from_string("Visual_Only") == VISUAL
        with pytest.raises(ValueError):
            PresenceState.from_string("sleeping")


class TestDebounce:
    def test_commits_after_debounce(self):
        sm = DebouncedStateMachine(debounce_sec=2.0)
        assert sm.update(VISUAL, 1 * SEC) is None
        assert sm.update(VISUAL, 2 * SEC) is None
        assert sm.update(VISUAL, 3 * SEC) == (IDLE, VISUAL)
        assert sm.stable == VISUAL
        assert sm.last_stable == IDLE

    def test_no_reemit_while_unchanged(self):
        sm = DebouncedStateMachine(debounce_sec=2.0)
        events = [sm.update(VISUAL, t * SEC) for t in range(1, 12)]
        assert len([e for e in events if e is not None]) == 1
        assert sm.commit_count == 1

    def test_flapping_never_commits(self):
        """A raw state alternating every window never persists 2 s."""
        sm = DebouncedStateMachine(debounce_sec=2.0)
        for t in range(1, 20):
            raw = VISUAL if t % 2 else IDLE
            assert sm.update(raw, t * SEC) is None
        assert sm.stable == IDLE

    def test_flapping_then_holding_commits_once(self):
        sm = DebouncedStateMachine(debounce_sec=2.0)
        for t, raw in enumerate([VISUAL, IDLE, VISUAL, AUDIO], start=1):
            sm.update(raw, t * SEC)
        events = [sm.update(AUDIO, t * SEC) for t in range(5, 10)]
        assert [e for e in events if e] == [(IDLE, AUDIO)]

    def test_return_to_stable_cancels_pending(self):
        sm = DebouncedStateMachine(debounce_sec=2.0)
        sm.update(VISUAL, 1 * SEC)
        sm.update(IDLE, 2 * SEC)
        assert sm.update(IDLE, 10 * SEC) is None
        assert sm.pending == IDLE

    def test_zero_debounce_commits_immediately(self):
        sm = DebouncedStateMachine(debounce_sec=0.0)
        assert sm.update(BOTH, SEC) == (IDLE, BOTH)

    def test_time_since_change(self):
        sm = DebouncedStateMachine(debounce_sec=2.0)
        sm.update(VISUAL, 1 * SEC)
        sm.update(VISUAL, 4 * SEC)
        assert sm.time_since_change_ns() == 3 * SEC
        assert sm.time_since_change_ns(6 * SEC) == 5 * SEC

    def test_reset(self):
        sm = DebouncedStateMachine(debounce_sec=0.0)
        sm.update(BOTH, SEC)
        sm.reset()
        assert sm.stable == IDLE
        assert sm.pending == IDLE
        assert sm.commit_count == 0

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValueError):
            DebouncedStateMachine(debounce_sec=-1.0)


class TestResolveText:
    def setup_method(self):
        self.emotion = EmotionResult("comfortable", 0.9, "friendly")

    def test_default_texts(self):
        for state in PresenceState:
            assert resolve_text(state) == DEFAULT_STATE_TEXTS[state]

    def test_locked_text_wins(self):
        assert resolve_text(BOTH, self.emotion, "A cat is napping") == "A cat is napping"

    def test_emotion_text_when_only_heard(self):
        assert resolve_text(AUDIO, self.emotion) == "Meow: 😌 Comfortable"

    def test_emotion_ignored_when_seen(self):
        assert resolve_text(BOTH, self.emotion) == DEFAULT_STATE_TEXTS[BOTH]
