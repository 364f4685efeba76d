"""Presence state classification and time-based debounce.

``classify_state`` is the pure 2x2 mapping from (has_visual, has_audio).
``DebouncedStateMachine`` commits a raw state only after it has persisted
for ``debounce_sec``; it complements the trust cache, which smooths over
history rather than time.
"""

import logging
from typing import Dict, Optional, Tuple

from mewt.types import EmotionResult, PresenceState

logger = logging.getLogger(__name__)

DEFAULT_STATE_TEXTS: Dict[PresenceState, str] = {
    PresenceState.IDLE: "Watching...",
    PresenceState.VISUAL_ONLY: "There's a kitty over there",
    PresenceState.AUDIO_ONLY: "Huh? I think I heard a kitty",
    PresenceState.BOTH: "Oh! It's a kitty",
}

_STATE_TABLE: Dict[Tuple[bool, bool], PresenceState] = {
    (False, False): PresenceState.IDLE,
    (True, False): PresenceState.VISUAL_ONLY,
    (False, True): PresenceState.AUDIO_ONLY,
    (True, True): PresenceState.BOTH,
}


def classify_state(has_visual: bool, has_audio: bool) -> PresenceState:
    """Map the two presence flags to a PresenceState."""
    return _STATE_TABLE[(bool(has_visual), bool(has_audio))]


def state_text(state: PresenceState) -> str:
    return DEFAULT_STATE_TEXTS[state]


def emotion_text(emotion: EmotionResult) -> str:
    """Display text for an acoustic emotion, e.g. ``"Meow: 😌 Comfortable"``."""
    return f"Meow: {emotion.text}"


def resolve_text(
    state: PresenceState,
    emotion: Optional[EmotionResult] = None,
    locked_text: Optional[str] = None,
) -> str:
    """Text shown for a state.

    Precedence: a locked deep-analysis result, then the emotion text while
    only audio is present, then the state's default text.
    """
    if locked_text:
        return locked_text
    if emotion is not None and state == PresenceState.AUDIO_ONLY:
        return emotion_text(emotion)
    return DEFAULT_STATE_TEXTS[state]


class DebouncedStateMachine:
    """Stabilizes raw per-window states.

    A raw state different from ``pending`` becomes the new ``pending`` and
    restarts the change timer. Once ``pending`` has been held for at least
    ``debounce_sec`` and differs from ``stable``, it is committed and exactly
    one transition is reported.

    Args:
        debounce_sec: Required persistence before commit (default: 2.0).
        initial: Starting stable state (default: idle).

    Example:
        >>> sm = DebouncedStateMachine(debounce_sec=2.0)
        >>> sm.update(PresenceState.VISUAL_ONLY, t_ns=1_000_000_000)
        >>> sm.update(PresenceState.VISUAL_ONLY, t_ns=3_000_000_000)
        (<PresenceState.IDLE: 'idle'>, <PresenceState.VISUAL_ONLY: 'visual_only'>)
    """

    def __init__(
        self,
        debounce_sec: float = 2.0,
        initial: PresenceState = PresenceState.IDLE,
    ):
        if debounce_sec < 0:
            raise ValueError(f"debounce_sec must be >= 0, got {debounce_sec}")
        self._debounce_ns = int(debounce_sec * 1e9)
        self._initial = initial

        # State
        self._pending = initial
        self._stable = initial
        self._last_stable = initial
        self._change_t_ns = 0
        self._last_t_ns = 0
        self._commit_count = 0

    @property
    def debounce_ns(self) -> int:
        return self._debounce_ns

    @property
    def stable(self) -> PresenceState:
        return self._stable

    @property
    def pending(self) -> PresenceState:
        return self._pending

    @property
    def last_stable(self) -> PresenceState:
        """Stable state before the most recent commit."""
        return self._last_stable

    @property
    def commit_count(self) -> int:
        return self._commit_count

    def time_since_change_ns(self, t_ns: Optional[int] = None) -> int:
        """Nanoseconds since ``pending`` last changed (at ``t_ns`` or the last update)."""
        now = self._last_t_ns if t_ns is None else t_ns
        return now - self._change_t_ns

    def update(
        self, raw: PresenceState, t_ns: int
    ) -> Optional[Tuple[PresenceState, PresenceState]]:
        """Feed one raw state.

        Returns:
            ``(old, new)`` when a transition commits, else None.
        """
        self._last_t_ns = t_ns
        if raw != self._pending:
            logger.debug("Pending state %s -> %s", self._pending.value, raw.value)
            self._pending = raw
            self._change_t_ns = t_ns

        if t_ns - self._change_t_ns < self._debounce_ns:
            return None
        if self._stable == self._pending:
            return None

        old = self._stable
        self._last_stable = old
        self._stable = self._pending
        self._commit_count += 1
        logger.info("State committed: %s -> %s", old.value, self._stable.value)
        return old, self._stable

    def reset(self) -> None:
        self._pending = self._initial
        self._stable = self._initial
        self._last_stable = self._initial
        self._change_t_ns = 0
        self._last_t_ns = 0
        self._commit_count = 0


__all__ = [
    "DEFAULT_STATE_TEXTS",
    "classify_state",
    "state_text",
    "emotion_text",
    "resolve_text",
    "DebouncedStateMachine",
]
