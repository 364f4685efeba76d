"""Core data types for the mewt engine.

All timestamps named ``t_ns`` are monotonic nanoseconds on the engine's
timeline. ``timestamp_ms`` fields are wall-clock milliseconds and only
appear on records that leave the process.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from mewt.errors import InvalidInputError


class Source(str, Enum):
    """Origin of a detection."""

    VISUAL = "visual"
    ACOUSTIC = "acoustic"


class PresenceState(str, Enum):
    """Four-valued presence state, a pure function of two booleans."""

    IDLE = "idle"
    VISUAL_ONLY = "visual_only"
    AUDIO_ONLY = "audio_only"
    BOTH = "both"

    @property
    def has_visual(self) -> bool:
        return self in (PresenceState.VISUAL_ONLY, PresenceState.BOTH)

    @property
    def has_audio(self) -> bool:
        return self in (PresenceState.AUDIO_ONLY, PresenceState.BOTH)

    @classmethod
    def from_string(cls, s: str) -> "PresenceState":
        """Parse a state name such as ``"visual_only"``.

        Raises:
            ValueError: If the name is not a known state.
        """
        try:
            return cls(s.lower())
        except ValueError:
            raise ValueError(
                f"Unknown presence state: {s}. "
                f"Valid states: {', '.join(m.value for m in cls)}"
            )


@dataclass
class Detection:
    """A single classifier output: "this sample looks N% like ``category``"."""

    category: str
    confidence: float
    source: Source
    t_ns: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.category, str) or not self.category:
            raise InvalidInputError(f"Detection category must be a non-empty string, got {self.category!r}")
        try:
            self.confidence = float(self.confidence)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Detection confidence must be a number, got {self.confidence!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidInputError(f"Detection confidence out of [0, 1]: {self.confidence}")
        self.source = Source(self.source)


@dataclass(frozen=True)
class FeatureVector:
    """Five-scalar acoustic descriptor fed to the emotion rule engine.

    Attributes:
        zero_crossing_rate: Sign changes per sample.
        spectral_centroid: Magnitude-weighted mean sample index (time-domain proxy).
        spectral_rolloff: Fraction of the buffer holding 85% of absolute amplitude.
        energy: Mean squared sample.
        rms: Square root of energy.
    """

    zero_crossing_rate: float
    spectral_centroid: float
    spectral_rolloff: float
    energy: float
    rms: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "zero_crossing_rate": self.zero_crossing_rate,
            "spectral_centroid": self.spectral_centroid,
            "spectral_rolloff": self.spectral_rolloff,
            "energy": self.energy,
            "rms": self.rms,
        }


@dataclass(frozen=True)
class EmotionResult:
    """Best-matching emotion for one acoustic event."""

    emotion_id: str
    confidence: float
    category_id: str

    @property
    def text(self) -> str:
        """Display text such as ``"😌 Comfortable"``."""
        from mewt.emotions import get_emotion

        emotion = get_emotion(self.emotion_id)
        if emotion is None:
            return self.emotion_id
        return f"{emotion.icon} {emotion.title}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotion_id": self.emotion_id,
            "confidence": self.confidence,
            "category_id": self.category_id,
        }


@dataclass(frozen=True)
class TrustEntry:
    """Historical visual detection kept in the trust cache."""

    category: str
    confidence: float
    t_ns: int
    is_target_class: bool


@dataclass
class WindowSnapshot:
    """Per-source ``category -> max confidence`` maps for one window."""

    visual: Dict[str, float] = field(default_factory=dict)
    acoustic: Dict[str, float] = field(default_factory=dict)

    def merge(self, source: Source, category: str, confidence: float) -> None:
        """Keep the maximum confidence seen for ``category``."""
        target = self.visual if source == Source.VISUAL else self.acoustic
        if confidence > target.get(category, -1.0):
            target[category] = confidence

    def for_source(self, source: Source) -> Dict[str, float]:
        return self.visual if source == Source.VISUAL else self.acoustic

    @property
    def is_empty(self) -> bool:
        return not self.visual and not self.acoustic

    def copy(self) -> "WindowSnapshot":
        return WindowSnapshot(visual=dict(self.visual), acoustic=dict(self.acoustic))


@dataclass
class WindowResult:
    """Outcome of flushing one window.

    Attributes:
        window_id: 1-based sequence number of the flushed window.
        t_ns: Flush time.
        snapshot: The detections that were aggregated in the window.
        has_visual: Visual presence after trust override.
        has_audio: Acoustic presence.
        trust_override: True when ``has_visual`` came from history only.
        emotion: Latest emotion classified during the window, if any.
        features: Feature vector behind ``emotion``, if any.
    """

    window_id: int
    t_ns: int
    snapshot: WindowSnapshot
    has_visual: bool
    has_audio: bool
    trust_override: bool = False
    emotion: Optional[EmotionResult] = None
    features: Optional[FeatureVector] = None


@dataclass(frozen=True)
class TransitionEvent:
    """Committed change of the stable presence state."""

    old_state: PresenceState
    new_state: PresenceState
    t_ns: int
    has_visual: bool
    has_audio: bool
    emotion: Optional[EmotionResult] = None
    resolved_text: Optional[str] = None

    @property
    def visual_edge(self) -> Optional[str]:
        """``"rising"``/``"falling"`` when visual presence flips, else None."""
        if self.new_state.has_visual and not self.old_state.has_visual:
            return "rising"
        if self.old_state.has_visual and not self.new_state.has_visual:
            return "falling"
        return None


@dataclass(frozen=True)
class AnalysisResult:
    """Response from the deep-analysis service."""

    text: str
    target_present: bool = False
    confidence: float = 0.0
    timestamp_ms: int = 0
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NotificationRecord:
    """Record emitted to the host transport."""

    type: str
    text: str
    source: str
    state: str
    timestamp_ms: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "text": self.text,
            "source": self.source,
            "state": self.state,
            "timestamp": self.timestamp_ms,
            "metadata": dict(self.metadata),
        }


__all__ = [
    "Source",
    "PresenceState",
    "Detection",
    "FeatureVector",
    "EmotionResult",
    "TrustEntry",
    "WindowSnapshot",
    "WindowResult",
    "TransitionEvent",
    "AnalysisResult",
    "NotificationRecord",
]
