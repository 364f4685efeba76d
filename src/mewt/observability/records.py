"""Trace record data classes.

Record Categories:
- State records: committed presence transitions
- Window records: per-window flush summaries (NORMAL)
- Acoustic records: emotion results (NORMAL) and raw features (VERBOSE)
- Analysis records: deep-analysis call outcomes
- Failure records: observer exceptions caught during dispatch
"""

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from mewt.observability.hub import TraceLevel


@dataclass
class TraceRecord:
    """Base class for all trace records."""

    record_type: str = field(default="trace", init=False)
    timestamp_ns: int = field(default_factory=time.time_ns)
    min_level: TraceLevel = field(default=TraceLevel.NORMAL, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("min_level", None)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)


# =============================================================================
# State Records
# =============================================================================


@dataclass
class StateTransitionRecord(TraceRecord):
    """Committed change of the stable presence state."""

    record_type: str = field(default="state_transition", init=False)
    min_level: TraceLevel = field(default=TraceLevel.MINIMAL, repr=False)

    t_ns: int = 0
    old_state: str = ""
    new_state: str = ""
    has_visual: bool = False
    has_audio: bool = False
    visual_edge: str = ""  # "rising", "falling" or ""
    emotion_id: str = ""
    text: str = ""


# =============================================================================
# Window Records
# =============================================================================


@dataclass
class WindowFlushRecord(TraceRecord):
    """Summary of one flushed window."""

    record_type: str = field(default="window_flush", init=False)

    window_id: int = 0
    t_ns: int = 0
    visual_count: int = 0
    acoustic_count: int = 0
    has_visual: bool = False
    has_audio: bool = False
    trust_override: bool = False
    raw_state: str = ""
    stable_state: str = ""
    processing_ms: float = 0.0


# =============================================================================
# Acoustic Records
# =============================================================================


@dataclass
class EmotionRecord(TraceRecord):
    """Emotion classified from an acoustic event."""

    record_type: str = field(default="emotion", init=False)

    t_ns: int = 0
    emotion_id: str = ""
    category_id: str = ""
    confidence: float = 0.0
    trigger_label: str = ""


@dataclass
class FeatureDetailRecord(TraceRecord):
    """Raw acoustic feature vector (VERBOSE)."""

    record_type: str = field(default="feature_detail", init=False)
    min_level: TraceLevel = field(default=TraceLevel.VERBOSE, repr=False)

    t_ns: int = 0
    num_samples: int = 0
    cached: bool = False
    features: Dict[str, float] = field(default_factory=dict)


# =============================================================================
# Analysis Records
# =============================================================================


@dataclass
class AnalysisCallRecord(TraceRecord):
    """Outcome of one deep-analysis attempt.

    Outcomes: completed, declined_busy, declined_rate_limited, disabled,
    failed, timeout.
    """

    record_type: str = field(default="analysis_call", init=False)
    min_level: TraceLevel = field(default=TraceLevel.MINIMAL, repr=False)

    t_ns: int = 0
    outcome: str = ""
    duration_ms: float = 0.0
    text: str = ""
    error: str = ""
    calls_last_minute: int = 0


# =============================================================================
# Failure Records
# =============================================================================


@dataclass
class ObserverFailureRecord(TraceRecord):
    """An observer raised while handling a transition."""

    record_type: str = field(default="observer_failure", init=False)
    min_level: TraceLevel = field(default=TraceLevel.MINIMAL, repr=False)

    observer: str = ""
    old_state: str = ""
    new_state: str = ""
    error: str = ""


__all__ = [
    "TraceRecord",
    "StateTransitionRecord",
    "WindowFlushRecord",
    "EmotionRecord",
    "FeatureDetailRecord",
    "AnalysisCallRecord",
    "ObserverFailureRecord",
]
