"""mewt - Visual and acoustic cat presence engine.

Fuses independently arriving visual and acoustic classifier labels into a
debounced presence state (idle, visual_only, audio_only, both), classifies
the emotion behind target sounds with a 21-rule table, and gates a
rate-limited deep-analysis call on visual presence edges.

Quick Start:
    >>> from mewt import MewtEngine, MemoryTransport
    >>> transport = MemoryTransport()
    >>> engine = MewtEngine(transport=transport)
    >>> for second in range(4):
    ...     t_ns = second * 1_000_000_000
    ...     event = engine.tick(t_ns=t_ns)
    ...     count = engine.handle_visual_result([("tabby cat", 0.85)], t_ns=t_ns)
    >>> print(transport.records[-1].text)
    There's a kitty over there
"""

__version__ = "0.1.0"

from mewt.types import (
    Source,
    PresenceState,
    Detection,
    FeatureVector,
    EmotionResult,
    TrustEntry,
    WindowSnapshot,
    WindowResult,
    TransitionEvent,
    AnalysisResult,
    NotificationRecord,
)
from mewt.errors import MewtError, InvalidInputError, ExternalCallError
from mewt.features import extract_features
from mewt.emotions import classify_emotion, classify_emotion_category, get_emotion, get_category
from mewt.state import classify_state, DebouncedStateMachine
from mewt.trust import TrustCache
from mewt.window import WindowAggregator
from mewt.analysis import RateLimiter, ResultLock, AnalysisChannel, HttpAnalysisClient
from mewt.observers import (
    StateChangeObserver,
    ObserverDispatcher,
    HostNotifierObserver,
    AnalysisTriggerObserver,
    DiagnosticsObserver,
    UINotifierObserver,
)
from mewt.transport import StreamTransport, MemoryTransport
from mewt.config import EngineConfig, WindowConfig, EmotionConfig, AnalysisConfig
from mewt.engine import MewtEngine

__all__ = [
    # Engine
    "MewtEngine",
    "EngineConfig",
    "WindowConfig",
    "EmotionConfig",
    "AnalysisConfig",
    # Types
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
    # Errors
    "MewtError",
    "InvalidInputError",
    "ExternalCallError",
    # Components
    "extract_features",
    "classify_emotion",
    "classify_emotion_category",
    "get_emotion",
    "get_category",
    "classify_state",
    "DebouncedStateMachine",
    "TrustCache",
    "WindowAggregator",
    "RateLimiter",
    "ResultLock",
    "AnalysisChannel",
    "HttpAnalysisClient",
    # Observers
    "StateChangeObserver",
    "ObserverDispatcher",
    "HostNotifierObserver",
    "AnalysisTriggerObserver",
    "DiagnosticsObserver",
    "UINotifierObserver",
    # Transports
    "StreamTransport",
    "MemoryTransport",
]
