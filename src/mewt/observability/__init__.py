"""Observability system for mewt.

Tracks, per engine instance:
- Committed presence transitions
- Window flush summaries and trust overrides
- Emotion results and raw acoustic features
- Deep-analysis call outcomes
- Observer failures caught during dispatch

Trace Levels:
- OFF: No tracing (default)
- MINIMAL: Transitions, analysis calls and failures only
- NORMAL: + window summaries and emotions
- VERBOSE: + feature vectors

Example:
    >>> from mewt.observability import ObservabilityHub, TraceLevel, FileSink
    >>> hub = ObservabilityHub()
    >>> hub.configure(level=TraceLevel.NORMAL)
    >>> hub.add_sink(FileSink("/tmp/mewt-trace.jsonl"))
    >>> engine = MewtEngine(hub=hub)
"""

from mewt.observability.hub import ObservabilityHub, Sink, TraceLevel
from mewt.observability.records import (
    AnalysisCallRecord,
    EmotionRecord,
    FeatureDetailRecord,
    ObserverFailureRecord,
    StateTransitionRecord,
    TraceRecord,
    WindowFlushRecord,
)
from mewt.observability.sinks import ConsoleSink, FileSink, MemorySink, NullSink

__all__ = [
    # Core
    "TraceLevel",
    "Sink",
    "ObservabilityHub",
    # Records
    "TraceRecord",
    "StateTransitionRecord",
    "WindowFlushRecord",
    "EmotionRecord",
    "FeatureDetailRecord",
    "AnalysisCallRecord",
    "ObserverFailureRecord",
    # Sinks
    "FileSink",
    "ConsoleSink",
    "MemorySink",
    "NullSink",
]
