"""Trace level, sink interface and the observability hub."""

import logging
import threading
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from mewt.observability.records import TraceRecord

logger = logging.getLogger(__name__)


class TraceLevel(IntEnum):
    """Tracing verbosity.

    - OFF: No tracing (default)
    - MINIMAL: State transitions, deep-analysis calls, observer failures
    - NORMAL: + per-window flush summaries and emotions
    - VERBOSE: + raw feature vectors
    """

    OFF = 0
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3

    @classmethod
    def from_string(cls, s: str) -> "TraceLevel":
        try:
            return cls[s.upper()]
        except KeyError:
            raise ValueError(
                f"Unknown trace level: {s}. "
                f"Valid levels: {', '.join(m.name.lower() for m in cls)}"
            )


class Sink(ABC):
    """Destination for trace records."""

    @abstractmethod
    def write(self, record: "TraceRecord") -> None:
        ...

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


class ObservabilityHub:
    """Routes trace records to sinks, filtered by trace level.

    Each engine owns its hub; there is no process-wide instance.

    Example:
        >>> hub = ObservabilityHub()
        >>> hub.configure(level=TraceLevel.NORMAL, sinks=[MemorySink()])
        >>> if hub.enabled:
        ...     hub.emit(WindowFlushRecord(window_id=1))
    """

    def __init__(
        self,
        level: TraceLevel = TraceLevel.OFF,
        sinks: Optional[Sequence[Sink]] = None,
    ):
        self._level = TraceLevel(level)
        self._sinks: List[Sink] = list(sinks or [])
        self._lock = threading.Lock()

    def configure(
        self,
        level: TraceLevel = TraceLevel.NORMAL,
        sinks: Optional[Sequence[Sink]] = None,
    ) -> None:
        """Set the trace level and optionally add sinks."""
        with self._lock:
            self._level = TraceLevel(level)
            if sinks:
                for sink in sinks:
                    if sink not in self._sinks:
                        self._sinks.append(sink)
        logger.debug("Observability configured: level=%s sinks=%d", self._level.name, len(self._sinks))

    def add_sink(self, sink: Sink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)

    def remove_sink(self, sink: Sink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    @property
    def sinks(self) -> List[Sink]:
        with self._lock:
            return list(self._sinks)

    @property
    def level(self) -> TraceLevel:
        return self._level

    @property
    def enabled(self) -> bool:
        return self._level > TraceLevel.OFF

    def is_level_enabled(self, level: TraceLevel) -> bool:
        return self._level >= level

    def emit(self, record: "TraceRecord") -> None:
        """Deliver a record to every sink if its level is enabled.

        A sink that raises is logged and skipped.
        """
        if not self.enabled or not self.is_level_enabled(record.min_level):
            return
        for sink in self.sinks:
            try:
                sink.write(record)
            except Exception:
                logger.exception("Trace sink %s failed", type(sink).__name__)

    def flush(self) -> None:
        for sink in self.sinks:
            try:
                sink.flush()
            except Exception:
                logger.exception("Trace sink %s failed to flush", type(sink).__name__)

    def shutdown(self) -> None:
        """Flush and close all sinks, then disable tracing."""
        with self._lock:
            sinks, self._sinks = self._sinks, []
            self._level = TraceLevel.OFF
        for sink in sinks:
            try:
                sink.flush()
                sink.close()
            except Exception:
                logger.exception("Trace sink %s failed to close", type(sink).__name__)


__all__ = ["TraceLevel", "Sink", "ObservabilityHub"]
