"""Trace output sinks.

- FileSink: JSONL file output
- ConsoleSink: Formatted console output
- MemorySink: In-memory buffer for testing/analysis
- NullSink: Discards everything
"""

import sys
import threading
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, TextIO, Type, TypeVar, Union

from mewt.observability.hub import Sink
from mewt.observability.records import (
    AnalysisCallRecord,
    EmotionRecord,
    ObserverFailureRecord,
    StateTransitionRecord,
    TraceRecord,
    WindowFlushRecord,
)

R = TypeVar("R", bound=TraceRecord)


class FileSink(Sink):
    """Appends records to a JSONL file.

    Args:
        path: Output file path. Parent directories are created.
        buffer_size: Number of records buffered before writing.
    """

    def __init__(self, path: Union[str, Path], buffer_size: int = 100):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._buffer_size = max(1, buffer_size)
        self._buffer: List[str] = []
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = open(self._path, "a", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: TraceRecord) -> None:
        with self._lock:
            self._buffer.append(record.to_json())
            if len(self._buffer) >= self._buffer_size:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if self._file is None or not self._buffer:
            return
        self._file.write("\n".join(self._buffer) + "\n")
        self._file.flush()
        self._buffer.clear()

    def close(self) -> None:
        with self._lock:
            self._flush_locked()
            if self._file is not None:
                self._file.close()
                self._file = None


class ConsoleSink(Sink):
    """Prints a one-line summary for the records worth seeing live.

    Args:
        stream: Output stream (default: stderr).
        color: Use ANSI colors (default: only when the stream is a TTY).
    """

    _COLORS = {
        "red": "\033[31m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "blue": "\033[34m",
        "magenta": "\033[35m",
        "cyan": "\033[36m",
    }
    _RESET = "\033[0m"

    def __init__(self, stream: Optional[TextIO] = None, color: Optional[bool] = None):
        self._stream = stream if stream is not None else sys.stderr
        if color is None:
            color = hasattr(self._stream, "isatty") and self._stream.isatty()
        self._color = color

    def _colorize(self, text: str, color: str) -> str:
        if not self._color:
            return text
        return f"{self._COLORS.get(color, '')}{text}{self._RESET}"

    def write(self, record: TraceRecord) -> None:
        line = self._format_record(record)
        if line is not None:
            print(line, file=self._stream)

    def flush(self) -> None:
        self._stream.flush()

    def _format_record(self, record: TraceRecord) -> Optional[str]:
        if isinstance(record, StateTransitionRecord):
            return self._format_transition(record)
        elif isinstance(record, AnalysisCallRecord):
            return self._format_analysis(record)
        elif isinstance(record, ObserverFailureRecord):
            return self._format_failure(record)
        elif isinstance(record, EmotionRecord):
            return self._format_emotion(record)
        elif isinstance(record, WindowFlushRecord):
            return self._format_window(record)
        else:
            return None

    def _format_transition(self, record: StateTransitionRecord) -> str:
        tag = self._colorize("[STATE]", "green")
        new_state = self._colorize(record.new_state, "cyan")
        edge = f" ({record.visual_edge})" if record.visual_edge else ""
        return f"{tag} {record.old_state} -> {new_state}{edge} {record.text}".rstrip()

    def _format_analysis(self, record: AnalysisCallRecord) -> str:
        tag = self._colorize("[ANALYSIS]", "magenta")
        if record.outcome == "completed":
            outcome = self._colorize(record.outcome, "green")
        elif record.outcome in ("failed", "timeout"):
            outcome = self._colorize(record.outcome, "red")
        else:
            outcome = self._colorize(record.outcome, "yellow")
        detail = record.text or record.error
        return f"{tag} {outcome} {record.duration_ms:.0f}ms {detail}".rstrip()

    def _format_failure(self, record: ObserverFailureRecord) -> str:
        tag = self._colorize("[OBSERVER]", "red")
        return f"{tag} {record.observer} failed on {record.old_state} -> {record.new_state}: {record.error}"

    def _format_emotion(self, record: EmotionRecord) -> str:
        tag = self._colorize("[EMOTION]", "blue")
        return f"{tag} {record.emotion_id} ({record.category_id}) conf={record.confidence:.2f}"

    def _format_window(self, record: WindowFlushRecord) -> Optional[str]:
        # Only windows carried by history are interesting live.
        if not record.trust_override:
            return None
        tag = self._colorize("[TRUST]", "yellow")
        return f"{tag} Window {record.window_id}: visual kept by history"


class MemorySink(Sink):
    """Keeps the most recent records in memory.

    Args:
        max_records: Maximum records retained; oldest are dropped first.
    """

    def __init__(self, max_records: int = 10000):
        self._records: Deque[TraceRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def write(self, record: TraceRecord) -> None:
        with self._lock:
            self._records.append(record)

    def get_records(self) -> List[TraceRecord]:
        with self._lock:
            return list(self._records)

    def get_by_type(self, record_type: Union[str, Type[R]]) -> List[TraceRecord]:
        """Records matching a ``record_type`` string or a record class."""
        if isinstance(record_type, str):
            return [r for r in self.get_records() if r.record_type == record_type]
        return [r for r in self.get_records() if isinstance(r, record_type)]

    def get_transitions(self) -> List[StateTransitionRecord]:
        return [r for r in self.get_records() if isinstance(r, StateTransitionRecord)]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class NullSink(Sink):
    """Discards all records."""

    def write(self, record: TraceRecord) -> None:
        pass


__all__ = ["FileSink", "ConsoleSink", "MemorySink", "NullSink"]
