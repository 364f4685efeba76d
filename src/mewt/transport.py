"""Host notification records and transports.

The engine never talks to a host UI directly; it hands NotificationRecords
to a ``HostTransport`` whose ``emit`` is synchronous. Each record carries a
``type`` that tells the host whether to show it in the conversation
(``chat_message``) or only refresh a status line (``status_update``).
"""

import json
import sys
import threading
import time
from typing import Any, Dict, List, Optional, Protocol, TextIO

from mewt.types import NotificationRecord, PresenceState

CHAT_MESSAGE = "chat_message"
STATUS_UPDATE = "status_update"

SOURCE_STATE = "state"
SOURCE_ANALYSIS = "analysis"


def determine_message_type(source: str, state: str, metadata: Optional[Dict[str, Any]] = None) -> str:
    """Decide how the host should present a record.

    - state records are chat messages unless the state is idle
    - analysis records are chat messages while their result is locked
    - everything else is a status update
    """
    metadata = metadata or {}
    if source == SOURCE_STATE and state != PresenceState.IDLE.value:
        return CHAT_MESSAGE
    if source == SOURCE_ANALYSIS and metadata.get("analysis_locked"):
        return CHAT_MESSAGE
    return STATUS_UPDATE


def build_record(
    text: str,
    source: str,
    state: str,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp_ms: Optional[int] = None,
) -> NotificationRecord:
    """Assemble a NotificationRecord with its message type resolved."""
    metadata = dict(metadata or {})
    return NotificationRecord(
        type=determine_message_type(source, state, metadata),
        text=text,
        source=source,
        state=state,
        timestamp_ms=int(time.time() * 1000) if timestamp_ms is None else timestamp_ms,
        metadata=metadata,
    )


class HostTransport(Protocol):
    """Anything that can deliver a record to the host."""

    def emit(self, record: NotificationRecord) -> None:
        ...


class StreamTransport:
    """Writes each record as one JSON line.

    Args:
        stream: Output stream (default: stdout).
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def emit(self, record: NotificationRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


class MemoryTransport:
    """Collects records in memory."""

    def __init__(self):
        self.records: List[NotificationRecord] = []

    def emit(self, record: NotificationRecord) -> None:
        self.records.append(record)

    def chat_messages(self) -> List[NotificationRecord]:
        return [r for r in self.records if r.type == CHAT_MESSAGE]

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)


__all__ = [
    "CHAT_MESSAGE",
    "STATUS_UPDATE",
    "SOURCE_STATE",
    "SOURCE_ANALYSIS",
    "determine_message_type",
    "build_record",
    "HostTransport",
    "StreamTransport",
    "MemoryTransport",
]
