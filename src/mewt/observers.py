"""State-change observers and their dispatcher.

Dispatch is a broadcast: every observer receives the same TransitionEvent
in descending priority order, and one observer's exception never stops the
others. Canonical observers:

- HostNotifierObserver: sends the transition text to the host transport
- AnalysisTriggerObserver: requests deep analysis on visual edges only
- DiagnosticsObserver: records the transition on the observability hub
- UINotifierObserver: forwards ``(new_state, old_state)`` to a UI callback
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from mewt.analysis import AnalysisChannel
from mewt.observability import ObservabilityHub, ObserverFailureRecord, StateTransitionRecord
from mewt.state import resolve_text
from mewt.transport import SOURCE_ANALYSIS, SOURCE_STATE, HostTransport, build_record
from mewt.types import AnalysisResult, PresenceState, TransitionEvent

logger = logging.getLogger(__name__)

# Default priorities: higher runs first.
PRIORITY_HOST = 100
PRIORITY_ANALYSIS = 50
PRIORITY_DIAGNOSTICS = 10
PRIORITY_UI = 0


class StateChangeObserver(ABC):
    """Reaction to a committed presence transition."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def notify(self, event: TransitionEvent) -> None:
        ...


class ObserverDispatcher:
    """Priority-ordered fan-out with per-observer failure isolation.

    Observers with equal priority run in registration order.

    Args:
        hub: Observability hub for ObserverFailureRecord.
    """

    def __init__(self, hub: Optional[ObservabilityHub] = None):
        self._entries: List[Tuple[int, int, StateChangeObserver]] = []
        self._seq = 0
        self._hub = hub if hub is not None else ObservabilityHub()
        self.failures = 0

    def add_observer(self, observer: StateChangeObserver, priority: int = 0) -> None:
        self._entries.append((priority, self._seq, observer))
        self._seq += 1
        self._entries.sort(key=lambda e: (-e[0], e[1]))

    def remove_observer(self, observer: StateChangeObserver) -> bool:
        for i, (_, _, existing) in enumerate(self._entries):
            if existing is observer:
                del self._entries[i]
                return True
        return False

    @property
    def observers(self) -> List[StateChangeObserver]:
        return [observer for _, _, observer in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def notify(self, event: TransitionEvent) -> int:
        """Deliver ``event`` to every observer.

        Returns:
            Number of observers that raised.
        """
        failed = 0
        for _, _, observer in list(self._entries):
            try:
                observer.notify(event)
            except Exception as e:
                failed += 1
                logger.exception(
                    "Observer %s failed on %s -> %s",
                    observer.name, event.old_state.value, event.new_state.value,
                )
                if self._hub.enabled:
                    self._hub.emit(ObserverFailureRecord(
                        observer=observer.name,
                        old_state=event.old_state.value,
                        new_state=event.new_state.value,
                        error=repr(e),
                    ))
        self.failures += failed
        return failed


class HostNotifierObserver(StateChangeObserver):
    """Emits a state notification record to the host transport.

    Args:
        transport: Destination with a synchronous ``emit(record)``.
    """

    def __init__(self, transport: HostTransport):
        self.transport = transport

    def notify(self, event: TransitionEvent) -> None:
        text = resolve_text(event.new_state, event.emotion, event.resolved_text)
        metadata: Dict[str, Any] = {
            "old_state": event.old_state.value,
            "has_visual": event.has_visual,
            "has_audio": event.has_audio,
            "analysis_locked": event.resolved_text is not None,
            "t_ns": event.t_ns,
        }
        if event.emotion is not None:
            metadata["emotion"] = event.emotion.to_dict()
        self.transport.emit(build_record(text, SOURCE_STATE, event.new_state.value, metadata))


class AnalysisTriggerObserver(StateChangeObserver):
    """Requests deep analysis when visual presence appears or disappears.

    Transitions that keep visual presence unchanged (for example
    visual_only -> both) are ignored. The call is scheduled on the running
    event loop and never awaited here; without a running loop the request
    is skipped.

    Args:
        channel: Rate-limited analysis channel.
        frame_provider: Returns the current image payload, or None.
        on_result: Called with each completed AnalysisResult.
        transport: If given, completed results are also relayed to the host.
    """

    def __init__(
        self,
        channel: AnalysisChannel,
        frame_provider: Callable[[], Optional[str]],
        on_result: Optional[Callable[[AnalysisResult], None]] = None,
        transport: Optional[HostTransport] = None,
    ):
        self.channel = channel
        self.frame_provider = frame_provider
        self.on_result = on_result
        self.transport = transport
        self._state = PresenceState.IDLE
        self.requests = 0

    def notify(self, event: TransitionEvent) -> None:
        self._state = event.new_state
        edge = event.visual_edge
        if edge is None:
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; deep analysis on %s edge skipped", edge)
            return

        frame = self.frame_provider()
        if not frame:
            logger.debug("No frame available for deep analysis on %s edge", edge)
            return

        logger.debug("Visual %s edge: requesting deep analysis", edge)
        task = self.channel.submit(frame)
        if task is not None:
            self.requests += 1
            task.add_done_callback(self._on_done)

    def _on_done(self, task: "asyncio.Task[Optional[AnalysisResult]]") -> None:
        if task.cancelled():
            return
        result = task.result()
        if result is None:
            return
        try:
            if self.on_result is not None:
                self.on_result(result)
            if self.transport is not None:
                self.transport.emit(build_record(
                    result.text,
                    SOURCE_ANALYSIS,
                    self._state.value,
                    {
                        "analysis_locked": self.channel.is_locked(),
                        "target_present": result.target_present,
                        "confidence": result.confidence,
                    },
                ))
        except Exception:
            logger.exception("Relaying deep analysis result failed")


class DiagnosticsObserver(StateChangeObserver):
    """Logs each transition and records it on the observability hub."""

    def __init__(self, hub: ObservabilityHub):
        self.hub = hub

    def notify(self, event: TransitionEvent) -> None:
        logger.info(
            "Transition %s -> %s (visual=%s audio=%s)",
            event.old_state.value, event.new_state.value, event.has_visual, event.has_audio,
        )
        if not self.hub.enabled:
            return
        self.hub.emit(StateTransitionRecord(
            t_ns=event.t_ns,
            old_state=event.old_state.value,
            new_state=event.new_state.value,
            has_visual=event.has_visual,
            has_audio=event.has_audio,
            visual_edge=event.visual_edge or "",
            emotion_id=event.emotion.emotion_id if event.emotion else "",
            text=resolve_text(event.new_state, event.emotion, event.resolved_text),
        ))


class UINotifierObserver(StateChangeObserver):
    """Forwards transitions to ``callback(new_state, old_state)``."""

    def __init__(self, callback: Callable[[PresenceState, PresenceState], None]):
        self.callback = callback

    def notify(self, event: TransitionEvent) -> None:
        self.callback(event.new_state, event.old_state)


__all__ = [
    "PRIORITY_HOST",
    "PRIORITY_ANALYSIS",
    "PRIORITY_DIAGNOSTICS",
    "PRIORITY_UI",
    "StateChangeObserver",
    "ObserverDispatcher",
    "HostNotifierObserver",
    "AnalysisTriggerObserver",
    "DiagnosticsObserver",
    "UINotifierObserver",
]
