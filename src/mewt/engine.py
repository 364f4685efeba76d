"""MewtEngine: fusion of visual and acoustic detections into presence state.

One engine instance owns every piece of mutable state: the current window,
the trust cache, the debounced state machine, the audio trigger, the
analysis channel and the observability hub. Producers push classifier
results at any rate; a periodic ``tick`` flushes the window, classifies
the presence state, debounces it and dispatches committed transitions.

Example:
    >>> engine = MewtEngine(transport=StreamTransport())
    >>> engine.handle_visual_result([("tabby cat", 0.85)])
    >>> engine.handle_audio_result([("Silence", 0.9)])
    >>> event = engine.tick()
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from mewt.analysis import AnalysisChannel, AnalysisClient, HttpAnalysisClient
from mewt.audio_trigger import AudioTrigger
from mewt.config import EngineConfig
from mewt.errors import InvalidInputError
from mewt.features import SampleBuffer
from mewt.observability import FileSink, ObservabilityHub, TraceLevel, WindowFlushRecord
from mewt.observers import (
    PRIORITY_ANALYSIS,
    PRIORITY_DIAGNOSTICS,
    PRIORITY_HOST,
    PRIORITY_UI,
    AnalysisTriggerObserver,
    DiagnosticsObserver,
    HostNotifierObserver,
    ObserverDispatcher,
    UINotifierObserver,
)
from mewt.state import DebouncedStateMachine, classify_state, resolve_text
from mewt.transport import HostTransport
from mewt.trust import TrustCache
from mewt.types import (
    AnalysisResult,
    Detection,
    EmotionResult,
    PresenceState,
    Source,
    TransitionEvent,
)
from mewt.window import WindowAggregator

logger = logging.getLogger(__name__)

ClassifierOutput = Iterable[Union[Detection, Tuple[str, float]]]


class MewtEngine:
    """Multi-modal presence engine.

    Args:
        config: Engine configuration (default: EngineConfig()).
        transport: Host transport for notification records.
        analysis_client: Deep-analysis backend. When omitted and the config
            names an endpoint, an HttpAnalysisClient is created.
        frame_provider: Returns the current image payload for deep analysis.
        hub: Observability hub. A new one is created when omitted.
        clock: Monotonic nanosecond clock (default: ``time.monotonic_ns``).
        on_update: Called with the resolved text whenever it changes.
        on_state_change: UI callback ``(new_state, old_state)``.
        on_analysis_result: Called with each completed AnalysisResult.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        transport: Optional[HostTransport] = None,
        analysis_client: Optional[AnalysisClient] = None,
        frame_provider: Optional[Callable[[], Optional[str]]] = None,
        hub: Optional[ObservabilityHub] = None,
        clock: Optional[Callable[[], int]] = None,
        on_update: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[PresenceState, PresenceState], None]] = None,
        on_analysis_result: Optional[Callable[[AnalysisResult], None]] = None,
    ):
        self.config = config or EngineConfig()
        self._clock = clock or time.monotonic_ns
        self.on_update = on_update

        self.hub = hub if hub is not None else ObservabilityHub()
        self._trace_sink: Optional[FileSink] = None
        self._configure_tracing()

        window_cfg = self.config.window
        emotion_cfg = self.config.emotion
        analysis_cfg = self.config.analysis

        self.trust_cache = TrustCache(window_cfg.trust_capacity, window_cfg.trust_lookback)
        self.aggregator = WindowAggregator(
            self.trust_cache,
            visual_threshold=window_cfg.visual_threshold,
            audio_threshold=window_cfg.audio_threshold,
        )
        self.audio_trigger = AudioTrigger(
            threshold=window_cfg.audio_threshold,
            min_confidence=emotion_cfg.min_confidence,
            feature_cache_size=emotion_cfg.feature_cache_size,
            hub=self.hub,
        )
        self.state_machine = DebouncedStateMachine(window_cfg.debounce_sec)

        if analysis_client is None and analysis_cfg.endpoint:
            analysis_client = HttpAnalysisClient(analysis_cfg.endpoint, analysis_cfg.timeout_sec)
        self._http_client = analysis_client if isinstance(analysis_client, HttpAnalysisClient) else None
        self.channel: Optional[AnalysisChannel] = None
        if analysis_client is not None:
            self.channel = AnalysisChannel(
                analysis_client,
                prompt=analysis_cfg.prompt,
                min_interval_sec=analysis_cfg.min_interval_sec,
                max_per_minute=analysis_cfg.max_per_minute,
                lock_ttl_sec=analysis_cfg.lock_ttl_sec,
                timeout_sec=analysis_cfg.timeout_sec,
                enabled=analysis_cfg.enabled,
                clock=self._clock,
                hub=self.hub,
            )

        self.dispatcher = ObserverDispatcher(self.hub)
        if transport is not None:
            self.dispatcher.add_observer(HostNotifierObserver(transport), PRIORITY_HOST)
        if self.channel is not None and frame_provider is not None:
            self.dispatcher.add_observer(
                AnalysisTriggerObserver(self.channel, frame_provider, on_analysis_result, transport),
                PRIORITY_ANALYSIS,
            )
        self.dispatcher.add_observer(DiagnosticsObserver(self.hub), PRIORITY_DIAGNOSTICS)
        if on_state_change is not None:
            self.dispatcher.add_observer(UINotifierObserver(on_state_change), PRIORITY_UI)

        # State
        self._tick_lock = threading.Lock()
        self._emotion: Optional[EmotionResult] = None
        self._last_text: Optional[str] = None
        self._tick_count = 0
        self._tick_errors = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _configure_tracing(self) -> None:
        level = self.config.trace
        if level == TraceLevel.OFF:
            return
        sinks = []
        if self.config.trace_output:
            self._trace_sink = FileSink(self.config.trace_output)
            sinks.append(self._trace_sink)
        self.hub.configure(level=level, sinks=sinks)

    def now(self) -> int:
        return self._clock()

    # --- Ingestion --------------------------------------------------------

    def _to_detections(
        self, results: Optional[ClassifierOutput], source: Source, t_ns: int
    ) -> List[Detection]:
        detections: List[Detection] = []
        for item in results or ():
            try:
                if isinstance(item, Detection):
                    detections.append(item)
                else:
                    category, confidence = item
                    detections.append(Detection(category, confidence, source, t_ns))
            except (InvalidInputError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s detection %r: %s", source.value, item, e)
        return detections

    def handle_visual_result(self, results: Optional[ClassifierOutput], t_ns: Optional[int] = None) -> int:
        """Ingest one visual classifier result.

        Returns:
            Number of detections merged into the current window.
        """
        now = self._clock() if t_ns is None else t_ns
        detections = self._to_detections(results, Source.VISUAL, now)
        return self.aggregator.add_detections(detections)

    def handle_audio_result(
        self,
        results: Optional[ClassifierOutput],
        samples: Optional[SampleBuffer] = None,
        t_ns: Optional[int] = None,
    ) -> Optional[EmotionResult]:
        """Ingest one acoustic classifier result and its raw samples.

        Returns:
            The emotion classified from ``samples``, if any.
        """
        now = self._clock() if t_ns is None else t_ns
        detections = self._to_detections(results, Source.ACOUSTIC, now)
        self.aggregator.add_detections(detections)
        if not detections:
            return None

        emotion = self.audio_trigger.process(
            [(d.category, d.confidence) for d in detections], samples, now,
        )
        if emotion is not None:
            self.aggregator.set_emotion(emotion, self.audio_trigger.last_features)
        return emotion

    # --- Tick -------------------------------------------------------------

    def tick(self, t_ns: Optional[int] = None) -> Optional[TransitionEvent]:
        """Flush the window, update the state and dispatch a committed transition.

        Never raises: a failing tick is logged and returns None.
        """
        now = self._clock() if t_ns is None else t_ns
        with self._tick_lock:
            try:
                return self._tick(now)
            except Exception:
                self._tick_errors += 1
                logger.exception("Tick failed at t_ns=%d", now)
                return None

    def _tick(self, now: int) -> Optional[TransitionEvent]:
        self._tick_count += 1
        window = self.aggregator.flush(now)
        if window is None:
            return None

        raw = classify_state(window.has_visual, window.has_audio)
        if window.emotion is not None:
            self._emotion = window.emotion
        elif not window.has_audio:
            self._emotion = None

        committed = self.state_machine.update(raw, now)

        if self.hub.is_level_enabled(TraceLevel.NORMAL):
            self.hub.emit(WindowFlushRecord(
                window_id=window.window_id,
                t_ns=now,
                visual_count=len(window.snapshot.visual),
                acoustic_count=len(window.snapshot.acoustic),
                has_visual=window.has_visual,
                has_audio=window.has_audio,
                trust_override=window.trust_override,
                raw_state=raw.value,
                stable_state=self.state_machine.stable.value,
                processing_ms=self.aggregator.stats.avg_flush_ms,
            ))

        event = None
        if committed is not None:
            old, new = committed
            event = TransitionEvent(
                old_state=old,
                new_state=new,
                t_ns=now,
                has_visual=window.has_visual,
                has_audio=window.has_audio,
                emotion=self._emotion,
                resolved_text=self._locked_text(now),
            )
            self.dispatcher.notify(event)

        self._publish_text(now)
        return event

    def _locked_text(self, t_ns: int) -> Optional[str]:
        if self.channel is None:
            return None
        return self.channel.get_text(t_ns)

    def _publish_text(self, t_ns: int) -> None:
        text = self.current_text(t_ns)
        if text == self._last_text:
            return
        self._last_text = text
        if self.on_update is None:
            return
        try:
            self.on_update(text)
        except Exception:
            logger.exception("on_update callback failed")

    # --- Queries ----------------------------------------------------------

    @property
    def state(self) -> PresenceState:
        """Committed (stable) presence state."""
        return self.state_machine.stable

    def current_text(self, t_ns: Optional[int] = None) -> str:
        now = self._clock() if t_ns is None else t_ns
        return resolve_text(self.state_machine.stable, self._emotion, self._locked_text(now))

    def has_visual(self) -> bool:
        return self.aggregator.has_visual()

    def has_audio(self) -> bool:
        return self.aggregator.has_audio()

    def update_thresholds(self, visual: Optional[float] = None, audio: Optional[float] = None) -> None:
        """Change detection thresholds at runtime."""
        for name, value in (("visual", visual), ("audio", audio)):
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} threshold must be within [0, 1], got {value}")
        self.aggregator.update_thresholds(visual=visual, audio=audio)
        if audio is not None:
            self.audio_trigger.threshold = audio

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        stats: Dict[str, Any] = {
            "state": self.state_machine.stable.value,
            "pending": self.state_machine.pending.value,
            "last_stable": self.state_machine.last_stable.value,
            "time_since_change_ms": self.state_machine.time_since_change_ns(now) // 1_000_000,
            "transitions": self.state_machine.commit_count,
            "ticks": self._tick_count,
            "tick_errors": self._tick_errors,
            "observer_failures": self.dispatcher.failures,
            "window": self.aggregator.stats.to_dict(),
            "trust": self.trust_cache.stats(),
            "audio": self.audio_trigger.get_stats(),
        }
        if self.channel is not None:
            stats["analysis"] = self.channel.status(now).to_dict()
        return stats

    def reset(self) -> None:
        """Forget all window, trust, state and emotion history."""
        with self._tick_lock:
            self.aggregator.reset()
            self.state_machine.reset()
            self.audio_trigger.reset()
            self._emotion = None
            self._last_text = None
            if self.channel is not None:
                self.channel.unlock()
                self.channel.limiter.reset()

    # --- Loop -------------------------------------------------------------

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick every ``window.interval_sec`` until stopped.

        Analysis calls scheduled by observers run on this loop between ticks.
        """
        interval = self.config.window.interval_sec
        ticks = 0
        logger.info("Engine loop started (interval=%.2fs)", interval)
        try:
            while not self._stop_event.is_set():
                self.tick()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                await asyncio.sleep(interval)
        finally:
            if self.channel is not None and self.channel.in_flight:
                await self.channel.wait()
            if self._http_client is not None:
                await self._http_client.aclose()
            logger.info("Engine loop stopped after %d ticks", ticks)

    def start(self) -> None:
        """Run the tick loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Engine is already running")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=lambda: asyncio.run(self.run()),
            name="mewt-engine",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background loop and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.close()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def close(self) -> None:
        """Flush traces and close the trace file this engine opened."""
        self.hub.flush()
        if self._trace_sink is not None:
            self.hub.remove_sink(self._trace_sink)
            self._trace_sink.close()
            self._trace_sink = None


__all__ = ["MewtEngine"]
