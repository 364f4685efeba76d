"""Per-tick detection aggregation.

WindowAggregator collects detections from the visual and acoustic
producers into per-source ``category -> max confidence`` maps. ``flush``
swaps the window out under the lock, so producers keep writing into the
next window while the previous one is evaluated.

Example:
    >>> agg = WindowAggregator(TrustCache())
    >>> agg.add_detection(Source.VISUAL, "tabby_cat", 0.85)
    >>> result = agg.flush(t_ns=1_000_000_000)
    >>> result.has_visual, result.has_audio
    (True, False)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from mewt.targets import is_target_class
from mewt.trust import TrustCache
from mewt.types import (
    Detection,
    EmotionResult,
    FeatureVector,
    Source,
    TrustEntry,
    WindowResult,
    WindowSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class WindowStats:
    """Thread-safe counters for the aggregator."""

    windows_flushed: int = 0
    visual_ingested: int = 0
    acoustic_ingested: int = 0
    trust_overrides: int = 0
    overlapping_flushes: int = 0
    total_flush_ms: float = 0.0
    last_visual_size: int = 0
    last_acoustic_size: int = 0

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_ingestion(self, source: Source) -> None:
        with self._lock:
            if source == Source.VISUAL:
                self.visual_ingested += 1
            else:
                self.acoustic_ingested += 1

    def record_flush(self, snapshot: WindowSnapshot, elapsed_ms: float, trust_override: bool) -> None:
        with self._lock:
            self.windows_flushed += 1
            self.total_flush_ms += elapsed_ms
            self.last_visual_size = len(snapshot.visual)
            self.last_acoustic_size = len(snapshot.acoustic)
            if trust_override:
                self.trust_overrides += 1

    def record_overlap(self) -> None:
        with self._lock:
            self.overlapping_flushes += 1

    @property
    def avg_flush_ms(self) -> float:
        if self.windows_flushed == 0:
            return 0.0
        return self.total_flush_ms / self.windows_flushed

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "windows_flushed": self.windows_flushed,
                "visual_ingested": self.visual_ingested,
                "acoustic_ingested": self.acoustic_ingested,
                "trust_overrides": self.trust_overrides,
                "overlapping_flushes": self.overlapping_flushes,
                "avg_flush_ms": round(self.avg_flush_ms, 3),
                "last_visual_size": self.last_visual_size,
                "last_acoustic_size": self.last_acoustic_size,
            }


class WindowAggregator:
    """Aggregates detections into windows and decides per-window presence.

    On flush:
    1. A visual target above ``visual_threshold`` sets ``has_visual``.
    2. Otherwise, a target-class entry among the last ``trust_cache.lookback``
       trust entries sets it anyway (trust override).
    3. Every visual detection of the window is written to the trust cache.
    4. An acoustic target above ``audio_threshold`` sets ``has_audio``.

    Args:
        trust_cache: History consulted and written at flush time.
        visual_threshold: Minimum visual confidence, exclusive (default: 0.3).
        audio_threshold: Minimum acoustic confidence, exclusive (default: 0.2).
    """

    def __init__(
        self,
        trust_cache: Optional[TrustCache] = None,
        visual_threshold: float = 0.3,
        audio_threshold: float = 0.2,
    ):
        self.trust_cache = trust_cache if trust_cache is not None else TrustCache()
        self.visual_threshold = visual_threshold
        self.audio_threshold = audio_threshold

        self._lock = threading.Lock()
        self._window = WindowSnapshot()
        self._emotion: Optional[EmotionResult] = None
        self._features: Optional[FeatureVector] = None
        self._flushing = False
        self._window_id = 0
        self._last_result: Optional[WindowResult] = None
        self.stats = WindowStats()

    # --- Ingestion --------------------------------------------------------

    def add_detection(self, source: Source, category: str, confidence: float) -> None:
        """Merge one detection into the current window (max per category)."""
        source = Source(source)
        with self._lock:
            self._window.merge(source, category, confidence)
        self.stats.record_ingestion(source)

    def add_detections(self, detections: Optional[Iterable[Detection]]) -> int:
        """Merge a batch of detections. ``None`` or empty is a no-op.

        Returns:
            Number of detections merged.
        """
        if not detections:
            return 0
        batch = list(detections)
        with self._lock:
            for detection in batch:
                self._window.merge(detection.source, detection.category, detection.confidence)
        for detection in batch:
            self.stats.record_ingestion(detection.source)
        return len(batch)

    def set_emotion(self, emotion: EmotionResult, features: Optional[FeatureVector] = None) -> None:
        """Attach the latest emotion to the current window."""
        with self._lock:
            self._emotion = emotion
            self._features = features

    def current_window(self) -> WindowSnapshot:
        """Copy of the window being filled, without flushing it."""
        with self._lock:
            return self._window.copy()

    # --- Flush ------------------------------------------------------------

    def flush(self, t_ns: int) -> Optional[WindowResult]:
        """Close the current window and evaluate it.

        Returns:
            WindowResult, or None if another flush is still in progress.
        """
        with self._lock:
            if self._flushing:
                logger.warning("Flush requested while a flush is in progress; skipped")
                self.stats.record_overlap()
                return None
            self._flushing = True
            snapshot, self._window = self._window, WindowSnapshot()
            emotion, self._emotion = self._emotion, None
            features, self._features = self._features, None
            self._window_id += 1
            window_id = self._window_id

        try:
            start = time.perf_counter()
            result = self._evaluate(window_id, t_ns, snapshot, emotion, features)
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.stats.record_flush(snapshot, elapsed_ms, result.trust_override)
            self._last_result = result
            return result
        finally:
            with self._lock:
                self._flushing = False

    def _evaluate(
        self,
        window_id: int,
        t_ns: int,
        snapshot: WindowSnapshot,
        emotion: Optional[EmotionResult],
        features: Optional[FeatureVector],
    ) -> WindowResult:
        direct_visual = self._has_target(snapshot.visual, Source.VISUAL, self.visual_threshold)
        has_audio = self._has_target(snapshot.acoustic, Source.ACOUSTIC, self.audio_threshold)

        # History is consulted before this window's entries are written.
        trust_override = False
        if not direct_visual and self.trust_cache.has_recent_target():
            trust_override = True
            logger.debug("Window %d: visual presence kept by trust history", window_id)

        for category, confidence in snapshot.visual.items():
            self.trust_cache.record(TrustEntry(
                category=category,
                confidence=confidence,
                t_ns=t_ns,
                is_target_class=(
                    is_target_class(category, Source.VISUAL)
                    and confidence > self.visual_threshold
                ),
            ))

        return WindowResult(
            window_id=window_id,
            t_ns=t_ns,
            snapshot=snapshot,
            has_visual=direct_visual or trust_override,
            has_audio=has_audio,
            trust_override=trust_override,
            emotion=emotion,
            features=features,
        )

    @staticmethod
    def _has_target(categories: Dict[str, float], source: Source, threshold: float) -> bool:
        return any(
            confidence > threshold and is_target_class(category, source)
            for category, confidence in categories.items()
        )

    # --- Queries ----------------------------------------------------------

    @property
    def last_result(self) -> Optional[WindowResult]:
        return self._last_result

    def has_visual(self) -> bool:
        """Visual presence of the most recently flushed window."""
        return self._last_result is not None and self._last_result.has_visual

    def has_audio(self) -> bool:
        """Acoustic presence of the most recently flushed window."""
        return self._last_result is not None and self._last_result.has_audio

    @property
    def window_id(self) -> int:
        return self._window_id

    def update_thresholds(
        self,
        visual: Optional[float] = None,
        audio: Optional[float] = None,
    ) -> None:
        if visual is not None:
            self.visual_threshold = visual
        if audio is not None:
            self.audio_threshold = audio
        logger.info(
            "Thresholds updated: visual=%.2f audio=%.2f",
            self.visual_threshold, self.audio_threshold,
        )

    def reset(self) -> None:
        with self._lock:
            self._window = WindowSnapshot()
            self._emotion = None
            self._features = None
            self._window_id = 0
        self._last_result = None
        self.trust_cache.clear()
        self.stats = WindowStats()


__all__ = ["WindowStats", "WindowAggregator"]
