"""Acoustic emotion trigger.

Listens to acoustic classifier output and, when a target sound is heard
with a raw sample buffer attached, extracts features and classifies the
emotion. Features are cached per buffer fingerprint so the same chunk
delivered twice is only analyzed once.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, Optional, Tuple

import numpy as np

from mewt.emotions import MIN_RESULT_CONFIDENCE, classify_emotion
from mewt.errors import InvalidInputError
from mewt.features import SampleBuffer, as_samples, extract_features
from mewt.observability import EmotionRecord, FeatureDetailRecord, ObservabilityHub
from mewt.targets import is_target_class
from mewt.types import EmotionResult, FeatureVector, Source

logger = logging.getLogger(__name__)

@dataclass
class AudioTriggerStats:
    """Counters for the acoustic trigger."""

    processed: int = 0
    target_detected: int = 0
    emotion_triggered: int = 0
    rejected_buffers: int = 0
    cache_hits: int = 0
    last_trigger_t_ns: int = 0

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "processed": self.processed,
                "target_detected": self.target_detected,
                "emotion_triggered": self.emotion_triggered,
                "rejected_buffers": self.rejected_buffers,
                "cache_hits": self.cache_hits,
                "last_trigger_t_ns": self.last_trigger_t_ns,
            }


def buffer_fingerprint(samples: np.ndarray) -> Hashable:
    """Cache key for a validated buffer: length plus a digest of every sample."""
    digest = hashlib.blake2b(np.ascontiguousarray(samples).tobytes(), digest_size=16).digest()
    return (samples.size, digest)


class AudioTrigger:
    """Target-sound gate followed by feature extraction and emotion rules.

    Args:
        threshold: Acoustic confidence a target label must exceed (default: 0.2).
        min_confidence: Emotions at or below this are dropped (default: 0.5).
        feature_cache_size: FIFO feature cache capacity (default: 100).
        hub: Observability hub for emotion and feature records.

    Example:
        >>> trigger = AudioTrigger()
        >>> emotion = trigger.process([("Meow", 0.8)], samples)
        >>> if emotion:
        ...     print(emotion.text)
    """

    def __init__(
        self,
        threshold: float = 0.2,
        min_confidence: float = MIN_RESULT_CONFIDENCE,
        feature_cache_size: int = 100,
        hub: Optional[ObservabilityHub] = None,
    ):
        self.threshold = threshold
        self.min_confidence = min_confidence
        self._cache_size = max(0, feature_cache_size)
        self._cache: "OrderedDict[Hashable, FeatureVector]" = OrderedDict()
        self._hub = hub if hub is not None else ObservabilityHub()
        self._last_features: Optional[FeatureVector] = None
        self._last_label = ""
        self.stats = AudioTriggerStats()

    @property
    def last_features(self) -> Optional[FeatureVector]:
        """Features behind the most recent emotion, if any."""
        return self._last_features

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def find_target(self, labels: Optional[Iterable[Tuple[str, float]]]) -> Optional[str]:
        """First label that names a target sound above the threshold."""
        if not labels:
            return None
        for label, confidence in labels:
            if confidence > self.threshold and is_target_class(label, Source.ACOUSTIC):
                return label
        return None

    def process(
        self,
        labels: Optional[Iterable[Tuple[str, float]]],
        samples: Optional[SampleBuffer] = None,
        t_ns: int = 0,
    ) -> Optional[EmotionResult]:
        """Handle one acoustic classifier result.

        Args:
            labels: ``(label, confidence)`` pairs from the acoustic classifier.
            samples: Raw samples of the same chunk, if available.
            t_ns: Event time.

        Returns:
            EmotionResult, or None when no target sound, no usable buffer,
            or no confident emotion.
        """
        with self.stats._lock:
            self.stats.processed += 1

        label = self.find_target(list(labels) if labels else None)
        if label is None:
            return None
        with self.stats._lock:
            self.stats.target_detected += 1

        if samples is None:
            logger.warning("Target sound %r heard without a sample buffer", label)
            return None

        features = self.extract(samples, t_ns)
        if features is None:
            return None

        emotion = classify_emotion(features, min_confidence=self.min_confidence)
        if emotion is None:
            logger.debug("No confident emotion for %r", label)
            return None

        with self.stats._lock:
            self.stats.emotion_triggered += 1
            self.stats.last_trigger_t_ns = t_ns
        self._last_features = features
        self._last_label = label

        logger.debug("Emotion %s (%.2f) from %r", emotion.emotion_id, emotion.confidence, label)
        if self._hub.enabled:
            self._hub.emit(EmotionRecord(
                t_ns=t_ns,
                emotion_id=emotion.emotion_id,
                category_id=emotion.category_id,
                confidence=emotion.confidence,
                trigger_label=label,
            ))
        return emotion

    def extract(self, samples: SampleBuffer, t_ns: int = 0) -> Optional[FeatureVector]:
        """Cached feature extraction; invalid buffers yield None."""
        try:
            array = as_samples(samples)
            key = buffer_fingerprint(array)
            cached = key in self._cache
            if cached:
                features = self._cache[key]
                with self.stats._lock:
                    self.stats.cache_hits += 1
            else:
                features = extract_features(array)
                self._remember(key, features)
        except InvalidInputError as e:
            logger.warning("Rejected sample buffer: %s", e)
            with self.stats._lock:
                self.stats.rejected_buffers += 1
            return None

        if self._hub.enabled:
            self._hub.emit(FeatureDetailRecord(
                t_ns=t_ns,
                num_samples=int(array.size),
                cached=cached,
                features=features.to_dict(),
            ))
        return features

    def _remember(self, key: Hashable, features: FeatureVector) -> None:
        if self._cache_size == 0:
            return
        if len(self._cache) >= self._cache_size:
            self._cache.popitem(last=False)
        self._cache[key] = features

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats["cache_size"] = len(self._cache)
        stats["cache_capacity"] = self._cache_size
        return stats

    def reset(self) -> None:
        self._cache.clear()
        self._last_features = None
        self._last_label = ""
        self.stats = AudioTriggerStats()


__all__ = ["AudioTrigger", "AudioTriggerStats", "buffer_fingerprint"]
