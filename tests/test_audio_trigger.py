"""Tests for the acoustic emotion trigger."""

import numpy as np
import pytest

from mewt.audio_trigger import AudioTrigger, buffer_fingerprint
from mewt.features import extract_features
from mewt.observability import EmotionRecord, FeatureDetailRecord

from conftest import SEC, quiet_purr


class TestTargetGate:
    def test_purring_classified(self, purr_buffer):
        trigger = AudioTrigger()
        emotion = trigger.process([("Cat purring", 0.7)], purr_buffer, t_ns=SEC)

        assert emotion.emotion_id == "comfortable"
        assert emotion.category_id == "friendly"
        assert trigger.last_features is not None
        assert trigger.stats.last_trigger_t_ns == SEC

    def test_first_target_label_wins(self):
        trigger = AudioTrigger()
        labels = [("Speech", 0.9), ("Meow", 0.5), ("Purr", 0.6)]
        assert trigger.find_target(labels) == "Meow"

    def test_non_target_labels(self, purr_buffer):
        trigger = AudioTrigger()
        assert trigger.process([("Dog", 0.9), ("Silence", 0.8)], purr_buffer) is None
        assert trigger.stats.target_detected == 0

    def test_below_threshold(self, purr_buffer):
        trigger = AudioTrigger(threshold=0.2)
        assert trigger.process([("Meow", 0.2)], purr_buffer) is None

    def test_empty_labels(self, purr_buffer):
        trigger = AudioTrigger()
        assert trigger.process([], purr_buffer) is None
        assert trigger.process(None, purr_buffer) is None
        assert trigger.stats.processed == 2


class TestBuffers:
    def test_missing_samples(self):
        trigger = AudioTrigger()
        assert trigger.process([("Meow", 0.8)]) is None
        assert trigger.process([("Meow", 0.8)], np.zeros(0)) is None
        assert trigger.stats.target_detected == 2
        assert trigger.stats.emotion_triggered == 0

    def test_silent_buffer_rejected(self):
        trigger = AudioTrigger()
        assert trigger.process([("Meow", 0.8)], np.zeros(512)) is None
        assert trigger.stats.rejected_buffers == 1

    def test_non_finite_buffer_rejected(self):
        trigger = AudioTrigger()
        samples = quiet_purr()
        samples[3] = np.nan
        assert trigger.process([("Meow", 0.8)], samples) is None
        assert trigger.stats.rejected_buffers == 1

    @pytest.mark.parametrize("samples", [["a", "b", "c"], [[0.1], [0.2, 0.3]]])
    def test_malformed_buffer_rejected(self, samples):
        trigger = AudioTrigger()
        assert trigger.process([("Meow", 0.8)], samples) is None
        assert trigger.stats.rejected_buffers == 1
        assert trigger.cache_size == 0

    def test_loud_noise_has_no_confident_emotion(self, noise_buffer):
        trigger = AudioTrigger()
        assert trigger.process([("Meow", 0.8)], noise_buffer) is None
        assert trigger.stats.emotion_triggered == 0

    def test_min_confidence(self, purr_buffer):
        trigger = AudioTrigger(min_confidence=0.9)
        assert trigger.process([("Purr", 0.8)], purr_buffer) is None


class TestFeatureCache:
    def test_same_buffer_extracted_once(self, purr_buffer):
        trigger = AudioTrigger()
        first = trigger.extract(purr_buffer)
        second = trigger.extract(purr_buffer.copy())

        assert first == second
        assert trigger.stats.cache_hits == 1
        assert trigger.cache_size == 1

    def test_cache_is_bounded(self):
        trigger = AudioTrigger(feature_cache_size=2)
        for amplitude in (1e-4, 2e-4, 3e-4):
            trigger.extract(quiet_purr(amplitude=amplitude))
        assert trigger.cache_size == 2
        assert trigger.get_stats()["cache_capacity"] == 2

    def test_cache_disabled(self, purr_buffer):
        trigger = AudioTrigger(feature_cache_size=0)
        trigger.extract(purr_buffer)
        trigger.extract(purr_buffer)
        assert trigger.cache_size == 0
        assert trigger.stats.cache_hits == 0

    def test_fingerprint_distinguishes_buffers(self):
        assert buffer_fingerprint(quiet_purr()) == buffer_fingerprint(quiet_purr())
        assert buffer_fingerprint(quiet_purr()) != buffer_fingerprint(quiet_purr(amplitude=2e-4))
        assert buffer_fingerprint(quiet_purr(512)) != buffer_fingerprint(quiet_purr(1024))

    def test_buffers_differing_between_strided_samples(self):
        """Every sample counts toward the cache key, not just a subsample."""
        first = quiet_purr(num_samples=1000)
        second = first.copy()
        rng = np.random.default_rng(7)
        mask = np.arange(second.size) % 10 != 0
        second[mask] = rng.uniform(-0.9, 0.9, size=int(mask.sum()))

        trigger = AudioTrigger()
        trigger.extract(first)
        assert trigger.extract(second) == extract_features(second)
        assert trigger.stats.cache_hits == 0
        assert trigger.cache_size == 2

    def test_reset(self, purr_buffer):
        trigger = AudioTrigger()
        trigger.process([("Meow", 0.8)], purr_buffer)
        trigger.reset()
        assert trigger.cache_size == 0
        assert trigger.last_features is None
        assert trigger.get_stats()["processed"] == 0


class TestTracing:
    def test_emits_emotion_and_feature_records(self, traced_hub, memory_sink, purr_buffer):
        trigger = AudioTrigger(hub=traced_hub)
        trigger.process([("Meow", 0.8)], purr_buffer, t_ns=2 * SEC)

        emotions = memory_sink.get_by_type(EmotionRecord)
        assert len(emotions) == 1
        assert emotions[0].emotion_id == "comfortable"
        assert emotions[0].trigger_label == "Meow"

        details = memory_sink.get_by_type(FeatureDetailRecord)
        assert details[0].num_samples == purr_buffer.size
        assert not details[0].cached
        assert details[0].features["rms"] == pytest.approx(trigger.last_features.rms)
