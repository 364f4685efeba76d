"""Tests for acoustic feature extraction."""

import numpy as np
import pytest

from mewt.errors import InvalidInputError
from mewt.features import (
    extract_features,
    spectral_centroid,
    spectral_rolloff,
    zero_crossing_rate,
)


class TestZeroCrossingRate:
    def test_alternating_signs(self):
        """Every adjacent pair changes sign: n-1 crossings over n samples."""
        samples = np.array([1.0, -1.0, 1.0, -1.0])
        assert zero_crossing_rate(samples) == pytest.approx(0.75)

    def test_zero_counts_as_non_negative(self):
        """0 -> positive is not a crossing, 0 -> negative is."""
        assert zero_crossing_rate(np.array([0.0, 0.5])) == 0.0
        assert zero_crossing_rate(np.array([0.0, -0.5])) == pytest.approx(0.5)

    def test_constant_sign(self):
        assert zero_crossing_rate(np.array([0.2, 0.3, 0.1])) == 0.0


class TestSpectralProxies:
    def test_centroid_is_weighted_index(self):
        """All amplitude at the last index puts the centroid there."""
        magnitude = np.array([0.0, 0.0, 1.0])
        assert spectral_centroid(magnitude, 1.0) == pytest.approx(2.0)

    def test_centroid_uniform(self):
        magnitude = np.ones(4)
        assert spectral_centroid(magnitude, 4.0) == pytest.approx(1.5)

    def test_rolloff_uniform(self):
        """85% of four equal samples is reached at index 3."""
        magnitude = np.ones(4)
        assert spectral_rolloff(magnitude, 4.0) == pytest.approx(0.75)

    def test_rolloff_front_loaded(self):
        magnitude = np.array([1.0, 0.0, 0.0, 0.0])
        assert spectral_rolloff(magnitude, 1.0) == 0.0


class TestExtractFeatures:
    def test_energy_and_rms(self):
        features = extract_features([0.5, -0.5])
        assert features.energy == pytest.approx(0.25)
        assert features.rms == pytest.approx(0.5)
        assert features.zero_crossing_rate == pytest.approx(0.5)

    def test_all_fields_non_negative(self, noise_buffer):
        features = extract_features(noise_buffer)
        for name, value in features.to_dict().items():
            assert value >= 0.0, name

    def test_rms_is_sqrt_energy(self, noise_buffer):
        features = extract_features(noise_buffer)
        assert features.rms == pytest.approx(np.sqrt(features.energy))

    def test_deterministic(self, noise_buffer):
        assert extract_features(noise_buffer) == extract_features(noise_buffer.copy())

    def test_accepts_python_list(self):
        features = extract_features([0.1, -0.2, 0.3])
        assert features.spectral_rolloff <= 1.0

    def test_slow_sine_has_low_zcr(self):
        samples = np.sin(np.linspace(0, 40 * np.pi, 1024))
        features = extract_features(samples)
        assert 0.0 < features.zero_crossing_rate < 0.1


class TestInvalidInput:
    @pytest.mark.parametrize("buffer", [
        [],
        np.zeros(0),
        np.zeros(256),
        np.zeros((2, 8)),
        [0.1, float("nan"), 0.2],
        [0.1, float("inf")],
        ["a", "b"],
        [[0.1], [0.2, 0.3]],
    ])
    def test_rejected(self, buffer):
        """Empty, silent, non-numeric, ragged, multi-dimensional and non-finite buffers raise."""
        with pytest.raises(InvalidInputError):
            extract_features(buffer)

    def test_none_rejected(self):
        with pytest.raises(InvalidInputError):
            extract_features(None)

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            extract_features([])
