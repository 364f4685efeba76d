"""Acoustic feature extraction.

Computes the five-scalar descriptor used by the emotion rule engine from a
raw buffer of samples in [-1, 1]. The "spectral" features are time-domain
proxies: the centroid is the amplitude-weighted mean sample index and the
rolloff is the fraction of the buffer holding 85% of the total absolute
amplitude.

Input policy: non-numeric, ragged, empty, multi-dimensional, non-finite
and all-zero buffers are rejected with ``InvalidInputError``. Silence
carries no usable descriptor, so it is treated the same as missing data.
"""

from typing import Sequence, Union

import numpy as np

from mewt.errors import InvalidInputError
from mewt.types import FeatureVector

ROLLOFF_FRACTION = 0.85

SampleBuffer = Union[np.ndarray, Sequence[float]]


def as_samples(buffer: SampleBuffer) -> np.ndarray:
    """Validate a raw buffer and return it as a 1-D float64 array.

    Raises:
        InvalidInputError: For None, non-numeric, ragged, empty, non-1-D
            or non-finite buffers.
    """
    if buffer is None:
        raise InvalidInputError("Sample buffer is None")
    try:
        samples = np.asarray(buffer, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Sample buffer is not numeric: {e}") from e
    if samples.ndim != 1:
        raise InvalidInputError(f"Sample buffer must be 1-D, got shape {samples.shape}")
    if samples.size == 0:
        raise InvalidInputError("Sample buffer is empty")
    if not np.all(np.isfinite(samples)):
        raise InvalidInputError("Sample buffer contains non-finite values")
    return samples


def zero_crossing_rate(samples: np.ndarray) -> float:
    """Sign changes per sample (zero counts as non-negative)."""
    non_negative = samples >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return float(crossings) / samples.size


def spectral_centroid(magnitude: np.ndarray, total: float) -> float:
    """Amplitude-weighted mean sample index."""
    indices = np.arange(magnitude.size, dtype=np.float64)
    return float(np.dot(indices, magnitude) / total)


def spectral_rolloff(magnitude: np.ndarray, total: float) -> float:
    """Fractional index where cumulative amplitude reaches 85% of total."""
    cumulative = np.cumsum(magnitude)
    index = int(np.searchsorted(cumulative, ROLLOFF_FRACTION * total, side="left"))
    if index >= magnitude.size:
        return 1.0
    return index / magnitude.size


def extract_features(buffer: SampleBuffer) -> FeatureVector:
    """Extract a FeatureVector from raw samples.

    Args:
        buffer: 1-D sequence or array of samples in [-1, 1].

    Returns:
        FeatureVector with all fields non-negative.

    Raises:
        InvalidInputError: For empty, non-1-D, non-finite, or silent buffers.

    Example:
        >>> fv = extract_features(np.sin(np.linspace(0, 40 * np.pi, 1024)))
        >>> 0.0 < fv.zero_crossing_rate < 0.1
        True
    """
    samples = as_samples(buffer)
    magnitude = np.abs(samples)
    total = float(magnitude.sum())
    if total == 0.0:
        raise InvalidInputError("Sample buffer is silent (all zeros)")

    energy = float(np.mean(samples * samples))
    return FeatureVector(
        zero_crossing_rate=zero_crossing_rate(samples),
        spectral_centroid=spectral_centroid(magnitude, total),
        spectral_rolloff=spectral_rolloff(magnitude, total),
        energy=energy,
        rms=float(np.sqrt(energy)),
    )


__all__ = [
    "ROLLOFF_FRACTION",
    "as_samples",
    "extract_features",
    "zero_crossing_rate",
    "spectral_centroid",
    "spectral_rolloff",
]
