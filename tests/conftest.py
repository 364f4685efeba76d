"""Shared fixtures for mewt tests.

All classifier output is synthetic: label/confidence pairs and generated
sample buffers. No network access; deep analysis is faked.
"""

import asyncio

import numpy as np
import pytest

from mewt.observability import MemorySink, ObservabilityHub, TraceLevel
from mewt.types import AnalysisResult, FeatureVector

SEC = 1_000_000_000


class FakeClock:
    """Manually advanced nanosecond clock."""

    def __init__(self, start_ns: int = 0):
        self.now_ns = start_ns

    def __call__(self) -> int:
        return self.now_ns

    def advance(self, seconds: float) -> int:
        self.now_ns += int(seconds * SEC)
        return self.now_ns


class FakeAnalysisClient:
    """In-process stand-in for the deep-analysis service."""

    def __init__(self, text: str = "A white cat is sleeping", delay: float = 0.0, error=None):
        self.text = text
        self.delay = delay
        self.error = error
        self.calls = 0
        self.prompts = []

    async def analyze(self, image: str, prompt: str) -> AnalysisResult:
        self.calls += 1
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AnalysisResult(text=self.text, target_present=True, confidence=0.9, data={"hasCat": True})


def quiet_purr(num_samples: int = 1024, amplitude: float = 1e-4, periods: int = 5) -> np.ndarray:
    """Low, slow sine: classifies as 'comfortable'."""
    t = np.arange(num_samples)
    return amplitude * np.sin(2 * np.pi * periods * t / num_samples)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeAnalysisClient()


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def traced_hub(memory_sink):
    """Hub at VERBOSE level recording into ``memory_sink``."""
    hub = ObservabilityHub()
    hub.configure(level=TraceLevel.VERBOSE, sinks=[memory_sink])
    return hub


@pytest.fixture
def purr_buffer():
    return quiet_purr()


@pytest.fixture
def noise_buffer():
    rng = np.random.default_rng(42)
    return rng.uniform(-1.0, 1.0, 2048)


@pytest.fixture
def quiet_features():
    """Raw features whose normalized values are all low."""
    return FeatureVector(
        zero_crossing_rate=0.01,
        spectral_centroid=500.0,
        spectral_rolloff=0.05,
        energy=1e-8,
        rms=1e-5,
    )
