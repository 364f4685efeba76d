"""Configuration classes for the mewt engine.

Example:
    >>> from mewt.config import EngineConfig, WindowConfig
    >>>
    >>> config = EngineConfig(
    ...     window=WindowConfig(visual_threshold=0.4, debounce_sec=1.5),
    ...     trace_level="normal",
    ... )
    >>> engine = MewtEngine(config)
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from mewt.analysis import DEFAULT_PROMPT
from mewt.observability import TraceLevel


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


@dataclass
class WindowConfig:
    """Aggregation, trust and debounce settings.

    Attributes:
        interval_sec: Tick period; one window per tick.
        visual_threshold: Visual confidence a target must exceed.
        audio_threshold: Acoustic confidence a target must exceed.
        trust_capacity: Trust cache capacity.
        trust_lookback: Recent trust entries consulted for an override.
        debounce_sec: Persistence required before a state commits.
    """

    interval_sec: float = 1.0
    visual_threshold: float = 0.3
    audio_threshold: float = 0.2
    trust_capacity: int = 20
    trust_lookback: int = 10
    debounce_sec: float = 2.0

    def __post_init__(self) -> None:
        _check_positive("interval_sec", self.interval_sec)
        _check_unit("visual_threshold", self.visual_threshold)
        _check_unit("audio_threshold", self.audio_threshold)
        _check_positive("trust_capacity", self.trust_capacity)
        _check_non_negative("trust_lookback", self.trust_lookback)
        _check_non_negative("debounce_sec", self.debounce_sec)


@dataclass
class EmotionConfig:
    """Acoustic emotion settings.

    Attributes:
        min_confidence: Emotions at or below this are dropped.
        feature_cache_size: Feature cache capacity (0 disables caching).
    """

    min_confidence: float = 0.5
    feature_cache_size: int = 100

    def __post_init__(self) -> None:
        _check_unit("min_confidence", self.min_confidence)
        _check_non_negative("feature_cache_size", self.feature_cache_size)


@dataclass
class AnalysisConfig:
    """Deep-analysis channel settings.

    Attributes:
        enabled: Whether calls are made at all.
        endpoint: Service URL; without one no HTTP client is created.
        prompt: Prompt sent with every image.
        min_interval_sec: Minimum spacing between calls.
        max_per_minute: Calls allowed in any trailing 60 s.
        lock_ttl_sec: How long a result overrides the state text.
        timeout_sec: Bound on one call.
    """

    enabled: bool = True
    endpoint: Optional[str] = None
    prompt: str = DEFAULT_PROMPT
    min_interval_sec: float = 15.0
    max_per_minute: int = 3
    lock_ttl_sec: float = 30.0
    timeout_sec: float = 20.0

    def __post_init__(self) -> None:
        _check_non_negative("min_interval_sec", self.min_interval_sec)
        _check_positive("max_per_minute", self.max_per_minute)
        _check_non_negative("lock_ttl_sec", self.lock_ttl_sec)
        _check_positive("timeout_sec", self.timeout_sec)


@dataclass
class EngineConfig:
    """Complete configuration for a MewtEngine.

    Attributes:
        window: Aggregation, trust and debounce settings.
        emotion: Acoustic emotion settings.
        analysis: Deep-analysis settings.
        trace_level: "off", "minimal", "normal" or "verbose".
        trace_output: JSONL trace file; None traces to no file.

    Example:
        >>> config = EngineConfig.from_dict({
        ...     "window": {"debounce_sec": 1.0},
        ...     "analysis": {"enabled": False},
        ... })
    """

    window: WindowConfig = field(default_factory=WindowConfig)
    emotion: EmotionConfig = field(default_factory=EmotionConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    trace_level: str = "off"
    trace_output: Optional[str] = None

    def __post_init__(self) -> None:
        # Validates the name.
        TraceLevel.from_string(self.trace_level)

    @property
    def trace(self) -> TraceLevel:
        return TraceLevel.from_string(self.trace_level)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        """Create EngineConfig from a dictionary (e.g., loaded from YAML).

        Unknown keys are ignored; missing keys keep their defaults.
        """
        data = data or {}
        return cls(
            window=_build(WindowConfig, data.get("window")),
            emotion=_build(EmotionConfig, data.get("emotion")),
            analysis=_build(AnalysisConfig, data.get("analysis")),
            trace_level=data.get("trace_level", "off"),
            trace_output=data.get("trace_output"),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "EngineConfig":
        """Load EngineConfig from a YAML file.

        Raises:
            ImportError: If PyYAML is not installed.
            FileNotFoundError: If the file doesn't exist.
        """
        try:
            import yaml
        except ImportError:
            raise ImportError(
                "PyYAML is required for YAML config support. "
                "Install it with: pip install pyyaml"
            )

        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build(config_cls, section: Optional[Dict[str, Any]]):
    section = section or {}
    known = {k: v for k, v in section.items() if k in config_cls.__dataclass_fields__}
    return config_cls(**known)


__all__ = ["WindowConfig", "EmotionConfig", "AnalysisConfig", "EngineConfig"]
