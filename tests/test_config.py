"""Tests for engine configuration."""

import pytest

from mewt.analysis import DEFAULT_PROMPT
from mewt.config import AnalysisConfig, EmotionConfig, EngineConfig, WindowConfig
from mewt.observability import TraceLevel


class TestDefaults:
    def test_window_defaults(self):
        config = EngineConfig()
        assert config.window.interval_sec == 1.0
        assert config.window.visual_threshold == 0.3
        assert config.window.audio_threshold == 0.2
        assert config.window.trust_capacity == 20
        assert config.window.trust_lookback == 10
        assert config.window.debounce_sec == 2.0

    def test_analysis_defaults(self):
        config = AnalysisConfig()
        assert config.enabled
        assert config.endpoint is None
        assert config.prompt == DEFAULT_PROMPT
        assert (config.min_interval_sec, config.max_per_minute) == (15.0, 3)
        assert config.lock_ttl_sec == 30.0
        assert config.timeout_sec == 20.0

    def test_trace_off(self):
        assert EngineConfig().trace == TraceLevel.OFF


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"visual_threshold": 1.5},
        {"audio_threshold": -0.1},
        {"interval_sec": 0},
        {"trust_capacity": 0},
        {"debounce_sec": -1},
    ])
    def test_invalid_window(self, kwargs):
        with pytest.raises(ValueError):
            WindowConfig(**kwargs)

    def test_invalid_emotion(self):
        with pytest.raises(ValueError):
            EmotionConfig(min_confidence=2.0)

    def test_invalid_analysis(self):
        with pytest.raises(ValueError):
            AnalysisConfig(max_per_minute=0)

    def test_invalid_trace_level(self):
        with pytest.raises(ValueError):
            EngineConfig(trace_level="loud")


class TestFromDict:
    def test_partial_sections(self):
        config = EngineConfig.from_dict({
            "window": {"debounce_sec": 1.0},
            "analysis": {"enabled": False},
            "trace_level": "Normal",
        })
        assert config.window.debounce_sec == 1.0
        assert config.window.interval_sec == 1.0
        assert not config.analysis.enabled
        assert config.trace == TraceLevel.NORMAL

    def test_unknown_keys_ignored(self):
        config = EngineConfig.from_dict({"window": {"debounce_sec": 0.5, "color": "red"}, "extra": 1})
        assert config.window.debounce_sec == 0.5

    def test_empty(self):
        assert EngineConfig.from_dict(None) == EngineConfig()

    def test_to_dict_round_trip(self):
        config = EngineConfig(window=WindowConfig(visual_threshold=0.4), trace_level="minimal")
        data = config.to_dict()
        assert data["window"]["visual_threshold"] == 0.4
        assert EngineConfig.from_dict(data) == config


class TestFromYaml:
    def test_load(self, tmp_path):
        path = tmp_path / "mewt.yaml"
        path.write_text(
            "window:\n"
            "  visual_threshold: 0.5\n"
            "  debounce_sec: 1.5\n"
            "analysis:\n"
            "  endpoint: https://analysis.test/api\n"
            "  max_per_minute: 2\n"
            "trace_level: verbose\n"
        )

        config = EngineConfig.from_yaml(str(path))

        assert config.window.visual_threshold == 0.5
        assert config.window.debounce_sec == 1.5
        assert config.analysis.endpoint == "https://analysis.test/api"
        assert config.analysis.max_per_minute == 2
        assert config.trace == TraceLevel.VERBOSE

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert EngineConfig.from_yaml(str(path)) == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EngineConfig.from_yaml(str(tmp_path / "nope.yaml"))
