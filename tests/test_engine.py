"""End-to-end tests for MewtEngine."""

import asyncio
import json
import time

import httpx
import pytest

from mewt.analysis import HttpAnalysisClient
from mewt.config import EngineConfig, WindowConfig
from mewt.engine import MewtEngine
from mewt.observability import StateTransitionRecord, WindowFlushRecord
from mewt.observers import StateChangeObserver
from mewt.transport import MemoryTransport
from mewt.types import Detection, PresenceState, Source

from conftest import SEC


class FailingObserver(StateChangeObserver):
    def notify(self, event):
        raise RuntimeError("observer broke")


def tick_seconds(engine, seconds, visual=None, audio=None, samples=None):
    """Tick once per second, re-feeding the same detections before each tick."""
    events = []
    for t in seconds:
        if visual is not None:
            engine.handle_visual_result(visual, t_ns=t * SEC)
        if audio is not None:
            engine.handle_audio_result(audio, samples, t_ns=t * SEC)
        events.append(engine.tick(t * SEC))
    return [e for e in events if e is not None]


@pytest.fixture
def transport():
    return MemoryTransport()


class TestPresence:
    def test_cat_seen_with_silence_is_visual_only(self, transport):
        engine = MewtEngine(transport=transport)

        events = tick_seconds(
            engine, range(1, 6),
            visual=[("tabby cat", 0.85)],
            audio=[("Silence", 0.9)],
        )

        assert len(events) == 1
        assert events[0].old_state == PresenceState.IDLE
        assert events[0].new_state == PresenceState.VISUAL_ONLY
        assert engine.state == PresenceState.VISUAL_ONLY
        assert engine.current_text() == "There's a kitty over there"

        assert len(transport) == 1
        record = transport.records[0]
        assert record.type == "chat_message"
        assert record.state == "visual_only"
        assert record.text == "There's a kitty over there"

    def test_single_window_does_not_commit(self, transport):
        engine = MewtEngine(transport=transport, config=EngineConfig(
            window=WindowConfig(trust_lookback=0),
        ))
        engine.handle_visual_result([("cat", 0.9)], t_ns=SEC)
        tick_seconds(engine, range(1, 10))
        assert engine.state == PresenceState.IDLE
        assert len(transport) == 0

    def test_detection_objects_accepted(self):
        engine = MewtEngine()
        count = engine.handle_visual_result([Detection("cat", 0.9, Source.VISUAL)], t_ns=SEC)
        assert count == 1
        engine.tick(SEC)
        assert engine.has_visual()

    def test_audio_only_shows_emotion(self, transport, purr_buffer):
        engine = MewtEngine(transport=transport)

        events = tick_seconds(engine, range(1, 4), audio=[("Cat purring", 0.7)], samples=purr_buffer)

        assert [e.new_state for e in events] == [PresenceState.AUDIO_ONLY]
        assert events[0].emotion.emotion_id == "comfortable"
        assert transport.records[0].text == "Meow: 😌 Comfortable"
        assert engine.current_text() == "Meow: 😌 Comfortable"

    def test_emotion_cleared_when_audio_stops(self, purr_buffer):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(debounce_sec=0.0)))
        tick_seconds(engine, [1], audio=[("Meow", 0.7)], samples=purr_buffer)
        assert engine.current_text() == "Meow: 😌 Comfortable"

        tick_seconds(engine, [2])
        assert engine.state == PresenceState.IDLE
        assert engine.current_text() == "Watching..."


class TestCallbacks:
    def test_on_update_fires_only_on_change(self):
        updates = []
        engine = MewtEngine(on_update=updates.append)

        tick_seconds(engine, range(1, 8), visual=[("cat", 0.9)])

        assert updates == ["Watching...", "There's a kitty over there"]

    def test_on_state_change(self):
        changes = []
        engine = MewtEngine(on_state_change=lambda new, old: changes.append((new, old)))
        tick_seconds(engine, range(1, 5), visual=[("cat", 0.9)], audio=[("meow", 0.5)])
        assert changes == [(PresenceState.BOTH, PresenceState.IDLE)]

    def test_failing_on_update_is_contained(self):
        def broken(text):
            raise RuntimeError("ui gone")

        engine = MewtEngine(on_update=broken)
        assert tick_seconds(engine, range(1, 4), visual=[("cat", 0.9)])


class TestFailureIsolation:
    def test_failing_observer_does_not_stop_tick(self, transport):
        engine = MewtEngine(transport=transport)
        engine.dispatcher.add_observer(FailingObserver(), priority=200)

        events = tick_seconds(engine, range(1, 4), visual=[("cat", 0.9)])

        assert len(events) == 1
        assert len(transport) == 1
        assert engine.get_stats()["observer_failures"] == 1

    def test_failing_flush_returns_none(self, monkeypatch):
        engine = MewtEngine()

        def broken_flush(t_ns):
            raise RuntimeError("flush broke")

        monkeypatch.setattr(engine.aggregator, "flush", broken_flush)

        assert engine.tick(SEC) is None
        assert engine.get_stats()["tick_errors"] == 1

    def test_malformed_detections_skipped(self):
        engine = MewtEngine()
        count = engine.handle_visual_result(
            [("cat", 0.9), ("dog", 1.5), (None, 0.5), "bad", ("x",)], t_ns=SEC,
        )
        assert count == 1

    def test_empty_results_are_noop(self):
        engine = MewtEngine()
        assert engine.handle_visual_result(None) == 0
        assert engine.handle_audio_result([]) is None

    @pytest.mark.parametrize("samples", [[[0.1, 0.2], [0.3]], ["a", "b"]])
    def test_malformed_samples_keep_detection(self, samples):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(debounce_sec=0.0)))
        assert engine.handle_audio_result([("Meow", 0.9)], samples=samples, t_ns=SEC) is None
        assert engine.audio_trigger.stats.rejected_buffers == 1

        result = engine.aggregator.flush(2 * SEC)
        assert result.has_audio


class TestThresholds:
    def test_update_thresholds(self):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(debounce_sec=0.0)))
        engine.update_thresholds(visual=0.95)
        tick_seconds(engine, [1], visual=[("cat", 0.9)])
        assert engine.state == PresenceState.IDLE

    def test_invalid_threshold(self):
        engine = MewtEngine()
        with pytest.raises(ValueError):
            engine.update_thresholds(audio=1.5)


class TestAnalysisIntegration:
    def test_visual_edge_triggers_analysis(self, clock, fake_client, transport):
        results = []
        updates = []
        engine = MewtEngine(
            transport=transport,
            analysis_client=fake_client,
            frame_provider=lambda: "ZnJhbWU=",
            clock=clock,
            on_update=updates.append,
            on_analysis_result=results.append,
        )

        async def scenario():
            for _ in range(3):
                clock.advance(1.0)
                engine.handle_visual_result([("cat", 0.9)])
                engine.tick()
            await engine.channel.wait()
            await asyncio.sleep(0)
            clock.advance(1.0)
            engine.tick()

        asyncio.run(scenario())

        assert fake_client.calls == 1
        assert [r.text for r in results] == ["A white cat is sleeping"]
        assert engine.current_text() == "A white cat is sleeping"
        assert updates[-1] == "A white cat is sleeping"

        analysis_records = [r for r in transport.records if r.source == "analysis"]
        assert len(analysis_records) == 1
        assert analysis_records[0].type == "chat_message"

        clock.advance(30.0)
        assert engine.current_text() == "There's a kitty over there"

    def test_no_analysis_without_loop(self, clock, fake_client):
        engine = MewtEngine(analysis_client=fake_client, frame_provider=lambda: "frame", clock=clock)
        for _ in range(3):
            clock.advance(1.0)
            engine.handle_visual_result([("cat", 0.9)])
            engine.tick()
        assert engine.state == PresenceState.VISUAL_ONLY
        assert fake_client.calls == 0

    def test_stats_include_analysis(self, clock, fake_client):
        engine = MewtEngine(analysis_client=fake_client, clock=clock)
        assert "analysis" in engine.get_stats()
        assert "analysis" not in MewtEngine().get_stats()


class TestLoop:
    def test_run_max_ticks(self):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(interval_sec=0.01)))
        asyncio.run(engine.run(max_ticks=3))
        assert engine.get_stats()["ticks"] == 3

    def test_start_stop(self):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(interval_sec=0.01)))
        engine.start()
        assert engine.is_running
        with pytest.raises(RuntimeError):
            engine.start()

        time.sleep(0.1)
        engine.stop(timeout=2.0)

        assert not engine.is_running
        assert engine.get_stats()["ticks"] > 0

    def test_http_client_survives_restart(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"success": True, "text": "cat", "data": {"targetPresent": True}})

        client = HttpAnalysisClient("https://analysis.test/api", transport=httpx.MockTransport(handler))
        engine = MewtEngine(
            config=EngineConfig(window=WindowConfig(interval_sec=0.01)),
            analysis_client=client,
        )
        asyncio.run(engine.run(max_ticks=1))
        asyncio.run(engine.run(max_ticks=1))

        result = asyncio.run(engine.channel.analyze("frame"))
        assert result is not None
        assert result.text == "cat"
        assert len(calls) == 1

    def test_reset(self):
        engine = MewtEngine(config=EngineConfig(window=WindowConfig(debounce_sec=0.0)))
        tick_seconds(engine, [1], visual=[("cat", 0.9)])
        engine.reset()
        assert engine.state == PresenceState.IDLE
        assert len(engine.trust_cache) == 0


class TestTracing:
    def test_records_on_hub(self, traced_hub, memory_sink):
        engine = MewtEngine(hub=traced_hub)
        tick_seconds(engine, range(1, 4), visual=[("cat", 0.9)])

        flushes = memory_sink.get_by_type(WindowFlushRecord)
        assert [r.window_id for r in flushes] == [1, 2, 3]
        assert flushes[-1].stable_state == "visual_only"

        transitions = memory_sink.get_by_type(StateTransitionRecord)
        assert len(transitions) == 1
        assert transitions[0].new_state == "visual_only"

    def test_trust_override_traced(self, traced_hub, memory_sink):
        engine = MewtEngine(hub=traced_hub)
        tick_seconds(engine, [1], visual=[("cat", 0.9)])
        tick_seconds(engine, [2])
        flushes = memory_sink.get_by_type(WindowFlushRecord)
        assert [r.trust_override for r in flushes] == [False, True]

    def test_trace_output_file(self, tmp_path):
        path = tmp_path / "traces" / "mewt.jsonl"
        engine = MewtEngine(config=EngineConfig(trace_level="minimal", trace_output=str(path)))
        tick_seconds(engine, range(1, 4), visual=[("cat", 0.9)])
        engine.close()

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line["record_type"] for line in lines] == ["state_transition"]
        assert "min_level" not in lines[0]
