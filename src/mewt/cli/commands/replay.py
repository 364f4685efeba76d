"""Replay command for mewt CLI.

Each input line is one classifier result::

    {"t": 1.25, "source": "visual", "detections": [["tabby cat", 0.85]]}
    {"t": 1.40, "source": "acoustic", "detections": [{"label": "Meow", "score": 0.7}],
     "samples": [0.01, -0.02, ...]}

``t`` is in seconds from the start of the session. Ticks are generated on
the configured interval of a simulated clock, so a replay is deterministic
and runs as fast as the input can be read.
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from mewt.config import EngineConfig
from mewt.engine import MewtEngine
from mewt.errors import InvalidInputError
from mewt.observability import ConsoleSink, ObservabilityHub, TraceLevel
from mewt.transport import StreamTransport
from mewt.types import Source

logger = logging.getLogger(__name__)

NS_PER_SEC = 1_000_000_000


class SimulatedClock:
    """Manually advanced nanosecond clock."""

    def __init__(self, start_ns: int = 0):
        self.now_ns = start_ns

    def __call__(self) -> int:
        return self.now_ns


@dataclass
class ReplayRecord:
    t_ns: int
    source: Source
    detections: List[Tuple[str, float]]
    samples: Optional[List[float]] = None


def _parse_detection(item: Any) -> Tuple[str, float]:
    if isinstance(item, dict):
        label = item.get("category", item.get("label", item.get("class")))
        confidence = item.get("confidence", item.get("score"))
        return str(label), float(confidence)
    label, confidence = item
    return str(label), float(confidence)


def parse_record(data: Dict[str, Any]) -> ReplayRecord:
    """Build a ReplayRecord from one decoded JSON line.

    Raises:
        InvalidInputError: If a required field is missing or malformed.
    """
    try:
        t_ns = int(float(data["t"]) * NS_PER_SEC)
        source = Source(data["source"])
        detections = [_parse_detection(d) for d in data.get("detections") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInputError(f"Malformed replay record: {e}") from e
    return ReplayRecord(t_ns=t_ns, source=source, detections=detections, samples=data.get("samples"))


def load_records(path: str) -> List[ReplayRecord]:
    records = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                records.append(parse_record(json.loads(line)))
            except (ValueError, InvalidInputError) as e:
                logger.warning("%s:%d skipped: %s", path, line_no, e)
    records.sort(key=lambda r: r.t_ns)
    return records


def replay(
    engine: MewtEngine,
    clock: SimulatedClock,
    records: List[ReplayRecord],
    tail_sec: float,
) -> int:
    """Drive ``engine`` through ``records``; returns the number of ticks."""
    interval_ns = int(engine.config.window.interval_sec * NS_PER_SEC)
    next_tick = interval_ns
    ticks = 0

    def tick_until(t_ns: int) -> None:
        nonlocal next_tick, ticks
        while next_tick <= t_ns:
            clock.now_ns = next_tick
            engine.tick()
            next_tick += interval_ns
            ticks += 1

    for record in records:
        tick_until(record.t_ns)
        clock.now_ns = record.t_ns
        if record.source == Source.VISUAL:
            engine.handle_visual_result(record.detections)
        else:
            engine.handle_audio_result(record.detections, record.samples)

    end_ns = (records[-1].t_ns if records else 0) + int(tail_sec * NS_PER_SEC)
    tick_until(end_ns)
    return ticks


def run_replay(args) -> int:
    """Replay a detection log and print host records as JSON lines."""
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig()
    if args.trace:
        config.trace_level = args.trace
    if args.trace_output:
        config.trace_output = args.trace_output

    hub = ObservabilityHub()
    if config.trace != TraceLevel.OFF and not config.trace_output:
        hub.add_sink(ConsoleSink(sys.stderr))

    try:
        records = load_records(args.path)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    tail_sec = args.tail_sec
    if tail_sec is None:
        tail_sec = config.window.debounce_sec + config.window.interval_sec

    clock = SimulatedClock()
    engine = MewtEngine(config, transport=StreamTransport(sys.stdout), hub=hub, clock=clock)
    try:
        ticks = replay(engine, clock, records, tail_sec)
    finally:
        engine.close()

    logger.info(
        "Replayed %d records in %d ticks; final state %s",
        len(records), ticks, engine.state.value,
    )
    if args.stats:
        print(json.dumps(engine.get_stats(), indent=2, default=str), file=sys.stderr)
    return 0
