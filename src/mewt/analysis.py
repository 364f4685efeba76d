"""Rate-limited deep-analysis channel.

The deep-analysis service is slow and metered, so every call passes three
gates: the channel must be enabled, no other call may be in flight
(single-flight), and the rate limiter must admit it. A declined call is a
normal outcome and returns None. A completed call locks its text for
``lock_ttl_sec``; while locked, that text overrides the state-derived text.

Example:
    >>> client = HttpAnalysisClient("https://example.invalid/api/analyze")
    >>> channel = AnalysisChannel(client, prompt="Is there a cat?")
    >>> task = channel.submit(image_b64)     # inside a running event loop
    >>> result = await channel.wait()
    >>> channel.get_text()
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Protocol

import httpx

from mewt.errors import ExternalCallError
from mewt.observability import AnalysisCallRecord, ObservabilityHub
from mewt.types import AnalysisResult

logger = logging.getLogger(__name__)

NS_PER_SEC = 1_000_000_000
RATE_WINDOW_NS = 60 * NS_PER_SEC

DEFAULT_PROMPT = (
    "Look at this image. Is there a cat in it? "
    "If so, describe in one short sentence what the cat is doing."
)


class RateLimiter:
    """Minimum spacing plus a trailing 60 s call budget.

    Args:
        min_interval_sec: Minimum time between calls (default: 15.0).
        max_per_minute: Maximum calls in any trailing 60 s (default: 3).
    """

    def __init__(self, min_interval_sec: float = 15.0, max_per_minute: int = 3):
        self._min_interval_ns = int(min_interval_sec * NS_PER_SEC)
        self.max_per_minute = max_per_minute
        self._calls: Deque[int] = deque()
        self._last_call_ns: Optional[int] = None

    def _trim(self, t_ns: int) -> None:
        while self._calls and t_ns - self._calls[0] >= RATE_WINDOW_NS:
            self._calls.popleft()

    def can_call(self, t_ns: int) -> bool:
        if self._last_call_ns is not None and t_ns - self._last_call_ns < self._min_interval_ns:
            return False
        self._trim(t_ns)
        return len(self._calls) < self.max_per_minute

    def record_call(self, t_ns: int) -> None:
        self._calls.append(t_ns)
        self._last_call_ns = t_ns
        self._trim(t_ns)

    def calls_in_window(self, t_ns: int) -> int:
        self._trim(t_ns)
        return len(self._calls)

    @property
    def last_call_ns(self) -> Optional[int]:
        return self._last_call_ns

    def reset(self) -> None:
        self._calls.clear()
        self._last_call_ns = None


class ResultLock:
    """Holds one analysis result until it expires.

    Args:
        ttl_sec: Default lifetime of a stored result (default: 30.0).
    """

    def __init__(self, ttl_sec: float = 30.0):
        self._ttl_ns = int(ttl_sec * NS_PER_SEC)
        self._text: Optional[str] = None
        self._data: Optional[Dict[str, Any]] = None
        self._until_ns = 0

    def set(
        self,
        text: str,
        data: Optional[Dict[str, Any]],
        t_ns: int,
        ttl_sec: Optional[float] = None,
    ) -> None:
        ttl_ns = self._ttl_ns if ttl_sec is None else int(ttl_sec * NS_PER_SEC)
        self._text = text
        self._data = data
        self._until_ns = t_ns + ttl_ns
        logger.debug("Result locked for %.1fs: %s", ttl_ns / NS_PER_SEC, text)

    def is_locked(self, t_ns: int) -> bool:
        return self._until_ns > t_ns

    def get_text(self, t_ns: int) -> Optional[str]:
        if self.is_locked(t_ns) and self._text:
            return self._text
        return None

    def get_data(self, t_ns: int) -> Optional[Dict[str, Any]]:
        if self.is_locked(t_ns):
            return self._data
        return None

    def remaining_ns(self, t_ns: int) -> int:
        return max(0, self._until_ns - t_ns)

    def unlock(self) -> None:
        self._text = None
        self._data = None
        self._until_ns = 0


class AnalysisClient(Protocol):
    """Backend that performs one deep-analysis request."""

    async def analyze(self, image: str, prompt: str) -> AnalysisResult:
        """Analyze an image payload.

        Raises:
            ExternalCallError: On any transport or service failure.
        """
        ...


class HttpAnalysisClient:
    """Deep-analysis client over HTTP (JSON ``{image, prompt}`` POST).

    The service answers ``{success, text, data: {targetPresent, confidence,
    timestamp}}``; ``hasCat`` is accepted as an alias of ``targetPresent``.

    Args:
        endpoint: Service URL.
        timeout_sec: Per-request HTTP timeout.
        client: Existing ``httpx.AsyncClient`` to reuse (not closed by us).
        transport: Optional httpx transport for a client created here.

    An owned client is created on first use and dropped by ``aclose``, so the
    instance can be reused across event loops and engine runs.
    """

    def __init__(
        self,
        endpoint: str,
        timeout_sec: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self._timeout_sec = timeout_sec
        self._transport = transport
        self._owns_client = client is None
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport)
        return self._client

    async def analyze(self, image: str, prompt: str) -> AnalysisResult:
        try:
            response = await self._get_client().post(self.endpoint, json={"image": image, "prompt": prompt})
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Request to {self.endpoint} failed: {e}") from e

        if not response.is_success:
            raise ExternalCallError(
                f"Analysis service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ExternalCallError(f"Malformed JSON from analysis service: {e}") from e
        if not isinstance(body, dict):
            raise ExternalCallError("Analysis response is not a JSON object")
        if not body.get("success"):
            raise ExternalCallError(f"Analysis service error: {body.get('error', 'unknown')}")

        data = body.get("data") or {}
        return AnalysisResult(
            text=str(body.get("text") or ""),
            target_present=bool(data.get("targetPresent", data.get("hasCat", False))),
            confidence=float(data.get("confidence", 0.0)),
            timestamp_ms=int(data.get("timestamp", 0)),
            data=dict(data),
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()


@dataclass
class ChannelStatus:
    enabled: bool
    processing: bool
    calls_last_minute: int
    last_call_ns: Optional[int]
    locked: bool
    lock_remaining_ns: int
    lock_text: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "processing": self.processing,
            "calls_last_minute": self.calls_last_minute,
            "last_call_ns": self.last_call_ns,
            "locked": self.locked,
            "lock_remaining_ms": self.lock_remaining_ns // 1_000_000,
            "lock_text": self.lock_text,
        }


class AnalysisChannel:
    """Single-flight, rate-limited access to a deep-analysis client.

    ``submit`` schedules a call as an asyncio task and returns it, or
    returns None when declined; it never queues. ``analyze`` is the same
    call as a coroutine. The in-flight slot is cleared in a ``finally``
    block whatever the outcome.

    Args:
        client: Backend implementing AnalysisClient.
        prompt: Text prompt sent with every image.
        min_interval_sec: Rate limiter spacing (default: 15.0).
        max_per_minute: Rate limiter budget (default: 3).
        lock_ttl_sec: Lifetime of a completed result (default: 30.0).
        timeout_sec: Bound on a single call (default: 20.0).
        enabled: Initial enabled flag.
        clock: Monotonic nanosecond clock (default: ``time.monotonic_ns``).
        hub: Observability hub for AnalysisCallRecord.
    """

    def __init__(
        self,
        client: AnalysisClient,
        prompt: str = DEFAULT_PROMPT,
        min_interval_sec: float = 15.0,
        max_per_minute: int = 3,
        lock_ttl_sec: float = 30.0,
        timeout_sec: float = 20.0,
        enabled: bool = True,
        clock: Optional[Callable[[], int]] = None,
        hub: Optional[ObservabilityHub] = None,
    ):
        self._client = client
        self.prompt = prompt
        self.limiter = RateLimiter(min_interval_sec, max_per_minute)
        self.lock = ResultLock(lock_ttl_sec)
        self.timeout_sec = timeout_sec
        self._enabled = enabled
        self._clock = clock or time.monotonic_ns
        self._hub = hub if hub is not None else ObservabilityHub()
        self._processing = False
        self._task: "Optional[asyncio.Task[Optional[AnalysisResult]]]" = None

    # --- Admission --------------------------------------------------------

    def _decline_reason(self, t_ns: int) -> Optional[str]:
        if not self._enabled:
            return "disabled"
        if self.in_flight:
            return "declined_busy"
        if not self.limiter.can_call(t_ns):
            return "declined_rate_limited"
        return None

    def _declined(self, reason: str, t_ns: int) -> None:
        logger.info("Deep analysis %s", reason.replace("_", " "))
        self._trace(t_ns, reason)

    @property
    def in_flight(self) -> bool:
        return self._processing or (self._task is not None and not self._task.done())

    # --- Calls ------------------------------------------------------------

    async def analyze(self, image: str) -> Optional[AnalysisResult]:
        """Run one call now, or return None if declined or failed."""
        now = self._clock()
        reason = self._decline_reason(now)
        if reason is not None:
            self._declined(reason, now)
            return None
        return await self._run(image)

    def submit(self, image: str) -> "Optional[asyncio.Task[Optional[AnalysisResult]]]":
        """Schedule a call on the running loop.

        Returns:
            The task, or None if declined.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        now = self._clock()
        reason = self._decline_reason(now)
        if reason is not None:
            self._declined(reason, now)
            return None
        self._task = loop.create_task(self._run(image))
        return self._task

    async def wait(self) -> Optional[AnalysisResult]:
        """Await the in-flight task, if any."""
        task = self._task
        if task is None or task.cancelled():
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    def cancel(self) -> bool:
        """Cancel the in-flight task. Returns True if one was cancelled."""
        if self._task is None or self._task.done():
            return False
        return self._task.cancel()

    async def _run(self, image: str) -> Optional[AnalysisResult]:
        self._processing = True
        start_ns = self._clock()
        logger.debug("Deep analysis started")
        try:
            result = await asyncio.wait_for(
                self._client.analyze(image, self.prompt),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("Deep analysis timed out after %.1fs", self.timeout_sec)
            self._trace(self._clock(), "timeout", start_ns=start_ns, error="timeout")
            return None
        except ExternalCallError as e:
            logger.error("Deep analysis failed: %s", e)
            self._trace(self._clock(), "failed", start_ns=start_ns, error=str(e))
            return None
        except Exception as e:
            logger.exception("Deep analysis client raised unexpectedly")
            self._trace(self._clock(), "failed", start_ns=start_ns, error=repr(e))
            return None
        finally:
            self._processing = False

        now = self._clock()
        self.limiter.record_call(now)
        self.lock.set(result.text, result.data, now)
        logger.info("Deep analysis completed: %s", result.text)
        self._trace(now, "completed", start_ns=start_ns, text=result.text)
        return result

    def _trace(
        self,
        t_ns: int,
        outcome: str,
        start_ns: Optional[int] = None,
        text: str = "",
        error: str = "",
    ) -> None:
        if not self._hub.enabled:
            return
        self._hub.emit(AnalysisCallRecord(
            t_ns=t_ns,
            outcome=outcome,
            duration_ms=(t_ns - start_ns) / 1e6 if start_ns is not None else 0.0,
            text=text,
            error=error,
            calls_last_minute=self.limiter.calls_in_window(t_ns),
        ))

    # --- Result lock ------------------------------------------------------

    def get_text(self, t_ns: Optional[int] = None) -> Optional[str]:
        return self.lock.get_text(self._clock() if t_ns is None else t_ns)

    def get_lock_data(self, t_ns: Optional[int] = None) -> Optional[Dict[str, Any]]:
        return self.lock.get_data(self._clock() if t_ns is None else t_ns)

    def is_locked(self, t_ns: Optional[int] = None) -> bool:
        return self.lock.is_locked(self._clock() if t_ns is None else t_ns)

    def unlock(self) -> None:
        self.lock.unlock()
        logger.info("Deep analysis result unlocked")

    # --- Control ----------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("Deep analysis channel %s", "enabled" if enabled else "disabled")

    def status(self, t_ns: Optional[int] = None) -> ChannelStatus:
        now = self._clock() if t_ns is None else t_ns
        return ChannelStatus(
            enabled=self._enabled,
            processing=self.in_flight,
            calls_last_minute=self.limiter.calls_in_window(now),
            last_call_ns=self.limiter.last_call_ns,
            locked=self.lock.is_locked(now),
            lock_remaining_ns=self.lock.remaining_ns(now),
            lock_text=self.lock.get_text(now),
        )


__all__ = [
    "DEFAULT_PROMPT",
    "RateLimiter",
    "ResultLock",
    "AnalysisClient",
    "HttpAnalysisClient",
    "ChannelStatus",
    "AnalysisChannel",
]
