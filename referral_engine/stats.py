from contextlib import contextmanager
import time
from typing import Any, Callable, Awaitable, Generator

import statsd
from statsd.client.timer import Timer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from referral_engine.config import get_config

REFERRAL_SUBMITTED = "referral.submitted"
REFERRAL_NOT_SENT = "referral.not_sent"
REFERRAL_DISPATCH_FAILED = "referral.dispatch_failed"
REFERRAL_DISPATCH_TIME = "referral.dispatch_time"
MESSAGE_RESPONSE = "message.response"
MESSAGE_FEEDBACK = "message.feedback"


class Stats:
    def timing(self, key: str, value: int) -> None:
        raise NotImplementedError

    def inc(self, key: str, count: int = 1, rate: int = 1) -> None:
        raise NotImplementedError

    def timer(self, key: str) -> Timer:
        raise NotImplementedError


class NoopStats(Stats):
    def timing(self, key: str, value: int) -> None:
        pass

    def inc(self, key: str, count: int = 1, rate: int = 1) -> None:
        pass

    def timer(self, key: str) -> Timer:
        @contextmanager
        def noop_context_manager() -> Generator[Any, Any, Any]:
            yield

        return noop_context_manager()  # type: ignore


class MemoryClient:
    """
    Keeps counters and timings in memory. Used when stats are enabled but no
    statsd host is configured, and by the tests.
    """

    def __init__(self) -> None:
        self.memory: dict[str, Any] = {}

    def timer(self, stat: str, rate: int = 1) -> Timer:
        return Timer(self, stat, rate)

    def timing(self, stat: str, delta: float, rate: int = 1) -> None:
        self.memory.setdefault(stat, []).append(delta)

    def incr(self, stat: str, count: int = 1, rate: int = 1) -> None:
        self.memory[stat] = self.memory.get(stat, 0) + count

    def get_memory(self) -> dict[str, Any]:
        return self.memory


class Statsd(Stats):
    def __init__(self, client: statsd.StatsClient | MemoryClient, prefix: str | None = None):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}.{key}" if self.prefix else key

    def timing(self, key: str, value: int) -> None:
        self.client.timing(self._key(key), value)

    def inc(self, key: str, count: int = 1, rate: int = 1) -> None:
        self.client.incr(self._key(key), count, rate)

    def timer(self, key: str) -> Timer:
        return self.client.timer(self._key(key))


_STATS: Stats = NoopStats()


def setup_stats() -> None:
    config = get_config()

    if config.stats.enabled is False:
        return
    in_memory = config.stats.host is None or config.stats.host == ""
    client = (
        MemoryClient()
        if in_memory
        else statsd.StatsClient(config.stats.host, config.stats.port or 8125)
    )
    global _STATS
    _STATS = Statsd(client, config.stats.module_name)


def get_stats() -> Stats:
    return _STATS


class StatsdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to record request counts and response time for each operation
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        key = f"http.request.{request.method.lower()}.{request.url.path}"
        get_stats().inc(key)

        start_time = time.monotonic()
        response = await call_next(request)
        end_time = time.monotonic()

        response_time = int((end_time - start_time) * 1000)
        get_stats().timing("http.response_time", response_time)

        return response
