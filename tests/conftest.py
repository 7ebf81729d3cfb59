from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, List, Optional, Tuple

import pytest

from graphsync.errors import TransportError
from graphsync.request import TransportRequest

SAMPLE_GRAPH = {
    "nodes": [{"id": "a"}, {"id": "b"}],
    "links": [{"source": "a", "target": "b"}],
}


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeTransport:
    """Records requests and answers them with ``payload`` or a custom handler."""

    def __init__(self, payload: Any = None, handler: Optional[Callable[[TransportRequest], Any]] = None) -> None:
        self.payload = SAMPLE_GRAPH if payload is None else payload
        self.handler = handler
        self.requests: List[TransportRequest] = []
        self.cancelled: List[TransportRequest] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def send(self, request: TransportRequest) -> Any:
        self.requests.append(request)
        try:
            result = self.handler(request) if self.handler else self.payload
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self.cancelled.append(request)
            raise
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


def http_error(status: int = 500) -> TransportError:
    return TransportError(f"HTTP {status}: Internal Server Error", status=status)


class ManualClock:
    """Millisecond clock plus an asyncio-compatible ``sleep`` driven by :meth:`advance`."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now_ms = start
        self._sleepers: List[Tuple[float, asyncio.Future]] = []

    def __call__(self) -> float:
        return self.now_ms

    def tick(self, ms: float) -> None:
        self.now_ms += ms

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now_ms + seconds * 1000.0, future))
        await future

    async def advance(self, ms: float) -> None:
        target = self.now_ms + ms
        await settle()
        while True:
            self._sleepers = [item for item in self._sleepers if not item[1].done()]
            due = [item for item in self._sleepers if item[0] <= target]
            if not due:
                break
            deadline, future = min(due, key=lambda item: item[0])
            self._sleepers.remove((deadline, future))
            self.now_ms = max(self.now_ms, deadline)
            future.set_result(None)
            await settle()
        self.now_ms = target
        await settle()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
