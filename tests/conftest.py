"""
Shared fixtures: an in-memory market-data provider, a recording host and a
recording renderer, so registry/connector tests run without sockets or
matplotlib.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from binance_dock.infrastructure.utils.config import FeedConfig, PluginConfig
from binance_dock.models.market_models import StreamDescriptor, StreamKind
from binance_dock.services.session.registry import SessionRegistry

_END = object()


class FakeStream:
    """Scriptable subscription: push() delivers a message, drop() closes it remotely."""

    def __init__(self, descriptor: StreamDescriptor) -> None:
        self.descriptor = descriptor
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.pings = 0
        self.answer_pings = True

    def push(self, payload: Any) -> None:
        self._queue.put_nowait(payload if isinstance(payload, (str, BaseException)) else json.dumps(payload))

    def drop(self) -> None:
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def ping(self) -> "asyncio.Future[float]":
        self.pings += 1
        fut = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            fut.set_result(0.0)
        return fut

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_END)


class FakeProvider:
    def __init__(self) -> None:
        self.streams: List[FakeStream] = []
        self.subscribe_attempts = 0
        self.fail_subscribe = False
        self.history: List[float] = []
        self.history_error: Optional[BaseException] = None
        self.history_gate: Optional[asyncio.Event] = None
        self.history_calls: List[Tuple[str, str, int]] = []

    async def subscribe(self, descriptor: StreamDescriptor) -> FakeStream:
        self.subscribe_attempts += 1
        if self.fail_subscribe:
            raise ConnectionRefusedError("connection refused")
        stream = FakeStream(descriptor)
        self.streams.append(stream)
        return stream

    async def query_historical_closes(self, symbol: str, interval: str, limit: int) -> List[float]:
        self.history_calls.append((symbol, interval, limit))
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.history_error is not None:
            raise self.history_error
        return list(self.history)

    def latest(self, kind: StreamKind) -> FakeStream:
        return [s for s in self.streams if s.descriptor.kind is kind][-1]


class RecordingHost:
    def __init__(self) -> None:
        self.artifacts: List[Tuple[str, bytes]] = []
        self.labels: List[Tuple[str, str]] = []
        self.settings: List[Tuple[str, Dict[str, Any]]] = []
        self.oks: List[str] = []
        self.alerts: List[str] = []

    def set_artifact(self, slot_id: str, image: bytes) -> None:
        self.artifacts.append((slot_id, image))

    def set_label(self, slot_id: str, text: str) -> None:
        self.labels.append((slot_id, text))

    def persist_settings(self, slot_id: str, settings: Dict[str, Any]) -> None:
        self.settings.append((slot_id, settings))

    def show_ok(self, slot_id: str) -> None:
        self.oks.append(slot_id)

    def show_alert(self, slot_id: str) -> None:
        self.alerts.append(slot_id)


class RecordingRenderer:
    def __init__(self) -> None:
        self.views: List[Any] = []

    def __call__(self, view: Any) -> bytes:
        self.views.append(view)
        return f"png-{len(self.views)}".encode()


async def settle(rounds: int = 20) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def ticker_msg(price: float, change: float, symbol: str = "BTCUSDT") -> Dict[str, Any]:
    return {"e": "24hrTicker", "s": symbol, "c": f"{price:.2f}", "P": f"{change:.3f}"}


def kline_msg(close: float, closed: bool = True, interval: str = "15m", symbol: str = "BTCUSDT") -> Dict[str, Any]:
    return {"e": "kline", "s": symbol, "k": {"i": interval, "c": f"{close:.2f}", "x": closed}}


def depth_msg(bids: List[Tuple[float, float]], asks: List[Tuple[float, float]]) -> Dict[str, Any]:
    return {
        "lastUpdateId": 1,
        "bids": [[str(p), str(q)] for p, q in bids],
        "asks": [[str(p), str(q)] for p, q in asks],
    }


@pytest.fixture
def config() -> PluginConfig:
    return PluginConfig(feed=FeedConfig(reconnect_delay_sec=0.01, heartbeat_interval_sec=60.0, pong_timeout_sec=0.05))


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest_asyncio.fixture
async def registry(provider, host, renderer, config):
    reg = SessionRegistry(provider, host, config, renderer=renderer)
    yield reg
    await reg.shutdown()
