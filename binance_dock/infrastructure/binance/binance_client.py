"""Binance public market-data client using asyncio + websockets + aiohttp.

Features:
- One raw websocket per stream (<symbol>@ticker, @kline_<i>, @depth<n>)
- Keepalive is driven by the caller (ping_interval disabled here)
- One-shot REST kline query returning closed-candle close prices
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Awaitable, List, Optional, Protocol, Sequence

import aiohttp
import websockets

from binance_dock.infrastructure.logging.logging import get_logger
from binance_dock.models.market_models import StreamDescriptor

KLINE_CLOSE_INDEX = 4
KLINE_CLOSE_TIME_INDEX = 6


class BinanceAPIError(RuntimeError):
    pass


class MarketStream(Protocol):
    """What a live subscription exposes to the feed connector."""

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def ping(self) -> Awaitable[Any]: ...

    async def close(self) -> None: ...


class MarketDataProvider(Protocol):
    async def subscribe(self, descriptor: StreamDescriptor) -> MarketStream: ...

    async def query_historical_closes(self, symbol: str, interval: str, limit: int) -> List[float]: ...


def parse_kline_closes(rows: Sequence[Sequence[Any]], now_ms: Optional[int] = None) -> List[float]:
    """Close prices from a /api/v3/klines response, oldest first.

    The last row is the candle still forming; it is dropped while its close
    time lies in the future so that its final value arrives via the stream.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    closes: List[float] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, (list, tuple)) or len(row) <= KLINE_CLOSE_TIME_INDEX:
            raise BinanceAPIError(f"Malformed kline row at index {idx}")
        if idx == len(rows) - 1 and int(row[KLINE_CLOSE_TIME_INDEX]) > now_ms:
            break
        closes.append(float(row[KLINE_CLOSE_INDEX]))
    return closes


class BinanceMarketData:
    def __init__(
        self,
        ws_base_url: str = "wss://stream.binance.com:9443/ws",
        rest_base_url: str = "https://api.binance.com",
        *,
        request_timeout_sec: float = 10.0,
        open_timeout_sec: float = 10.0,
    ) -> None:
        self._logger = get_logger("binance")
        self._ws_base = ws_base_url.rstrip("/")
        self._rest_base = rest_base_url.rstrip("/")
        self._request_timeout = request_timeout_sec
        self._open_timeout = open_timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

    def stream_url(self, descriptor: StreamDescriptor) -> str:
        return f"{self._ws_base}/{descriptor.stream_name}"

    async def subscribe(self, descriptor: StreamDescriptor) -> MarketStream:
        url = self.stream_url(descriptor)
        self._logger.info("ws_connect", url=url)
        return await websockets.connect(
            url,
            ping_interval=None,  # heartbeat is managed by the feed connector
            open_timeout=self._open_timeout,
            close_timeout=5,
            max_queue=256,
        )

    async def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            )
        return self._session

    async def query_historical_closes(self, symbol: str, interval: str, limit: int) -> List[float]:
        params = {"symbol": symbol.upper(), "interval": interval, "limit": str(limit)}
        session = await self._http()
        try:
            async with session.get(f"{self._rest_base}/api/v3/klines", params=params) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise BinanceAPIError(f"klines HTTP {resp.status}: {body[:200]}")
                rows = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BinanceAPIError(f"klines request failed: {e}") from e

        if not isinstance(rows, list):
            raise BinanceAPIError("klines response is not a list")
        return parse_kline_closes(rows)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
