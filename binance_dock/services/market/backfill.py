"""Fetch recent closed-candle closes to seed a slot's rolling window."""

from __future__ import annotations

from typing import List

from binance_dock.infrastructure.binance.binance_client import MarketDataProvider
from binance_dock.infrastructure.logging.logging import get_logger

log = get_logger("backfill")


class BackfillError(RuntimeError):
    pass


class BackfillFetcher:
    """One-shot historical query against the market-data provider."""

    def __init__(self, provider: MarketDataProvider) -> None:
        self._provider = provider

    async def fetch(self, symbol: str, interval: str, capacity: int) -> List[float]:
        # One extra row: the provider drops the candle that is still open.
        try:
            closes = await self._provider.query_historical_closes(symbol, interval, capacity + 1)
        except Exception as e:
            log.warning("backfill_failed", symbol=symbol, interval=interval, error=str(e))
            raise BackfillError(f"Backfill failed for {symbol} {interval}: {e}") from e

        closes = [float(c) for c in closes][-capacity:]
        log.info("backfill_loaded", symbol=symbol, interval=interval, samples=len(closes))
        return closes
