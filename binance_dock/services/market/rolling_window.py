"""Bounded rolling window of price samples plus the chart-range presets."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, Tuple


@dataclass(frozen=True)
class ChartRange:
    interval: str  # Binance kline interval
    samples: int


DEFAULT_CHART_RANGE = "6h"

CHART_RANGES: Dict[str, ChartRange] = {
    "1h": ChartRange(interval="5m", samples=12),
    "6h": ChartRange(interval="15m", samples=24),
    "24h": ChartRange(interval="1h", samples=24),
    "7d": ChartRange(interval="8h", samples=21),
    "30d": ChartRange(interval="1d", samples=30),
}


def resolve_chart_range(key: str) -> ChartRange:
    """Unknown keys fall back to the 6h preset."""
    return CHART_RANGES.get(key, CHART_RANGES[DEFAULT_CHART_RANGE])


class RollingWindow:
    """FIFO window: appends at the tail, evicts the oldest sample once full."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._samples: Deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        return len(self._samples)

    def push(self, value: float) -> None:
        self._samples.append(float(value))

    def replace(self, values: Iterable[float]) -> None:
        """Swap the whole window; longer inputs keep only the most recent samples."""
        self._samples = deque((float(v) for v in values), maxlen=self.capacity)

    def snapshot(self) -> Tuple[float, ...]:
        return tuple(self._samples)
