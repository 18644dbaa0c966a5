"""Per-slot live state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from binance_dock.models.market_models import DepthSnapshot, FeedKind, TickerSnapshot
from binance_dock.models.session_models import SlotSettings
from binance_dock.services.market.rolling_window import RollingWindow

if TYPE_CHECKING:
    from binance_dock.services.feed.feed_connector import FeedConnection


@dataclass(eq=False)
class Session:
    slot_id: str
    kind: FeedKind
    settings: SlotSettings
    generation: int
    window: RollingWindow
    ticker: TickerSnapshot = field(default_factory=TickerSnapshot)
    depth: DepthSnapshot = field(default_factory=DepthSnapshot)
    connections: List["FeedConnection"] = field(default_factory=list)
    reconnect_handle: Optional[asyncio.TimerHandle] = None
    backfill_task: Optional["asyncio.Task[None]"] = None
    artifact_ready: bool = False

    @classmethod
    def create(cls, slot_id: str, kind: FeedKind, settings: SlotSettings, generation: int) -> "Session":
        return cls(
            slot_id=slot_id,
            kind=kind,
            settings=settings,
            generation=generation,
            window=RollingWindow(settings.chart.samples),
        )
