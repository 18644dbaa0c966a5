"""Market domain models: stream descriptors, snapshots and provider payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class FeedKind(str, Enum):
    """What a slot displays. Ticker slots hold two subscriptions, depth slots one."""

    TICKER = "ticker"
    DEPTH = "depth"


class StreamKind(str, Enum):
    TICKER = "ticker"
    KLINE = "kline"
    DEPTH = "depth"


@dataclass(frozen=True)
class StreamDescriptor:
    symbol: str
    kind: StreamKind
    interval: Optional[str] = None
    level: Optional[int] = None

    @property
    def stream_name(self) -> str:
        base = self.symbol.lower()
        if self.kind is StreamKind.TICKER:
            return f"{base}@ticker"
        if self.kind is StreamKind.KLINE:
            return f"{base}@kline_{self.interval}"
        return f"{base}@depth{self.level}"


PriceLevel = Tuple[float, float]


@dataclass
class TickerSnapshot:
    price: Optional[float] = None
    change_percent: Optional[float] = None


@dataclass
class DepthSnapshot:
    bids: List[PriceLevel] = field(default_factory=list)  # best (highest) first
    asks: List[PriceLevel] = field(default_factory=list)  # best (lowest) first


# ---- Provider payloads (Binance stream events) ----


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)


class TickerEvent(_Payload):
    symbol: str = Field(default="", alias="s")
    last_price: float = Field(alias="c")
    change_percent: float = Field(alias="P")


class KlineBar(_Payload):
    interval: str = Field(default="", alias="i")
    close: float = Field(alias="c")
    is_closed: bool = Field(alias="x")


class KlineEvent(_Payload):
    symbol: str = Field(default="", alias="s")
    bar: KlineBar = Field(alias="k")


class DepthEvent(_Payload):
    last_update_id: Optional[int] = Field(default=None, alias="lastUpdateId")
    bids: List[PriceLevel]
    asks: List[PriceLevel]
