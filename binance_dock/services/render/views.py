"""Session state -> view models. Everything the artifact shows is decided here."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from binance_dock.models.market_models import DepthSnapshot, FeedKind, TickerSnapshot
from binance_dock.services.render.formatting import depth_split, format_change, format_price, strip_quote_asset
from binance_dock.services.session.session import Session

UP_COLOR = "#0ECB81"
DOWN_COLOR = "#F6465D"


@dataclass(frozen=True)
class TickerView:
    bg_opacity: int
    label: str
    price_text: str
    change_text: str
    glyph: str
    color: str
    points: Tuple[Tuple[float, float], ...] = ()  # (x, y) scaled to [0, 1]


@dataclass(frozen=True)
class DepthView:
    bg_opacity: int
    label: str
    loading: bool
    bid_ratio: float = 0.0
    bid_label: Optional[str] = None
    ask_label: Optional[str] = None
    best_bid_text: str = ""
    best_ask_text: str = ""


View = Union[TickerView, DepthView]


def normalize_series(samples: Sequence[float]) -> Tuple[Tuple[float, float], ...]:
    """Min-max scale samples into the unit square; needs at least two samples."""
    n = len(samples)
    if n < 2:
        return ()
    lo, hi = min(samples), max(samples)
    span = hi - lo
    return tuple(
        (i / (n - 1), (v - lo) / span if span > 0 else 0.5)
        for i, v in enumerate(samples)
    )


def build_ticker_view(
    symbol: str,
    snapshot: TickerSnapshot,
    samples: Sequence[float],
    bg_opacity: int,
) -> Optional[TickerView]:
    if snapshot.price is None or snapshot.change_percent is None:
        return None
    glyph, change_text = format_change(snapshot.change_percent)
    return TickerView(
        bg_opacity=bg_opacity,
        label=strip_quote_asset(symbol),
        price_text=f"${format_price(snapshot.price)}",
        change_text=change_text,
        glyph=glyph,
        color=UP_COLOR if snapshot.change_percent >= 0 else DOWN_COLOR,
        points=normalize_series(samples),
    )


def build_depth_view(symbol: str, snapshot: DepthSnapshot, bg_opacity: int) -> DepthView:
    label = strip_quote_asset(symbol)
    split = depth_split(snapshot.bids, snapshot.asks)
    if split is None:
        return DepthView(bg_opacity=bg_opacity, label=label, loading=True)
    return DepthView(
        bg_opacity=bg_opacity,
        label=label,
        loading=False,
        bid_ratio=split.bid_ratio,
        bid_label=f"{split.bid_ratio * 100:.0f}%" if split.show_bid_label else None,
        ask_label=f"{split.ask_ratio * 100:.0f}%" if split.show_ask_label else None,
        best_bid_text=f"B {format_price(snapshot.bids[0][0])}",
        best_ask_text=f"A {format_price(snapshot.asks[0][0])}",
    )


def build_view(session: Session) -> Optional[View]:
    settings = session.settings
    if session.kind is FeedKind.DEPTH:
        return build_depth_view(settings.symbol, session.depth, settings.bg_opacity)
    return build_ticker_view(settings.symbol, session.ticker, session.window.snapshot(), settings.bg_opacity)
