"""Number and label formatting shared by the ticker and depth views."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Tuple

UP_GLYPH = "▲"
DOWN_GLYPH = "▼"

# Longest first so FDUSD wins over USD-like suffixes.
QUOTE_ASSETS = ("FDUSD", "USDT", "USDC", "TUSD", "BUSD", "BTC", "ETH", "BNB", "EUR", "TRY")

MIN_LABEL_RATIO = 0.2


def _fixed(value: float, places: int) -> str:
    # Half-up on the exact binary value, like the toFixed() the keys were designed with.
    quantum = Decimal(1).scaleb(-places)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def price_decimals(price: float) -> int:
    if price >= 1000:
        return 0
    if price >= 1:
        return 2
    return 4


def format_price(price: float) -> str:
    return _fixed(price, price_decimals(price))


def format_change(change_percent: float) -> Tuple[str, str]:
    """(glyph, text): zero counts as up, e.g. ("▲", "+0.00%")."""
    if change_percent >= 0:
        return UP_GLYPH, f"+{_fixed(change_percent, 2)}%"
    return DOWN_GLYPH, f"{_fixed(change_percent, 2)}%"


def strip_quote_asset(symbol: str) -> str:
    for quote in QUOTE_ASSETS:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


@dataclass(frozen=True)
class DepthSplit:
    bid_ratio: float
    show_bid_label: bool
    show_ask_label: bool

    @property
    def ask_ratio(self) -> float:
        return 1.0 - self.bid_ratio


def depth_split(
    bids: Sequence[Tuple[float, float]],
    asks: Sequence[Tuple[float, float]],
    min_label_ratio: float = MIN_LABEL_RATIO,
) -> Optional[DepthSplit]:
    """Bid share of the quantity across all levels; None when a side is missing."""
    if not bids or not asks:
        return None
    bid_total = sum(qty for _, qty in bids)
    ask_total = sum(qty for _, qty in asks)
    total = bid_total + ask_total
    if total <= 0:
        return None
    ratio = bid_total / total
    return DepthSplit(
        bid_ratio=ratio,
        show_bid_label=ratio >= min_label_ratio,
        show_ask_label=ratio <= 1.0 - min_label_ratio,
    )
