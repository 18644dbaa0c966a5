"""Per-slot settings and the structured actions sent by the settings panel."""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Mapping, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from binance_dock.models.market_models import FeedKind
from binance_dock.services.market.rolling_window import DEFAULT_CHART_RANGE, ChartRange, resolve_chart_range

DEFAULT_SYMBOL = "BTCUSDT"
DEPTH_LEVELS = (5, 10, 20)
DEFAULT_DEPTH_LEVEL = 20
DEFAULT_BG_OPACITY = 100


class SlotSettings(BaseModel):
    """Settings stored by the host for one slot (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    symbol: str = Field(default=DEFAULT_SYMBOL)
    chart_range: str = Field(default=DEFAULT_CHART_RANGE, alias="chartRange")
    depth_level: int = Field(default=DEFAULT_DEPTH_LEVEL, alias="depthLevel")
    bg_opacity: int = Field(default=DEFAULT_BG_OPACITY, alias="bgOpacity")

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: Any) -> str:
        symbol = str(v or "").strip().upper()
        return symbol or DEFAULT_SYMBOL

    @field_validator("chart_range", mode="before")
    @classmethod
    def normalize_chart_range(cls, v: Any) -> str:
        # Unknown keys are kept as-is; resolve_chart_range falls back to 6h.
        return str(v or "").strip() or DEFAULT_CHART_RANGE

    @field_validator("depth_level", mode="before")
    @classmethod
    def validate_depth_level(cls, v: Any) -> int:
        try:
            level = int(v)
        except (TypeError, ValueError):
            return DEFAULT_DEPTH_LEVEL
        return level if level in DEPTH_LEVELS else DEFAULT_DEPTH_LEVEL

    @field_validator("bg_opacity", mode="before")
    @classmethod
    def clamp_bg_opacity(cls, v: Any) -> int:
        try:
            opacity = int(float(v))
        except (TypeError, ValueError):
            return DEFAULT_BG_OPACITY
        return max(0, min(100, opacity))

    @property
    def chart(self) -> ChartRange:
        return resolve_chart_range(self.chart_range)

    def stream_key(self, kind: FeedKind) -> Tuple[Any, ...]:
        """Parameters that change what is subscribed; anything else is cosmetic."""
        if kind is FeedKind.DEPTH:
            return (self.symbol, self.depth_level)
        return (self.symbol, self.chart.interval, self.chart.samples)

    def merged(self, partial: Mapping[str, Any]) -> "SlotSettings":
        data = self.model_dump(by_alias=True)
        for key, value in partial.items():
            if value is None:
                continue
            field = type(self).model_fields.get(key)
            data[field.alias if field and field.alias else key] = value
        return type(self).model_validate(data)

    def to_payload(self, kind: FeedKind) -> Dict[str, Any]:
        if kind is FeedKind.DEPTH:
            return {"symbol": self.symbol, "depthLevel": self.depth_level, "bgOpacity": self.bg_opacity}
        return {"symbol": self.symbol, "chartRange": self.chart_range, "bgOpacity": self.bg_opacity}


# ---- Settings-panel actions (sendToPlugin payloads) ----


class _Action(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ChangeSymbol(_Action):
    action: Literal["changeSymbol"]
    symbol: str


class ChangeChartRange(_Action):
    action: Literal["changeChartRange"]
    value: str = Field(validation_alias=AliasChoices("value", "chartRange"))


class ChangeDepthLevel(_Action):
    action: Literal["changeDepthLevel"]
    value: int = Field(validation_alias=AliasChoices("value", "depthLevel"))


class ChangeOpacity(_Action):
    action: Literal["changeBgOpacity"]
    bg_opacity: int = Field(validation_alias=AliasChoices("bgOpacity", "value"))


UserAction = Annotated[
    Union[ChangeSymbol, ChangeChartRange, ChangeDepthLevel, ChangeOpacity],
    Field(discriminator="action"),
]

_USER_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(UserAction)


def parse_user_action(payload: Any) -> Union[ChangeSymbol, ChangeChartRange, ChangeDepthLevel, ChangeOpacity]:
    """Raises pydantic.ValidationError for non-objects, unknown actions or missing fields."""
    return _USER_ACTION_ADAPTER.validate_python(payload)


def action_to_patch(action: Any) -> Dict[str, Any]:
    """Translate an action into a partial settings update."""
    if isinstance(action, ChangeSymbol):
        return {"symbol": action.symbol}
    if isinstance(action, ChangeChartRange):
        return {"chartRange": action.value}
    if isinstance(action, ChangeDepthLevel):
        return {"depthLevel": action.value}
    if isinstance(action, ChangeOpacity):
        return {"bgOpacity": action.bg_opacity}
    raise TypeError(f"Unhandled user action: {type(action).__name__}")
