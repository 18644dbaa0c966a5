"""Tests for host event routing into the session registry."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from binance_dock.app.plugin import BinanceDockPlugin, feed_kind_for_action
from binance_dock.models.market_models import FeedKind
from binance_dock.models.session_models import SlotSettings
from binance_dock.services.session.registry import SessionRegistry

TICKER_ACTION = "com.binancedock.ticker"
DEPTH_ACTION = "com.binancedock.depth"


@pytest.fixture
def registry():
    return MagicMock(spec=SessionRegistry)


@pytest.fixture
def plugin(registry, host):
    return BinanceDockPlugin(registry, host, SlotSettings(symbol="ETHUSDT"))


def _event(event: str, context: str = "ctx", **extra):
    return {"event": event, "context": context, **extra}


class TestFeedKind:
    @pytest.mark.parametrize(
        "uuid,kind",
        [(TICKER_ACTION, FeedKind.TICKER), (DEPTH_ACTION, FeedKind.DEPTH), ("COM.X.DEPTH", FeedKind.DEPTH), ("", FeedKind.TICKER)],
    )
    def test_kind_from_action_uuid(self, uuid, kind):
        assert feed_kind_for_action(uuid) is kind


class TestAppearDisappear:
    def test_will_appear_starts_with_merged_settings(self, plugin, registry):
        plugin.handle_event(
            _event("willAppear", action=DEPTH_ACTION, payload={"settings": {"depthLevel": 5, "bgOpacity": 60}})
        )

        registry.start.assert_called_once_with(
            "ctx", FeedKind.DEPTH, SlotSettings(symbol="ETHUSDT", depthLevel=5, bgOpacity=60)
        )

    def test_will_appear_without_settings_uses_defaults(self, plugin, registry):
        plugin.handle_event(_event("willAppear", action=TICKER_ACTION, payload={}))

        registry.start.assert_called_once_with("ctx", FeedKind.TICKER, SlotSettings(symbol="ETHUSDT"))

    def test_will_disappear_stops(self, plugin, registry):
        plugin.handle_event(_event("willDisappear"))

        registry.stop.assert_called_once_with("ctx")

    def test_settings_changed_updates_config(self, plugin, registry):
        plugin.handle_event(_event("didReceiveSettings", payload={"settings": {"symbol": "SOLUSDT"}}))

        registry.update_config.assert_called_once_with("ctx", {"symbol": "SOLUSDT"})


class TestManualAction:
    def test_key_up_refreshes_live_slot(self, plugin, registry, host):
        registry.get.return_value = SimpleNamespace(kind=FeedKind.TICKER)

        plugin.handle_event(_event("keyUp"))

        registry.manual_refresh.assert_called_once_with("ctx")
        assert host.oks == ["ctx"]

    def test_key_up_on_unknown_slot_is_ignored(self, plugin, registry, host):
        registry.get.return_value = None

        plugin.handle_event(_event("keyUp"))

        registry.manual_refresh.assert_not_called()
        assert host.oks == []


class TestUserMessages:
    def test_valid_action_updates_and_persists(self, plugin, registry, host):
        registry.get.return_value = SimpleNamespace(kind=FeedKind.TICKER)
        registry.update_config.return_value = SlotSettings(symbol="ETHUSDT", chartRange="24h")

        plugin.handle_event(_event("sendToPlugin", payload={"action": "changeChartRange", "value": "24h"}))

        registry.update_config.assert_called_once_with("ctx", {"chartRange": "24h"})
        assert host.settings == [("ctx", {"symbol": "ETHUSDT", "chartRange": "24h", "bgOpacity": 100})]

    def test_invalid_action_is_dropped(self, plugin, registry, host):
        registry.get.return_value = SimpleNamespace(kind=FeedKind.DEPTH)

        plugin.handle_event(_event("sendToPlugin", payload={"action": "changeSymbol"}))

        registry.update_config.assert_not_called()
        assert host.settings == []
        assert host.alerts == ["ctx"]

    @pytest.mark.parametrize("payload", ["changeSymbol", [1, 2, 3], 42])
    def test_non_object_payload_is_alerted(self, plugin, registry, host, payload):
        registry.get.return_value = SimpleNamespace(kind=FeedKind.TICKER)

        plugin.handle_event(_event("sendToPlugin", payload=payload))

        registry.update_config.assert_not_called()
        assert host.alerts == ["ctx"]

    def test_message_for_unknown_slot_is_ignored(self, plugin, registry, host):
        registry.get.return_value = None

        plugin.handle_event(_event("sendToPlugin", payload={"action": "changeSymbol", "symbol": "X"}))

        registry.update_config.assert_not_called()


class TestRobustness:
    def test_unknown_event_is_ignored(self, plugin, registry):
        plugin.handle_event({"event": "deviceDidConnect", "device": "abc"})

        assert registry.method_calls == []

    def test_event_without_context_is_logged_not_raised(self, plugin, registry):
        plugin.handle_event({"event": "willDisappear"})

        registry.stop.assert_not_called()
