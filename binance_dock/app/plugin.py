"""Host events -> session registry operations."""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping

from pydantic import ValidationError

from binance_dock.infrastructure.logging.logging import get_logger
from binance_dock.models.market_models import FeedKind
from binance_dock.models.session_models import SlotSettings, action_to_patch, parse_user_action
from binance_dock.services.session.registry import SessionRegistry

JsonDict = Dict[str, Any]

log = get_logger("plugin")


def feed_kind_for_action(action_uuid: str) -> FeedKind:
    """Action UUIDs look like com.vendor.binance.ticker / com.vendor.binance.depth."""
    return FeedKind.DEPTH if str(action_uuid).lower().endswith(".depth") else FeedKind.TICKER


class BinanceDockPlugin:
    def __init__(self, registry: SessionRegistry, host: Any, defaults: SlotSettings) -> None:
        self._registry = registry
        self._host = host
        self._defaults = defaults
        self._handlers: Dict[str, Callable[[JsonDict], None]] = {
            "willAppear": lambda m: self.on_slot_appear(m["context"], m.get("action", ""), _settings_of(m)),
            "willDisappear": lambda m: self.on_slot_disappear(m["context"]),
            "didReceiveSettings": lambda m: self.on_settings_changed(m["context"], _settings_of(m)),
            "keyUp": lambda m: self.on_manual_action(m["context"]),
            "sendToPlugin": lambda m: self.on_user_message(m["context"], m.get("payload") or {}),
            "didReceiveGlobalSettings": lambda m: log.info("global_settings", payload=m.get("payload")),
            "propertyInspectorDidAppear": lambda m: log.info("property_inspector_appear", slot=m.get("context")),
        }

    def handle_event(self, message: JsonDict) -> None:
        event = message.get("event")
        handler = self._handlers.get(str(event))
        if handler is None:
            log.debug("host_event_ignored", host_event=event)
            return
        try:
            handler(message)
        except KeyError as e:
            log.warning("host_event_malformed", host_event=event, missing=str(e))

    # ---- Inbound operations ----

    def on_slot_appear(self, slot_id: str, action_uuid: str, settings: Mapping[str, Any]) -> None:
        kind = feed_kind_for_action(action_uuid)
        log.info("slot_appear", slot=slot_id, kind=kind.value)
        try:
            resolved = self._defaults.merged(settings)
        except ValidationError as e:
            log.warning("settings_invalid", slot=slot_id, error=str(e))
            resolved = self._defaults
        self._registry.start(slot_id, kind, resolved)

    def on_slot_disappear(self, slot_id: str) -> None:
        log.info("slot_disappear", slot=slot_id)
        self._registry.stop(slot_id)

    def on_settings_changed(self, slot_id: str, settings: Mapping[str, Any]) -> None:
        log.info("settings_changed", slot=slot_id, settings=dict(settings))
        self._registry.update_config(slot_id, settings)

    def on_manual_action(self, slot_id: str) -> None:
        if self._registry.get(slot_id) is None:
            return
        self._registry.manual_refresh(slot_id)
        self._host.show_ok(slot_id)

    def on_user_message(self, slot_id: str, payload: Any) -> None:
        session = self._registry.get(slot_id)
        if session is None:
            return
        try:
            action = parse_user_action(payload)
        except ValidationError as e:
            log.warning("user_message_invalid", slot=slot_id, payload=payload, error=str(e))
            self._host.show_alert(slot_id)
            return

        kind = session.kind
        merged = self._registry.update_config(slot_id, action_to_patch(action))
        if merged is not None:
            self._host.persist_settings(slot_id, merged.to_payload(kind))


def _settings_of(message: JsonDict) -> JsonDict:
    payload = message.get("payload") or {}
    settings = payload.get("settings") if isinstance(payload, dict) else None
    return settings if isinstance(settings, dict) else {}
