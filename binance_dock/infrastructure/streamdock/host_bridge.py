"""Stream Dock host connection (plugin websocket protocol).

The host launches the plugin with a local port; the plugin connects, sends
its registration message and then receives key events (willAppear, keyUp,
sendToPlugin, ...) as JSON. Outbound commands are queued synchronously so
callers inside the event loop never await the socket.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from binance_dock.infrastructure.logging.logging import get_logger

JsonDict = Dict[str, Any]

TARGET_BOTH = 0  # hardware and software display


def png_data_uri(image: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


class StreamDockBridge:
    def __init__(self, port: int, plugin_uuid: str, register_event: str, *, host: str = "127.0.0.1") -> None:
        self._logger = get_logger("host_bridge")
        self._url = f"ws://{host}:{port}"
        self._plugin_uuid = plugin_uuid
        self._register_event = register_event
        self._outbox: "asyncio.Queue[JsonDict]" = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task[None]] = None

    # ---- Outbound ----

    def set_artifact(self, slot_id: str, image: bytes) -> None:
        self.send({
            "event": "setImage",
            "context": slot_id,
            "payload": {"image": png_data_uri(image), "target": TARGET_BOTH},
        })

    def set_label(self, slot_id: str, text: str) -> None:
        self.send({"event": "setTitle", "context": slot_id, "payload": {"title": text, "target": TARGET_BOTH}})

    def persist_settings(self, slot_id: str, settings: JsonDict) -> None:
        self.send({"event": "setSettings", "context": slot_id, "payload": dict(settings)})

    def show_ok(self, slot_id: str) -> None:
        self.send({"event": "showOk", "context": slot_id})

    def show_alert(self, slot_id: str) -> None:
        self.send({"event": "showAlert", "context": slot_id})

    def send(self, message: JsonDict) -> None:
        self._outbox.put_nowait(message)

    def registration_message(self) -> JsonDict:
        return {"event": self._register_event, "uuid": self._plugin_uuid}

    # ---- Connection ----

    async def run(self, on_event: Callable[[JsonDict], None]) -> None:
        """Serve host events until the host closes the socket."""
        self._logger.info("host_connect", url=self._url)
        async with websockets.connect(self._url, ping_interval=None, max_size=None) as ws:
            await ws.send(json.dumps(self.registration_message()))
            self._logger.info("host_registered", uuid=self._plugin_uuid)
            self._writer_task = asyncio.create_task(self._writer_loop(ws))
            try:
                async for raw in ws:
                    try:
                        message = json.loads(raw)
                    except json.JSONDecodeError as e:
                        self._logger.warning("host_message_malformed", error=str(e))
                        continue
                    if isinstance(message, dict):
                        on_event(message)
            except ConnectionClosed as e:
                self._logger.info("host_closed", code=getattr(e.rcvd, "code", None))
            finally:
                self._writer_task.cancel()
                self._writer_task = None

    async def _writer_loop(self, ws: Any) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await ws.send(json.dumps(message))
            except ConnectionClosed:
                return
