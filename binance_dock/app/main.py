"""Entrypoint launched by the Stream Dock host.

Usage (the host appends these arguments):
  binance-dock -port 28196 -pluginUUID <uuid> -registerEvent registerPlugin -info '{...}'
  python -m binance_dock.app.main ... --config config/default.yaml
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from binance_dock.app.plugin import BinanceDockPlugin
from binance_dock.infrastructure.binance.binance_client import BinanceMarketData
from binance_dock.infrastructure.logging.logging import configure_logging, get_logger
from binance_dock.infrastructure.streamdock.host_bridge import StreamDockBridge
from binance_dock.infrastructure.utils.config import load_config
from binance_dock.services.session.registry import SessionRegistry


async def run_plugin(port: int, plugin_uuid: str, register_event: str, config_path: Optional[Path] = None) -> None:
    config = load_config(config_path)
    configure_logging(config.log_level, config.log_file)
    log = get_logger("main")
    log.info("config_loaded", ws_base=config.binance.ws_base_url, reconnect_delay=config.feed.reconnect_delay_sec)

    provider = BinanceMarketData(
        config.binance.ws_base_url,
        config.binance.rest_base_url,
        request_timeout_sec=config.binance.request_timeout_sec,
        open_timeout_sec=config.feed.open_timeout_sec,
    )
    bridge = StreamDockBridge(port, plugin_uuid, register_event)
    registry = SessionRegistry(provider, bridge, config)
    plugin = BinanceDockPlugin(registry, bridge, config.defaults)

    try:
        await bridge.run(plugin.handle_event)
    finally:
        await registry.shutdown()
        await provider.close()
        log.info("plugin_stopped")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser("binance-dock")
    parser.add_argument("-port", type=int, required=True, help="Host websocket port")
    parser.add_argument("-pluginUUID", dest="plugin_uuid", required=True)
    parser.add_argument("-registerEvent", dest="register_event", required=True)
    parser.add_argument("-info", default="{}", help="Host/device info JSON (unused)")
    parser.add_argument("--config", type=Path, default=None, help="YAML config path")
    args = parser.parse_args(argv)

    asyncio.run(run_plugin(args.port, args.plugin_uuid, args.register_event, args.config))


if __name__ == "__main__":
    main()
