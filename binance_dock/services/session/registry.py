"""Session registry: one live session per slot.

All methods are synchronous and never raise; they only create or cancel
tasks and timers on the running loop, so every state transition of a session
happens inside the loop's single dispatch context.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from pydantic import ValidationError

from binance_dock.infrastructure.binance.binance_client import MarketDataProvider
from binance_dock.infrastructure.logging.logging import get_logger
from binance_dock.infrastructure.utils.config import PluginConfig
from binance_dock.models.market_models import FeedKind
from binance_dock.models.session_models import SlotSettings
from binance_dock.services.feed.feed_connector import FeedConnector
from binance_dock.services.market.backfill import BackfillError, BackfillFetcher
from binance_dock.services.render.formatting import strip_quote_asset
from binance_dock.services.render.renderer import render_view
from binance_dock.services.render.views import View, build_view
from binance_dock.services.session.session import Session

log = get_logger("registry")

LOADING_LABEL = "Loading..."
REFRESHING_LABEL = "Refreshing..."


class HostSink(Protocol):
    """Outbound half of the host boundary."""

    def set_artifact(self, slot_id: str, image: bytes) -> None: ...

    def set_label(self, slot_id: str, text: str) -> None: ...

    def persist_settings(self, slot_id: str, settings: Dict[str, Any]) -> None: ...


class SessionRegistry:
    def __init__(
        self,
        provider: MarketDataProvider,
        host: HostSink,
        config: Optional[PluginConfig] = None,
        *,
        renderer: Optional[Callable[[View], bytes]] = None,
    ) -> None:
        self._config = config or PluginConfig()
        self._host = host
        self._sessions: Dict[str, Session] = {}
        self._generations = itertools.count(1)
        self._pending: List["asyncio.Task[Any]"] = []
        self._backfill = BackfillFetcher(provider)
        size_px = self._config.render.size_px
        self._renderer = renderer or (lambda view: render_view(view, size_px))

        feed_cfg = self._config.feed
        self.connector = FeedConnector(
            provider,
            is_live=self.is_live,
            on_update=self._render,
            on_reconnect_due=self._reconnect_after_close,
            reconnect_delay_sec=feed_cfg.reconnect_delay_sec,
            heartbeat_interval_sec=feed_cfg.heartbeat_interval_sec,
            pong_timeout_sec=feed_cfg.pong_timeout_sec,
        )

    # ---- Queries ----

    @property
    def slot_ids(self) -> List[str]:
        return list(self._sessions)

    def get(self, slot_id: str) -> Optional[Session]:
        return self._sessions.get(slot_id)

    def is_live(self, session: Session) -> bool:
        return self._sessions.get(session.slot_id) is session

    # ---- Lifecycle ----

    def start(self, slot_id: str, kind: FeedKind, settings: Optional[SlotSettings] = None) -> Session:
        self.stop(slot_id)

        settings = settings or self._config.defaults
        session = Session.create(slot_id, kind, settings, next(self._generations))
        self._sessions[slot_id] = session
        log.info(
            "session_start",
            slot=slot_id,
            kind=kind.value,
            symbol=settings.symbol,
            generation=session.generation,
        )

        self._host.set_label(slot_id, f"{strip_quote_asset(settings.symbol)}\n{LOADING_LABEL}")
        self._schedule_backfill(session)
        self.connector.connect(session)
        return session

    def update_config(self, slot_id: str, partial: Mapping[str, Any]) -> Optional[SlotSettings]:
        session = self._sessions.get(slot_id)
        if session is None:
            return None

        try:
            merged = session.settings.merged(partial)
        except ValidationError as e:
            log.warning("settings_invalid", slot=slot_id, error=str(e))
            return None

        if merged.stream_key(session.kind) != session.settings.stream_key(session.kind):
            log.info("settings_stream_changed", slot=slot_id, symbol=merged.symbol)
            self.start(slot_id, session.kind, merged)
        elif merged != session.settings:
            session.settings = merged
            self._render(session)
        return merged

    def manual_refresh(self, slot_id: str) -> None:
        session = self._sessions.get(slot_id)
        if session is None:
            return
        log.info("manual_refresh", slot=slot_id, generation=session.generation)
        session.artifact_ready = False
        self._host.set_label(slot_id, REFRESHING_LABEL)
        self._reconnect(session, backfill=True)

    def stop(self, slot_id: str) -> None:
        session = self._sessions.pop(slot_id, None)
        if session is None:
            return
        self._pending.extend(self._teardown(session))
        self._prune_pending()
        log.info("session_stop", slot=slot_id, generation=session.generation)

    async def shutdown(self) -> None:
        for slot_id in list(self._sessions):
            self.stop(slot_id)
        pending, self._pending = self._pending, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- Internals ----

    def _teardown(self, session: Session) -> List["asyncio.Task[Any]"]:
        tasks = self.connector.disconnect(session)
        if session.backfill_task is not None:
            if not session.backfill_task.done():
                session.backfill_task.cancel()
                tasks.append(session.backfill_task)
            session.backfill_task = None
        return tasks

    def _prune_pending(self) -> None:
        self._pending = [t for t in self._pending if not t.done()]

    def _reconnect(self, session: Session, *, backfill: bool) -> None:
        session.generation = next(self._generations)
        self._pending.extend(self._teardown(session))
        self._prune_pending()
        if backfill:
            self._schedule_backfill(session)
        self.connector.connect(session)

    def _reconnect_after_close(self, session: Session) -> None:
        if not self.is_live(session):
            return
        log.info("reconnect", slot=session.slot_id, symbol=session.settings.symbol)
        self._reconnect(session, backfill=False)

    def _schedule_backfill(self, session: Session) -> None:
        if session.kind is not FeedKind.TICKER:
            return
        session.backfill_task = asyncio.create_task(
            self._run_backfill(session, session.settings.stream_key(session.kind)),
            name=f"backfill:{session.slot_id}",
        )

    async def _run_backfill(self, session: Session, stream_key: Any) -> None:
        chart = session.settings.chart
        try:
            closes = await self._backfill.fetch(session.settings.symbol, chart.interval, chart.samples)
        except BackfillError:
            return  # logged by the fetcher; the window fills from closed candles instead

        if not self.is_live(session) or session.settings.stream_key(session.kind) != stream_key:
            return
        session.window.replace(closes)
        self._render(session)

    def _render(self, session: Session) -> None:
        if not self.is_live(session):
            return
        try:
            view = build_view(session)
            if view is None:
                return
            image = self._renderer(view)
        except Exception as e:
            log.error("render_failed", slot=session.slot_id, error=str(e))
            return

        self._host.set_artifact(session.slot_id, image)
        if not session.artifact_ready:
            session.artifact_ready = True
            self._host.set_label(session.slot_id, "")
