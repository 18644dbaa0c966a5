"""Live subscriptions for a session: message application, heartbeat, reconnect.

Each subscription is a FeedConnection running in its own task:

    CONNECTING -> OPEN -> CLOSING -> CLOSED

The task finishing (for any reason) is the close event. Every connection
carries the generation of the session it was opened for; messages and close
events from an older generation are ignored, which is what prevents a
superseded socket from scheduling a second reconnect.
"""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from binance_dock.infrastructure.binance.binance_client import MarketDataProvider
from binance_dock.infrastructure.logging.logging import get_logger
from binance_dock.models.market_models import (
    DepthEvent,
    FeedKind,
    KlineEvent,
    StreamDescriptor,
    StreamKind,
    TickerEvent,
)
from binance_dock.services.session.session import Session

log = get_logger("feed")


class FeedStateError(RuntimeError):
    pass


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset({ConnectionState.OPEN, ConnectionState.CLOSING, ConnectionState.CLOSED}),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSING, ConnectionState.CLOSED}),
    ConnectionState.CLOSING: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class FeedConnection:
    """One subscription owned by one session generation."""

    def __init__(
        self,
        descriptor: StreamDescriptor,
        generation: int,
        provider: MarketDataProvider,
        *,
        slot_id: str,
        on_message: Callable[["FeedConnection", Any], None],
        on_closed: Callable[["FeedConnection"], None],
        heartbeat_interval_sec: float,
        pong_timeout_sec: float,
    ) -> None:
        self.descriptor = descriptor
        self.generation = generation
        self.slot_id = slot_id
        self._provider = provider
        self._on_message = on_message
        self._on_closed = on_closed
        self._heartbeat_interval = heartbeat_interval_sec
        self._pong_timeout = pong_timeout_sec
        self._log = log.bind(slot=slot_id, stream=descriptor.stream_name, generation=generation)

        self.state = ConnectionState.CONNECTING
        self._stream: Any = None
        self._task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None

    @property
    def task(self) -> Optional["asyncio.Task[None]"]:
        return self._task

    def _transition(self, new: ConnectionState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise FeedStateError(f"Illegal transition {self.state.value} -> {new.value}")
        self.state = new

    def start(self) -> None:
        if self._task is not None:
            raise FeedStateError("Connection already started")
        self._task = asyncio.create_task(self._run(), name=f"feed:{self.slot_id}:{self.descriptor.stream_name}")
        self._task.add_done_callback(self._on_task_done)

    def close(self) -> None:
        """Request shutdown. The close event follows once the task has finished."""
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self._transition(ConnectionState.CLOSING)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        try:
            self._stream = await self._provider.subscribe(self.descriptor)
            self._transition(ConnectionState.OPEN)
            self._log.info("feed_open")
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

            async for raw in self._stream:
                self._on_message(self, raw)
            self._log.info("feed_remote_closed")
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            self._log.info("feed_connection_closed", code=getattr(e.rcvd, "code", None))
        except Exception as e:
            # Advisory only; the close event below drives recovery.
            self._log.warning("feed_error", error=str(e), error_type=type(e).__name__)
        finally:
            await self._shutdown()

    async def _shutdown(self) -> None:
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self._transition(ConnectionState.CLOSING)

        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

        if self._stream is not None:
            try:
                await self._stream.close()
            except Exception as e:
                self._log.debug("feed_close_error", error=str(e))

    async def _heartbeat_loop(self) -> None:
        while self.state is ConnectionState.OPEN:
            await asyncio.sleep(self._heartbeat_interval)
            if self.state is not ConnectionState.OPEN:
                return
            try:
                pong_waiter = await self._stream.ping()
                await asyncio.wait_for(pong_waiter, timeout=self._pong_timeout)
                self._log.debug("ws_ping_ok")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log.warning("ws_ping_failed", error=str(e))
                break

        # No pong: drop the socket so the reader sees the close and recovery kicks in.
        if self.state is ConnectionState.OPEN:
            try:
                await self._stream.close()
            except Exception as e:
                self._log.debug("feed_close_error", error=str(e))

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        if self.state is not ConnectionState.CLOSED:
            self._transition(ConnectionState.CLOSED)
        if not task.cancelled() and task.exception() is not None:
            self._log.error("feed_task_failed", error=str(task.exception()))
        self._on_closed(self)


class FeedConnector:
    """Opens a session's subscriptions and applies their messages to its state.

    is_live(session) tells whether the session is still the registered one
    for its slot; on_update(session) is called after a visible state change;
    on_reconnect_due(session) is called when the reconnect timer fires for a
    session that is still current.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        *,
        is_live: Callable[[Session], bool],
        on_update: Callable[[Session], None],
        on_reconnect_due: Callable[[Session], None],
        reconnect_delay_sec: float = 5.0,
        heartbeat_interval_sec: float = 180.0,
        pong_timeout_sec: float = 10.0,
    ) -> None:
        self._provider = provider
        self._is_live = is_live
        self._on_update = on_update
        self._on_reconnect_due = on_reconnect_due
        self._reconnect_delay = reconnect_delay_sec
        self._heartbeat_interval = heartbeat_interval_sec
        self._pong_timeout = pong_timeout_sec

    @staticmethod
    def descriptors_for(session: Session) -> List[StreamDescriptor]:
        settings = session.settings
        if session.kind is FeedKind.DEPTH:
            return [StreamDescriptor(settings.symbol, StreamKind.DEPTH, level=settings.depth_level)]
        return [
            StreamDescriptor(settings.symbol, StreamKind.TICKER),
            StreamDescriptor(settings.symbol, StreamKind.KLINE, interval=settings.chart.interval),
        ]

    def connect(self, session: Session) -> None:
        for descriptor in self.descriptors_for(session):
            conn = FeedConnection(
                descriptor,
                session.generation,
                self._provider,
                slot_id=session.slot_id,
                on_message=partial(self.handle_message, session),
                on_closed=partial(self.handle_close, session),
                heartbeat_interval_sec=self._heartbeat_interval,
                pong_timeout_sec=self._pong_timeout,
            )
            session.connections.append(conn)
            conn.start()

    def disconnect(self, session: Session) -> List["asyncio.Task[None]"]:
        """Cancel the pending reconnect and close every connection.

        Returns the connection tasks so a caller can await their shutdown.
        """
        self.cancel_reconnect(session)
        tasks = [conn.task for conn in session.connections if conn.task is not None]
        for conn in session.connections:
            conn.close()
        session.connections.clear()
        return tasks

    @staticmethod
    def cancel_reconnect(session: Session) -> None:
        if session.reconnect_handle is not None:
            session.reconnect_handle.cancel()
            session.reconnect_handle = None

    def _is_current(self, session: Session, conn: FeedConnection) -> bool:
        return self._is_live(session) and conn.generation == session.generation

    def handle_message(self, session: Session, conn: FeedConnection, raw: Any) -> None:
        if not self._is_current(session, conn):
            return

        try:
            payload = json.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
            changed = self._apply(session, conn.descriptor.kind, payload)
        except (ValueError, ValidationError) as e:
            log.warning(
                "feed_message_malformed",
                slot=session.slot_id,
                stream=conn.descriptor.stream_name,
                error=str(e),
            )
            return

        if changed:
            self._on_update(session)

    @staticmethod
    def _apply(session: Session, kind: StreamKind, payload: Any) -> bool:
        if kind is StreamKind.TICKER:
            ticker = TickerEvent.model_validate(payload)
            session.ticker.price = ticker.last_price
            session.ticker.change_percent = ticker.change_percent
            return True

        if kind is StreamKind.KLINE:
            kline = KlineEvent.model_validate(payload)
            if not kline.bar.is_closed:
                return False
            session.window.push(kline.bar.close)
            return True

        depth = DepthEvent.model_validate(payload)
        session.depth.bids = sorted(depth.bids, key=lambda level: level[0], reverse=True)
        session.depth.asks = sorted(depth.asks, key=lambda level: level[0])
        return True

    def handle_close(self, session: Session, conn: FeedConnection) -> None:
        if conn in session.connections:
            session.connections.remove(conn)

        if not self._is_current(session, conn):
            log.debug("feed_close_stale", slot=session.slot_id, generation=conn.generation)
            return

        if session.reconnect_handle is not None:
            return

        log.info(
            "reconnect_scheduled",
            slot=session.slot_id,
            stream=conn.descriptor.stream_name,
            delay_sec=self._reconnect_delay,
        )
        loop = asyncio.get_running_loop()
        session.reconnect_handle = loop.call_later(
            self._reconnect_delay, self._fire_reconnect, session, conn.generation
        )

    def _fire_reconnect(self, session: Session, generation: int) -> None:
        if not self._is_live(session) or session.generation != generation:
            return
        session.reconnect_handle = None
        self._on_reconnect_due(session)
