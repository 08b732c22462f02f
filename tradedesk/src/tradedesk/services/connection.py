"""
Connection session for the venue gateway WebSocket.

A :class:`ConnectionSession` owns exactly one transport connection and
walks an explicit state machine::

    idle -> connecting -> connected -> closed | errored

``closed`` and ``errored`` are terminal.  Reconnecting means creating a
new session; the retry policy lives in the caller (see
:mod:`tradedesk.client_main`).  Sends are only written while the
session is ``connected``; otherwise they are logged and dropped, never
queued.

Inbound frames are handed, in arrival order, to the single frame
handler registered with :meth:`ConnectionSession.on_frame` (normally
:meth:`MessageRouter.route`).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from .. import telemetry
from ..exceptions import InvalidSessionState
from ..frames import encode_frame
from .listeners import ListenerSet

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.ERRORED)


class SessionEvent(str, enum.Enum):
    CONNECTED = "connected"
    ERROR = "error"
    CLOSED = "closed"


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.CONNECTING, SessionState.CLOSED},
    SessionState.CONNECTING: {SessionState.CONNECTED, SessionState.ERRORED, SessionState.CLOSED},
    SessionState.CONNECTED: {SessionState.CLOSED, SessionState.ERRORED},
    SessionState.CLOSED: set(),
    SessionState.ERRORED: set(),
}

Connector = Callable[[str], Awaitable[Any]]


class ConnectionSession:
    """Supervise one WebSocket connection to the gateway."""

    def __init__(
        self,
        url: str,
        *,
        connect: Optional[Connector] = None,
        open_timeout: float = 10.0,
    ) -> None:
        """Create an idle session.

        Args:
            url: Gateway WebSocket URL.
            connect: Coroutine factory returning an open connection; defaults
                to :func:`websockets.connect`.  Tests pass a fake here.
            open_timeout: Seconds allowed for the opening handshake.
        """
        self.url = url
        self._connect: Connector = connect or websockets.connect
        self._open_timeout = open_timeout
        self._state = SessionState.IDLE
        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._frame_handler: Optional[Callable[[Any], Any]] = None
        self._listeners: Dict[SessionEvent, ListenerSet] = {
            event: ListenerSet(f"session.{event.value}") for event in SessionEvent
        }
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def on_frame(self, handler: Callable[[Any], Any]) -> None:
        """Register the single consumer of inbound frames."""
        if self._frame_handler is not None:
            raise RuntimeError("A frame handler is already registered for this session")
        self._frame_handler = handler

    def on_event(self, event: SessionEvent, listener: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe to a lifecycle event; listeners may be coroutine functions.

        ``ERROR`` listeners receive the exception; the others receive no
        arguments.
        """
        return self._listeners[event].add(listener)

    def _transition(self, new_state: SessionState) -> bool:
        if new_state not in _TRANSITIONS[self._state]:
            return False
        logger.debug("Session %s: %s -> %s", self.url, self._state.value, new_state.value)
        self._state = new_state
        telemetry.connection_up.set(1 if new_state is SessionState.CONNECTED else 0)
        return True

    async def open(self) -> bool:
        """Open the connection; return True once connected.

        Failure leaves the session ``errored`` and emits ``ERROR``; it is
        not retried here.
        """
        if self._state is not SessionState.IDLE:
            raise InvalidSessionState(f"Cannot open a session in state {self._state.value}")
        self._transition(SessionState.CONNECTING)
        logger.info("Connecting to gateway at %s", self.url)
        try:
            ws = await asyncio.wait_for(self._connect(self.url), timeout=self._open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.error("Failed to connect to %s: %s", self.url, exc)
            await self._fail(exc)
            return False
        if self._state is not SessionState.CONNECTING:
            # close() raced the handshake
            await ws.close()
            return False
        self._ws = ws
        self._transition(SessionState.CONNECTED)
        logger.info("WebSocket connection established")
        self._reader = asyncio.create_task(self._read_loop())
        await self._listeners[SessionEvent.CONNECTED].notify_async()
        return True

    async def _fail(self, exc: BaseException) -> None:
        self.last_error = exc
        if self._transition(SessionState.ERRORED):
            await self._listeners[SessionEvent.ERROR].notify_async(exc)
            await self._listeners[SessionEvent.CLOSED].notify_async()

    async def _read_loop(self) -> None:
        try:
            async for message in self._ws:
                if self._frame_handler is None:
                    logger.debug("No frame handler registered; dropping frame")
                    continue
                try:
                    self._frame_handler(message)
                except Exception:
                    logger.exception("Frame handler failed; continuing with next frame")
        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, OSError) as exc:
            logger.warning("WebSocket connection lost: %s", exc)
            await self._fail(exc)
            return
        if self._transition(SessionState.CLOSED):
            logger.info("WebSocket connection closed")
            await self._listeners[SessionEvent.CLOSED].notify_async()

    async def send(self, frame: Mapping[str, Any]) -> bool:
        """Write ``frame`` if connected; return False when it was dropped."""
        if self._state is not SessionState.CONNECTED:
            logger.warning(
                "WebSocket is not connected (state=%s); dropping %s frame",
                self._state.value,
                frame.get("type"),
            )
            return False
        try:
            await self._ws.send(encode_frame(frame))
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Failed to send %s frame: %s", frame.get("type"), exc)
            return False
        logger.debug("Sent %s frame", frame.get("type"))
        return True

    async def close(self) -> None:
        """Release the transport; safe to call repeatedly."""
        was_open = self._transition(SessionState.CLOSED)
        if self._ws is not None:
            try:
                await self._ws.close()
            except (ConnectionClosed, OSError) as exc:
                logger.debug("Error while closing WebSocket: %s", exc)
        reader = self._reader
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if was_open:
            logger.info("WebSocket connection closed")
            await self._listeners[SessionEvent.CLOSED].notify_async()

    async def wait_closed(self) -> SessionState:
        """Wait until the reader has finished and return the final state."""
        if self._reader is not None:
            try:
                await asyncio.shield(self._reader)
            except asyncio.CancelledError:
                if not self._reader.cancelled():
                    raise
        return self._state
