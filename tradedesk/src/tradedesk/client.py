"""
Trading client composition root.

:class:`TradingClient` owns one :class:`MessageRouter`, every state store
and the :class:`CommandCoordinator`.  These survive reconnects: each call
to :meth:`TradingClient.connect` creates a fresh
:class:`ConnectionSession` and routes its frames into the same router.

On every successful connect the client requests the instrument list,
open orders and positions for the configured currency and kind, and
re-requests the order book of every instrument being watched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Set

from .config import ClientSettings
from .exceptions import ConnectionLostError
from .frames import instruments_request, open_orders_request, orderbook_request, positions_request
from .services.commands import CommandCoordinator, CommandHandle, CommandKind, CommandOutcome, CommandState
from .services.connection import ConnectionSession, SessionEvent, SessionState
from .services.instruments_store import InstrumentsStore
from .services.open_orders_store import OpenOrdersStore
from .services.orderbook_store import OrderBookStore, OrderBookView
from .services.positions_store import PositionsStore
from .services.router import MessageRouter

logger = logging.getLogger(__name__)


class TradingClient:
    """One trader, one account, one gateway connection at a time."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
    ) -> None:
        """
        Args:
            settings: Client settings; read from the environment when omitted.
            connect: Optional transport factory passed to each
                :class:`ConnectionSession` (tests supply a fake).
        """
        self.settings = settings or ClientSettings.from_env()
        self._connect = connect
        self.session: Optional[ConnectionSession] = None
        self._closing = False
        self.currency = self.settings.currency
        self.kind: str = self.settings.kind
        self._watched: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

        self.router = MessageRouter()
        self.instruments = InstrumentsStore()
        self.orderbooks = OrderBookStore()
        self.positions = PositionsStore()
        self.open_orders = OpenOrdersStore()
        self.commands = CommandCoordinator(self.send, timeout=self.settings.command_timeout)
        for component in (self.instruments, self.orderbooks, self.positions, self.open_orders, self.commands):
            component.attach(self.router)

    @property
    def connected(self) -> bool:
        return self.session is not None and self.session.connected

    async def connect(self) -> bool:
        """Open a new session; return False if the gateway is unreachable."""
        if self.session is not None and not self.session.state.terminal:
            await self.session.close()
        self._closing = False
        session = ConnectionSession(self.settings.ws_url, connect=self._connect)
        session.on_frame(self.router.route)
        session.on_event(SessionEvent.CONNECTED, self._request_initial_state)
        self.session = session
        return await session.open()

    async def _request_initial_state(self) -> None:
        await self.request_instruments(self.currency, self.kind)
        await self.request_open_orders()
        await self.request_positions(self.currency, self.kind)
        for instrument in sorted(self._watched):
            await self.send(orderbook_request(instrument))

    async def send(self, frame: Mapping[str, Any]) -> bool:
        """Send through the current session; False when there is none."""
        if self.session is None:
            logger.warning("WebSocket is not connected; dropping %s frame", frame.get("type"))
            return False
        return await self.session.send(frame)

    async def wait_closed(self) -> SessionState:
        """Wait for the current session to end.

        Raises:
            ConnectionLostError: If the session ended without :meth:`close`.
        """
        if self.session is None:
            raise ConnectionLostError("No session has been opened")
        state = await self.session.wait_closed()
        if not self._closing:
            raise ConnectionLostError(f"Gateway connection ended ({state.value})")
        return state

    async def close(self) -> None:
        self._closing = True
        if self.session is not None:
            await self.session.close()

    async def request_instruments(self, currency: str, kind: str) -> bool:
        self.currency, self.kind = currency, kind
        return await self.send(instruments_request(currency, kind))

    async def watch_orderbook(self, instrument: str) -> bool:
        """Ask the gateway to stream ``instrument``'s book, now and after every reconnect.

        Returns False when not connected; the request is then sent on connect.
        """
        self._watched.add(instrument)
        if not self.connected:
            return False
        return await self.send(orderbook_request(instrument))

    def unwatch_orderbook(self, instrument: str) -> None:
        self._watched.discard(instrument)

    def orderbook_view(self, instrument: str, depth: Optional[int] = None) -> OrderBookView:
        return self.orderbooks.view(instrument, depth if depth is not None else self.settings.orderbook_depth)

    async def request_open_orders(self) -> bool:
        return await self.send(open_orders_request())

    async def request_positions(self, currency: str, kind: str) -> bool:
        return await self.send(positions_request(currency, kind))

    async def place_order(
        self,
        instrument_name: str,
        amount: float,
        direction: str,
        *,
        order_type: str = "market",
        price: Optional[float] = None,
    ) -> CommandHandle:
        return await self.commands.submit(
            CommandKind.PLACE,
            {
                "instrument_name": instrument_name,
                "amount": amount,
                "type": order_type,
                "direction": direction,
                "price": price,
            },
        )

    async def modify_order(self, order_id: str, amount: float, price: Optional[float] = None) -> CommandHandle:
        handle = await self.commands.submit(
            CommandKind.MODIFY, {"order_id": order_id, "amount": amount, "price": price}
        )
        handle.add_done_callback(self._refresh_after)
        return handle

    async def cancel_order(self, order_id: str) -> CommandHandle:
        handle = await self.commands.submit(CommandKind.CANCEL, {"order_id": order_id})
        handle.add_done_callback(self._refresh_after)
        return handle

    def _refresh_after(self, outcome: CommandOutcome) -> None:
        # The store only changes on venue snapshots; ask for one.
        if outcome.state is CommandState.SUCCEEDED and self.connected:
            task = asyncio.get_running_loop().create_task(self.request_open_orders())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
