"""Service layer for the client.

This package holds the connection session, the message router, the
state stores fed by the router and the command coordinator.
"""

from .commands import CommandCoordinator, CommandHandle, CommandKind, CommandOutcome, CommandState  # noqa: F401
from .connection import ConnectionSession, SessionEvent, SessionState  # noqa: F401
from .instruments_store import InstrumentsStore  # noqa: F401
from .listeners import ListenerSet  # noqa: F401
from .open_orders_store import OpenOrdersStore  # noqa: F401
from .orderbook_store import OrderBookSnapshot, OrderBookStore, OrderBookView  # noqa: F401
from .positions_store import PositionsStore  # noqa: F401
from .router import MessageRouter  # noqa: F401
