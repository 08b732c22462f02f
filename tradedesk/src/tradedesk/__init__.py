"""
Realtime trading client for a single venue account.

The client keeps a live view of order books, open orders, positions and
the instrument catalogue, and submits place/modify/cancel commands, all
over one persistent WebSocket connection to the venue gateway.
:class:`TradingClient` wires the pieces together; the individual
services live in :mod:`tradedesk.services`.
"""

from .client import TradingClient  # noqa: F401
from .config import ClientSettings  # noqa: F401
from .exceptions import ConnectionLostError, InvalidSessionState  # noqa: F401
