"""
Client configuration.

Settings are read from environment variables so the client can be
pointed at a different gateway or account slice without code changes.
Command line flags in :mod:`tradedesk.client_main` override these
values.

Environment variables
---------------------

* ``TRADEDESK_WS_URL`` – WebSocket URL of the venue gateway.
* ``TRADEDESK_CURRENCY`` – currency used for the initial instrument and
  positions requests (e.g. ``BTC``).
* ``TRADEDESK_KIND`` – instrument kind for the initial requests.
* ``ORDERBOOK_DEPTH`` – rows per side in the order book view.
* ``COMMAND_TIMEOUT_SECONDS`` – seconds before an unanswered command is
  failed; ``0`` disables the timeout.
* ``RECONNECT_ATTEMPTS`` – how many sessions the CLI opens before giving up.
* ``PROMETHEUS_PORT`` – when set, expose metrics on this port.
* ``LOG_LEVEL`` – root logging level.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ClientSettings(BaseModel):
    """Runtime settings for :class:`tradedesk.client.TradingClient`."""

    ws_url: str = Field("ws://localhost:9002", description="Venue gateway WebSocket URL")
    currency: str = Field("BTC", description="Currency for initial instrument/positions requests")
    kind: Literal["future", "option", "spot"] = Field("future", description="Instrument kind")
    orderbook_depth: int = Field(10, ge=1, description="Rows per order book side")
    command_timeout: Optional[float] = Field(10.0, description="Seconds to wait for a command response")
    reconnect_attempts: int = Field(5, ge=1, description="Sessions to open before giving up")
    prometheus_port: Optional[int] = Field(None, description="Metrics port; disabled when unset")
    log_level: str = Field("INFO", description="Root logging level")

    @classmethod
    def from_env(cls) -> "ClientSettings":
        """Build settings from the process environment."""
        timeout = float(os.getenv("COMMAND_TIMEOUT_SECONDS", "10"))
        port = os.getenv("PROMETHEUS_PORT")
        return cls(
            ws_url=os.getenv("TRADEDESK_WS_URL", "ws://localhost:9002"),
            currency=os.getenv("TRADEDESK_CURRENCY", "BTC"),
            kind=os.getenv("TRADEDESK_KIND", "future"),
            orderbook_depth=int(os.getenv("ORDERBOOK_DEPTH", "10")),
            command_timeout=timeout if timeout > 0 else None,
            reconnect_attempts=int(os.getenv("RECONNECT_ATTEMPTS", "5")),
            prometheus_port=int(port) if port else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
