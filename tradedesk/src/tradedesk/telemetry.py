"""
Prometheus metrics for the client.

Metrics are module level so every component shares one set of
collectors.  The HTTP endpoint is optional; call
:func:`start_metrics_server` from the entry point when
``PROMETHEUS_PORT`` is configured.

Metrics
-------

* ``tradedesk_frames_received_total{type}`` – decoded inbound frames.
* ``tradedesk_frames_dropped_total{reason}`` – frames discarded before or
  during dispatch (``decode_error``, ``missing_type``, ``unrouted``).
* ``tradedesk_handler_errors_total{type}`` – subscriber failures.
* ``tradedesk_commands_total{kind,outcome}`` – settled commands.
* ``tradedesk_connection_up`` – 1 while the session is connected.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

frames_received = Counter(
    "tradedesk_frames_received_total",
    "Inbound frames decoded by the router",
    labelnames=["type"],
)
frames_dropped = Counter(
    "tradedesk_frames_dropped_total",
    "Inbound frames dropped by the router",
    labelnames=["reason"],
)
handler_errors = Counter(
    "tradedesk_handler_errors_total",
    "Subscriber exceptions raised while handling a frame",
    labelnames=["type"],
)
commands_settled = Counter(
    "tradedesk_commands_total",
    "Commands settled by the coordinator",
    labelnames=["kind", "outcome"],
)
connection_up = Gauge(
    "tradedesk_connection_up",
    "Connection status (1=connected,0=not connected)",
)


def start_metrics_server(port: int) -> bool:
    """Expose metrics over HTTP; returns False if the server did not start."""
    try:
        start_http_server(port)
    except OSError as exc:
        logger.warning("Failed to start Prometheus server on port %d: %s", port, exc)
        return False
    logger.info("Prometheus metrics available on port %d", port)
    return True
