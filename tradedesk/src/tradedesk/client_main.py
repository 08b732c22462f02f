"""
Entry point for the trading client.

Connects to the venue gateway, keeps the stores current and logs the top
of the watched order book whenever it changes.  A lost connection is
never resumed in place: each attempt opens a new session, with
exponential backoff between attempts, until ``RECONNECT_ATTEMPTS``
consecutive connects have failed.  A session that connected resets both
the count and the backoff.

Usage::

    tradedesk --url ws://localhost:9002 --currency BTC --kind future \\
        --instrument BTC-PERPETUAL --depth 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional, Sequence, Set

from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from .client import TradingClient
from .config import ClientSettings
from .exceptions import ConnectionLostError
from .models import Instrument
from .services.orderbook_store import OrderBookSnapshot, OrderBookView
from .telemetry import start_metrics_server

logger = logging.getLogger(__name__)


def format_top_of_book(view: OrderBookView) -> str:
    """Render the best bid and ask of a view as one log line."""
    bid, ask = view.best_bid, view.best_ask
    bid_text = f"{bid.size:.4f} @ {bid.price:.2f}" if bid else "-"
    ask_text = f"{ask.size:.4f} @ {ask.price:.2f}" if ask else "-"
    return f"{view.instrument}: bid {bid_text} | ask {ask_text}"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream order book, orders and positions from the venue gateway.")
    parser.add_argument("--url", help="Gateway WebSocket URL (TRADEDESK_WS_URL).")
    parser.add_argument("--currency", help="Currency for instruments and positions (TRADEDESK_CURRENCY).")
    parser.add_argument("--kind", choices=["future", "option", "spot"], help="Instrument kind (TRADEDESK_KIND).")
    parser.add_argument("--instrument", help="Instrument whose book to watch; defaults to the first listed.")
    parser.add_argument("--depth", type=int, help="Order book rows per side (ORDERBOOK_DEPTH).")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> ClientSettings:
    settings = ClientSettings.from_env()
    overrides = {
        "ws_url": args.url,
        "currency": args.currency,
        "kind": args.kind,
        "orderbook_depth": args.depth,
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


async def run_session(client: TradingClient) -> bool:
    """Open one session and block until it ends.

    Returns True when a connected session was lost and should be reopened,
    False when the client was closed.

    Raises:
        ConnectionLostError: If the gateway could not be reached.
    """
    if not await client.connect():
        raise ConnectionLostError(f"Could not connect to {client.settings.ws_url}")
    try:
        await client.wait_closed()
    except ConnectionLostError as exc:
        logger.warning("%s; reconnecting", exc)
        return True
    return False


async def supervise(client: TradingClient, attempts: int) -> None:
    """Keep a session open until the client is closed or reconnects run out.

    ``attempts`` bounds consecutive failed connects.  The count and the
    backoff start over once a session has connected.
    """
    lost = True
    try:
        while lost:
            retrying = AsyncRetrying(
                retry=retry_if_exception_type(ConnectionLostError),
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=1, min=1, max=30),
                reraise=False,
            )
            async for attempt in retrying:
                with attempt:
                    lost = await run_session(client)
    except RetryError as exc:
        logger.error("Giving up after %d attempt(s): %s", attempts, exc.last_attempt.exception())


async def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    settings = build_settings(args)
    logging.basicConfig(level=settings.log_level)
    if settings.prometheus_port:
        start_metrics_server(settings.prometheus_port)

    client = TradingClient(settings)
    watched: List[str] = []
    tasks: Set[asyncio.Task] = set()

    def on_book(snapshot: OrderBookSnapshot) -> None:
        if snapshot.instrument in watched:
            logger.info(format_top_of_book(client.orderbook_view(snapshot.instrument)))

    def on_instruments(instruments: Sequence[Instrument]) -> None:
        if watched or not instruments:
            return
        first = instruments[0].instrument_name
        watched.append(first)
        logger.info("Watching order book for %s", first)
        task = asyncio.get_running_loop().create_task(client.watch_orderbook(first))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    client.orderbooks.add_listener(on_book)
    client.open_orders.add_listener(lambda orders: logger.info("Open orders: %d", len(orders)))
    client.commands.add_listener(lambda outcome: logger.info(outcome.message))
    if args.instrument:
        watched.append(args.instrument)
        await client.watch_orderbook(args.instrument)
    else:
        client.instruments.add_listener(on_instruments)

    try:
        await supervise(client, settings.reconnect_attempts)
    finally:
        await client.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
