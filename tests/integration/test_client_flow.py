"""End-to-end client flows over a fake gateway connection.

Each test drives a real :class:`TradingClient` (router, stores, command
coordinator and connection session) through ``FakeConnector``; only
the WebSocket itself is faked.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict

import pytest

from tests.helpers.fake_transport import FakeConnector, FakeWebSocket, drain
from tradedesk.client import TradingClient
from tradedesk.config import ClientSettings
from tradedesk.exceptions import ConnectionLostError
from tradedesk.services.commands import NOT_CONNECTED_ERROR, CommandState
from tradedesk.services.connection import SessionState

INITIAL_REQUESTS = ["get_instruments", "get_open_orders", "get_positions"]


def _settings() -> ClientSettings:
    return ClientSettings(ws_url="ws://gateway.test:9002", currency="BTC", kind="future", command_timeout=None)


def _book(instrument: str, bid: float, ask: float) -> Dict[str, Any]:
    return {
        "type": "orderbook_update",
        "instrument": instrument,
        "timestamp": 1700000000000,
        "data": {"bids": [[bid, 1.0]], "asks": [[ask, 2.0]]},
    }


def _open_orders(*order_ids: str) -> Dict[str, Any]:
    return {
        "type": "open_orders_update",
        "data": {
            "result": [
                {
                    "order_id": order_id,
                    "instrument_name": "BTC-PERPETUAL",
                    "amount": 10,
                    "price": 49000,
                    "direction": "buy",
                    "order_type": "limit",
                }
                for order_id in order_ids
            ]
        },
    }


@pytest.mark.asyncio
async def test_connect_requests_initial_state() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))

    assert await client.connect() is True

    assert ws.sent_types() == INITIAL_REQUESTS
    assert ws.sent_frames()[0] == {"type": "get_instruments", "currency": "BTC", "kind": "future"}
    assert ws.sent_frames()[2] == {"type": "get_positions", "currency": "BTC", "kind": "future"}
    await client.close()


@pytest.mark.asyncio
async def test_inbound_frames_update_stores() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()

    ws.feed({"type": "instruments", "result": [{"instrument_name": "BTC-PERPETUAL", "kind": "future"}]})
    ws.feed(_book("BTC-PERPETUAL", 50000, 50010))
    ws.feed(_open_orders("1", "2"))
    ws.feed(
        {
            "type": "positions_update",
            "currency": "BTC",
            "kind": "future",
            "data": [
                {
                    "instrument_name": "BTC-PERPETUAL",
                    "size": -20,
                    "average_price": 50100,
                    "mark_price": 50005,
                    "floating_profit_loss": 0.0004,
                }
            ],
        }
    )
    await drain()

    assert client.instruments.get("BTC-PERPETUAL").kind == "future"
    view = client.orderbook_view("BTC-PERPETUAL", 3)
    assert view.best_bid.price == 50000
    assert view.best_ask.price == 50010
    assert len(view.bids) == len(view.asks) == 3
    assert [order.order_id for order in client.open_orders.orders] == ["1", "2"]
    assert client.positions.query("BTC", "future")[0].size == -20
    assert client.positions.query("ETH", "future") == ()
    await client.close()


@pytest.mark.asyncio
async def test_malformed_frame_does_not_block_next() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()

    ws.feed("{not json")
    ws.feed({"data": {"result": []}})
    ws.feed(_open_orders("7"))
    await drain()

    assert client.connected
    assert client.open_orders.get("7") is not None
    await client.close()


@pytest.mark.asyncio
async def test_place_order_round_trip() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()

    handle = await client.place_order("BTC-PERPETUAL", 10, "buy", order_type="limit", price=49000)
    assert ws.sent_frames()[-1] == {
        "type": "place_order",
        "data": {
            "instrument_name": "BTC-PERPETUAL",
            "amount": 10.0,
            "type": "limit",
            "direction": "buy",
            "price": 49000.0,
        },
    }

    ws.feed({"type": "order_response", "result": {"order": {"order_id": "ETH-42"}}})
    outcome = await asyncio.wait_for(handle.wait(), timeout=1)

    assert outcome.state is CommandState.SUCCEEDED
    assert outcome.message == "Order placed successfully. Order ID: ETH-42"
    await client.close()


@pytest.mark.asyncio
async def test_cancel_success_refreshes_open_orders() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()
    ws.feed(_open_orders("1"))
    await drain()

    handle = await client.cancel_order("1")
    ws.feed({"type": "cancel_response", "result": {"order_id": "1"}})
    outcome = await asyncio.wait_for(handle.wait(), timeout=1)
    await drain()

    assert outcome.message == "Order cancelled successfully"
    # still listed until the venue sends a new snapshot
    assert client.open_orders.get("1") is not None
    assert ws.sent_types()[-2:] == ["cancel_order", "get_open_orders"]
    await client.close()


@pytest.mark.asyncio
async def test_failed_modify_does_not_refresh() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()

    handle = await client.modify_order("1", 5, price=51000)
    ws.feed({"type": "modify_response", "error": "order_not_found"})
    outcome = await asyncio.wait_for(handle.wait(), timeout=1)
    await drain()

    assert outcome.message == "Failed to modify order: order_not_found"
    assert ws.sent_types()[-1] == "modify_order"
    await client.close()


@pytest.mark.asyncio
async def test_reconnect_keeps_stores_and_rewatches_books() -> None:
    first, second = FakeWebSocket(), FakeWebSocket()
    connector = FakeConnector(first, second)
    client = TradingClient(_settings(), connect=connector)

    assert await client.watch_orderbook("BTC-PERPETUAL") is False
    await client.connect()
    assert first.sent_types() == INITIAL_REQUESTS + ["get_orderbook"]

    first.feed(_book("BTC-PERPETUAL", 50000, 50010))
    first.drop()
    with pytest.raises(ConnectionLostError):
        await client.wait_closed()
    assert client.session.state is SessionState.ERRORED

    assert await client.connect() is True
    assert second.sent_types() == INITIAL_REQUESTS + ["get_orderbook"]
    assert client.orderbook_view("BTC-PERPETUAL", 1).best_bid.price == 50000
    assert connector.urls == ["ws://gateway.test:9002"] * 2
    await client.close()


@pytest.mark.asyncio
async def test_commands_fail_fast_after_close() -> None:
    ws = FakeWebSocket()
    client = TradingClient(_settings(), connect=FakeConnector(ws))
    await client.connect()
    await client.close()

    assert await client.wait_closed() is SessionState.CLOSED
    handle = await client.place_order("BTC-PERPETUAL", 1, "sell")
    assert handle.state is CommandState.FAILED
    assert handle.outcome.error == NOT_CONNECTED_ERROR
    assert ws.sent_types() == INITIAL_REQUESTS
