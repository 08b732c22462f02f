"""Tests for MessageRouter dispatch, filtering and failure isolation."""

from __future__ import annotations

import asyncio
import json
from typing import List

import pytest
from prometheus_client import REGISTRY

from tradedesk.frames import Frame
from tradedesk.services.router import MessageRouter


def _book(instrument: str) -> str:
    return json.dumps({"type": "orderbook_update", "instrument": instrument, "data": {"bids": [], "asks": []}})


def _dropped(reason: str) -> float:
    return REGISTRY.get_sample_value("tradedesk_frames_dropped_total", {"reason": reason}) or 0.0


def test_every_subscriber_called_once_in_order() -> None:
    router = MessageRouter()
    calls: List[str] = []
    router.subscribe("open_orders_update", lambda frame: calls.append("first"))
    router.subscribe("open_orders_update", lambda frame: calls.append("second"))
    router.subscribe("positions_update", lambda frame: calls.append("other"))

    frame = router.route('{"type": "open_orders_update", "data": {"result": []}}')

    assert isinstance(frame, Frame)
    assert frame.type == "open_orders_update"
    assert calls == ["first", "second"]


def test_failing_subscriber_is_isolated() -> None:
    router = MessageRouter()
    calls: List[str] = []

    def broken(frame: Frame) -> None:
        raise KeyError("missing")

    router.subscribe("cancel_response", broken)
    router.subscribe("cancel_response", lambda frame: calls.append("ok"))

    before = REGISTRY.get_sample_value("tradedesk_handler_errors_total", {"type": "cancel_response"}) or 0.0
    router.route('{"type": "cancel_response"}')
    after = REGISTRY.get_sample_value("tradedesk_handler_errors_total", {"type": "cancel_response"})

    assert calls == ["ok"]
    assert after == before + 1


def test_unsubscribe_stops_delivery() -> None:
    router = MessageRouter()
    calls: List[str] = []
    unsubscribe = router.subscribe("instruments", lambda frame: calls.append("x"))
    router.route('{"type": "instruments", "result": []}')
    unsubscribe()
    router.route('{"type": "instruments", "result": []}')
    assert calls == ["x"]
    assert router.subscriber_count("instruments") == 0


def test_key_filter_only_delivers_matching_instrument() -> None:
    router = MessageRouter()
    seen: List[str] = []
    router.subscribe("orderbook_update", lambda frame: seen.append(frame.key), key="BTC-PERPETUAL")

    router.route(_book("ETH-PERPETUAL"))
    router.route(_book("BTC-PERPETUAL"))

    assert seen == ["BTC-PERPETUAL"]


def test_positions_key_filter() -> None:
    router = MessageRouter()
    seen: List[object] = []
    router.subscribe("positions_update", lambda frame: seen.append(frame.key), key=("ETH", "option"))
    router.route('{"type": "positions_update", "currency": "BTC", "kind": "option", "data": []}')
    router.route('{"type": "positions_update", "currency": "ETH", "kind": "option", "data": []}')
    assert seen == [("ETH", "option")]


def test_decode_failure_does_not_block_next_frame() -> None:
    router = MessageRouter()
    seen: List[str] = []
    router.subscribe("orderbook_update", lambda frame: seen.append(frame.key))

    before = _dropped("decode_error")
    assert router.route("{garbage") is None
    router.route(_book("BTC-PERPETUAL"))

    assert seen == ["BTC-PERPETUAL"]
    assert _dropped("decode_error") == before + 1


@pytest.mark.parametrize("raw", ['[1, 2, 3]', '{"result": []}', '{"type": 5}', '"text"'])
def test_frames_without_type_are_dropped(raw: str) -> None:
    router = MessageRouter()
    before = _dropped("missing_type")
    assert router.route(raw) is None
    assert _dropped("missing_type") == before + 1


def test_frame_without_subscribers_is_dropped_quietly() -> None:
    router = MessageRouter()
    before = _dropped("unrouted")
    frame = router.route('{"type": "echo"}')
    assert frame is not None
    assert _dropped("unrouted") == before + 1


@pytest.mark.asyncio
async def test_stream_yields_frames_and_unsubscribes_on_close() -> None:
    router = MessageRouter()
    stream = router.stream("orderbook_update", key="BTC-PERPETUAL")
    next_frame = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)

    router.route(_book("ETH-PERPETUAL"))
    router.route(_book("BTC-PERPETUAL"))
    frame = await asyncio.wait_for(next_frame, timeout=1)

    assert frame.key == "BTC-PERPETUAL"
    assert router.subscriber_count("orderbook_update") == 1
    await stream.aclose()
    assert router.subscriber_count("orderbook_update") == 0
