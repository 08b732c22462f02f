"""Tests for the wire codec and frame helpers."""

from __future__ import annotations

import json

from tradedesk.frames import (
    DecodeResult,
    Frame,
    command_frame,
    decode_frame,
    encode_frame,
    frame_key,
    instruments_request,
    open_orders_request,
    orderbook_request,
    positions_request,
)


def test_decode_frame_success() -> None:
    result = decode_frame('{"type": "instruments", "result": []}')
    assert result.ok
    assert result.parsed == {"type": "instruments", "result": []}
    assert result.error is None


def test_decode_frame_failure_is_tagged_not_raised() -> None:
    result = decode_frame("{not json")
    assert not result.ok
    assert result.parsed is None
    assert result.error.startswith("Failed to parse server response")


def test_decode_frame_accepts_bytes() -> None:
    assert decode_frame(b'{"type": "x"}').parsed == {"type": "x"}


def test_decode_result_defaults_to_ok() -> None:
    assert DecodeResult(parsed=1).ok


def test_encode_frame_is_single_line() -> None:
    text = encode_frame({"type": "get_orderbook", "instrument": "BTC-PERPETUAL"})
    assert "\n" not in text
    assert json.loads(text) == {"type": "get_orderbook", "instrument": "BTC-PERPETUAL"}


def test_frame_key_for_orderbook_update() -> None:
    assert frame_key("orderbook_update", {"instrument": "BTC-PERPETUAL"}) == "BTC-PERPETUAL"
    # Falls back to the instrument named inside the book
    payload = {"data": {"instrument_name": "ETH-PERPETUAL"}}
    assert frame_key("orderbook_update", payload) == "ETH-PERPETUAL"
    assert frame_key("orderbook_update", {}) is None


def test_frame_key_for_positions_update() -> None:
    assert frame_key("positions_update", {"currency": "BTC", "kind": "future"}) == ("BTC", "future")
    assert frame_key("positions_update", {"currency": "BTC"}) is None


def test_frame_key_absent_for_other_types() -> None:
    assert frame_key("order_response", {"instrument": "BTC-PERPETUAL"}) is None


def test_outbound_builders() -> None:
    assert instruments_request("ETH", "option") == {"type": "get_instruments", "currency": "ETH", "kind": "option"}
    assert orderbook_request("BTC-PERPETUAL") == {"type": "get_orderbook", "instrument": "BTC-PERPETUAL"}
    assert open_orders_request() == {"type": "get_open_orders"}
    assert positions_request("BTC", "future") == {"type": "get_positions", "currency": "BTC", "kind": "future"}
    assert command_frame("cancel_order", {"order_id": "1"}) == {"type": "cancel_order", "data": {"order_id": "1"}}


def test_frame_error_counts_any_non_blank_value() -> None:
    def error_of(**payload):
        return Frame(type="cancel_response", payload={"type": "cancel_response", **payload}).error

    assert error_of() is None
    assert error_of(error=None) is None
    assert error_of(error="") is None
    assert error_of(error="rejected") == "rejected"
    assert error_of(error={}) == {}
    assert error_of(error=[]) == []
