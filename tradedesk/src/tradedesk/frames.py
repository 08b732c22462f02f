"""Wire codec and frame definitions.

Every message on the gateway connection is a single JSON object with a
``type`` discriminator.  This module owns the encoding of outbound
frames, the tagged decode of inbound text, and the :class:`Frame`
structure the router hands to subscribers.

Decoding never raises: :func:`decode_frame` returns a
:class:`DecodeResult` which callers must check via ``ok`` before using
``parsed``.  Outbound query builders return plain dictionaries that
:func:`encode_frame` serialises.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Mapping, Optional, Union

# Outbound request types
GET_INSTRUMENTS = "get_instruments"
GET_ORDERBOOK = "get_orderbook"
GET_OPEN_ORDERS = "get_open_orders"
GET_POSITIONS = "get_positions"
PLACE_ORDER = "place_order"
MODIFY_ORDER = "modify_order"
CANCEL_ORDER = "cancel_order"

# Inbound frame types
INSTRUMENTS = "instruments"
ORDERBOOK_UPDATE = "orderbook_update"
OPEN_ORDERS_UPDATE = "open_orders_update"
POSITIONS_UPDATE = "positions_update"
ORDER_RESPONSE = "order_response"
MODIFY_RESPONSE = "modify_response"
CANCEL_RESPONSE = "cancel_response"

DECODE_ERROR_MESSAGE = "Failed to parse server response"


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one text frame.

    Exactly one of ``parsed``/``error`` is meaningful: ``error`` is
    ``None`` on success.
    """

    parsed: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def decode_frame(data: Union[str, bytes]) -> DecodeResult:
    """Parse raw frame text into a :class:`DecodeResult`."""
    try:
        return DecodeResult(parsed=json.loads(data))
    except (TypeError, ValueError) as exc:
        return DecodeResult(error=f"{DECODE_ERROR_MESSAGE}: {exc}")


def encode_frame(frame: Mapping[str, Any]) -> str:
    """Serialise an outbound frame as compact single-line JSON."""
    return json.dumps(frame, separators=(",", ":"))


@dataclass(frozen=True)
class Frame:
    """A decoded inbound frame ready for dispatch.

    ``key`` identifies the state slice a data update belongs to: the
    instrument name for order book updates and ``(currency, kind)`` for
    positions updates.  Other frame types have no key.
    """

    type: str
    payload: Dict[str, Any] = field(repr=False)
    key: Optional[Hashable] = None

    @property
    def error(self) -> Any:
        """The ``error`` field, or ``None`` if the frame carries none.

        Any value other than ``null`` or an empty string counts as an error,
        including empty objects and lists.
        """
        error = self.payload.get("error")
        if error is None or error == "":
            return None
        return error


def frame_key(frame_type: str, payload: Mapping[str, Any]) -> Optional[Hashable]:
    """Return the filter key carried by a data update frame."""
    if frame_type == ORDERBOOK_UPDATE:
        instrument = payload.get("instrument")
        if not instrument and isinstance(payload.get("data"), Mapping):
            instrument = payload["data"].get("instrument_name")
        return instrument or None
    if frame_type == POSITIONS_UPDATE:
        currency, kind = payload.get("currency"), payload.get("kind")
        if currency is None or kind is None:
            return None
        return (currency, kind)
    return None


def instruments_request(currency: str, kind: str) -> Dict[str, Any]:
    return {"type": GET_INSTRUMENTS, "currency": currency, "kind": kind}


def orderbook_request(instrument: str) -> Dict[str, Any]:
    return {"type": GET_ORDERBOOK, "instrument": instrument}


def open_orders_request() -> Dict[str, Any]:
    return {"type": GET_OPEN_ORDERS}


def positions_request(currency: str, kind: str) -> Dict[str, Any]:
    return {"type": GET_POSITIONS, "currency": currency, "kind": kind}


def command_frame(request_type: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Wrap a command payload as ``{"type": ..., "data": ...}``."""
    return {"type": request_type, "data": dict(data)}
