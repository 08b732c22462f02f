"""
Domain models for venue entities using Pydantic.  These models validate
and coerce the JSON payloads delivered by the gateway (instruments,
positions, open orders) and the command payloads the client sends
(place, modify, cancel).  Models describing venue state are frozen:
a new snapshot replaces them, nothing edits them in place.

Order book levels are plain named tuples rather than models because a
book snapshot holds many of them and they are compared positionally.
"""

from __future__ import annotations

from typing import Any, Literal, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OrderBookLevel(NamedTuple):
    """One price level: ``(price, size)``."""

    price: float
    size: float

    @property
    def is_padding(self) -> bool:
        """True for the synthetic ``(0, 0)`` row used to fill a view."""
        return self.price == 0 and self.size == 0

    @classmethod
    def parse(cls, entry: Any) -> "OrderBookLevel":
        """Coerce a ``[price, size]`` pair into a level.

        Raises
        ------
        ValueError
            If ``entry`` is not a two element sequence of numbers or
            numeric strings.
        """
        if isinstance(entry, (str, bytes)) or not isinstance(entry, Sequence) or len(entry) < 2:
            raise ValueError(f"Order book level must be a [price, size] pair, got {entry!r}")
        try:
            return cls(float(entry[0]), float(entry[1]))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Order book level has non-numeric values: {entry!r}") from exc


PADDING_LEVEL = OrderBookLevel(0.0, 0.0)


def parse_levels(entries: Any) -> Tuple[OrderBookLevel, ...]:
    """Parse one side of a book, preserving venue order (best first)."""
    if entries is None:
        return ()
    if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence):
        raise ValueError(f"Order book side must be a list of levels, got {entries!r}")
    return tuple(OrderBookLevel.parse(entry) for entry in entries)


class Instrument(BaseModel):
    """A tradable instrument as listed by ``get_instruments``."""

    model_config = ConfigDict(frozen=True)

    instrument_name: str = Field(..., description="Venue identifier, e.g. BTC-PERPETUAL")
    kind: Literal["future", "option", "spot"]
    expiration_timestamp: Optional[int] = Field(None, description="Expiry in epoch milliseconds")
    strike: Optional[float] = None
    option_type: Optional[Literal["call", "put"]] = None


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    instrument_name: str
    size: float = Field(..., description="Signed position size; negative is short")
    average_price: float
    mark_price: float
    floating_profit_loss: float


class Order(BaseModel):
    """A resting order as delivered in an open orders snapshot."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    instrument_name: str
    amount: float
    price: Optional[float] = None
    direction: Literal["buy", "sell"]
    order_type: str = Field(..., description="market, limit or another venue order type")

    @field_validator("order_id", mode="before")
    @classmethod
    def _order_id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("price", mode="before")
    @classmethod
    def _market_price_is_none(cls, value: Any) -> Any:
        # Market orders report a placeholder string such as "market_price".
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return None
        return value


class PlaceOrderRequest(BaseModel):
    """Payload of a ``place_order`` command."""

    instrument_name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Contracts, or base currency for spot")
    type: Literal["market", "limit"] = "market"
    direction: Literal["buy", "sell"]
    price: Optional[float] = Field(None, gt=0, description="Limit price")

    @model_validator(mode="after")
    def _price_iff_limit(self) -> "PlaceOrderRequest":
        if self.type == "limit" and self.price is None:
            raise ValueError("Price is required for limit orders")
        if self.type == "market" and self.price is not None:
            raise ValueError("Price is only accepted for limit orders")
        return self


class ModifyOrderRequest(BaseModel):
    """Payload of a ``modify_order`` command."""

    order_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    price: Optional[float] = Field(None, gt=0)


class CancelOrderRequest(BaseModel):
    """Payload of a ``cancel_order`` command."""

    order_id: str = Field(..., min_length=1)
