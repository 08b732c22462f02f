"""
Open orders store.

Holds the most recent full open orders snapshot sent by the venue.
Cancels and modifies are not applied locally: the store changes only
when the venue sends a fresh snapshot, so between a confirmed cancel and
the next snapshot the cancelled order is still listed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from ..frames import OPEN_ORDERS_UPDATE, Frame
from ..models import Order
from .listeners import ListenerSet

logger = logging.getLogger(__name__)


class OpenOrdersStore:
    def __init__(self) -> None:
        self._orders: Tuple[Order, ...] = ()
        self._by_id: Dict[str, Order] = {}
        self._listeners = ListenerSet("open_orders_store")

    def __len__(self) -> int:
        return len(self._orders)

    @property
    def orders(self) -> Tuple[Order, ...]:
        return self._orders

    def get(self, order_id: str) -> Optional[Order]:
        return self._by_id.get(order_id)

    def add_listener(self, listener: Callable[[Tuple[Order, ...]], Any]) -> Callable[[], None]:
        return self._listeners.add(listener)

    def apply_snapshot(self, orders: Iterable[Any]) -> Tuple[Order, ...]:
        """Replace the whole set; the previous set is left untouched on error."""
        parsed = tuple(item if isinstance(item, Order) else Order.model_validate(item) for item in orders)
        self._orders = parsed
        self._by_id = {order.order_id: order for order in parsed}
        self._listeners.notify(parsed)
        return parsed

    def handle_frame(self, frame: Frame) -> None:
        """Apply an ``open_orders_update`` frame (orders under ``data.result``)."""
        data = frame.payload.get("data")
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, list):
            logger.warning("open_orders_update without data.result; ignoring")
            return
        try:
            self.apply_snapshot(result)
        except ValidationError as exc:
            logger.warning("Rejected open orders snapshot: %s", exc)
            return
        logger.debug("Open orders snapshot: %d order(s)", len(self._orders))

    def attach(self, router: Any) -> Callable[[], None]:
        return router.subscribe(OPEN_ORDERS_UPDATE, self.handle_frame)
