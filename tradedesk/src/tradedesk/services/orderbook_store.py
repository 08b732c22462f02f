"""
Order book store keyed by instrument.

The gateway delivers full book snapshots, so each update replaces the
stored snapshot for its instrument wholesale; no history or deltas are
kept.  :meth:`OrderBookStore.view` turns a snapshot into a fixed-depth
view for display: exactly ``depth`` rows per side, padded with the
``(0, 0)`` sentinel so renderers never branch on list length.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ..frames import ORDERBOOK_UPDATE, Frame
from ..models import PADDING_LEVEL, OrderBookLevel, parse_levels
from .listeners import ListenerSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderBookSnapshot:
    instrument: str
    bids: Tuple[OrderBookLevel, ...]
    asks: Tuple[OrderBookLevel, ...]
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class OrderBookView:
    """Display rows for one instrument.

    ``bids`` run best to worst with padding at the end; ``asks`` run worst
    to best with padding at the start, so both sides meet at the spread.
    """

    instrument: str
    bids: Tuple[OrderBookLevel, ...]
    asks: Tuple[OrderBookLevel, ...]
    timestamp: Optional[float] = None

    @property
    def best_bid(self) -> Optional[OrderBookLevel]:
        return None if not self.bids or self.bids[0].is_padding else self.bids[0]

    @property
    def best_ask(self) -> Optional[OrderBookLevel]:
        return None if not self.asks or self.asks[-1].is_padding else self.asks[-1]


def _pad(levels: Tuple[OrderBookLevel, ...], depth: int) -> Tuple[OrderBookLevel, ...]:
    rows = levels[:depth]
    return rows + (PADDING_LEVEL,) * (depth - len(rows))


class OrderBookStore:
    """Latest full snapshot per instrument."""

    def __init__(self) -> None:
        self._books: Dict[str, OrderBookSnapshot] = {}
        self._listeners = ListenerSet("orderbook_store")

    def add_listener(self, listener: Callable[[OrderBookSnapshot], Any]) -> Callable[[], None]:
        """Call ``listener`` with each new snapshot."""
        return self._listeners.add(listener)

    def apply_snapshot(
        self,
        instrument: str,
        bids: Any,
        asks: Any,
        timestamp: Optional[float] = None,
    ) -> OrderBookSnapshot:
        """Replace the book for ``instrument``.

        Raises:
            ValueError: If a side is not a list of ``[price, size]`` pairs.
        """
        snapshot = OrderBookSnapshot(
            instrument=instrument,
            bids=parse_levels(bids),
            asks=parse_levels(asks),
            timestamp=timestamp,
        )
        self._books[instrument] = snapshot
        self._listeners.notify(snapshot)
        return snapshot

    def snapshot(self, instrument: str) -> Optional[OrderBookSnapshot]:
        return self._books.get(instrument)

    def instruments(self) -> Tuple[str, ...]:
        return tuple(self._books)

    def view(self, instrument: str, depth: int) -> OrderBookView:
        """Return exactly ``depth`` bid rows and ``depth`` ask rows."""
        if depth < 0:
            raise ValueError("depth must be non-negative")
        snapshot = self._books.get(instrument)
        if snapshot is None:
            padding = (PADDING_LEVEL,) * depth
            return OrderBookView(instrument=instrument, bids=padding, asks=padding)
        return OrderBookView(
            instrument=instrument,
            bids=_pad(snapshot.bids, depth),
            asks=tuple(reversed(_pad(snapshot.asks, depth))),
            timestamp=snapshot.timestamp,
        )

    def handle_frame(self, frame: Frame) -> None:
        """Apply an ``orderbook_update`` frame."""
        data = frame.payload.get("data")
        if not isinstance(data, dict):
            logger.warning("orderbook_update without data for %s; ignoring", frame.key)
            return
        instrument = frame.key or data.get("instrument_name")
        if not instrument:
            logger.warning("orderbook_update without instrument; ignoring")
            return
        timestamp = frame.payload.get("timestamp")
        try:
            self.apply_snapshot(
                instrument,
                data.get("bids"),
                data.get("asks"),
                timestamp=float(timestamp) if timestamp is not None else None,
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed order book for %s: %s", instrument, exc)
            return
        logger.debug("Updated order book for %s", instrument)

    def attach(self, router: Any) -> Callable[[], None]:
        return router.subscribe(ORDERBOOK_UPDATE, self.handle_frame)
