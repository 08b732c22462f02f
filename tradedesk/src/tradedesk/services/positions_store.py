"""
Positions store keyed by ``(currency, kind)``.

Each ``positions_update`` replaces one bucket and leaves every other
bucket exactly as it was.  Queries are pure projections; currency
``"any"`` concatenates the buckets of every currency for one kind in the
order the currencies were first seen.

The venue answers a ``get_positions`` request for ``"any"`` with an
update keyed ``"any"``; that is stored as an ordinary bucket and takes
part in the aggregate like any other currency.  Positions are not
de-duplicated, so a position present both in the ``"any"`` bucket and in
its own currency bucket is listed twice by ``query("any", kind)``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Tuple

from pydantic import ValidationError

from ..frames import POSITIONS_UPDATE, Frame
from ..models import Position
from .listeners import ListenerSet

logger = logging.getLogger(__name__)

ANY_CURRENCY = "any"


class PositionsStore:
    def __init__(self) -> None:
        # currency -> kind -> positions; dicts keep currency insertion order
        self._buckets: Dict[str, Dict[str, Tuple[Position, ...]]] = {}
        self._listeners = ListenerSet("positions_store")

    def add_listener(self, listener: Callable[[str, str], Any]) -> Callable[[], None]:
        """Call ``listener(currency, kind)`` after a bucket is replaced."""
        return self._listeners.add(listener)

    def apply_update(self, currency: str, kind: str, positions: Iterable[Any]) -> Tuple[Position, ...]:
        """Set bucket ``(currency, kind)`` to ``positions``.

        Items may be :class:`Position` instances or raw mappings.

        Raises:
            pydantic.ValidationError: If a position fails validation.
        """
        bucket = tuple(
            item if isinstance(item, Position) else Position.model_validate(item) for item in positions
        )
        self._buckets.setdefault(currency, {})[kind] = bucket
        self._listeners.notify(currency, kind)
        return bucket

    def query(self, currency: str, kind: str) -> Tuple[Position, ...]:
        if currency == ANY_CURRENCY:
            return tuple(
                position for by_kind in self._buckets.values() for position in by_kind.get(kind, ())
            )
        return self._buckets.get(currency, {}).get(kind, ())

    def currencies(self) -> Tuple[str, ...]:
        return tuple(self._buckets)

    def handle_frame(self, frame: Frame) -> None:
        """Apply a ``positions_update`` frame."""
        if frame.key is None:
            logger.warning("positions_update without currency/kind; ignoring")
            return
        currency, kind = frame.key
        data = frame.payload.get("data")
        if not isinstance(data, list):
            logger.warning("positions_update for %s/%s has no position list; ignoring", currency, kind)
            return
        try:
            self.apply_update(currency, kind, data)
        except ValidationError as exc:
            logger.warning("Rejected positions update for %s/%s: %s", currency, kind, exc)

    def attach(self, router: Any) -> Callable[[], None]:
        return router.subscribe(POSITIONS_UPDATE, self.handle_frame)
