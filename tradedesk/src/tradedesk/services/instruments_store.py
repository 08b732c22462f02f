"""Instrument catalogue from the latest ``instruments`` frame."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from ..frames import INSTRUMENTS, Frame
from ..models import Instrument
from .listeners import ListenerSet

logger = logging.getLogger(__name__)


class InstrumentsStore:
    def __init__(self) -> None:
        self._instruments: Tuple[Instrument, ...] = ()
        self._by_name: Dict[str, Instrument] = {}
        self._listeners = ListenerSet("instruments_store")
        self.last_error: Optional[str] = None

    @property
    def instruments(self) -> Tuple[Instrument, ...]:
        return self._instruments

    def get(self, instrument_name: str) -> Optional[Instrument]:
        return self._by_name.get(instrument_name)

    def add_listener(self, listener: Callable[[Tuple[Instrument, ...]], Any]) -> Callable[[], None]:
        return self._listeners.add(listener)

    def apply_snapshot(self, instruments: Iterable[Any]) -> Tuple[Instrument, ...]:
        parsed = tuple(
            item if isinstance(item, Instrument) else Instrument.model_validate(item) for item in instruments
        )
        self._instruments = parsed
        self._by_name = {instrument.instrument_name: instrument for instrument in parsed}
        self.last_error = None
        self._listeners.notify(parsed)
        return parsed

    def handle_frame(self, frame: Frame) -> None:
        error = frame.error
        if error is not None:
            self.last_error = str(error)
            logger.warning("Instrument request failed: %s", error)
            return
        result = frame.payload.get("result")
        if not isinstance(result, list):
            logger.warning("instruments frame without a result list; ignoring")
            return
        try:
            self.apply_snapshot(result)
        except ValidationError as exc:
            logger.warning("Rejected instrument list: %s", exc)
            return
        logger.info("Loaded %d instrument(s)", len(self._instruments))

    def attach(self, router: Any) -> Callable[[], None]:
        return router.subscribe(INSTRUMENTS, self.handle_frame)
