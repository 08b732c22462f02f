"""
Message router for decoupling the gateway connection from the
components that consume its frames.

The router decodes each inbound text frame, classifies it by its
``type`` discriminator and fans it out to every subscriber registered
for that type.  Several independent consumers (order book views, the
positions table, the command coordinator, ...) can therefore share one
connection.  Subscribers may also narrow a subscription to a single
key, such as one instrument's order book.

Malformed frames are logged and dropped; a subscriber that raises is
logged and skipped.  Neither ever propagates to the caller of
:meth:`MessageRouter.route`.

Usage::

    router = MessageRouter()
    unsubscribe = router.subscribe("orderbook_update", on_book, key="BTC-PERPETUAL")
    session.on_frame(router.route)
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Callable, Dict, Hashable, Optional, Union

from .. import telemetry
from ..frames import Frame, decode_frame, frame_key
from .listeners import ListenerSet

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Frame], Any]


class MessageRouter:
    """Explicit registry mapping frame types to ordered subscribers."""

    def __init__(self) -> None:
        self._routes: Dict[str, ListenerSet] = defaultdict(self._new_route)

    @staticmethod
    def _new_route() -> ListenerSet:
        return ListenerSet("router")

    def subscribe(
        self,
        frame_type: str,
        handler: FrameHandler,
        *,
        key: Optional[Hashable] = None,
    ) -> Callable[[], None]:
        """Register ``handler`` for frames of ``frame_type``.

        Args:
            frame_type: The ``type`` discriminator to listen for.
            handler: Called with each matching :class:`Frame`.
            key: When given, only frames whose key equals it are delivered.

        Returns:
            A function that removes the subscription.
        """
        if key is None:
            return self._routes[frame_type].add(handler)

        def filtered(frame: Frame) -> None:
            if frame.key == key:
                handler(frame)

        return self._routes[frame_type].add(filtered)

    def subscriber_count(self, frame_type: str) -> int:
        route = self._routes.get(frame_type)
        return len(route) if route is not None else 0

    def route(self, raw: Union[str, bytes]) -> Optional[Frame]:
        """Decode ``raw`` and dispatch it; return the frame or ``None`` if dropped."""
        result = decode_frame(raw)
        if not result.ok:
            logger.warning("Dropping undecodable frame: %s", result.error)
            telemetry.frames_dropped.labels(reason="decode_error").inc()
            return None
        message = result.parsed
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            logger.warning("Dropping frame without a type discriminator: %.200r", message)
            telemetry.frames_dropped.labels(reason="missing_type").inc()
            return None
        frame_type = message["type"]
        frame = Frame(type=frame_type, payload=message, key=frame_key(frame_type, message))
        self.dispatch(frame)
        return frame

    def dispatch(self, frame: Frame) -> int:
        """Deliver an already decoded frame; return the number of failures."""
        telemetry.frames_received.labels(type=frame.type).inc()
        route = self._routes.get(frame.type)
        if not route:
            logger.debug("No subscribers for frame type %s", frame.type)
            telemetry.frames_dropped.labels(reason="unrouted").inc()
            return 0
        logger.debug("Dispatching %s frame (key=%s) to %d subscriber(s)", frame.type, frame.key, len(route))
        return route.notify(
            frame,
            on_error=lambda exc: telemetry.handler_errors.labels(type=frame.type).inc(),
        )

    async def stream(self, frame_type: str, key: Optional[Hashable] = None) -> AsyncIterator[Frame]:
        """Yield matching frames as they are dispatched.

        The subscription is removed when the iterator is closed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self.subscribe(frame_type, queue.put_nowait, key=key)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
