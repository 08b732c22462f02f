"""
Ordered, disposable callback registry.

A :class:`ListenerSet` keeps callbacks in registration order and hands
back a disposer from :meth:`ListenerSet.add`.  Notification isolates
failures: a callback that raises is logged and the remaining callbacks
still run.  The router, the stores and the connection session all use
this for their subscribers so listener lifetime stays with the caller.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("callback", "active")

    def __init__(self, callback: Callable[..., Any]) -> None:
        self.callback = callback
        self.active = True


class ListenerSet:
    """Callbacks invoked in registration order with failure isolation."""

    def __init__(self, name: str = "listeners") -> None:
        self.name = name
        self._entries: List[_Entry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it.

        The same callable may be added more than once; each registration
        is independent.  Calling the disposer twice is harmless.
        """
        entry = _Entry(callback)
        self._entries.append(entry)

        def dispose() -> None:
            if entry.active:
                entry.active = False
                self._entries.remove(entry)

        return dispose

    def notify(self, *args: Any, on_error: Optional[Callable[[BaseException], None]] = None) -> int:
        """Call every active listener with ``args``; return the failure count."""
        failures = 0
        for entry in list(self._entries):
            if not entry.active:
                continue
            try:
                entry.callback(*args)
            except Exception as exc:
                failures += 1
                logger.exception("%s: listener %r failed", self.name, entry.callback)
                if on_error is not None:
                    on_error(exc)
        return failures

    async def notify_async(self, *args: Any) -> int:
        """Like :meth:`notify` but awaits listeners that return awaitables."""
        failures = 0
        for entry in list(self._entries):
            if not entry.active:
                continue
            try:
                result = entry.callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failures += 1
                logger.exception("%s: listener %r failed", self.name, entry.callback)
        return failures
