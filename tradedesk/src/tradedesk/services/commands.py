"""
Command coordinator for place, modify and cancel requests.

Commands are fire-and-forget on the wire: the gateway protocol carries
no request identifier, so a response is correlated purely by its type.
``order_response`` settles the most recently submitted place command
that is still in flight, ``modify_response`` the latest modify and
``cancel_response`` the latest cancel.  Two commands of the same kind in
flight at once cannot be told apart; the coordinator logs a warning when
that happens.  Settlement is then last-in first-out: the next response
settles the later command and the one after it the earlier command,
whichever way the venue actually ordered its replies.

Each submission yields a :class:`CommandHandle`.  The handle moves from
``in_flight`` to ``succeeded`` or ``failed`` exactly once; later
responses of the same type find nothing to settle and are ignored.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel

from .. import telemetry
from ..frames import (
    CANCEL_ORDER,
    CANCEL_RESPONSE,
    MODIFY_ORDER,
    MODIFY_RESPONSE,
    ORDER_RESPONSE,
    PLACE_ORDER,
    Frame,
    command_frame,
)
from ..models import CancelOrderRequest, ModifyOrderRequest, PlaceOrderRequest
from .listeners import ListenerSet

logger = logging.getLogger(__name__)

NOT_CONNECTED_ERROR = "WebSocket is not connected"
NO_RESPONSE_ERROR = "No response from venue"


class CommandKind(str, enum.Enum):
    PLACE = "place"
    MODIFY = "modify"
    CANCEL = "cancel"

    @property
    def request_type(self) -> str:
        return _REQUEST_TYPES[self]

    @property
    def response_type(self) -> str:
        return _RESPONSE_TYPES[self]


_REQUEST_TYPES = {
    CommandKind.PLACE: PLACE_ORDER,
    CommandKind.MODIFY: MODIFY_ORDER,
    CommandKind.CANCEL: CANCEL_ORDER,
}
_RESPONSE_TYPES = {
    CommandKind.PLACE: ORDER_RESPONSE,
    CommandKind.MODIFY: MODIFY_RESPONSE,
    CommandKind.CANCEL: CANCEL_RESPONSE,
}
_REQUEST_MODELS: Dict[CommandKind, Type[BaseModel]] = {
    CommandKind.PLACE: PlaceOrderRequest,
    CommandKind.MODIFY: ModifyOrderRequest,
    CommandKind.CANCEL: CancelOrderRequest,
}
_VERBS = {CommandKind.PLACE: "place", CommandKind.MODIFY: "modify", CommandKind.CANCEL: "cancel"}
_PAST = {CommandKind.PLACE: "placed", CommandKind.MODIFY: "modified", CommandKind.CANCEL: "cancelled"}


class CommandState(str, enum.Enum):
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandOutcome:
    """Read-only view of a command's lifecycle."""

    kind: CommandKind
    state: CommandState
    error: Optional[str] = None
    order_id: Optional[str] = None
    result: Any = None

    @property
    def message(self) -> str:
        """One line summary suitable for display."""
        if self.state is CommandState.IN_FLIGHT:
            return "Processing..."
        if self.state is CommandState.FAILED:
            return f"Failed to {_VERBS[self.kind]} order: {self.error}"
        text = f"Order {_PAST[self.kind]} successfully"
        if self.kind is CommandKind.PLACE:
            text += f". Order ID: {self.order_id or 'N/A'}"
        return text


@dataclass(eq=False)
class PendingCommand:
    kind: CommandKind
    payload: Dict[str, Any]
    state: CommandState = CommandState.IN_FLIGHT
    error: Optional[str] = None
    order_id: Optional[str] = None
    result: Any = None
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
    future: Optional["asyncio.Future[CommandOutcome]"] = field(default=None, repr=False)

    def outcome(self) -> CommandOutcome:
        return CommandOutcome(
            kind=self.kind,
            state=self.state,
            error=self.error,
            order_id=self.order_id,
            result=self.result,
        )


class CommandHandle:
    """Caller's view of one submitted command."""

    def __init__(self, pending: PendingCommand, future: "asyncio.Future[CommandOutcome]") -> None:
        self._pending = pending
        self._future = future

    def __repr__(self) -> str:
        return f"<CommandHandle {self._pending.kind.value} {self._pending.state.value}>"

    @property
    def kind(self) -> CommandKind:
        return self._pending.kind

    @property
    def state(self) -> CommandState:
        return self._pending.state

    @property
    def outcome(self) -> CommandOutcome:
        return self._pending.outcome()

    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> CommandOutcome:
        """Wait for the command to settle."""
        return await asyncio.shield(self._future)

    def add_done_callback(self, callback: Callable[[CommandOutcome], Any]) -> None:
        self._future.add_done_callback(lambda fut: callback(fut.result()))


Sender = Callable[[Mapping[str, Any]], Awaitable[bool]]


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    return json.dumps(error)


class CommandCoordinator:
    """Submit commands and settle them from their response frames."""

    def __init__(self, send: Sender, *, timeout: Optional[float] = None) -> None:
        """
        Args:
            send: Coroutine writing a frame to the connection; returns False
                when the frame was not sent.
            timeout: Seconds before an unanswered command fails.  ``None``
                leaves commands in flight until a response arrives.
        """
        self._send = send
        self._timeout = timeout if timeout else None
        self._in_flight: Dict[CommandKind, List[PendingCommand]] = {kind: [] for kind in CommandKind}
        self._listeners = ListenerSet("commands")

    def add_listener(self, listener: Callable[[CommandOutcome], Any]) -> Callable[[], None]:
        """Call ``listener`` with every settled outcome."""
        return self._listeners.add(listener)

    def in_flight(self, kind: Optional[CommandKind] = None) -> int:
        if kind is not None:
            return len(self._in_flight[kind])
        return sum(len(pending) for pending in self._in_flight.values())

    async def submit(
        self,
        kind: Union[CommandKind, str],
        payload: Union[Mapping[str, Any], BaseModel],
    ) -> CommandHandle:
        """Validate and send a command.

        Raises:
            pydantic.ValidationError: If ``payload`` is not a valid request
                for ``kind``; nothing is sent.
        """
        kind = CommandKind(kind)
        model_cls = _REQUEST_MODELS[kind]
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        data = model_cls.model_validate(payload).model_dump(exclude_none=True)

        loop = asyncio.get_running_loop()
        pending = PendingCommand(kind=kind, payload=data, future=loop.create_future())
        handle = CommandHandle(pending, pending.future)

        queue = self._in_flight[kind]
        if queue:
            logger.warning(
                "%s submitted while %d earlier %s command(s) in flight; "
                "the next %s will settle the latest one",
                kind.request_type,
                len(queue),
                kind.value,
                kind.response_type,
            )
        queue.append(pending)
        if self._timeout is not None:
            pending.timer = loop.call_later(self._timeout, self._expire, pending)

        logger.info("Submitting %s: %s", kind.request_type, data)
        sent = await self._send(command_frame(kind.request_type, data))
        if not sent:
            self._settle(pending, CommandState.FAILED, error=NOT_CONNECTED_ERROR)
        return handle

    def handle_response(self, frame: Frame) -> None:
        """Settle the latest in-flight command matching ``frame``'s type."""
        kind = _KIND_BY_RESPONSE.get(frame.type)
        if kind is None:
            return
        queue = self._in_flight[kind]
        if not queue:
            logger.warning("Ignoring %s with no command in flight", frame.type)
            return
        pending = queue[-1]
        error = frame.error
        if error is not None:
            self._settle(pending, CommandState.FAILED, error=_error_text(error))
            return
        result = frame.payload.get("result")
        order_id = None
        if kind is CommandKind.PLACE and isinstance(result, Mapping):
            order = result.get("order")
            if isinstance(order, Mapping) and order.get("order_id") is not None:
                order_id = str(order["order_id"])
        self._settle(pending, CommandState.SUCCEEDED, result=result, order_id=order_id)

    def _expire(self, pending: PendingCommand) -> None:
        if pending.state is CommandState.IN_FLIGHT:
            logger.warning("%s timed out after %.1fs", pending.kind.request_type, self._timeout)
            self._settle(pending, CommandState.FAILED, error=NO_RESPONSE_ERROR)

    def _settle(
        self,
        pending: PendingCommand,
        state: CommandState,
        *,
        error: Optional[str] = None,
        result: Any = None,
        order_id: Optional[str] = None,
    ) -> None:
        if pending.state is not CommandState.IN_FLIGHT:
            return
        pending.state = state
        pending.error = error
        pending.result = result
        pending.order_id = order_id
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None
        queue = self._in_flight[pending.kind]
        if pending in queue:
            queue.remove(pending)
        outcome = pending.outcome()
        telemetry.commands_settled.labels(kind=pending.kind.value, outcome=state.value).inc()
        if state is CommandState.FAILED:
            logger.warning("%s failed: %s", pending.kind.request_type, error)
        else:
            logger.info("%s succeeded%s", pending.kind.request_type, f" (order {order_id})" if order_id else "")
        if pending.future is not None and not pending.future.done():
            pending.future.set_result(outcome)
        self._listeners.notify(outcome)

    def attach(self, router: Any) -> Callable[[], None]:
        disposers = [router.subscribe(kind.response_type, self.handle_response) for kind in CommandKind]

        def detach() -> None:
            for dispose in disposers:
                dispose()

        return detach


_KIND_BY_RESPONSE = {kind.response_type: kind for kind in CommandKind}
