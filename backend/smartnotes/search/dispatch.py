# @TASK P2-T2.4 - Correlated request/response dispatch to the embedding worker
# @TEST tests/test_dispatch.py

"""Asynchronous request/response channel to an isolated worker.

Each request gets a correlation id and an entry in the pending table with
its own timer.  The entry is removed when the reply arrives, when the
timer fires, or when the caller cancels; whichever happens first wins and
later replies for that id are ignored.

The channel only talks to the worker through a :class:`WorkerTransport`,
so tests can plug in an in-memory transport.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from smartnotes.search.errors import (
    ChannelClosedError,
    DispatchCancelledError,
    DispatchError,
    DispatchTimeoutError,
    WorkerReplyError,
    WorkerUnavailableError,
)
from smartnotes.search.messages import WorkerAction, WorkerRequest, WorkerResponse

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class WorkerTransport(Protocol):
    """Message pipe to the worker. ``on_message`` must be called on the event loop thread."""

    def start(self, on_message: Callable[[dict[str, Any]], None]) -> None: ...

    def send(self, message: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


@dataclass(slots=True)
class PendingRequest:
    action: str
    future: asyncio.Future
    timer: asyncio.TimerHandle


class DispatchChannel:
    """Request table keyed by correlation id.

    Args:
        transport: Pipe to the worker; started by the constructor.
        timeout: Seconds to wait for each reply.
        id_factory: Correlation id generator (injectable for tests).

    Raises:
        WorkerUnavailableError: If the transport cannot be started.
    """

    def __init__(
        self,
        transport: WorkerTransport,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._pending: dict[str, PendingRequest] = {}
        self._closed = False

        try:
            transport.start(self.handle_message)
        except WorkerUnavailableError:
            raise
        except Exception as exc:
            raise WorkerUnavailableError(f"Embedding worker unavailable: {exc}") from exc

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_pending(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    async def request(
        self,
        action: WorkerAction | str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send one request and wait for its reply.

        Raises:
            DispatchTimeoutError: No reply within the timeout.
            WorkerReplyError: The worker replied with an error.
            ChannelClosedError: The channel is (or gets) closed.
            DispatchCancelledError: The request was cancelled while pending.
            DispatchError: The message could not be sent.
        """
        if self._closed:
            raise ChannelClosedError("Dispatch channel is closed")

        loop = asyncio.get_running_loop()
        correlation_id = self._id_factory()
        if correlation_id in self._pending:
            raise DispatchError(f"Duplicate correlation id: {correlation_id}")

        request = WorkerRequest(action=action, payload=payload or {}, correlation_id=correlation_id)
        wait = self._timeout if timeout is None else timeout
        future = loop.create_future()
        timer = loop.call_later(wait, self._expire, correlation_id, wait)
        self._pending[correlation_id] = PendingRequest(action=str(request.action), future=future, timer=timer)

        try:
            self._transport.send(request.model_dump(mode="json"))
        except Exception as exc:
            self._discard(correlation_id)
            raise DispatchError(f"Failed to send {request.action} request: {exc}") from exc

        try:
            return await future
        finally:
            # No-op when the entry was already settled; cleans up on cancellation.
            self._discard(correlation_id)

    def handle_message(self, message: dict[str, Any]) -> None:
        """Settle the pending request that *message* replies to."""
        try:
            response = WorkerResponse.model_validate(message)
        except ValidationError:
            logger.warning("Ignoring malformed worker message: %r", message)
            return

        pending = self._pending.pop(response.correlation_id, None)
        if pending is None:
            logger.debug("Ignoring reply for unknown correlation id %s", response.correlation_id)
            return

        pending.timer.cancel()
        if pending.future.done():
            return
        if response.error is not None:
            pending.future.set_exception(WorkerReplyError(response.error))
        else:
            pending.future.set_result(response.result)

    def cancel(self, correlation_id: str) -> bool:
        """Drop a pending request. Returns ``False`` if it was not pending.

        The waiting caller gets :class:`DispatchCancelledError`.
        """
        pending = self._pending.pop(correlation_id, None)
        if pending is None:
            return False
        pending.timer.cancel()
        if not pending.future.done():
            pending.future.set_exception(DispatchCancelledError(f"Worker {pending.action} request cancelled"))
        return True

    async def aclose(self) -> None:
        """Reject all pending requests and shut the transport down."""
        if self._closed:
            return
        self._closed = True

        pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(ChannelClosedError("Dispatch channel closed"))

        await asyncio.to_thread(self._transport.close)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _expire(self, correlation_id: str, timeout: float) -> None:
        pending = self._pending.pop(correlation_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning("Worker request %s (%s) timed out after %.1fs", pending.action, correlation_id, timeout)
        pending.future.set_exception(
            DispatchTimeoutError(f"Worker {pending.action} request timed out after {timeout}s")
        )

    def _discard(self, correlation_id: str) -> None:
        pending = self._pending.pop(correlation_id, None)
        if pending is not None:
            pending.timer.cancel()
