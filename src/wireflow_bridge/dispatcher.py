"""Inbound frame routing.

Every frame the editor sends lands here. Replies are handed to the pending
request table; unsolicited events fan out to subscribers. Nothing that
happens in here may take the connection down: bad frames, unknown ids and
failing subscribers are all logged and dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .errors import MalformedFrameError
from .pending import PendingRequestTable
from .protocol.events import Event, Response, parse_frame

logger = logging.getLogger(__name__)

# Subscribers may be plain functions or coroutine functions
EventCallback = Callable[[Event], Awaitable[None] | None]


class Dispatcher:
    """Classifies inbound frames and routes them."""

    def __init__(self, pending: PendingRequestTable) -> None:
        self._pending = pending
        self._subscribers: list[EventCallback] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def on_event(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to editor events.

        Returns:
            Unsubscribe function (safe to call more than once)
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def dispatch(self, raw: str | bytes) -> None:
        """Route one inbound frame."""
        try:
            message = parse_frame(raw)
        except MalformedFrameError as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        if isinstance(message, Response):
            logger.debug(f"Received response {message.type} for {message.correlation_id}")
            self._pending.resolve(message.correlation_id, message)
        else:
            self._publish(message)

    def _publish(self, event: Event) -> None:
        logger.debug(f"Received event: {event.type}")

        # Copy so callbacks can unsubscribe while being notified
        for callback in list(self._subscribers):
            try:
                result = callback(event)
            except Exception:
                logger.exception(f"Error in event subscriber for {event.type}")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in async event subscriber: {exc!r}", exc_info=exc)

    async def drain(self) -> None:
        """Wait for async subscribers that are still running."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
