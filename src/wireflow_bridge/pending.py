"""Pending request table.

Tracks requests that have been written to the editor and are waiting for a
reply. Every registered entry is completed exactly once, by whichever comes
first:

- a reply (``resolve``)
- its timeout firing
- a ``sweep`` on disconnect or shutdown

Each path removes the entry from the table before invoking its callback, so
the second path to arrive finds nothing and becomes a no-op. All methods
must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import DuplicateRequestError
from .protocol.events import ErrorCode, Response

logger = logging.getLogger(__name__)

ResolveCallback = Callable[[Response], None]


@dataclass
class PendingRequest:
    """A request waiting for its reply."""

    correlation_id: str
    on_resolve: ResolveCallback
    timeout: float
    timer: asyncio.TimerHandle | None = None
    created_at: float = field(default_factory=lambda: asyncio.get_running_loop().time())


class PendingRequestTable:
    """In-flight requests keyed by correlation id."""

    def __init__(self) -> None:
        self._entries: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._entries

    def pending_ids(self) -> list[str]:
        """Correlation ids currently awaiting a reply."""
        return list(self._entries)

    def register(
        self,
        correlation_id: str,
        on_resolve: ResolveCallback,
        timeout: float,
    ) -> PendingRequest:
        """Track a new request and arm its timeout.

        Args:
            correlation_id: Id stamped on the outgoing request
            on_resolve: Called exactly once with the final Response
            timeout: Seconds to wait for a reply

        Raises:
            DuplicateRequestError: If the id is already pending
        """
        if correlation_id in self._entries:
            raise DuplicateRequestError(f"Correlation id already pending: {correlation_id}")

        entry = PendingRequest(correlation_id=correlation_id, on_resolve=on_resolve, timeout=timeout)
        entry.timer = asyncio.get_running_loop().call_later(timeout, self._expire, correlation_id)
        self._entries[correlation_id] = entry
        logger.debug(f"Registered pending request {correlation_id} (timeout={timeout}s)")
        return entry

    def resolve(self, correlation_id: str, response: Response) -> bool:
        """Complete a pending request with ``response``.

        Returns:
            True if an entry was resolved, False if the id was unknown
            (already timed out, already swept, or a duplicate reply).
        """
        entry = self._entries.pop(correlation_id, None)
        if entry is None:
            logger.warning(f"Received response for unknown request: {correlation_id}")
            return False

        self._complete(entry, response)
        return True

    def sweep(self, code: str | ErrorCode, message: str) -> int:
        """Fail every pending request with the same error and empty the table.

        Returns:
            Number of requests resolved.
        """
        entries = list(self._entries.values())
        self._entries.clear()

        for entry in entries:
            self._complete(entry, Response.failure(entry.correlation_id, code, message))

        if entries:
            logger.info(f"Swept {len(entries)} pending request(s): {message}")
        return len(entries)

    def _expire(self, correlation_id: str) -> None:
        entry = self._entries.pop(correlation_id, None)
        if entry is None:
            return

        logger.warning(f"Request {correlation_id} timed out after {entry.timeout}s")
        self._complete(entry, Response.timeout(correlation_id, entry.timeout))

    def _complete(self, entry: PendingRequest, response: Response) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

        try:
            entry.on_resolve(response)
        except Exception:
            logger.exception(f"Resolve callback failed for {entry.correlation_id}")
