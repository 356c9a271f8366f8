"""stdio Protocol Adapter.

Thin adapter that lets an automation agent drive the editor from a parent
process: requests arrive as JSON lines on stdin, responses and editor
events leave as JSON lines on stdout.

Wire format (newline-delimited JSON, UTF-8 encoded):
- Input (stdin):   {"id": "c1", "type": "create_rectangle", "params": {...}}
- Output (stdout): {"type": "element_created", "correlationId": "req_...",
                    "success": true, "data": {...}, "requestId": "c1"}

The optional ``id`` on an input line is not sent to the editor; it is
echoed back as ``requestId`` on the matching output line. Requests are
processed concurrently, so output order follows completion order.

Cross-platform considerations:
- All JSON is UTF-8 encoded (no BOM)
- Newlines are always LF (\\n), never CRLF
- Input accepts both LF and CRLF (normalized to LF)
- Binary mode used internally for consistent behavior
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import sys
import threading
from typing import Any, BinaryIO

from ..gateway import CommandGateway
from ..protocol.events import ErrorCode, Event, Response

logger = logging.getLogger(__name__)

# UTF-8 encoding for all JSON operations
ENCODING = "utf-8"

# Newline character (always LF for cross-platform consistency)
NEWLINE = "\n"

REQUEST_ID_KEY = "requestId"


class StdioProtocolAdapter:
    """Bidirectional stdio adapter in front of a CommandGateway.

    Usage:
        adapter = StdioProtocolAdapter(gateway)
        await adapter.run()  # Returns once stdin closes and requests finish

    Example session:
        → {"id":"c1","type":"get_state"}
        ← {"type":"state","correlationId":"req_...","success":true,"data":{...},"requestId":"c1"}
        ← {"type":"state_changed","timestamp":"...","data":{"changeType":"selection"},"kind":"event"}
    """

    def __init__(
        self,
        gateway: CommandGateway,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
    ):
        """Initialize stdio adapter.

        Args:
            gateway: Gateway used to reach the editor
            stdin: Binary input stream (default: sys.stdin.buffer)
            stdout: Binary output stream (default: sys.stdout.buffer)
        """
        self._gateway = gateway
        self._reader = io.TextIOWrapper(
            stdin if stdin is not None else sys.stdin.buffer,
            encoding=ENCODING,
            errors="replace",  # Replace invalid UTF-8 with replacement char
            newline="",  # Universal newline mode - accepts LF, CRLF, CR
        )
        self._writer = io.TextIOWrapper(
            stdout if stdout is not None else sys.stdout.buffer,
            encoding=ENCODING,
            errors="replace",
            newline=NEWLINE,  # Always output LF
            write_through=True,  # Don't buffer
        )
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._inflight: set[asyncio.Task[None]] = set()
        self._running = False

    async def run(self) -> None:
        """Process requests until stdin closes, then wait for in-flight ones."""
        self._running = True
        unsubscribe = self._gateway.on_event(self._write_message)
        self._start_reader(asyncio.get_running_loop())

        connection = self._gateway.connection
        self._write_message(
            Event(
                type="bridge_ready",
                data={
                    "host": connection.config.host,
                    "port": connection.port,
                    "connected": connection.is_connected,
                },
            )
        )

        try:
            while self._running:
                line = await self._read_line()
                if line is None:
                    break  # EOF

                line = line.strip()
                if not line:
                    continue

                # Skip UTF-8 BOM if present at start
                if line.startswith("\ufeff"):
                    line = line[1:]

                task = asyncio.create_task(self._process_line(line))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("stdio adapter cancelled")
            raise
        finally:
            self._running = False
            unsubscribe()

    async def stop(self) -> None:
        """Stop reading new requests; run() returns once in-flight ones finish."""
        self._running = False
        self._lines.put_nowait(None)

    def _start_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        # Daemon thread: a blocked readline must not keep the process alive
        thread = threading.Thread(
            target=self._reader_thread, args=(loop,), name="stdio-reader", daemon=True
        )
        thread.start()

    def _reader_thread(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            while True:
                line = self._reader.readline()
                if not line:
                    break
                loop.call_soon_threadsafe(self._lines.put_nowait, line)
        except (OSError, ValueError) as e:
            logger.warning(f"stdin closed: {e}")
        try:
            loop.call_soon_threadsafe(self._lines.put_nowait, None)
        except RuntimeError:
            logger.debug("Event loop closed before stdin reached EOF")

    async def _read_line(self) -> str | None:
        return await self._lines.get()

    async def _process_line(self, line: str) -> None:
        request_id: Any = None
        try:
            payload = json.loads(line)
            if not isinstance(payload, dict):
                raise ValueError("request must be a JSON object")
            request_id = payload.pop("id", None)
            if "type" not in payload:
                raise ValueError("request is missing the 'type' field")
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"Invalid request line: {e}")
            response = Response.failure("", ErrorCode.INVALID_REQUEST, f"Invalid request: {e}")
        else:
            response = await self._gateway.send(payload)

        self._write_message(response, request_id)

    def _write_message(self, message: Response | Event, request_id: Any = None) -> None:
        data = message.to_wire()
        if request_id is not None:
            data[REQUEST_ID_KEY] = request_id
        try:
            # ensure_ascii=False keeps Unicode readable on the wire
            self._writer.write(json.dumps(data, ensure_ascii=False) + NEWLINE)
            self._writer.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write to stdout: {e}")
