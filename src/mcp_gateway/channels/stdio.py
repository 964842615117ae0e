"""
Embedded Duplex Binding (stdio)

Binds the engine to the process's own stdin/stdout for a locally spawned
client. Messages are newline-delimited JSON-RPC.

Requests are handled concurrently (each in its own task) but responses are
written strictly in arrival order by a single writer task. Notifications
from handlers are written as soon as they are emitted.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple, Union

from ..core.errors import ProtocolError
from .base import TransportBinding

logger = logging.getLogger(__name__)

# Default asyncio limit is 64 KiB; tool arguments can carry documents
MAX_LINE_BYTES = 16 * 1024 * 1024

_Queued = Union[asyncio.Task, Dict[str, Any], None]


async def open_stdio_streams(limit: int = MAX_LINE_BYTES) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process stdin/stdout as asyncio streams."""
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader(limit=limit)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, None, loop)
    return reader, writer


class EmbeddedDuplexBinding(TransportBinding):
    """
    Single duplex byte-stream binding. Exactly one exists per process and
    closing it ends the stdio server.
    """

    transport = "stdio"
    supports_push = True

    def __init__(self, reader: asyncio.StreamReader, writer: Any):
        super().__init__()
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._order: "asyncio.Queue[_Queued]" = asyncio.Queue()
        self._in_flight: Dict[Union[int, str], asyncio.Task] = {}
        self._writer_task: Optional[asyncio.Task] = None
        self._broken = False

    @property
    def pending(self) -> int:
        return len(self._in_flight)

    async def run(self) -> None:
        """Serve until the input stream reaches EOF or the binding is closed."""
        self._require_engine()
        self._writer_task = asyncio.create_task(self._write_responses())
        logger.info("stdio binding serving")

        try:
            while not self._closed:
                try:
                    line = await self._reader.readline()
                except ValueError as e:
                    # Line exceeded the stream limit; the rest of it is lost
                    logger.warning(f"Oversized stdio frame: {e}")
                    await self._order.put(ProtocolError.parse_error("frame too large").to_jsonrpc())
                    continue
                if not line:
                    break
                line = line.strip()
                if line:
                    await self._dispatch(line)

            # EOF: let in-flight requests finish and flush in order
            if not self._closed:
                await self._order.put(None)
                await self._writer_task
        finally:
            await self.close()
        logger.info("stdio binding stopped")

    async def _dispatch(self, line: bytes) -> None:
        try:
            payload = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Invalid JSON received: {e}")
            await self._order.put(ProtocolError.parse_error(str(e)).to_jsonrpc())
            return

        if isinstance(payload, dict) and payload.get("method") == "notifications/cancelled":
            self._cancel((payload.get("params") or {}).get("requestId"))
            return

        task = asyncio.create_task(self.engine.handle(payload, self.exchange_context()))

        request_id = payload.get("id") if isinstance(payload, dict) else None
        if isinstance(request_id, (int, str)):
            self._in_flight[request_id] = task
            task.add_done_callback(lambda _t, rid=request_id: self._in_flight.pop(rid, None))

        await self._order.put(task)

    def _cancel(self, request_id: Any) -> None:
        task = self._in_flight.get(request_id) if isinstance(request_id, (int, str)) else None
        if task is None:
            logger.debug(f"Cancel for unknown request {request_id!r}")
            return
        logger.info(f"Client cancelled request {request_id!r}")
        task.cancel()

    async def _write_responses(self) -> None:
        while True:
            item = await self._order.get()
            if item is None:
                return

            if isinstance(item, asyncio.Task):
                await asyncio.wait({item})
                if item.cancelled():
                    continue
                if item.exception() is not None:
                    logger.error(f"Request task failed: {item.exception()!r}")
                    continue
                response = item.result()
            else:
                response = item

            if response is not None:
                await self._write(response)

    async def _write(self, message: Dict[str, Any]) -> None:
        if self._broken:
            return
        data = (json.dumps(message) + "\n").encode("utf-8")
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, BrokenPipeError) as e:
                logger.warning(f"stdout closed: {e}")
                self._broken = True

    async def send(self, message: Dict[str, Any], target_session_id: Optional[str] = None) -> None:
        if self._closed:
            logger.debug("Dropping message for closed stdio binding")
            return
        await self._write(message)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        # Abandon pending exchanges
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()

        current = asyncio.current_task()
        if self._writer_task is not None and self._writer_task is not current and not self._writer_task.done():
            self._writer_task.cancel()
            await asyncio.wait({self._writer_task})

        try:
            self._writer.close()
            wait_closed = getattr(self._writer, "wait_closed", None)
            if wait_closed is not None:
                await wait_closed()
        except (ConnectionError, BrokenPipeError) as e:
            logger.debug(f"stdout already closed: {e}")
