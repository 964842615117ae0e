"""
Push Channel Binding (Server-Sent Events)

A long-lived server-to-client stream identified by a server-generated
session id. On open the binding is admitted to the session registry and
the first event tells the client where to submit requests:

    event: endpoint
    data: /messages?sessionId=<id>

Requests submitted there are handled as stateless exchanges acting on
behalf of this session; notifications they emit are pushed here.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from ..core.session import SessionRegistry
from .base import TransportBinding

logger = logging.getLogger(__name__)

_CLOSE = object()


def format_sse(event: str, data: str) -> str:
    lines = "".join(f"data: {line}\n" for line in data.splitlines() or [""])
    return f"event: {event}\n{lines}\n"


class PushChannelBinding(TransportBinding):
    """One SSE connection, registered in the session registry while open."""

    transport = "sse"
    supports_push = True

    def __init__(
        self,
        registry: SessionRegistry,
        messages_path: str = "/messages",
        keepalive_seconds: float = 30.0,
        max_queue: int = 1000
    ):
        super().__init__()
        self.registry = registry
        self.messages_path = messages_path
        self.keepalive_seconds = keepalive_seconds
        self.session_id: Optional[str] = None
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=max_queue)

    @property
    def endpoint(self) -> str:
        return f"{self.messages_path}?sessionId={self.session_id}"

    def open(self, credentials: Optional[Any] = None) -> str:
        """Admit this channel to the registry and queue the endpoint event."""
        if self.session_id is not None:
            raise RuntimeError("Push channel already opened")
        self.session_id = self.registry.create(self, credentials)
        self._queue.put_nowait(("endpoint", self.endpoint))
        return self.session_id

    async def send(self, message: Dict[str, Any], target_session_id: Optional[str] = None) -> None:
        if target_session_id is not None and target_session_id != self.session_id:
            logger.warning(f"Refusing to push message for session {target_session_id[:8]}... on another channel")
            return
        if self._closed:
            logger.debug(f"Dropping message for closed session {self.session_id}")
            return
        try:
            self._queue.put_nowait(("message", json.dumps(message)))
        except asyncio.QueueFull:
            logger.warning(f"Session {self.session_id[:8]}... is not draining; dropping message")

    async def events(self) -> AsyncIterator[str]:
        """
        Yield SSE frames until the channel closes.

        Closing happens in finally, so client disconnect (generator
        cancellation), server shutdown and explicit close all release the
        session.
        """
        try:
            while not self._closed:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self.keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                if item is _CLOSE:
                    break
                event, data = item
                yield format_sse(event, data)
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.session_id is not None:
            self.registry.remove(self.session_id)
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            pass
