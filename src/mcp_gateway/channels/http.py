"""
Stateless Request Binding

Wraps exactly one inbound JSON-RPC message and its response. The binding
never enters the session registry. When it acts on behalf of a push
session, notifications are forwarded to that session's channel; the
request/response pairing itself stays inside this exchange.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..core.engine import Exchange
from ..core.session import Session
from .base import TransportBinding

logger = logging.getLogger(__name__)


class StatelessRequestBinding(TransportBinding):
    """One request, one response."""

    transport = "http"

    def __init__(self, session: Optional[Session] = None, credentials: Optional[Any] = None):
        super().__init__()
        self.session = session
        self.credentials = credentials
        # Notifications with nowhere to go
        self.undelivered: List[Dict[str, Any]] = []
        self._used = False

    @property
    def supports_push(self) -> bool:
        return self.session is not None and not self.session.channel.is_closed

    def exchange_context(
        self,
        session_id: Optional[str] = None,
        credentials: Optional[Any] = None
    ) -> Exchange:
        return Exchange(
            notify=self.send,
            session_id=self.session.id if self.session else None,
            credentials=self.credentials,
            transport="sse" if self.session else self.transport
        )

    async def exchange(self, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Run the single exchange this binding wraps."""
        if self._used:
            raise RuntimeError("StatelessRequestBinding handles exactly one request")
        self._used = True

        engine = self._require_engine()
        try:
            return await engine.handle(raw, self.exchange_context())
        finally:
            await self.close()

    async def send(self, message: Dict[str, Any], target_session_id: Optional[str] = None) -> None:
        if self.supports_push:
            await self.session.channel.send(message, target_session_id)
            return
        self.undelivered.append(message)
        logger.debug(f"Dropping {message.get('method', 'message')}: stateless request cannot push")

    async def close(self) -> None:
        self._closed = True
