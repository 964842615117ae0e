"""
Base Transport Binding

Abstract base class for the three MCP transport bindings.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..core.engine import Exchange

if TYPE_CHECKING:
    from ..core.engine import ProtocolEngine

logger = logging.getLogger(__name__)


class TransportBinding(ABC):
    """
    Binds the shared protocol engine to one transport.

    A binding:
    1. Frames and decodes inbound messages (rejecting malformed ones itself)
    2. Feeds them to the engine with an Exchange describing the connection
    3. Delivers responses, and notifications where the transport can push
    4. Owns the lifetime of its pending exchanges
    """

    transport: str = "unknown"
    supports_push: bool = False

    def __init__(self):
        self.engine: Optional["ProtocolEngine"] = None
        self._closed = False

    def attach(self, engine: "ProtocolEngine") -> None:
        self.engine = engine
        engine.track(self)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def exchange_context(
        self,
        session_id: Optional[str] = None,
        credentials: Optional[Any] = None
    ) -> Exchange:
        return Exchange(
            notify=self.send if self.supports_push else None,
            session_id=session_id,
            credentials=credentials,
            transport=self.transport
        )

    def _require_engine(self) -> "ProtocolEngine":
        if self.engine is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to an engine")
        return self.engine

    @abstractmethod
    async def send(self, message: Dict[str, Any], target_session_id: Optional[str] = None) -> None:
        """Deliver a message (typically a notification) to the peer."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the binding. Must be idempotent."""
        pass
