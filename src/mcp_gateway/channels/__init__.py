"""
MCP Transport Bindings

Bindings connect the shared protocol engine to a transport.

Available bindings:
- EmbeddedDuplexBinding: newline-delimited JSON-RPC over stdio
- PushChannelBinding: Server-Sent Events stream keyed by session id
- StatelessRequestBinding: one request/response per HTTP exchange
- GatewayWebServer: FastAPI app hosting the network bindings
"""

from .base import TransportBinding
from .http import StatelessRequestBinding
from .sse import PushChannelBinding
from .stdio import EmbeddedDuplexBinding, open_stdio_streams
from .web_server import GatewayWebServer

__all__ = [
    "TransportBinding",
    "EmbeddedDuplexBinding",
    "PushChannelBinding",
    "StatelessRequestBinding",
    "GatewayWebServer",
    "open_stdio_streams",
]
