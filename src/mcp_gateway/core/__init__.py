"""
MCP Gateway Core

Transport-agnostic pieces shared by every binding.
"""

from .capability import Capability, CapabilityRegistry, load_tool_modules
from .engine import Exchange, ProtocolEngine, ServerInfo, ToolContext, ToolResult
from .errors import (
    AuthenticationError,
    CapabilityError,
    ConfigurationError,
    DuplicateCapabilityError,
    GatewayError,
    MethodNotAllowedError,
    ProtocolError,
    SessionNotFoundError,
)
from .session import Session, SessionRegistry

__all__ = [
    # Capabilities
    "Capability",
    "CapabilityRegistry",
    "load_tool_modules",
    # Engine
    "Exchange",
    "ProtocolEngine",
    "ServerInfo",
    "ToolContext",
    "ToolResult",
    # Errors
    "AuthenticationError",
    "CapabilityError",
    "ConfigurationError",
    "DuplicateCapabilityError",
    "GatewayError",
    "MethodNotAllowedError",
    "ProtocolError",
    "SessionNotFoundError",
    # Sessions
    "Session",
    "SessionRegistry",
]
