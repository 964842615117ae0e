"""
Gateway Error Taxonomy

Every per-request failure is raised as a GatewayError subclass and converted
to a JSON-RPC error object at the nearest boundary (engine, binding or web
endpoint). Only ConfigurationError is fatal, and only at startup.
"""

from typing import Any, Dict, Optional

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Gateway-defined server error codes
METHOD_NOT_ALLOWED = -32000
SESSION_NOT_FOUND = -32001
UNAUTHORIZED = -32002
CAPABILITY_FAILED = -32003


def jsonrpc_error(
    code: int,
    message: str,
    request_id: Any = None,
    data: Optional[Any] = None
) -> Dict[str, Any]:
    """Build a JSON-RPC error response envelope."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {
        "jsonrpc": "2.0",
        "error": error,
        "id": request_id
    }


class GatewayError(Exception):
    """Base class for errors reported to a client."""

    code: int = INTERNAL_ERROR
    http_status: int = 500

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_jsonrpc(self, request_id: Any = None) -> Dict[str, Any]:
        return jsonrpc_error(self.code, self.message, request_id, self.data)


class ProtocolError(GatewayError):
    """Malformed request, unknown method or capability, schema violation."""

    http_status = 400

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(message, data)
        self.code = code

    @classmethod
    def parse_error(cls, detail: str) -> "ProtocolError":
        return cls(PARSE_ERROR, f"Parse error: {detail}")

    @classmethod
    def invalid_request(cls, detail: str) -> "ProtocolError":
        return cls(INVALID_REQUEST, f"Invalid request: {detail}")

    @classmethod
    def method_not_found(cls, method: str) -> "ProtocolError":
        return cls(METHOD_NOT_FOUND, f"Method not found: {method}")

    @classmethod
    def invalid_params(cls, detail: str, data: Optional[Any] = None) -> "ProtocolError":
        return cls(INVALID_PARAMS, f"Invalid params: {detail}", data)


class CapabilityError(GatewayError):
    """A tool handler failed. Carries the handler's own message."""

    code = CAPABILITY_FAILED
    http_status = 200

    def __init__(self, capability: str, message: str):
        super().__init__(message, {"capability": capability})
        self.capability = capability


class SessionNotFoundError(GatewayError):
    """Unknown, expired or foreign session identifier (client fault)."""

    code = SESSION_NOT_FOUND
    http_status = 400

    def __init__(self, session_id: Optional[str] = None):
        # The identifier is deliberately not echoed back
        super().__init__("No transport found for sessionId")
        self.session_id = session_id


class AuthenticationError(GatewayError):
    """
    Request rejected by the auth gate.

    The message is identical for every cause (missing header, bad token,
    verifier unavailable, principal not allowed).
    """

    code = UNAUTHORIZED
    http_status = 401
    MESSAGE = "Unauthorized"

    def __init__(self, reason: Optional[str] = None):
        super().__init__(self.MESSAGE)
        # Internal only; never serialized
        self.reason = reason


class MethodNotAllowedError(GatewayError):
    """HTTP method not supported on an MCP endpoint."""

    code = METHOD_NOT_ALLOWED
    http_status = 405

    def __init__(self):
        super().__init__("Method not allowed.")


class ConfigurationError(Exception):
    """Fatal startup error: the process reports it and exits."""


class DuplicateCapabilityError(ConfigurationError):
    """Two tool groups registered the same capability name."""

    def __init__(self, name: str):
        super().__init__(f"Capability already registered: {name}")
        self.name = name
