"""
Protocol Engine

One long-lived engine serves every transport binding. It decodes a JSON-RPC
request, dispatches MCP methods, validates tool arguments against the
capability's input schema, invokes the handler and encodes the result.

The engine keeps no per-session state. Everything it needs to know about the
originating connection arrives in the Exchange passed to handle(): where to
send notifications, which session (if any) it is acting for, and the
credential context attached by the auth gate.
"""

import asyncio
import inspect
import json
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ValidationError

from .capability import Capability, CapabilityRegistry
from .errors import CapabilityError, GatewayError, INTERNAL_ERROR, ProtocolError, jsonrpc_error

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

Notifier = Callable[[Dict[str, Any]], Awaitable[None]]


# =============================================================================
# PROTOCOL TYPES
# =============================================================================

class JSONRPCMessage(BaseModel):
    """Inbound JSON-RPC 2.0 envelope."""
    jsonrpc: Literal["2.0"]
    method: str
    id: Optional[Union[int, str]] = None
    params: Optional[Dict[str, Any]] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


@dataclass
class ServerInfo:
    name: str = "paperless-ngx"
    version: str = "1.0.0"
    instructions: Optional[str] = None


@dataclass
class ToolResult:
    """Explicit tool result; is_error=True reports a structured tool failure."""
    content: List[Dict[str, Any]]
    is_error: bool = False
    structured: Optional[Dict[str, Any]] = None

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "ToolResult":
        return cls(content=[{"type": "text", "text": text}], is_error=is_error)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"content": self.content, "isError": self.is_error}
        if self.structured is not None:
            result["structuredContent"] = self.structured
        return result


@dataclass
class Exchange:
    """
    Per-request context supplied by the transport binding.

    notify is None when the originating binding cannot push; notifications
    are then dropped.
    """
    notify: Optional[Notifier] = None
    session_id: Optional[str] = None
    credentials: Optional[Any] = None
    transport: str = "unknown"


@dataclass
class ToolContext:
    """What a capability handler may see of the exchange it runs in."""
    capability: str
    request_id: Any
    exchange: Exchange
    progress_token: Optional[Union[str, int]] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def credentials(self) -> Optional[Any]:
        return self.exchange.credentials

    @property
    def session_id(self) -> Optional[str]:
        return self.exchange.session_id

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> bool:
        """Send a notification to the originating peer. Returns False if dropped."""
        if self.exchange.notify is None:
            logger.debug(f"Dropping {method} notification: transport cannot push")
            return False
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self.exchange.notify(message)
        return True

    async def report_progress(
        self,
        progress: float,
        total: Optional[float] = None,
        message: Optional[str] = None
    ) -> bool:
        """Emit notifications/progress if the caller asked for progress."""
        if self.progress_token is None:
            return False
        params: Dict[str, Any] = {"progressToken": self.progress_token, "progress": progress}
        if total is not None:
            params["total"] = total
        if message is not None:
            params["message"] = message
        return await self.notify("notifications/progress", params)

    async def log(self, level: str, data: Any) -> bool:
        return await self.notify("notifications/message", {
            "level": level,
            "logger": self.capability,
            "data": data
        })


# =============================================================================
# ENGINE
# =============================================================================

class ProtocolEngine:
    """
    Transport-agnostic MCP request handler.

    handle() never raises: malformed requests, unknown methods or tools,
    schema violations and handler failures all come back as JSON-RPC error
    objects.
    """

    def __init__(self, registry: CapabilityRegistry, server_info: Optional[ServerInfo] = None):
        self.registry = registry
        self.server_info = server_info or ServerInfo()
        self._bindings: "weakref.WeakSet" = weakref.WeakSet()

        self._methods: Dict[str, Callable[[JSONRPCMessage, Exchange], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def register(self, capability: Capability) -> None:
        self.registry.register(capability)

    def attach(self, binding: "TransportBinding") -> None:
        """Bind a transport to this engine. Any number may be attached."""
        binding.attach(self)

    def track(self, binding: "TransportBinding") -> None:
        self._bindings.add(binding)
        logger.debug(f"Attached {binding.transport} binding ({len(self._bindings)} live)")

    async def handle(
        self,
        raw: Union[str, bytes, Dict[str, Any]],
        exchange: Optional[Exchange] = None
    ) -> Optional[Dict[str, Any]]:
        """Handle one request. Returns None for notifications."""
        exchange = exchange or Exchange()

        try:
            payload = self._decode(raw)
        except GatewayError as e:
            return e.to_jsonrpc(None)

        request_id = payload.get("id") if isinstance(payload, dict) else None

        try:
            message = JSONRPCMessage.model_validate(payload)
        except ValidationError as e:
            err = ProtocolError.invalid_request(_first_error(e))
            return err.to_jsonrpc(request_id if isinstance(request_id, (int, str)) else None)

        if message.is_notification:
            await self._handle_notification(message)
            return None

        handler = self._methods.get(message.method)
        if handler is None:
            return ProtocolError.method_not_found(message.method).to_jsonrpc(message.id)

        try:
            result = await handler(message, exchange)
        except GatewayError as e:
            if isinstance(e, CapabilityError):
                logger.warning(f"Capability {e.capability} failed: {e.message}")
            return e.to_jsonrpc(message.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unhandled error in {message.method}: {e}")
            return jsonrpc_error(INTERNAL_ERROR, "Internal server error", message.id)

        return {"jsonrpc": "2.0", "id": message.id, "result": result}

    # Decoding

    @staticmethod
    def _decode(raw: Union[str, bytes, Dict[str, Any]]) -> Any:
        if isinstance(raw, (str, bytes)):
            try:
                return json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ProtocolError.parse_error(str(e)) from e
        return raw

    async def _handle_notification(self, message: JSONRPCMessage) -> None:
        if message.method == "notifications/initialized":
            logger.debug("Client initialized")
        else:
            logger.debug(f"Ignoring notification: {message.method}")

    # MCP methods

    async def _initialize(self, message: JSONRPCMessage, exchange: Exchange) -> Dict[str, Any]:
        params = message.params or {}
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION

        client = params.get("clientInfo", {})
        logger.info(
            f"Initialize from {client.get('name', 'unknown')} "
            f"over {exchange.transport} (protocol {version})"
        )

        result: Dict[str, Any] = {
            "protocolVersion": version,
            "capabilities": {
                "tools": {"listChanged": False},
                "logging": {}
            },
            "serverInfo": {
                "name": self.server_info.name,
                "version": self.server_info.version
            }
        }
        if self.server_info.instructions:
            result["instructions"] = self.server_info.instructions
        return result

    async def _ping(self, message: JSONRPCMessage, exchange: Exchange) -> Dict[str, Any]:
        return {}

    async def _list_tools(self, message: JSONRPCMessage, exchange: Exchange) -> Dict[str, Any]:
        return {"tools": [c.to_tool() for c in self.registry]}

    async def _call_tool(self, message: JSONRPCMessage, exchange: Exchange) -> Dict[str, Any]:
        params = message.params or {}
        name = params.get("name")
        if not isinstance(name, str):
            raise ProtocolError.invalid_params("tools/call requires a tool name")

        capability = self.registry.get(name)
        if capability is None:
            raise ProtocolError.invalid_params(f"Unknown tool: {name}")

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ProtocolError.invalid_params("arguments must be an object")

        errors = sorted(self.registry.validator(name).iter_errors(arguments), key=lambda e: list(e.path))
        if errors:
            raise ProtocolError.invalid_params(
                f"{name}: {errors[0].message}",
                {"errors": [
                    {"path": "/".join(str(p) for p in e.path), "message": e.message}
                    for e in errors
                ]}
            )

        meta = params.get("_meta") or {}
        context = ToolContext(
            capability=name,
            request_id=message.id,
            exchange=exchange,
            progress_token=meta.get("progressToken"),
            meta=meta
        )

        try:
            outcome = capability.handler(arguments, context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except GatewayError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise CapabilityError(name, str(e) or type(e).__name__) from e

        return _to_tool_result(outcome).to_dict()


def _to_tool_result(outcome: Any) -> ToolResult:
    if isinstance(outcome, ToolResult):
        return outcome
    if isinstance(outcome, str):
        return ToolResult.text(outcome)
    if isinstance(outcome, dict):
        return ToolResult(
            content=[{"type": "text", "text": json.dumps(outcome, default=str)}],
            structured=outcome
        )
    return ToolResult.text(json.dumps(outcome, default=str))


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    location = ".".join(str(p) for p in err.get("loc", ())) or "message"
    return f"{location}: {err.get('msg')}"
