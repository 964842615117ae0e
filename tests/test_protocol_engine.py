"""
Test Protocol Engine

Covers capability registration, JSON-RPC decoding and dispatch, schema
validation and conversion of every failure into a protocol error object.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from mcp_gateway.core.capability import Capability, CapabilityRegistry
from mcp_gateway.core.engine import Exchange, ProtocolEngine, ServerInfo, ToolResult
from mcp_gateway.core.errors import (
    CAPABILITY_FAILED,
    ConfigurationError,
    DuplicateCapabilityError,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)


def call(name, arguments=None, request_id=1, meta=None):
    params = {"name": name, "arguments": arguments or {}}
    if meta:
        params["_meta"] = meta
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": params}


def make_engine(*capabilities, instructions=None):
    registry = CapabilityRegistry()
    for capability in capabilities:
        registry.register(capability)
    return ProtocolEngine(registry, ServerInfo(name="test-server", version="9.9", instructions=instructions))


def echo_capability():
    async def echo(arguments, context):
        return arguments
    return Capability(name="echo", handler=echo, description="Echo")


class TestCapabilityRegistry:
    """Tests for registration rules"""

    def test_duplicate_name_fails_fast(self):
        registry = CapabilityRegistry()
        registry.register(echo_capability())

        with pytest.raises(DuplicateCapabilityError) as exc_info:
            registry.register(echo_capability())

        assert exc_info.value.name == "echo"
        assert isinstance(exc_info.value, ConfigurationError)

    def test_override_mode_keeps_latest(self):
        registry = CapabilityRegistry(allow_override=True)
        first = Capability(name="tool", handler=lambda a, c: "first")
        second = Capability(name="tool", handler=lambda a, c: "second")

        registry.register(first)
        registry.register(second)

        assert registry.get("tool") is second
        assert len(registry) == 1

    def test_invalid_schema_rejected(self):
        registry = CapabilityRegistry()
        bad = Capability(name="bad", handler=lambda a, c: None, input_schema={"type": "no-such-type"})

        with pytest.raises(ConfigurationError):
            registry.register(bad)

        assert "bad" not in registry

    def test_tool_decorator_registers(self):
        registry = CapabilityRegistry()

        @registry.tool("greet", description="Say hi", input_schema={
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"]
        })
        def greet(arguments, context):
            return f"hi {arguments['name']}"

        tool = registry.get("greet").to_tool()
        assert tool["name"] == "greet"
        assert tool["inputSchema"]["required"] == ["name"]


class TestProtocolEngine:
    """Tests for request handling"""

    @pytest.mark.asyncio
    async def test_echo_round_trip(self):
        engine = make_engine(echo_capability())

        response = await engine.handle(call("echo", {"x": 1}))

        assert response["id"] == 1
        assert response["result"]["structuredContent"] == {"x": 1}
        assert response["result"]["isError"] is False
        assert json.loads(response["result"]["content"][0]["text"]) == {"x": 1}

    @pytest.mark.asyncio
    async def test_register_through_engine(self):
        engine = make_engine()

        engine.register(echo_capability())

        assert "echo" in engine.registry
        response = await engine.handle(call("echo", {"y": 2}))
        assert response["result"]["structuredContent"] == {"y": 2}

        with pytest.raises(DuplicateCapabilityError):
            engine.register(echo_capability())

    @pytest.mark.asyncio
    async def test_accepts_encoded_request(self):
        engine = make_engine(echo_capability())

        response = await engine.handle(json.dumps(call("echo", {"x": 1})).encode())

        assert response["result"]["structuredContent"] == {"x": 1}

    @pytest.mark.asyncio
    async def test_malformed_json_is_parse_error(self):
        engine = make_engine()

        response = await engine.handle('{"jsonrpc": "2.0", "id": ')

        assert response["error"]["code"] == PARSE_ERROR
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_invalid_envelope(self):
        engine = make_engine()

        response = await engine.handle({"id": 4, "method": "ping"})

        assert response["error"]["code"] == INVALID_REQUEST
        assert response["id"] == 4

    @pytest.mark.asyncio
    async def test_non_object_payload(self):
        engine = make_engine()

        response = await engine.handle([1, 2, 3])

        assert response["error"]["code"] == INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_unknown_method(self):
        engine = make_engine()

        response = await engine.handle({"jsonrpc": "2.0", "id": "a", "method": "resources/list"})

        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["id"] == "a"

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        engine = make_engine()

        response = await engine.handle(call("missing"))

        assert response["error"]["code"] == INVALID_PARAMS
        assert "missing" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_schema_violation_never_reaches_handler(self):
        handler = MagicMock(return_value="ok")
        engine = make_engine(Capability(
            name="get_document",
            handler=handler,
            input_schema={
                "type": "object",
                "properties": {"id": {"type": "integer"}},
                "required": ["id"]
            }
        ))

        response = await engine.handle(call("get_document", {"id": "seven"}))

        assert response["error"]["code"] == INVALID_PARAMS
        assert response["error"]["data"]["errors"][0]["path"] == "id"
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_handler_failure_becomes_protocol_error(self):
        def explode(arguments, context):
            raise RuntimeError("Paperless API returned 500")

        engine = make_engine(Capability(name="explode", handler=explode))

        response = await engine.handle(call("explode"))

        assert response["error"]["code"] == CAPABILITY_FAILED
        assert response["error"]["message"] == "Paperless API returned 500"
        assert response["error"]["data"] == {"capability": "explode"}

    @pytest.mark.asyncio
    async def test_structured_tool_error_passes_through(self):
        engine = make_engine(Capability(
            name="lookup",
            handler=lambda a, c: ToolResult.text("Document not found", is_error=True)
        ))

        response = await engine.handle(call("lookup"))

        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"] == "Document not found"

    @pytest.mark.asyncio
    async def test_sync_handler_and_string_result(self):
        engine = make_engine(Capability(name="hello", handler=lambda a, c: "hello"))

        response = await engine.handle(call("hello"))

        assert response["result"]["content"] == [{"type": "text", "text": "hello"}]

    @pytest.mark.asyncio
    async def test_notification_has_no_response(self):
        engine = make_engine()

        response = await engine.handle({"jsonrpc": "2.0", "method": "notifications/initialized"})

        assert response is None

    @pytest.mark.asyncio
    async def test_initialize_negotiates_version(self):
        engine = make_engine(instructions="Use the tools.")

        response = await engine.handle({
            "jsonrpc": "2.0",
            "id": 0,
            "method": "initialize",
            "params": {"protocolVersion": "2024-11-05", "clientInfo": {"name": "test"}}
        })

        result = response["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"] == {"name": "test-server", "version": "9.9"}
        assert result["instructions"] == "Use the tools."
        assert "tools" in result["capabilities"]

    @pytest.mark.asyncio
    async def test_initialize_unknown_version_gets_latest(self):
        engine = make_engine()

        response = await engine.handle({
            "jsonrpc": "2.0", "id": 0, "method": "initialize",
            "params": {"protocolVersion": "1999-01-01"}
        })

        assert response["result"]["protocolVersion"] == "2025-06-18"

    @pytest.mark.asyncio
    async def test_tools_list(self):
        engine = make_engine(echo_capability())

        response = await engine.handle({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

        assert [t["name"] for t in response["result"]["tools"]] == ["echo"]

    @pytest.mark.asyncio
    async def test_ping(self):
        engine = make_engine()

        response = await engine.handle({"jsonrpc": "2.0", "id": 3, "method": "ping"})

        assert response == {"jsonrpc": "2.0", "id": 3, "result": {}}


class TestToolContext:
    """Tests for notifications and credentials seen by handlers"""

    @pytest.mark.asyncio
    async def test_progress_goes_to_originating_exchange(self):
        async def work(arguments, context):
            await context.report_progress(1, 2, "halfway")
            return "done"

        engine = make_engine(Capability(name="work", handler=work))
        notify = AsyncMock()

        response = await engine.handle(
            call("work", meta={"progressToken": "tok-1"}),
            Exchange(notify=notify, session_id="s1")
        )

        assert response["result"]["content"][0]["text"] == "done"
        notify.assert_awaited_once()
        notification = notify.await_args.args[0]
        assert notification["method"] == "notifications/progress"
        assert notification["params"] == {
            "progressToken": "tok-1", "progress": 1, "total": 2, "message": "halfway"
        }

    @pytest.mark.asyncio
    async def test_progress_without_token_is_not_sent(self):
        async def work(arguments, context):
            sent = await context.report_progress(1)
            return {"sent": sent}

        engine = make_engine(Capability(name="work", handler=work))
        notify = AsyncMock()

        response = await engine.handle(call("work"), Exchange(notify=notify))

        assert response["result"]["structuredContent"] == {"sent": False}
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notifications_dropped_without_push(self):
        async def chatty(arguments, context):
            delivered = await context.log("info", "working")
            return {"delivered": delivered}

        engine = make_engine(Capability(name="chatty", handler=chatty))

        response = await engine.handle(call("chatty"), Exchange(notify=None))

        assert response["result"]["structuredContent"] == {"delivered": False}

    @pytest.mark.asyncio
    async def test_credentials_visible_to_handler(self):
        async def whoami(arguments, context):
            return {"principal": context.credentials["principal"], "session": context.session_id}

        engine = make_engine(Capability(name="whoami", handler=whoami))

        response = await engine.handle(
            call("whoami"),
            Exchange(credentials={"principal": "alice@example.com"}, session_id="abc")
        )

        assert response["result"]["structuredContent"] == {
            "principal": "alice@example.com", "session": "abc"
        }
