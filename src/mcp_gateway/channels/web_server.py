"""
Gateway Web Server

FastAPI application exposing the network transports on one port.

Route structure:
- GET  /sse                  - Open a push channel (SSE)
- POST /messages?sessionId=  - Submit a request on behalf of a push session
- POST /mcp                  - Stateless request/response
- GET|DELETE /mcp            - 405, JSON-RPC "Method not allowed."
- GET  /oauth/authorize      - OAuth login (when configured)
- GET  /oauth/callback       - OAuth callback (when configured)

Every MCP route shares one router whose only dependency is the auth gate.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.auth.gate import AuthGate, PassThroughGate
from ..core.engine import ProtocolEngine
from ..core.errors import (
    AuthenticationError,
    GatewayError,
    INTERNAL_ERROR,
    MethodNotAllowedError,
    ProtocolError,
    jsonrpc_error,
)
from ..core.session import SessionRegistry
from .http import StatelessRequestBinding
from .sse import PushChannelBinding

logger = logging.getLogger(__name__)

UNSUPPORTED_METHODS = ["GET", "DELETE", "PUT", "PATCH"]


class GatewayWebServer:
    """HTTP surface for the push-channel and stateless transports."""

    def __init__(
        self,
        engine: ProtocolEngine,
        sessions: Optional[SessionRegistry] = None,
        gate: Optional[AuthGate] = None,
        host: str = "0.0.0.0",
        port: int = 3000,
        oauth_router: Optional[APIRouter] = None,
        sse_keepalive_seconds: float = 30.0
    ):
        self.engine = engine
        self.sessions = sessions or SessionRegistry()
        self.gate = gate or PassThroughGate()
        self.host = host
        self.port = port
        self.sse_keepalive_seconds = sse_keepalive_seconds
        self._server: Optional[uvicorn.Server] = None

        self.app = FastAPI(
            title=engine.server_info.name,
            description="MCP gateway (SSE and streamable HTTP transports)",
            version=engine.server_info.version,
            lifespan=self._lifespan
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["WWW-Authenticate"],
        )

        self.app.add_exception_handler(GatewayError, self._gateway_error_handler)
        self.app.add_exception_handler(StarletteHTTPException, self._http_error_handler)
        self.app.add_exception_handler(Exception, self._unhandled_error_handler)

        if oauth_router is not None:
            self.app.include_router(oauth_router)
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        logger.info(f"Gateway listening with {self.gate.name} gate")
        yield
        await self.sessions.close_all()
        verifier = getattr(self.gate, "verifier", None)
        if verifier is not None and hasattr(verifier, "aclose"):
            await verifier.aclose()

    @staticmethod
    async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        headers = {}
        if isinstance(exc, AuthenticationError):
            headers["WWW-Authenticate"] = 'Bearer realm="mcp"'
        return JSONResponse(
            status_code=exc.http_status,
            content=exc.to_jsonrpc(None),
            headers=headers
        )

    @classmethod
    async def _http_error_handler(cls, request: Request, exc: StarletteHTTPException) -> Response:
        # Router-level 405s for methods no route lists
        if exc.status_code == 405:
            return await cls._gateway_error_handler(request, MethodNotAllowedError())
        return await http_exception_handler(request, exc)

    @staticmethod
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content=jsonrpc_error(INTERNAL_ERROR, "Internal server error")
        )

    def _setup_routes(self):
        """Setup MCP routes behind the gate"""

        router = APIRouter(dependencies=[Depends(self.gate)])

        # =====================================================================
        # PUSH CHANNEL
        # =====================================================================

        @router.get("/sse")
        async def open_push_channel(request: Request):
            """Open an SSE stream; the first event carries the session endpoint."""
            binding = PushChannelBinding(
                self.sessions,
                messages_path="/messages",
                keepalive_seconds=self.sse_keepalive_seconds
            )
            self.engine.attach(binding)
            binding.open(getattr(request.state, "credentials", None))

            return StreamingResponse(
                binding.events(),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
                background=BackgroundTask(binding.close)
            )

        @router.post("/messages")
        async def submit_message(request: Request, sessionId: Optional[str] = Query(None)):
            """Submit a request to an open push session."""
            credentials = getattr(request.state, "credentials", None)
            session = self.sessions.require(sessionId, credentials)
            payload = await self._read_payload(request)

            binding = StatelessRequestBinding(session=session, credentials=credentials)
            return await self._run_exchange(binding, payload, push_response=True)

        # =====================================================================
        # STATELESS (STREAMABLE HTTP)
        # =====================================================================

        @router.post("/mcp")
        async def stateless_request(
            request: Request,
            mcp_session_id: Optional[str] = Header(None, alias="Mcp-Session-Id")
        ):
            """One JSON-RPC request per HTTP exchange."""
            credentials = getattr(request.state, "credentials", None)
            session = None
            if mcp_session_id:
                session = self.sessions.require(mcp_session_id, credentials)
            payload = await self._read_payload(request)

            binding = StatelessRequestBinding(session=session, credentials=credentials)
            return await self._run_exchange(binding, payload)

        # =====================================================================
        # UNSUPPORTED METHODS
        # =====================================================================

        @router.api_route("/mcp", methods=UNSUPPORTED_METHODS)
        async def mcp_method_not_allowed():
            raise MethodNotAllowedError()

        @router.api_route("/sse", methods=["POST", "DELETE", "PUT", "PATCH"])
        async def sse_method_not_allowed():
            raise MethodNotAllowedError()

        @router.api_route("/messages", methods=UNSUPPORTED_METHODS)
        async def messages_method_not_allowed():
            raise MethodNotAllowedError()

        self.app.include_router(router)

    @staticmethod
    async def _read_payload(request: Request) -> Any:
        body = await request.body()
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError.parse_error(str(e))

    async def _run_exchange(
        self,
        binding: StatelessRequestBinding,
        payload: Any,
        push_response: bool = False
    ) -> Response:
        """
        Run one exchange and answer in the HTTP body.

        With push_response the response is also sent on the session's SSE
        stream, where standard MCP SSE clients wait for it.
        """
        self.engine.attach(binding)
        try:
            response: Optional[Dict[str, Any]] = await binding.exchange(payload)
        except GatewayError:
            raise
        except Exception as e:
            logger.exception(f"Error handling MCP request: {e}")
            return JSONResponse(
                status_code=500,
                content=jsonrpc_error(INTERNAL_ERROR, "Internal server error")
            )

        if response is None:
            return Response(status_code=202)
        if push_response and binding.session is not None:
            await binding.session.channel.send(response, binding.session.id)
        return JSONResponse(response)

    async def start(self):
        """Serve until stopped."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
            timeout_graceful_shutdown=5
        )
        self._server = uvicorn.Server(config)
        logger.info(f"MCP gateway listening on http://{self.host}:{self.port}")
        await self._server.serve()

    async def stop(self):
        if self._server is not None:
            self._server.should_exit = True
