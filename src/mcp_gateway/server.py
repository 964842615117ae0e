"""
Gateway Host

Wires the capability registry into one protocol engine and starts either
the stdio binding (embedded mode) or the web server (network mode).
"""

import logging
from typing import Optional

from config import GatewayConfig

from .channels.stdio import EmbeddedDuplexBinding, open_stdio_streams
from .channels.web_server import GatewayWebServer
from .core.auth.gate import PrincipalPolicy
from .core.auth.oauth import build_auth_gate, create_oauth_router
from .core.capability import CapabilityRegistry, load_tool_modules
from .core.engine import ProtocolEngine, ServerInfo
from .core.errors import ConfigurationError
from .core.session import SessionRegistry

logger = logging.getLogger(__name__)


def build_instructions(public_url: str) -> str:
    """Usage notes returned to clients in the initialize handshake."""
    return f"""
Paperless-NGX MCP Server Instructions

CRITICAL: Always differentiate between operations on specific documents vs operations on the entire system:

- REMOVE operations (e.g., remove_tag in bulk_edit_documents): Affect only the specified documents, items remain in the system
- DELETE operations (e.g., delete_tag, delete_correspondent): Permanently delete items from the entire system, affecting ALL documents that use them

When a user asks to "remove" something, prefer operations that affect specific documents. Only use DELETE operations when explicitly asked to delete from the system.

To view documents in your Paperless-NGX web interface, construct URLs using this pattern:
{public_url}/documents/{{document_id}}/

Example: If your base URL is "http://localhost:8000", the web interface URL would be "http://localhost:8000/documents/123/" for document ID 123.

The document tools return JSON data with document IDs that you can use to construct these URLs.
"""


def build_engine(config: GatewayConfig, registry: Optional[CapabilityRegistry] = None) -> ProtocolEngine:
    """Create the single engine instance and load the configured tool groups."""
    missing = config.missing_required()
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    registry = registry if registry is not None else CapabilityRegistry()
    load_tool_modules(registry, config.tool_modules, config)

    engine = ProtocolEngine(
        registry,
        ServerInfo(
            name=config.server.name,
            version=config.server.version,
            instructions=build_instructions(config.paperless.resolved_public_url)
        )
    )
    logger.info(f"Protocol engine ready with {len(registry)} tools")
    return engine


def build_web_server(
    config: GatewayConfig,
    engine: ProtocolEngine,
    sessions: Optional[SessionRegistry] = None
) -> GatewayWebServer:
    """Assemble the network surface, with the auth gate chosen from config."""
    gate = build_auth_gate(config.oauth)

    oauth_router = None
    if config.oauth.enabled:
        oauth_router = create_oauth_router(config.oauth, PrincipalPolicy(config.oauth.allowed_users))

    return GatewayWebServer(
        engine,
        sessions=sessions or SessionRegistry(),
        gate=gate,
        host=config.http.host,
        port=config.http.port,
        oauth_router=oauth_router,
        sse_keepalive_seconds=config.http.sse_keepalive_seconds
    )


async def run_gateway(config: GatewayConfig, registry: Optional[CapabilityRegistry] = None) -> None:
    """Run the gateway in the mode selected by config."""
    engine = build_engine(config, registry)

    if config.http.enabled:
        logger.info("Using the HTTP mode")
        web_server = build_web_server(config, engine)
        await web_server.start()
        return

    reader, writer = await open_stdio_streams()
    binding = EmbeddedDuplexBinding(reader, writer)
    engine.attach(binding)
    await binding.run()
