"""
MCP Gateway

Exposes registered tools over the Model Context Protocol through three
transports (stdio, SSE push channel, stateless HTTP), optionally behind a
delegated OAuth2 bearer-token gate.
"""

__version__ = "1.0.0"
