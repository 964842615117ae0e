"""
MCP Gateway Configuration Module

Provides centralized configuration management for the gateway.
"""

from .schema import GatewayConfig, HTTPConfig, OAuthConfig, PaperlessConfig, ServerConfig
from .loader import apply_env_overrides, load_config, load_config_from_file

__all__ = [
    "GatewayConfig",
    "HTTPConfig",
    "OAuthConfig",
    "PaperlessConfig",
    "ServerConfig",
    "apply_env_overrides",
    "load_config",
    "load_config_from_file",
]
