"""
MCP Gateway Configuration Loader

Loads configuration from YAML with environment variable interpolation,
then applies the well-known environment variables on top.

Environment Variable Interpolation:
- ${VAR_NAME} - Required variable, raises error if not set
- ${VAR_NAME:-default} - Optional variable with default value

Environment overrides (take precedence over the file):
    PAPERLESS_URL, PAPERLESS_API_KEY, PAPERLESS_PUBLIC_URL,
    MCP_CLIENT_ID, MCP_CLIENT_SECRET, MCP_OAUTH_URL, MCP_OAUTH_TOKEN_URL,
    MCP_OAUTH_USERINFO_URL, MCP_PUBLIC_HOST, MCP_ALLOWED_USERS
"""

import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Union
import logging

import yaml

from .schema import GatewayConfig

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

CONFIG_FILENAME = "gateway.yaml"

# environment variable -> (section, key)
ENV_OVERRIDES = {
    "PAPERLESS_URL": ("paperless", "base_url"),
    "PAPERLESS_API_KEY": ("paperless", "token"),
    "PAPERLESS_PUBLIC_URL": ("paperless", "public_url"),
    "MCP_CLIENT_ID": ("oauth", "client_id"),
    "MCP_CLIENT_SECRET": ("oauth", "client_secret"),
    "MCP_OAUTH_URL": ("oauth", "authorization_url"),
    "MCP_OAUTH_TOKEN_URL": ("oauth", "token_url"),
    "MCP_OAUTH_USERINFO_URL": ("oauth", "userinfo_url"),
    "MCP_PUBLIC_HOST": ("oauth", "public_host"),
}


def interpolate_env_vars(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """
    Recursively interpolate ${VAR} and ${VAR:-default} in configuration values.

    Raises:
        KeyError: If a variable without default is not set
    """
    environ = os.environ if environ is None else environ

    if isinstance(value, str):
        def replace(match):
            var_name, default_value = match.group(1), match.group(2)
            if var_name in environ:
                return environ[var_name]
            if default_value is not None:
                return default_value
            raise KeyError(
                f"Environment variable '{var_name}' is required but not set. "
                f"Set it or provide a default: ${{{var_name}:-default}}"
            )
        return ENV_VAR_PATTERN.sub(replace, value)

    if isinstance(value, dict):
        return {k: interpolate_env_vars(v, environ) for k, v in value.items()}

    if isinstance(value, list):
        return [interpolate_env_vars(item, environ) for item in value]

    return value


def apply_env_overrides(config: GatewayConfig, environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Overlay the well-known environment variables onto a config."""
    environ = os.environ if environ is None else environ

    for var_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var_name)
        if value:
            setattr(getattr(config, section), key, value)

    allowed = environ.get("MCP_ALLOWED_USERS")
    if allowed:
        config.oauth.allowed_users = [u.strip() for u in allowed.split(",") if u.strip()]

    return config


def load_config_from_file(
    config_path: Union[str, Path],
    interpolate: bool = True
) -> GatewayConfig:
    """
    Load gateway configuration from a YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        KeyError: If required environment variable is not set
        yaml.YAMLError: If YAML is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    if interpolate:
        raw_config = interpolate_env_vars(raw_config)

    return GatewayConfig.from_dict(raw_config)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> GatewayConfig:
    """
    Load configuration: explicit file, else ./gateway.yaml, else defaults;
    environment overrides are applied in every case.
    """
    if config_path:
        config = load_config_from_file(config_path)
    else:
        default_path = Path.cwd() / CONFIG_FILENAME
        if default_path.exists():
            config = load_config_from_file(default_path)
        else:
            logger.debug(f"No {CONFIG_FILENAME} found, using default configuration")
            config = GatewayConfig()

    return apply_env_overrides(config, environ)
