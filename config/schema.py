"""
MCP Gateway Configuration Schema

Defines the configuration structure for the gateway.
All configuration can be specified via gateway.yaml, environment variables
or command-line arguments.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_TOOL_MODULES = ["mcp_gateway.capabilities.echo:register"]


@dataclass
class PaperlessConfig:
    """The wrapped document API. base_url and token are required."""
    base_url: Optional[str] = None
    token: Optional[str] = None
    # Used only to build human-readable document links
    public_url: Optional[str] = None

    @property
    def resolved_public_url(self) -> str:
        return (self.public_url or self.base_url or "").rstrip("/")


@dataclass
class HTTPConfig:
    """Network mode settings"""
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    sse_keepalive_seconds: float = 30.0


@dataclass
class OAuthConfig:
    """
    Delegated OAuth2 settings.

    The gate is enabled when both client_id and client_secret are set.
    """
    client_id: str = ""
    client_secret: str = ""
    authorization_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    public_host: str = ""
    allowed_users: List[str] = field(default_factory=list)
    scopes: List[str] = field(default_factory=lambda: ["email"])
    verify_timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def missing_endpoints(self) -> List[str]:
        """Names of endpoint settings an enabled gate cannot work without."""
        required = {
            "authorization_url": self.authorization_url,
            "token_url": self.token_url,
            "userinfo_url": self.userinfo_url,
            "public_host": self.public_host,
        }
        return [name for name, value in required.items() if not value]


@dataclass
class ServerConfig:
    """Identity reported in the initialize handshake"""
    name: str = "paperless-ngx"
    version: str = "1.0.0"


@dataclass
class GatewayConfig:
    """
    Central configuration for the gateway.

    Example gateway.yaml:
    ```yaml
    paperless:
      base_url: "${PAPERLESS_URL}"
      token: "${PAPERLESS_API_KEY}"
      public_url: "https://paperless.example.com"

    http:
      enabled: true
      port: 3000

    oauth:
      client_id: "${MCP_CLIENT_ID:-}"
      client_secret: "${MCP_CLIENT_SECRET:-}"
      authorization_url: https://idp.example.com/authorize
      token_url: https://idp.example.com/token
      userinfo_url: https://idp.example.com/userinfo
      public_host: https://mcp.example.com
      allowed_users: [alice@example.com]

    tool_modules:
      - "mcp_gateway.capabilities.echo:register"
    ```
    """
    paperless: PaperlessConfig = field(default_factory=PaperlessConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Tool groups, as "module:function" registrars
    tool_modules: List[str] = field(default_factory=lambda: list(DEFAULT_TOOL_MODULES))

    log_file: Optional[str] = None
    debug: bool = False

    def missing_required(self) -> List[str]:
        """Names of required settings that are not set"""
        missing = []
        if not self.paperless.base_url:
            missing.append("paperless.base_url")
        if not self.paperless.token:
            missing.append("paperless.token")
        if self.http.enabled and self.oauth.enabled:
            missing.extend(f"oauth.{name}" for name in self.oauth.missing_endpoints())
        return missing

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Create GatewayConfig from dictionary (e.g., parsed YAML)"""
        paperless = data.get("paperless", {}) or {}
        http = data.get("http", {}) or {}
        oauth = data.get("oauth", {}) or {}
        server = data.get("server", {}) or {}

        allowed = oauth.get("allowed_users", [])
        if isinstance(allowed, str):
            allowed = allowed.split(",")

        return cls(
            paperless=PaperlessConfig(
                base_url=paperless.get("base_url"),
                token=paperless.get("token"),
                public_url=paperless.get("public_url"),
            ),
            http=HTTPConfig(
                enabled=_as_bool(http.get("enabled", False)),
                host=http.get("host", "0.0.0.0"),
                port=int(http.get("port", 3000)),
                sse_keepalive_seconds=float(http.get("sse_keepalive_seconds", 30.0)),
            ),
            oauth=OAuthConfig(
                client_id=oauth.get("client_id", "") or "",
                client_secret=oauth.get("client_secret", "") or "",
                authorization_url=oauth.get("authorization_url", "") or "",
                token_url=oauth.get("token_url", "") or "",
                userinfo_url=oauth.get("userinfo_url", "") or "",
                public_host=oauth.get("public_host", "") or "",
                allowed_users=[u.strip() for u in allowed if u and u.strip()],
                scopes=list(oauth.get("scopes", ["email"])),
                verify_timeout=float(oauth.get("verify_timeout", 10.0)),
            ),
            server=ServerConfig(
                name=server.get("name", "paperless-ngx"),
                version=str(server.get("version", "1.0.0")),
            ),
            tool_modules=list(data.get("tool_modules", DEFAULT_TOOL_MODULES)),
            log_file=data.get("log_file"),
            debug=_as_bool(data.get("debug", False)),
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
