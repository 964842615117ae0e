"""
Test Configuration

YAML loading, ${VAR} interpolation, environment overrides and required
settings.
"""

import pytest

from config import GatewayConfig, apply_env_overrides, load_config, load_config_from_file
from config.loader import interpolate_env_vars


class TestInterpolation:
    """Tests for ${VAR} and ${VAR:-default}"""

    def test_set_variable(self):
        assert interpolate_env_vars("${HOST}/api", {"HOST": "http://p"}) == "http://p/api"

    def test_default_used_when_unset(self):
        assert interpolate_env_vars("${PORT:-3000}", {}) == "3000"
        assert interpolate_env_vars("${EMPTY:-}", {}) == ""

    def test_required_variable_missing(self):
        with pytest.raises(KeyError):
            interpolate_env_vars("${PAPERLESS_API_KEY}", {})

    def test_nested_structures(self):
        value = {"a": ["${X}", {"b": "${Y:-y}"}], "n": 5}

        assert interpolate_env_vars(value, {"X": "x"}) == {"a": ["x", {"b": "y"}], "n": 5}


class TestEnvOverrides:
    """Tests for the well-known environment variables"""

    def test_paperless_and_oauth(self):
        config = apply_env_overrides(GatewayConfig(), {
            "PAPERLESS_URL": "http://paperless:8000",
            "PAPERLESS_API_KEY": "abc",
            "MCP_CLIENT_ID": "cid",
            "MCP_CLIENT_SECRET": "sec",
            "MCP_OAUTH_URL": "https://idp/authorize",
            "MCP_OAUTH_TOKEN_URL": "https://idp/token",
            "MCP_PUBLIC_HOST": "https://mcp.example.com",
        })

        assert config.paperless.base_url == "http://paperless:8000"
        assert config.paperless.token == "abc"
        assert config.oauth.enabled
        assert config.oauth.authorization_url == "https://idp/authorize"
        assert config.oauth.public_host == "https://mcp.example.com"

    def test_allowed_users_list(self):
        config = apply_env_overrides(GatewayConfig(), {"MCP_ALLOWED_USERS": "a@x.com, ,b@x.com,"})

        assert config.oauth.allowed_users == ["a@x.com", "b@x.com"]

    def test_empty_values_ignored(self):
        config = GatewayConfig()
        config.paperless.base_url = "http://keep"

        apply_env_overrides(config, {"PAPERLESS_URL": ""})

        assert config.paperless.base_url == "http://keep"


class TestGatewayConfig:
    """Tests for the schema"""

    def test_defaults(self):
        config = GatewayConfig()

        assert config.http.port == 3000
        assert not config.http.enabled
        assert not config.oauth.enabled
        assert config.oauth.scopes == ["email"]
        assert config.server.name == "paperless-ngx"
        assert config.tool_modules == ["mcp_gateway.capabilities.echo:register"]

    def test_missing_required(self):
        assert GatewayConfig().missing_required() == ["paperless.base_url", "paperless.token"]

    def test_enabled_oauth_needs_endpoints_in_http_mode(self):
        config = GatewayConfig.from_dict({
            "paperless": {"base_url": "http://p", "token": "t"},
            "http": {"enabled": "true"},
            "oauth": {"client_id": "cid", "client_secret": "sec", "public_host": "https://mcp"},
        })

        assert config.missing_required() == [
            "oauth.authorization_url", "oauth.token_url", "oauth.userinfo_url"
        ]

    def test_public_url_falls_back_to_base_url(self):
        config = GatewayConfig.from_dict({"paperless": {"base_url": "http://p:8000/"}})

        assert config.paperless.resolved_public_url == "http://p:8000"

        config.paperless.public_url = "https://docs.example.com"
        assert config.paperless.resolved_public_url == "https://docs.example.com"

    def test_allowed_users_from_string(self):
        config = GatewayConfig.from_dict({"oauth": {"allowed_users": "a@x.com,b@x.com"}})

        assert config.oauth.allowed_users == ["a@x.com", "b@x.com"]


class TestLoadConfig:
    """Tests for file loading and precedence"""

    def test_load_from_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_PAPERLESS_TOKEN", "from-env")
        path = tmp_path / "gateway.yaml"
        path.write_text(
            "paperless:\n"
            "  base_url: http://paperless:8000\n"
            "  token: ${TEST_PAPERLESS_TOKEN}\n"
            "http:\n"
            "  enabled: true\n"
            "  port: 8080\n"
            "debug: yes\n"
        )

        config = load_config_from_file(path)

        assert config.paperless.token == "from-env"
        assert config.http.enabled
        assert config.http.port == 8080
        assert config.debug

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    def test_env_beats_file(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("paperless:\n  base_url: http://from-file\n  token: t\n")

        config = load_config(path, environ={"PAPERLESS_URL": "http://from-env"})

        assert config.paperless.base_url == "http://from-env"
        assert config.paperless.token == "t"

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = load_config(environ={})

        assert config.paperless.base_url is None
        assert config.http.port == 3000

    def test_discovers_file_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "gateway.yaml").write_text("http:\n  port: 4000\n")

        assert load_config(environ={}).http.port == 4000
