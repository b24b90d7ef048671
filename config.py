"""Config management for hevy-ha-mcp-server.

Values come from an optional JSON file, overridden by environment variables.
"""
import json
import os
from pathlib import Path
from typing import Optional


CONFIG_DIR = Path.home() / ".hevy-ha-mcp-server"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_ALLOWED_REDIRECT_ORIGINS = ["https://claude.ai", "https://claude.com"]
DEFAULT_PORT = 3000

# config key -> environment variable
ENV_OVERRIDES = {
    "server_url": "SERVER_URL",
    "auth_server_url": "AUTH_SERVER_URL",
    "allowed_redirect_origins": "OAUTH_ALLOWED_REDIRECT_ORIGINS",
    "host": "MCP_HOST",
    "port": "MCP_PORT",
    "enable_oauth": "ENABLE_OAUTH",
    "log_level": "LOG_LEVEL",
    "service_name": "SERVICE_NAME",
    "supabase_url": "SUPABASE_URL",
    "supabase_anon_key": "SUPABASE_ANON_KEY",
}


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def server_url(self) -> str:
        return (self.data.get("server_url") or DEFAULT_SERVER_URL).rstrip("/")

    @property
    def auth_server_url(self) -> str:
        """Authorization server advertised to clients; this server by default."""
        url = self.data.get("auth_server_url")
        return url.rstrip("/") if url else self.server_url

    @property
    def allowed_redirect_origins(self) -> list[str]:
        origins = self.data.get("allowed_redirect_origins")
        if not origins:
            return list(DEFAULT_ALLOWED_REDIRECT_ORIGINS)
        if isinstance(origins, str):
            origins = origins.split(",")
        return [origin.strip().rstrip("/") for origin in origins if origin.strip()]

    @property
    def host(self) -> str:
        return self.data.get("host") or "0.0.0.0"

    @property
    def port(self) -> int:
        try:
            return int(self.data.get("port", DEFAULT_PORT))
        except (TypeError, ValueError):
            return DEFAULT_PORT

    @property
    def enable_oauth(self) -> bool:
        value = self.data.get("enable_oauth", True)
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)

    @property
    def log_level(self) -> str:
        return (self.data.get("log_level") or "INFO").upper()

    @property
    def service_name(self) -> str:
        return self.data.get("service_name") or "hevy-ha-mcp-server"

    @property
    def supabase_url(self) -> Optional[str]:
        return self.data.get("supabase_url")

    @property
    def supabase_anon_key(self) -> Optional[str]:
        return self.data.get("supabase_anon_key")

    @property
    def protected_resource_metadata_url(self) -> str:
        return f"{self.server_url}/.well-known/oauth-protected-resource"


def load_config(config_file: Path = None) -> Config:
    """Load config from file, then apply environment overrides."""
    config_file = config_file or CONFIG_FILE
    data = {}

    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data = loaded
        except (json.JSONDecodeError, IOError):
            data = {}

    for key, env_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value

    return Config(data)
