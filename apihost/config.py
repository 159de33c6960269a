"""apihost configuration management.

Configuration sources (in priority order):
1. Environment variables (APIHOST_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Runtimes an API resource may be created with
SUPPORTED_RUNTIMES = ("python", "nodejs", "go")


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # SQLite by default; switch to postgresql+asyncpg:// for multi-instance deployments
    url: str = "sqlite+aiosqlite:///./apihost.db"
    echo: bool = False


class SecurityConfig(BaseModel):
    """Security configuration."""

    # Signing secret for bearer access tokens. MUST be overridden in production.
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60 * 24

    # Issued API key format: {api_key_prefix}{64 hex chars}
    api_key_prefix: str = "apk_"

    # bcrypt work factor for user passwords
    bcrypt_rounds: int = 12


class StorageConfig(BaseModel):
    """Code artifact storage configuration."""

    # Host path; never exposed through the API
    root_path: str = "./data/artifacts"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    allowed_extensions: list[str] = Field(
        default_factory=lambda: [".py", ".js", ".go", ".ts"]
    )
    chunk_size: int = 64 * 1024


class SandboxConfig(BaseModel):
    """Execution backend configuration.

    The backend is a separate network service that runs submitted code
    with no host, tenant or network access and enforces a wall-clock limit.
    """

    executor_url: str = "http://localhost:8081"
    default_timeout_seconds: int = 30
    max_timeout_seconds: int = 120

    # Extra seconds granted to the HTTP wait on top of the run timeout,
    # so the backend can report its own timeout before we give up.
    grace_seconds: float = 5.0

    # Retries on connect-level network failure only
    network_retries: int = 1
    retry_delay_seconds: float = 0.2

    # Connection pool
    max_connections: int = 100
    max_keepalive_connections: int = 50
    connect_timeout: float = 5.0


class EndpointConfig(BaseModel):
    """Generated endpoint configuration."""

    base_path: str = "/invoke"


class Settings(BaseSettings):
    """apihost application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APIHOST_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. APIHOST_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/apihost/config.yaml
    """
    config_paths = [
        os.environ.get("APIHOST_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/apihost/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. YAML config file (if exists)
    2. Environment variables (override)
    3. Defaults
    """
    file_config = _load_config_file()
    return Settings(**file_config)
