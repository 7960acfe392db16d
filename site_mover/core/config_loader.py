"""Configuration management for Site Mover.

The inventory file (``config/hosts.yml`` by default) declares the hosts Site
Mover may reach over SSH and, for the in-memory platform, the instances and
services that live on them. Instance entries may carry their ``.env`` text
inline under an ``env`` key; only the in-memory platform serves it, the server
reads ``.env`` from the host.
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ..models.host import CronJob, Database, DatabaseUser, Host, Site, Worker

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = "config/hosts.yml"

# Only these variables may be expanded inside the YAML file
ALLOWED_ENV_VARS = {
    "HOME",
    "USER",
    "XDG_CONFIG_HOME",
    "XDG_DATA_HOME",
    "SITE_MOVER_CONFIG",
    "SITE_MOVER_SSH_KEY",
    "SITE_MOVER_SSH_USER",
    "FASTMCP_HOST",
    "FASTMCP_PORT",
    "LOG_LEVEL",
}


class ServerConfig(BaseModel):
    """MCP server configuration."""

    host: str = Field(default="127.0.0.1", alias="FASTMCP_HOST")
    port: int = Field(default=8000, alias="FASTMCP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"populate_by_name": True}


class SiteMoverConfig(BaseSettings):
    """Host inventory plus server configuration."""

    hosts: list[Host] = Field(default_factory=list)
    instances: list[Site] = Field(default_factory=list)
    environments: dict[int, str] = Field(default_factory=dict)
    databases: list[Database] = Field(default_factory=list)
    database_users: list[DatabaseUser] = Field(default_factory=list)
    cron_jobs: list[CronJob] = Field(default_factory=list)
    workers: list[Worker] = Field(default_factory=list)
    server: ServerConfig = Field(default_factory=ServerConfig)
    config_file: str = Field(default=DEFAULT_CONFIG_FILE, alias="SITE_MOVER_CONFIG")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def load_config(config_path: str | None = None) -> SiteMoverConfig:
    """Load configuration from the YAML inventory (synchronous interface).

    Raises:
        RuntimeError: If called while an event loop is running.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_config_async(config_path))
    raise RuntimeError(
        "load_config() cannot be called from within an async context. "
        "Use 'await load_config_async()' instead."
    )


async def load_config_async(config_path: str | None = None) -> SiteMoverConfig:
    """Load configuration from ``.env``, the YAML inventory and env overrides."""
    load_dotenv()

    config = SiteMoverConfig()

    path = Path(config_path or os.getenv("SITE_MOVER_CONFIG", DEFAULT_CONFIG_FILE))
    if path.exists():
        yaml_config = await _load_yaml_config(path)
        _apply_inventory(config, yaml_config)
        _apply_server_config(config, yaml_config)
    else:
        logger.warning("Inventory file not found, starting with an empty inventory", path=str(path))

    config.config_file = str(path)
    _apply_env_overrides(config)

    logger.info(
        "Configuration loaded",
        path=str(path),
        hosts=len(config.hosts),
        instances=len(config.instances),
    )
    return config


def _apply_inventory(config: SiteMoverConfig, yaml_config: dict[str, Any]) -> None:
    """Apply hosts, instances and service inventory from YAML data."""
    config.hosts = [Host(**data) for data in yaml_config.get("hosts") or []]

    for data in yaml_config.get("instances") or []:
        data = dict(data)
        env_text = data.pop("env", None)
        site = Site(**data)
        config.instances.append(site)
        if env_text:
            config.environments[site.id] = env_text

    config.databases = [Database(**data) for data in yaml_config.get("databases") or []]
    config.database_users = [
        DatabaseUser(**data) for data in yaml_config.get("database_users") or []
    ]
    config.cron_jobs = [CronJob(**data) for data in yaml_config.get("cron_jobs") or []]
    config.workers = [Worker(**data) for data in yaml_config.get("workers") or []]


def _apply_server_config(config: SiteMoverConfig, yaml_config: dict[str, Any]) -> None:
    """Apply server configuration from YAML data."""
    for key, value in (yaml_config.get("server") or {}).items():
        if hasattr(config.server, key):
            setattr(config.server, key, value)


def _apply_env_overrides(config: SiteMoverConfig) -> None:
    """Apply environment variable overrides."""
    if host := os.getenv("FASTMCP_HOST"):
        config.server.host = host
    if port_env := os.getenv("FASTMCP_PORT"):
        config.server.port = int(port_env)
    if log_level := os.getenv("LOG_LEVEL"):
        config.server.log_level = log_level


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    try:
        content = await asyncio.to_thread(config_path.read_text)
        content = _expand_yaml_config(content)
        loaded = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e

    if not isinstance(loaded, dict):
        return {}
    return loaded


def _expand_yaml_config(content: str) -> str:
    """Expand ``${VAR}`` and ``$VAR`` references that are on the allowlist."""

    def replace_if_allowed(match: re.Match) -> str:
        var_name = match.group(1)
        original_pattern = match.group(0)

        if var_name in ALLOWED_ENV_VARS:
            return os.getenv(var_name, original_pattern)

        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
        )
        return original_pattern

    content = re.sub(r"\$\{([^}]+)\}", replace_if_allowed, content)
    content = re.sub(r"\$([A-Za-z_][A-Za-z0-9_]*)", replace_if_allowed, content)
    return content
