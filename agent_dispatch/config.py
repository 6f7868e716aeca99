"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. Explicit path (``--config`` CLI flag or ``AGENT_DISPATCH_CONFIG``)
2. ./agent-dispatch.yaml (working directory)
3. ~/.agent-dispatch/config.yaml (user home)

Environment variables override YAML: AGENT_DISPATCH_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.

Every service receives the resulting DispatchConfig explicitly; nothing in
the engine reads credentials or feature flags from module globals.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "AGENT_DISPATCH_"
CONFIG_PATH_ENV = "AGENT_DISPATCH_CONFIG"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class HostDatabaseConfig(BaseModel):
    """Connection settings for the per-tenant Chatwoot mirror database.

    The host name is tenant-specific and comes from the ``chatwoot_db_host``
    account parameter; everything else is shared across tenants.
    """

    driver: str = "postgresql+psycopg"
    port: int = 5432
    name: str = "chatwoot"
    user: str = "postgres"
    password: str = ""
    pool_size: int = 2
    connect_timeout_seconds: int = 10


class HttpConfig(BaseModel):
    """Timeout and retry policy for Chatwoot REST calls."""

    timeout_seconds: float = 10.0
    max_retries: int = 3
    base_delay_seconds: float = 0.5

    @field_validator("timeout_seconds", "max_retries", "base_delay_seconds")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value


class AssignmentConfig(BaseModel):
    """Knobs for the primary assignment flow."""

    default_agent_id: int = 1
    default_max_assignment_limit: int = 7
    seller_role_id: int = 3
    supervisor_role_id: int = 4
    # When False this engine always takes over, whatever the inbox says.
    honor_host_auto_assignment: bool = False
    lease_enabled: bool = False
    lease_ttl_seconds: float = 30.0
    lease_wait_seconds: float = 5.0
    lease_poll_seconds: float = 0.1


class ReclamationConfig(BaseModel):
    """Knobs for the inactive-conversation sweep."""

    default_hours: int = 72
    batch_limit: int = 100
    reclaimed_status: int = 1
    parameter_timeout_seconds: float = 5.0
    tenant_timeout_seconds: float = 60.0
    max_concurrency: int = 4

    @field_validator("max_concurrency", "batch_limit", "default_hours")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value


class ServerConfig(BaseModel):
    """HTTP trigger server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class DispatchConfig(BaseModel):
    """Top-level configuration for the assignment engine."""

    host_db: HostDatabaseConfig = Field(default_factory=HostDatabaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    reclamation: ReclamationConfig = Field(default_factory=ReclamationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    env_path = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    candidates = [
        Path.cwd() / "agent-dispatch.yaml",
        Path.cwd() / "agent-dispatch.yml",
        Path.home() / ".agent-dispatch" / "config.yaml",
        Path.home() / ".agent-dispatch" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply AGENT_DISPATCH_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix so multi-word section names
    like ``host_db`` are handled correctly. For example,
    ``AGENT_DISPATCH_HOST_DB_PASSWORD`` maps to section ``host_db``,
    field ``password``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    known_sections = sorted(
        DispatchConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        section_data = data.setdefault(matched_section, {})
        if not isinstance(section_data, dict):
            continue
        # Pydantic coerces numeric strings; booleans need normalising.
        if value.lower() in ("true", "false"):
            section_data[matched_field] = value.lower() == "true"
        else:
            section_data[matched_field] = value
    return data


def load_config(config_path: str | None = None) -> DispatchConfig:
    """Load configuration from YAML file with env var resolution.

    Unlike a missing explicit path, a missing default file is not an error:
    the engine runs on defaults plus env overrides.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations.

    Returns:
        Parsed and validated DispatchConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
    """
    raw_data: dict[str, Any] = {}
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return DispatchConfig(**data)
