"""Configuration loading for the Gorgias MCP server."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

logger = logging.getLogger(__name__)

GORGIAS_HOST = "gorgias.com"

# Environment variable -> config field
ENV_VARS = {
    "GORGIAS_DOMAIN": "domain",
    "GORGIAS_USERNAME": "username",
    "GORGIAS_API_KEY": "api_key",
    "GORGIAS_TIMEOUT": "timeout_ms",
    "GORGIAS_RATE_LIMIT": "rate_limit",
    "GORGIAS_RETRY_ATTEMPTS": "retry_attempts",
    "GORGIAS_RETRY_DELAY": "retry_delay_ms",
    "GORGIAS_DEBUG": "debug",
}

# JSON config files use the camelCase keys of the original CLI config
FILE_KEYS = {
    "apiKey": "api_key",
    "timeout": "timeout_ms",
    "rateLimit": "rate_limit",
    "retryAttempts": "retry_attempts",
    "retryDelay": "retry_delay_ms",
}

REQUIRED_FIELDS = ("domain", "username", "api_key")


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid."""


class GorgiasConfig(BaseModel):
    """Connection settings for the Gorgias API.

    Durations are in milliseconds to match the GORGIAS_* environment variables.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    domain: str = Field(min_length=1, description="Tenant subdomain (the 'acme' in acme.gorgias.com)")
    username: str = Field(min_length=1, description="Gorgias account email")
    api_key: SecretStr = Field(description="Gorgias REST API key")
    timeout_ms: int = Field(default=30000, gt=0)
    rate_limit: int = Field(default=40, ge=1, description="Requests per rate limit window")
    rate_limit_window_ms: int = Field(default=20000, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    debug: bool = False

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        """Accept 'acme', 'acme.gorgias.com' or 'https://acme.gorgias.com/'."""
        v = v.lower().removeprefix("https://").removeprefix("http://").rstrip("/")
        v = v.removesuffix(f".{GORGIAS_HOST}")
        if not v or "/" in v or "." in v:
            raise ValueError("domain must be the Gorgias subdomain, e.g. 'acme' for acme.gorgias.com")
        return v

    @property
    def base_url(self) -> str:
        """REST API root for the tenant."""
        return f"https://{self.domain}.{GORGIAS_HOST}/api"

    @property
    def timeout(self) -> float:
        """Request timeout in seconds."""
        return self.timeout_ms / 1000


def _read_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, field in ENV_VARS.items():
        value = os.getenv(env_name)
        if value:
            values[field] = value
    return values


def _read_file(path: Path) -> dict[str, Any]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Error reading config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return {FILE_KEYS.get(key, key): value for key, value in raw.items()}


def load_config(config_file: str | Path | None = None) -> GorgiasConfig:
    """Build the configuration from the environment and an optional JSON file.

    Values from the file override environment variables. The file path comes
    from the argument or the GORGIAS_CONFIG_FILE environment variable.

    Raises:
        ConfigError: If required settings are missing or a value is invalid
    """
    values = _read_env()

    path = config_file or os.getenv("GORGIAS_CONFIG_FILE")
    if path:
        values.update(_read_file(Path(path)))
        logger.info("Loaded configuration file %s", path)

    missing = [field for field in REQUIRED_FIELDS if not values.get(field)]
    if missing:
        raise ConfigError(
            f"Missing required configuration: {', '.join(missing)}. "
            "Set GORGIAS_DOMAIN, GORGIAS_USERNAME and GORGIAS_API_KEY or provide a config file."
        )

    try:
        return GorgiasConfig(**values)
    except ValidationError as e:
        # Only report field names so secrets never leak into logs
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ConfigError(f"Invalid configuration for: {', '.join(fields)}") from None
