"""
Configuration for blobauth.

Settings come from up to three layers, later layers winning key by key:
a YAML or JSON file, ``BLOBAUTH_*`` environment variables and CLI
overrides. The merged result is validated with pydantic.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "BLOBAUTH_"

# Environment variable suffix -> (section, key)
ENV_VARS: Dict[str, Tuple[str, str]] = {
    "ACCOUNT_NAME": ("storage", "account_name"),
    "ACCOUNT_KEY": ("storage", "account_key"),
    "CONTAINER_NAME": ("storage", "container_name"),
    "SAS_TOKEN_EXPIRATION_DAYS": ("storage", "sas_token_expiration_days"),
    "ENDPOINT_SUFFIX": ("storage", "endpoint_suffix"),
    "API_VERSION": ("storage", "api_version"),
    "REQUEST_TIMEOUT": ("storage", "request_timeout"),
    "MAX_ERROR_BODY_BYTES": ("storage", "max_error_body_bytes"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "LOG_FILE": ("logging", "file"),
}

_FILE_LOADERS: Dict[str, Callable[[Any], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(BaseModel):
    """Logging settings passed to ``setup_logging``."""
    level: LogLevel = LogLevel.INFO
    format: Literal["text", "json"] = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = Field(default=5, ge=0)
    module_levels: Optional[Dict[str, str]] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class StorageConfig(BaseModel):
    """Storage account and upload settings."""
    account_name: str = Field(pattern=r"^[a-z0-9]{3,24}$")
    account_key: SecretStr = Field(description="Base64-encoded account key")
    container_name: str = Field(pattern=r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")
    sas_token_expiration_days: int = Field(
        default=0,
        ge=0,
        description="Validity of generated SAS URLs in days; 0 returns plain blob URLs",
    )
    endpoint_suffix: str = "core.windows.net"
    api_version: str = "2017-04-17"
    request_timeout: float = Field(default=30.0, gt=0.0)
    max_error_body_bytes: int = Field(default=1 << 20, gt=0)

    @field_validator("account_key")
    @classmethod
    def key_not_blank(cls, v: SecretStr) -> SecretStr:
        # Base64 validity is checked when signing so the error names the account.
        if not v.get_secret_value().strip():
            raise ValueError("account_key must not be empty")
        return v


class BlobAuthConfig(BaseModel):
    """Top-level configuration."""

    storage: StorageConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read a YAML or JSON configuration file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the suffix is not .yaml, .yml or .json, or the
            content cannot be parsed into a mapping
    """
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    loader = _FILE_LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ValueError(f"Unsupported config file format: {path.suffix}")

    with path.open("r", encoding="utf-8") as f:
        try:
            data = loader(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Cannot parse configuration file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def describe_validation_error(error: ValidationError) -> str:
    """
    Render a ValidationError without the offending input values.

    pydantic's own message echoes (a truncated repr of) the input, which
    may include the account key.
    """
    lines = [f"{error.error_count()} configuration error(s):"]
    for item in error.errors(include_url=False, include_context=False, include_input=False):
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"  {location}: {item['msg']}")
    return "\n".join(lines)


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect ``BLOBAUTH_*`` variables into a nested override dict."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for suffix, (section, key) in ENV_VARS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into dicts."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """
    Loads and holds the blobauth configuration.

    Precedence, highest first: CLI overrides, environment variables,
    configuration file, model defaults.
    """

    def __init__(self):
        self._config: Optional[BlobAuthConfig] = None
        self._config_file: Optional[Path] = None
        self._cli_overrides: Dict[str, Any] = {}

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> BlobAuthConfig:
        """
        Load, merge and validate configuration.

        Args:
            config_file: YAML or JSON file, optional
            cli_overrides: Nested overrides, e.g. {"storage": {"container_name": "x"}}

        Returns:
            The validated configuration

        Raises:
            ValidationError: If the merged configuration is invalid
            FileNotFoundError: If ``config_file`` does not exist
            ValueError: If ``config_file`` has an unsupported suffix or cannot be parsed
        """
        layers: List[Tuple[str, Dict[str, Any]]] = []
        if config_file:
            layers.append((f"file {config_file}", load_config_file(Path(config_file))))
        layers.append(("environment", env_overrides()))
        layers.append(("command line", cli_overrides or {}))

        merged: Dict[str, Any] = {}
        for source, values in layers:
            if values:
                merged = deep_merge(merged, values)
                logger.debug(f"Applied configuration from {source}")

        try:
            config = BlobAuthConfig(**merged)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {describe_validation_error(e)}")
            raise

        self._config = config
        self._config_file = Path(config_file) if config_file else None
        self._cli_overrides = dict(cli_overrides or {})
        # SecretStr dumps as "**********".
        logger.debug(f"Active configuration: {json.dumps(config.model_dump(mode='json'), indent=2)}")
        return config

    def get_config(self) -> BlobAuthConfig:
        """
        Return the loaded configuration.

        Raises:
            RuntimeError: If ``load`` has not been called
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> BlobAuthConfig:
        """Load again from the same file and CLI overrides, re-reading the environment."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file, cli_overrides=self._cli_overrides)
