"""
Configuration management and loading.

Handles service settings and organization settings files.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_BASE_URL = "https://api.anthropic.com/v1/"
DEFAULT_API_KEY_ENV = "ANTHROPIC_API_KEY"
DEFAULT_REQUEST_TIMEOUT_S = 30.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_S = 1.0


@dataclass(frozen=True)
class ServiceConfig:
    """Settings for the datastore and the completion service."""
    db_path: str = "style_guard.db"
    base_url: str = DEFAULT_BASE_URL
    api_key_env: str = DEFAULT_API_KEY_ENV
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_s: float = DEFAULT_RETRY_DELAY_S

    def __post_init__(self):
        """Validate service settings."""
        if not self.db_path:
            raise ValueError("db_path cannot be empty")
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if not self.api_key_env:
            raise ValueError("api_key_env cannot be empty")
        if self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_s < 0:
            raise ValueError("retry_delay_s must be >= 0")


_NUMERIC_KEYS = {
    'request_timeout_s': float,
    'max_retries': int,
    'retry_delay_s': float,
}
_STRING_KEYS = {'db_path', 'base_url', 'api_key_env'}


def _read_yaml(path: str) -> Any:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")


def load_service_config(path: Optional[str] = None) -> ServiceConfig:
    """Load and validate service configuration from a YAML file.

    Strict validation: unknown keys and wrongly-typed values are errors, so a
    typo never silently falls back to a default timeout or retry count.

    Args:
        path: Path to YAML configuration file; defaults are used when None

    Returns:
        Validated ServiceConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return ServiceConfig()

    raw_config = _read_yaml(path)
    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_keys = _STRING_KEYS | set(_NUMERIC_KEYS)
    unknown_keys = set(raw_config.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key in _STRING_KEYS & set(raw_config):
        value = raw_config[key]
        if not isinstance(value, str):
            raise ValueError(f"'{key}' must be a string")
        values[key] = value

    for key, kind in _NUMERIC_KEYS.items():
        if key not in raw_config:
            continue
        value = raw_config[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' must be a number")
        if kind is int and not isinstance(value, int):
            raise ValueError(f"'{key}' must be an integer")
        values[key] = kind(value)

    return ServiceConfig(**values)


def load_settings_blob(path: str) -> Dict[str, Any]:
    """Load an organization settings blob from a YAML file.

    Only the outer shape is checked here; field-level defaulting is left to
    style resolution, which never fails.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the document is not a mapping
    """
    raw = _read_yaml(path)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("Settings file must contain a mapping")
    return raw
