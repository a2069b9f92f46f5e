"""Config Loader - Loads the mock configuration and the OpenAPI document.

Config files are YAML (``.yaml``/``.yml``) or JSON, with ``${ENV_VAR}``
substitution applied before validation. The OpenAPI document is read from a
local file or fetched over HTTP(S).
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

import httpx
import yaml

from api_mock.models import MockConfig

DEFAULT_FETCH_TIMEOUT = 30.0
YAML_SUFFIXES = (".yaml", ".yml")
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when configuration loading fails."""


class SpecLoadError(Exception):
    """Raised when the OpenAPI document cannot be fetched or parsed."""


def load_mock_config(config_path: Path | None) -> MockConfig:
    """Load mock configuration from YAML or JSON. No path means the defaults."""
    if config_path is None:
        return MockConfig()

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix.lower() in YAML_SUFFIXES:
                raw_config = yaml.safe_load(f)
            else:
                raw_config = json.load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if raw_config is None:
        return MockConfig()
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return MockConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_spec(source: str, timeout: float = DEFAULT_FETCH_TIMEOUT) -> dict[str, Any]:
    """Load an OpenAPI document from a URL or a local path.

    Sources starting with ``http`` are fetched with httpx and parsed as JSON
    (or YAML if the URL ends in .yaml/.yml). Local files are parsed by suffix.

    Raises:
        SpecLoadError: If the document cannot be fetched, read, or parsed.
    """
    if source.startswith(("http://", "https://")):
        spec = _fetch_remote_spec(source, timeout)
    else:
        spec = _read_local_spec(Path(source))

    if not isinstance(spec, dict):
        raise SpecLoadError(f"OpenAPI document must be a mapping: {source}")
    return spec


def _fetch_remote_spec(url: str, timeout: float) -> Any:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise SpecLoadError(f"Failed to fetch OpenAPI document: {e}") from e

    try:
        if url.lower().split("?", 1)[0].endswith(YAML_SUFFIXES):
            return yaml.safe_load(response.text)
        return response.json()
    except (ValueError, yaml.YAMLError) as e:
        raise SpecLoadError(f"Failed to parse OpenAPI document: {e}") from e


def _read_local_spec(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in YAML_SUFFIXES:
                return yaml.safe_load(f)
            return json.load(f)
    except OSError as e:
        raise SpecLoadError(f"Failed to read OpenAPI document: {e}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise SpecLoadError(f"Failed to parse OpenAPI document: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Replace ``${ENV_VAR}`` references in every string of a parsed config tree."""
    if isinstance(data, dict):
        return {key: _substitute_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    if isinstance(data, str):
        return ENV_VAR_PATTERN.sub(_env_value, data)
    return data


def _env_value(match: re.Match[str]) -> str:
    name = match.group(1)
    value = os.environ.get(name)
    if value is None:
        raise ConfigError(f"Environment variable '{name}' is not set")
    return value
