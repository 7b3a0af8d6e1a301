"""Configuration loading from YAML files with environment variable support."""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError
from .host.base import HostModel, ModelInfo
from .host.echo import EchoHostModel
from .host.openai_upstream import DEFAULT_TIMEOUT, OpenAIUpstreamHostModel

logger = logging.getLogger("lmbridge")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 4000},
    "host_model": {"type": "echo"},
    "models": {},
    "logging": {"level": "INFO"},
}

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Resolve the env file path for a config file (a sibling ``.env`` by default)."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to LMBRIDGE_CONFIG,
              or configs/config.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration merged over the built-in defaults.

    Raises:
        ConfigurationError: If an explicitly requested file is missing or
            the file is not a YAML mapping.
    """
    explicit = path is not None or os.getenv("LMBRIDGE_CONFIG") is not None
    if path is None:
        path = os.getenv("LMBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)

    if not config_path.exists():
        if explicit:
            logger.error(f"Config file not found: {config_path}")
            raise ConfigurationError(f"Config file not found: {config_path}")
        logger.info(f"No config file at {config_path}, using built-in defaults")
        return _apply_env_overrides(copy.deepcopy(DEFAULT_CONFIG))

    logger.info(f"Loading configuration from {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}", cause=exc) from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return _apply_env_overrides(_merge(DEFAULT_CONFIG, data))


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply LMBRIDGE_HOST / LMBRIDGE_PORT on top of the file values."""
    server = config.setdefault("server", {})
    host = os.getenv("LMBRIDGE_HOST")
    if host:
        server["host"] = host
    port = os.getenv("LMBRIDGE_PORT")
    if port:
        try:
            server["port"] = int(port)
        except ValueError:
            logger.warning(f"Ignoring invalid LMBRIDGE_PORT value: {port!r}")
    return config


def _substitute_env_vars(
    obj: Any, env_values: Optional[Mapping[str, str]] = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports two formats:
    - ${VAR_NAME}: Braced format
    - $VAR_NAME: Simple format

    Values from the .env file win over the process environment. Unset
    variables keep their literal placeholder.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"The literal placeholder will be used."
                )
                return match.group(0)
            return value

        return _ENV_VAR_PATTERN.sub(replace_var, obj)
    return obj


def _parse_models(entries: Any, default_vendor: str) -> list[ModelInfo]:
    models = []
    for entry in entries or []:
        if isinstance(entry, str):
            models.append(ModelInfo(id=entry, display_name=entry, vendor=default_vendor))
        elif isinstance(entry, Mapping) and entry.get("id"):
            models.append(ModelInfo(
                id=str(entry["id"]),
                display_name=str(entry.get("display_name") or entry["id"]),
                vendor=str(entry.get("vendor") or default_vendor),
                family=str(entry.get("family") or ""),
                max_input_tokens=entry.get("max_input_tokens"),
            ))
        else:
            raise ConfigurationError(f"Invalid model entry in host_model.models: {entry!r}")
    return models


def build_host_model(config: Mapping[str, Any]) -> HostModel:
    """Create the host model backend described by ``host_model``.

    Raises:
        ConfigurationError: For an unknown backend type or a missing api_base.
    """
    host_cfg = config.get("host_model") or {}
    host_type = str(host_cfg.get("type") or "echo").lower()

    if host_type == "echo":
        models = _parse_models(host_cfg.get("models"), "lmbridge")
        logger.info("Using echo host model")
        return EchoHostModel(models or None)

    if host_type == "openai":
        api_base = host_cfg.get("api_base")
        if not api_base:
            raise ConfigurationError("host_model.api_base is required for the openai host model")
        try:
            timeout = float(host_cfg.get("timeout") or DEFAULT_TIMEOUT)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid host_model.timeout: {host_cfg.get('timeout')!r}") from exc
        logger.info(f"Using OpenAI-compatible host model at {api_base}")
        return OpenAIUpstreamHostModel(
            api_base,
            host_cfg.get("api_key") or None,
            models=_parse_models(host_cfg.get("models"), "openai") or None,
            timeout=timeout,
        )

    raise ConfigurationError(f"Unknown host_model.type: {host_type}")
