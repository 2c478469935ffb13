"""Configuration loading from YAML files with environment variable support.

Provider settings are resolved in three layers, later layers winning:

1. Built-in defaults per provider kind (PROVIDER_DEFAULTS).
2. The `providers` and `model_mapping` sections of the YAML config, after
   `${VAR}` / `$VAR` substitution.
3. Per-provider environment variables (OLLAMA_BASE_URL, OPENAI_API_KEY,
   MODEL_MAPPING_VLLM, ...).
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError
from .providers.base import DEFAULT_STREAM_IDLE_TIMEOUT, DEFAULT_TIMEOUT, ProviderSettings
from .providers.registry import ProviderKind

logger = logging.getLogger("claude-proxy")

# Default config path (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

DEFAULT_PROVIDER = ProviderKind.OLLAMA.value
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

PROVIDER_DEFAULTS: Mapping[ProviderKind, Mapping[str, str]] = {
    ProviderKind.OLLAMA: {"base_url": "http://localhost:11434/v1", "model": "llama2"},
    ProviderKind.OPENAI: {"base_url": "https://api.openai.com/v1", "model": "gpt-3.5-turbo"},
    ProviderKind.VLLM: {"base_url": "http://localhost:8000/v1", "model": "default"},
    ProviderKind.GLM: {"base_url": "https://api.z.ai/api/paas/v4", "model": "GLM-4.6"},
}

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to CLAUDE_PROXY_CONFIG, then
            configs/config_default.yaml in the project root. A missing
            default file yields an empty config (environment only); a
            missing explicit file is an error.
        env_path: .env file used for substitution. Defaults to a `.env`
            next to the config file.
        substitute_env: Whether to substitute environment variables.

    Returns:
        Parsed configuration dictionary.
    """
    explicit = path is not None or "CLAUDE_PROXY_CONFIG" in os.environ
    if path is None:
        path = os.getenv("CLAUDE_PROXY_CONFIG", DEFAULT_CONFIG_PATH)

    config_path = resolve_config_path(path)
    if not config_path.exists():
        if explicit:
            logger.error(f"Config file not found: {config_path}")
            raise ConfigurationError(f"Config file not found: {config_path}")
        logger.info(f"No config file at {config_path}, using environment only")
        return {}

    logger.info(f"Loading configuration from {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_config_path(env_path) if env_path else config_path.with_name(".env")
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    return data


def _substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Recursively replace ${VAR} and $VAR in string values.

    Unset variables are replaced with an empty string, so an unset
    `${OPENAI_API_KEY}` reads as a missing credential rather than a bogus one.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(f"Environment variable '{var_name}' is not set")
                return ""
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


def parse_model_mapping(raw: Optional[str]) -> dict[str, str]:
    """Parse "inbound:backend,inbound2:backend2" into a dict.

    Malformed pairs are skipped. Only the first ':' splits a pair, so
    backend names such as "llama3:8b" survive.
    """
    mapping: dict[str, str] = {}
    if not raw:
        return mapping
    for pair in raw.split(","):
        inbound, sep, backend = pair.partition(":")
        inbound, backend = inbound.strip(), backend.strip()
        if sep and inbound and backend:
            mapping[inbound] = backend
    return mapping


def _to_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid timeout value {value!r}")
        return default


def _section(config: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, Mapping):
            return {}
        cur = cur.get(key)
    return cur if isinstance(cur, Mapping) else {}


def build_provider_settings(
    config: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, ProviderSettings]:
    """Build settings for every known provider kind."""
    environ = os.environ if environ is None else environ
    settings: dict[str, ProviderSettings] = {}

    for kind in ProviderKind:
        defaults = PROVIDER_DEFAULTS[kind]
        section = _section(config, "providers", kind.value)
        prefix = kind.value.upper()

        base_url = (
            environ.get(f"{prefix}_BASE_URL")
            or section.get("base_url")
            or defaults["base_url"]
        )
        model = environ.get(f"{prefix}_MODEL") or section.get("model") or defaults["model"]
        api_key = environ.get(f"{prefix}_API_KEY") or section.get("api_key") or None

        model_mapping = {
            str(k): str(v) for k, v in _section(config, "model_mapping", kind.value).items()
        }
        model_mapping.update(parse_model_mapping(environ.get(f"MODEL_MAPPING_{prefix}")))

        headers = {str(k): str(v) for k, v in _section(section, "headers").items()}

        settings[kind.value] = ProviderSettings(
            name=kind.value,
            base_url=str(base_url),
            model=str(model),
            api_key=str(api_key) if api_key else None,
            model_mapping=model_mapping,
            timeout=_to_float(section.get("timeout"), DEFAULT_TIMEOUT),
            stream_idle_timeout=_to_float(
                section.get("stream_idle_timeout"), DEFAULT_STREAM_IDLE_TIMEOUT
            ),
            headers=headers,
        )

    return settings


def get_default_provider(
    config: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> str:
    environ = os.environ if environ is None else environ
    value = environ.get("DEFAULT_PROVIDER") or _section(config, "proxy_settings").get(
        "default_provider"
    )
    return str(value or DEFAULT_PROVIDER).strip().lower()


def get_server_address(
    config: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> tuple[str, int]:
    """Host and port to bind; HOST/PORT environment variables win."""
    environ = os.environ if environ is None else environ
    server_cfg = _section(config, "proxy_settings", "server")
    host = environ.get("HOST") or server_cfg.get("host") or DEFAULT_HOST
    raw_port = environ.get("PORT") or server_cfg.get("port") or DEFAULT_PORT
    try:
        port = int(raw_port)
    except (TypeError, ValueError):
        logger.warning(f"Invalid port {raw_port!r}, falling back to {DEFAULT_PORT}")
        port = DEFAULT_PORT
    return str(host), port
