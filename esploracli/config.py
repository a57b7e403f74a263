"""
Config loading for esploracli.

Sources (in precedence order, highest first):
  1. Environment variables (ESPLORACLI_*; legacy ESPLORA_API for the base URL)
  2. ~/.esploracli/config.toml
  3. Built-in defaults

Only this module and cli.py look at the environment. Everything below the
CLI receives explicit values (base URL, RetryPolicy, page delay).

Usage:
    from esploracli.config import load_config
    config = load_config()
    print(config.api.base_url)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import toml

from esploracli.exceptions import ConfigInvalidError
from esploracli.fetchers.base import RetryPolicy

# Default config directory and file
DEFAULT_CONFIG_DIR = Path.home() / ".esploracli"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_API_URL = "https://blockstream.info/testnet/api"

# Environment variable → config key mapping, applied in order
# Format: (env_var_name, dotted_config_path, type_converter)
_ENV_OVERRIDES: list[tuple[str, str, type]] = [
    ("ESPLORA_API", "api.base_url", str),
    ("ESPLORACLI_API_URL", "api.base_url", str),
    ("ESPLORACLI_NETWORK", "api.network", str),
    ("ESPLORACLI_MAX_ATTEMPTS", "retry.max_attempts", int),
    ("ESPLORACLI_TIMEOUT_MS", "retry.timeout_ms", int),
    ("ESPLORACLI_BACKOFF_BASE_MS", "retry.backoff_base_ms", int),
    ("ESPLORACLI_PAGE_DELAY_MS", "pager.page_delay_ms", int),
    ("ESPLORACLI_OUTPUT_FORMAT", "output.default_format", str),
]

VALID_FORMATS = {"json", "table", "csv"}
VALID_NETWORKS = {"testnet", "signet", "mainnet"}


@dataclass
class APIConfig:
    """Upstream Esplora endpoint."""

    base_url: str = DEFAULT_API_URL
    network: str = "testnet"        # testnet | signet | mainnet


@dataclass
class RetryConfig:
    """Per-request retry budget."""

    max_attempts: int = 3
    timeout_ms: int = 15_000
    backoff_base_ms: int = 200

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            timeout_ms=self.timeout_ms,
            backoff_base_ms=self.backoff_base_ms,
        )


@dataclass
class PagerConfig:
    """Block transaction pagination."""

    page_delay_ms: int = 50


@dataclass
class OutputConfig:
    """Output formatting defaults."""

    default_format: str = "json"    # json | table | csv
    color: bool = True


@dataclass
class EsploraConfig:
    """Full configuration object. Passed via Click context to all commands."""

    api: APIConfig = field(default_factory=APIConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    pager: PagerConfig = field(default_factory=PagerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(path: str | None = None) -> EsploraConfig:
    """
    Load configuration from TOML file + environment variable overrides.

    Args:
        path: Override config file path. If None, uses ESPLORACLI_CONFIG_PATH
              env var or default (~/.esploracli/config.toml).

    Returns:
        EsploraConfig with all values resolved and validated.

    Raises:
        ConfigInvalidError: Config file exists but is invalid TOML, or any
                            resolved value is invalid.
    """
    config = load_file_config(path)
    _apply_env_overrides(config)
    validate_config(config)

    return config


def load_file_config(path: str | None = None) -> EsploraConfig:
    """
    Load only what the config file says: no environment overrides, no
    validation. `config set` edits this so the rest of the file survives.

    Raises:
        ConfigInvalidError: invalid TOML, a section that is not a table, or a
                            value of the wrong type.
    """
    config_path = resolve_config_path(path)

    raw: dict = {}
    if config_path.exists():
        try:
            raw = toml.load(str(config_path))
        except toml.TomlDecodeError as e:
            raise ConfigInvalidError(f"Invalid TOML in {config_path}: {e}") from e

    return _dict_to_config(raw)


def save_config(config: EsploraConfig, path: str | None = None) -> Path:
    """
    Serialize EsploraConfig to TOML and write to disk.

    Returns the path where config was written.
    """
    config_path = resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "api": {
            "base_url": config.api.base_url,
            "network": config.api.network,
        },
        "retry": {
            "max_attempts": config.retry.max_attempts,
            "timeout_ms": config.retry.timeout_ms,
            "backoff_base_ms": config.retry.backoff_base_ms,
        },
        "pager": {
            "page_delay_ms": config.pager.page_delay_ms,
        },
        "output": {
            "default_format": config.output.default_format,
            "color": config.output.color,
        },
    }

    with open(config_path, "w") as f:
        toml.dump(data, f)

    return config_path


def get_default_config_path() -> Path:
    """Return the default config file path."""
    return DEFAULT_CONFIG_PATH


def validate_config(config: EsploraConfig) -> None:
    """
    Validate config values. Raises ConfigInvalidError on invalid values.

    Normalises api.base_url by stripping trailing slashes.
    """
    base_url = (config.api.base_url or "").strip().rstrip("/")
    if not base_url:
        raise ConfigInvalidError("api.base_url must not be empty")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigInvalidError(
            f"api.base_url must be an http(s) URL, got {base_url!r}"
        )
    if config.api.network not in VALID_NETWORKS:
        raise ConfigInvalidError(
            f"api.network must be one of {sorted(VALID_NETWORKS)}, "
            f"got {config.api.network!r}"
        )
    if config.api.network != "mainnet" and config.api.network not in base_url.lower():
        raise ConfigInvalidError(
            f"api.base_url must point to a {config.api.network} API "
            f"(contain {config.api.network!r}), got {base_url!r}",
            details={"base_url": base_url, "network": config.api.network},
        )
    config.api.base_url = base_url

    if config.retry.max_attempts < 1:
        raise ConfigInvalidError(
            f"retry.max_attempts must be >= 1, got {config.retry.max_attempts}"
        )
    if config.retry.timeout_ms <= 0:
        raise ConfigInvalidError(
            f"retry.timeout_ms must be positive, got {config.retry.timeout_ms}"
        )
    if config.retry.backoff_base_ms < 0:
        raise ConfigInvalidError(
            f"retry.backoff_base_ms must be non-negative, got {config.retry.backoff_base_ms}"
        )
    if config.pager.page_delay_ms < 0:
        raise ConfigInvalidError(
            f"pager.page_delay_ms must be non-negative, got {config.pager.page_delay_ms}"
        )
    if config.output.default_format not in VALID_FORMATS:
        raise ConfigInvalidError(
            f"output.default_format must be one of {sorted(VALID_FORMATS)}, "
            f"got {config.output.default_format!r}"
        )


def resolve_config_path(path: str | None = None) -> Path:
    """Explicit path, then ESPLORACLI_CONFIG_PATH, then the default."""
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get("ESPLORACLI_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _dict_to_config(raw: dict) -> EsploraConfig:
    """Build EsploraConfig from raw TOML dict, applying defaults for missing keys."""
    config = EsploraConfig()

    try:
        api = _section(raw, "api")
        config.api.base_url = str(api.get("base_url", DEFAULT_API_URL))
        config.api.network = str(api.get("network", "testnet"))

        retry = _section(raw, "retry")
        config.retry.max_attempts = int(retry.get("max_attempts", 3))
        config.retry.timeout_ms = int(retry.get("timeout_ms", 15_000))
        config.retry.backoff_base_ms = int(retry.get("backoff_base_ms", 200))

        pager = _section(raw, "pager")
        config.pager.page_delay_ms = int(pager.get("page_delay_ms", 50))

        output = _section(raw, "output")
        config.output.default_format = str(output.get("default_format", "json"))
        config.output.color = bool(output.get("color", True))
    except (ValueError, TypeError) as e:
        raise ConfigInvalidError(f"Invalid config value: {e}") from e

    return config


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        raise ConfigInvalidError(
            f"[{name}] must be a table, got {type(section).__name__}",
            details={"section": name},
        )
    return section


def _apply_env_overrides(config: EsploraConfig) -> None:
    """Apply environment variable overrides to a loaded config."""
    if os.environ.get("ESPLORACLI_NO_COLOR"):
        config.output.color = False

    for env_var, dotted_key, converter in _ENV_OVERRIDES:
        val = os.environ.get(env_var)
        if val is None:
            continue
        section, key = dotted_key.split(".", 1)
        section_obj = getattr(config, section)
        try:
            setattr(section_obj, key, converter(val))
        except (ValueError, TypeError) as e:
            raise ConfigInvalidError(
                f"Invalid value for {env_var}={val!r}: {e}"
            ) from e
