"""Configuration loader for keyring-bridge.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the KEYRING_BRIDGE_ prefix with double-underscore
nesting (e.g., KEYRING_BRIDGE_BRIDGE__RPC_TIMEOUT=5).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

# Longest JSON-RPC line either end of the socket will read.
MAX_LINE_BYTES = 16 * 1024 * 1024


class BridgeConfig(BaseModel):
    socket_path: str = "./data/keyring-bridge.sock"
    rpc_timeout: float | None = None
    max_line_bytes: int = MAX_LINE_BYTES


class BackendConfig(BaseModel):
    data_dir: str = "./data"
    default_store: str = "memory"
    sample_file: str = "/tmp/keyring-sample.enc"
    master_password: str = "keyring-bridge-default"


class LoggingConfig(BaseModel):
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "KEYRING_BRIDGE_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect KEYRING_BRIDGE_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: KEYRING_BRIDGE_BACKEND__DEFAULT_STORE=sample
    becomes  {"backend": {"default_store": "sample"}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
                elif value.lower() in ("null", "none"):
                    final_value = None
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` or the file does not exist,
        built-in defaults are used.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
