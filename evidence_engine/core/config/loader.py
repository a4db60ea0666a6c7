"""
Configuration loader.

Reads the YAML files in config/ and merges them into one dict.
Supports:
- example files overridden by local files (storage.example.yaml < storage.yaml)
- ${VAR} and ${VAR:-default} environment substitution
- CONFIG_DIR to point at another directory
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent.parent.parent.parent / "config"

# Later files win. Each "x.example.yaml" ships with the repo, "x.yaml" is local.
CONFIG_FILES = [
    "storage.example.yaml",
    "storage.yaml",
    "llm.example.yaml",
    "llm.yaml",
    "workers.example.yaml",
    "workers.yaml",
    "sync.example.yaml",
    "sync.yaml",
]


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively replace ${VAR} / ${VAR:-default} placeholders."""
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}

    if isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]

    if not isinstance(obj, str) or "${" not in obj:
        return obj

    start = obj.index("${")
    end = obj.find("}", start)
    if end == -1:
        return obj

    placeholder = obj[start + 2:end]
    var_name, _, default = placeholder.partition(":-")
    value = os.environ.get(var_name, default)

    # Whole-string placeholder keeps the raw value; embedded ones are spliced in
    if start == 0 and end == len(obj) - 1:
        return value
    return _substitute_env_vars(obj[:start] + value + obj[end + 1:])


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a single YAML file, returning {} when it is missing or empty."""
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return _substitute_env_vars(data)


def deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base, recursing into nested dicts."""
    result = base.copy()

    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


@lru_cache(maxsize=1)
def get_config(config_dir: str | None = None) -> dict[str, Any]:
    """Load and merge all config files."""
    if config_dir:
        base_dir = Path(config_dir)
    elif os.environ.get("CONFIG_DIR"):
        base_dir = Path(os.environ["CONFIG_DIR"])
    else:
        base_dir = CONFIG_DIR

    config: dict[str, Any] = {}
    for filename in CONFIG_FILES:
        file_path = base_dir / filename
        if file_path.exists():
            config = deep_merge(config, load_yaml(file_path))
            logger.debug(f"Loaded config: {filename}")

    return config


def reload_config() -> dict[str, Any]:
    """Force reload config (clears cache)."""
    get_config.cache_clear()
    return get_config()


def get_worker_config(worker_name: str) -> dict[str, Any]:
    """Get the workers.<worker_name> section."""
    return get_config().get("workers", {}).get(worker_name, {})


def get_sync_config(source: str) -> dict[str, Any]:
    """Get credentials and defaults for a sync source ("github" or "jira")."""
    return get_config().get("sync", {}).get(source, {})
