"""Config module: loading YAML configuration with env overrides."""

from evidence_engine.core.config.loader import (
    get_config,
    get_sync_config,
    get_worker_config,
    reload_config,
)

__all__ = [
    "get_config",
    "get_sync_config",
    "get_worker_config",
    "reload_config",
]
