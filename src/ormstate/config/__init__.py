"""Application configuration helpers."""

from __future__ import annotations

from .engine import EngineConfig, get_engine_config, parse_log_level
from .env import optional_env_var
from .errors import ConfigurationError
from .logging import configure_logging

__all__ = [
    "ConfigurationError",
    "EngineConfig",
    "configure_logging",
    "get_engine_config",
    "optional_env_var",
    "parse_log_level",
]
