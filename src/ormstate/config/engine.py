"""Engine configuration values."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from ormstate.domain.schema import DEFAULT_ID_ATTRIBUTE

from .env import optional_env_var
from .errors import ConfigurationError

ID_ATTRIBUTE_ENV: Final[str] = "ORMSTATE_ID_ATTRIBUTE"
LOG_LEVEL_ENV: Final[str] = "ORMSTATE_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Holds engine-wide defaults."""

    default_id_attribute: str = DEFAULT_ID_ATTRIBUTE
    log_level: int = logging.INFO


def parse_log_level(value: str) -> int:
    """Accept a level name (``debug``) or number (``10``)."""

    if value.isdigit():
        return int(value)
    level = logging.getLevelNamesMapping().get(value.upper())
    if level is None:
        raise ConfigurationError(f"Invalid log level: {value}")
    return level


def get_engine_config() -> EngineConfig:
    id_attribute = optional_env_var(ID_ATTRIBUTE_ENV) or DEFAULT_ID_ATTRIBUTE
    raw_level = optional_env_var(LOG_LEVEL_ENV)
    log_level = parse_log_level(raw_level) if raw_level else logging.INFO
    return EngineConfig(default_id_attribute=id_attribute, log_level=log_level)
