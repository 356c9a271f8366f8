"""Bridge configuration.

Values are layered, later layers winning:

1. Field defaults
2. YAML file (``--config``), keys named like the fields
3. Environment variables (``WIREFLOW_*``)
4. Explicit overrides (CLI flags)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_PING_INTERVAL = 15.0

# field name -> environment variable
ENV_VARS = {
    "host": "WIREFLOW_WS_HOST",
    "port": "WIREFLOW_WS_PORT",
    "request_timeout": "WIREFLOW_REQUEST_TIMEOUT",
    "ping_interval": "WIREFLOW_PING_INTERVAL",
    "log_level": "WIREFLOW_LOG_LEVEL",
}


class BridgeConfig(BaseModel):
    """Settings for the editor bridge.

    Durations are in seconds.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    ping_interval: float = Field(default=DEFAULT_PING_INTERVAL, gt=0)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> dict[str, str]:
        """Collect settings present in the environment."""
        env = os.environ if environ is None else environ
        return {name: env[var] for name, var in ENV_VARS.items() if env.get(var)}

    @classmethod
    def from_file(cls, path: str | Path) -> dict[str, Any]:
        """Read settings from a YAML file.

        Raises:
            ValueError: If the file does not contain a mapping
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def load(
        cls,
        config_file: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> BridgeConfig:
        """Build the effective configuration from all layers.

        ``None`` overrides are ignored so unset CLI flags fall through.
        """
        values: dict[str, Any] = {}
        if config_file:
            values.update(cls.from_file(config_file))
            logger.debug(f"Loaded config file {config_file}")
        values.update(cls.from_env(environ))
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)
