"""Configuration for portreaper, read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from portreaper.discovery import STRATEGIES
from portreaper.reaper import validate_port

DEFAULT_PORT = 5000

ENV_PORT = "PORT_REAPER_PORT"
ENV_STRATEGY = "PORT_REAPER_STRATEGY"
ENV_TIMEOUT = "PORT_REAPER_TIMEOUT"


@dataclass(slots=True)
class ReaperConfig:
    """Settings for a reap run."""

    port: int = DEFAULT_PORT
    strategy: str = "auto"  # 'auto', 'netstat', 'lsof', 'psutil'
    timeout: float | None = None  # Seconds per OS call, None waits forever

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReaperConfig":
        """
        Build a config from PORT_REAPER_* variables.

        Unset or empty variables keep their defaults.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        config = cls()

        port_text = env.get(ENV_PORT, "").strip()
        if port_text:
            try:
                config.port = validate_port(int(port_text))
            except ValueError as e:
                raise ValueError(f"{ENV_PORT}: {e}") from e

        strategy = env.get(ENV_STRATEGY, "").strip().lower()
        if strategy:
            if strategy not in STRATEGIES:
                raise ValueError(f"{ENV_STRATEGY}: expected one of {', '.join(STRATEGIES)}, got {strategy!r}")
            config.strategy = strategy

        timeout_text = env.get(ENV_TIMEOUT, "").strip()
        if timeout_text:
            try:
                timeout = float(timeout_text)
            except ValueError as e:
                raise ValueError(f"{ENV_TIMEOUT}: not a number: {timeout_text!r}") from e
            if timeout <= 0:
                raise ValueError(f"{ENV_TIMEOUT}: must be positive, got {timeout}")
            config.timeout = timeout

        return config
