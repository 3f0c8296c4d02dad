"""Runtime settings, resolved from arguments and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_CONFIG_DIR = Path.home() / ".config" / "habittimer"

CONFIG_DIR_ENV = "HABITTIMER_HOME"
LOG_LEVEL_ENV = "HABITTIMER_LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    """Where habittimer keeps its files and how verbosely it logs."""

    config_dir: Path
    log_level: int = logging.INFO

    @property
    def log_dir(self) -> Path:
        return self.config_dir / "logs"

    @classmethod
    def from_env(cls, config_dir: Path | None = None) -> Settings:
        """Resolve settings: explicit *config_dir*, then ``$HABITTIMER_HOME``, then the default."""
        if config_dir is None:
            env_dir = os.environ.get(CONFIG_DIR_ENV)
            config_dir = Path(env_dir).expanduser() if env_dir else _DEFAULT_CONFIG_DIR
        level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO
        return cls(config_dir=config_dir, log_level=level)
