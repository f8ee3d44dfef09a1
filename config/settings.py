"""Runtime settings.

Values come from the environment, optionally through a ``.env`` file.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from config.constants import (
    ENV_DATA_DIR,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_ORGANIZATION,
    ENV_USER,
    LOG_FILE_DEFAULT,
    LOG_FORMAT,
    SAVES_DIRECTORY,
)


@dataclass(frozen=True)
class Settings:
    """Application settings."""

    data_dir: str = SAVES_DIRECTORY
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    log_file: str = LOG_FILE_DEFAULT
    log_level: str = "DEBUG"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win)
        """
        if dotenv:
            load_dotenv()
        return cls(
            data_dir=os.getenv(ENV_DATA_DIR) or SAVES_DIRECTORY,
            user_id=os.getenv(ENV_USER) or None,
            organization_id=os.getenv(ENV_ORGANIZATION) or None,
            log_file=os.getenv(ENV_LOG_FILE) or LOG_FILE_DEFAULT,
            log_level=(os.getenv(ENV_LOG_LEVEL) or "DEBUG").upper(),
        )


def configure_logging(settings: Settings) -> None:
    """Configure the root logger once at application start."""
    level = getattr(logging, settings.log_level, logging.DEBUG)
    logging.basicConfig(
        filename=settings.log_file,
        level=level,
        format=LOG_FORMAT,
    )
