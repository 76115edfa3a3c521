"""Configuration management for the Stylio session layer."""

import json
import logging
import os
import platform
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_log_dir

__all__ = [
    "Config",
    "setup_logging",
    "DEFAULT_API_URL",
    "DEFAULT_TIMEOUT",
    "KEYCHAIN_SERVICE_NAME",
]

logger = logging.getLogger(__name__)

APP_NAME = "Stylio"
APP_AUTHOR = "Stylio"

# API endpoints
DEFAULT_API_URL = "https://stylio-be.onrender.com/api"
API_URL_ENV = "STYLIO_API_URL"

# Network settings
DEFAULT_TIMEOUT = 15  # seconds, ceiling for every network call

KEYCHAIN_SERVICE_NAME = "Stylio"


def _default_push_platform() -> str:
    """Platform label sent with push-token registration."""
    return platform.system().lower() or "unknown"


@dataclass
class Config:
    """Session layer settings, persisted as JSON in the user config dir."""

    api_url: str = DEFAULT_API_URL
    timeout: int = DEFAULT_TIMEOUT
    keychain_service: str = KEYCHAIN_SERVICE_NAME
    push_platform: str = ""
    debug_mode: bool = False

    def __post_init__(self) -> None:
        if not self.push_platform:
            self.push_platform = _default_push_platform()

    @classmethod
    def get_config_dir(cls) -> Path:
        """Per-user directory holding config.json."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Per-user directory for stylio-session.log."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        return cls.get_config_dir() / "config.json"

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Config":
        """Load config from file, or return defaults.

        The ``STYLIO_API_URL`` environment variable overrides the stored
        API URL in either case.
        """
        config_file = config_file or cls.get_config_file()
        config = cls()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                config = cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")

        env_api_url = os.getenv(API_URL_ENV)
        if env_api_url:
            config.api_url = env_api_url
        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, config_file: Optional[Path] = None) -> None:
        """Write settings as JSON, creating the directory if needed."""
        config_file = config_file or self.get_config_file()
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Config saved to {config_file}")


def setup_logging(debug: bool = False, log_dir: Optional[Path] = None) -> None:
    """Log to stylio-session.log and stderr.

    Args:
        debug: Log at DEBUG instead of INFO
        log_dir: Directory for the log file (defaults to get_log_dir())
    """
    log_dir = log_dir or Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "stylio-session.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Quiet third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("keyring").setLevel(logging.WARNING)
