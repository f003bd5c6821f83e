"""Configuration loading for goodturkey.

Loads settings from TOML config file with CLI override support.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import tomli

from goodturkey.clock import SystemClock, resolve_timezone
from goodturkey.errors import ConfigError

logger = logging.getLogger(__name__)


def get_config_search_paths() -> list[Path]:
    """Get list of paths to search for config file."""
    return [
        Path("goodturkey.toml"),  # Current directory
        Path.home() / ".config" / "goodturkey" / "goodturkey.toml",
        Path("/etc/goodturkey/goodturkey.toml"),
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


@dataclass
class Config:
    """Loaded configuration with all sections."""

    # Database
    db_path: Path = field(default_factory=lambda: Path.home() / ".local" / "share" / "goodturkey" / "sites.db")

    # Lock
    unlock_delay_hours: float = 6.0
    timezone: Optional[str] = None  # IANA name, None = system local

    # User
    user_id: str = "local"

    # Sync (client agent)
    sync_enabled: bool = False
    sync_api_base: str = "http://127.0.0.1:3000/api"
    sync_token: Optional[str] = None
    sync_interval_minutes: int = 15
    sync_max_staleness_hours: float = 24.0
    sync_timeout_seconds: float = 10.0
    cache_path: Path = field(default_factory=lambda: Path.home() / ".local" / "share" / "goodturkey" / "rules.json")

    # Logging
    log_level: str = "WARNING"

    @property
    def unlock_delay(self) -> timedelta:
        return timedelta(hours=self.unlock_delay_hours)

    @property
    def max_staleness(self) -> timedelta:
        return timedelta(hours=self.sync_max_staleness_hours)

    def make_clock(self) -> SystemClock:
        return SystemClock(resolve_timezone(self.timezone))

    def validate(self) -> None:
        """Reject values that would make enforcement meaningless.

        Raises:
            ConfigError: On the first invalid value
        """
        if self.unlock_delay_hours < 0:
            raise ConfigError(f"lock.unlock_delay_hours cannot be negative: {self.unlock_delay_hours}")
        if self.sync_interval_minutes <= 0:
            raise ConfigError(f"sync.interval_minutes must be positive: {self.sync_interval_minutes}")
        if self.sync_max_staleness_hours <= 0:
            raise ConfigError(f"sync.max_staleness_hours must be positive: {self.sync_max_staleness_hours}")
        if not self.user_id.strip():
            raise ConfigError("user.id cannot be empty")
        if logging.getLevelName(self.log_level.upper()) not in range(0, 60):
            raise ConfigError(f"Unknown logging level: {self.log_level}")
        resolve_timezone(self.timezone)


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from TOML file.

    Args:
        config_path: Explicit path to config file, or None to search

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If a loaded value is invalid
    """
    config = Config()

    # Find config file
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        logger.debug("No config file found, using defaults")
        return config

    logger.info(f"Loading config from {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config file: {e}")
        return config

    # Database section
    if "database" in data:
        db = data["database"]
        if "path" in db:
            config.db_path = Path(db["path"]).expanduser()

    # Lock section
    if "lock" in data:
        lock = data["lock"]
        if "unlock_delay_hours" in lock:
            config.unlock_delay_hours = float(lock["unlock_delay_hours"])
        if "timezone" in lock:
            config.timezone = lock["timezone"] or None

    # User section
    if "user" in data:
        user = data["user"]
        if "id" in user:
            config.user_id = str(user["id"])

    # Sync section
    if "sync" in data:
        sync = data["sync"]
        if "enabled" in sync:
            config.sync_enabled = bool(sync["enabled"])
        if "api_base" in sync:
            config.sync_api_base = sync["api_base"]
        if "token" in sync:
            config.sync_token = sync["token"] or None
        if "interval_minutes" in sync:
            config.sync_interval_minutes = int(sync["interval_minutes"])
        if "max_staleness_hours" in sync:
            config.sync_max_staleness_hours = float(sync["max_staleness_hours"])
        if "timeout_seconds" in sync:
            config.sync_timeout_seconds = float(sync["timeout_seconds"])
        if "cache_path" in sync:
            config.cache_path = Path(sync["cache_path"]).expanduser()

    # Logging section
    if "logging" in data:
        log = data["logging"]
        if "level" in log:
            config.log_level = str(log["level"]).upper()

    config.validate()
    return config


def merge_cli_options(config: Config, **cli_options: Any) -> Config:
    """Merge CLI options into config (CLI takes precedence).

    Args:
        config: Base config from file
        **cli_options: CLI option overrides (None values are ignored)

    Returns:
        Config with CLI overrides applied
    """
    # Map CLI option names to config attributes
    mappings = {
        "db": "db_path",
        "user": "user_id",
        "delay_hours": "unlock_delay_hours",
        "timezone": "timezone",
        "api_base": "sync_api_base",
        "token": "sync_token",
    }

    for cli_name, config_name in mappings.items():
        if cli_name in cli_options:
            value = cli_options[cli_name]
            # Only override if CLI value is meaningful
            if value is not None and value != "":
                if cli_name == "delay_hours":
                    value = float(value)
                elif cli_name == "db":
                    value = Path(value).expanduser()
                setattr(config, config_name, value)

    config.validate()
    return config
