"""
Configuration management for AstroTune.

This module loads application settings (database location, import progress
cadence, web bind address, log level) from TOML files.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "astrotune.toml"


@dataclass
class AppConfig:
    """Loaded application configuration."""

    db_path: Path = Path("astrotune.db")
    progress_interval: int = 1
    web_host: str = "127.0.0.1"
    web_port: int = 8765
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.progress_interval < 1:
            raise ValueError(
                f"import.progress_interval must be >= 1, got {self.progress_interval}"
            )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Load configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. If None, uses the bundled defaults.

    Returns:
        Loaded AppConfig instance. Missing keys keep their defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.debug("Loading config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    library = _section(data, "library")
    import_ = _section(data, "import")
    web = _section(data, "web")
    logging_ = _section(data, "logging")

    defaults = AppConfig()

    db_path = Path(library.get("db_path", defaults.db_path))
    if not db_path.is_absolute() and config_path != DEFAULT_CONFIG_PATH:
        db_path = config_path.parent / db_path

    return AppConfig(
        db_path=db_path,
        progress_interval=int(import_.get("progress_interval", defaults.progress_interval)),
        web_host=str(web.get("host", defaults.web_host)),
        web_port=int(web.get("port", defaults.web_port)),
        log_level=str(logging_.get("level", defaults.log_level)).upper(),
    )


# Global singleton instance (lazy loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The AppConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> AppConfig:
    """
    Force reload of configuration, optionally from a different file.

    Returns:
        The newly loaded AppConfig instance.
    """
    global _config
    _config = load_config(config_path)
    return _config
