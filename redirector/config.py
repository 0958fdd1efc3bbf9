"""
Configuration for the redirector.

Values come from defaults, then `REDIRECTOR_*` environment variables
(a `.env` file is honoured), then explicit overrides such as CLI flags.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from redirector.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "REDIRECTOR_"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_listen_address(addr: str) -> Tuple[str, int]:
    """Splits `host:port`; an empty host means all interfaces."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {addr!r} must look like host:port")
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"invalid port in listen address {addr!r}") from None
    if not 0 < port_number < 65536:
        raise ValueError(f"port {port_number} out of range")
    host = host.strip("[]") or "0.0.0.0"
    return host, port_number


class Settings(BaseModel):
    """Runtime settings."""

    base_url: str = Field(default="https://example.com", description="Base URL to redirect to")
    listen_addr: str = Field(default=":8080", description="Address and port to listen on")
    filter_words: str = Field(default="", description="Comma-separated list of words to filter")
    filter_count: int = Field(default=0, ge=0, description="Maximum number of filter words (0 for no limit)")
    data_dir: str = Field(default="data", description="Directory for the stats and paths files")
    stats_file: str = Field(default="stats.json", description="Stats file name inside data_dir")
    paths_file: str = Field(default="paths.json", description="Reserved paths file name inside data_dir")
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Optional log file")

    model_config = {"extra": "forbid"}

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("listen_addr")
    @classmethod
    def validate_listen_addr(cls, v: str) -> str:
        parse_listen_address(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Log level must be one of {VALID_LOG_LEVELS}")
        return v.upper()

    @property
    def host(self) -> str:
        return parse_listen_address(self.listen_addr)[0]

    @property
    def port(self) -> int:
        return parse_listen_address(self.listen_addr)[1]

    @property
    def stats_path(self) -> Path:
        return Path(self.data_dir) / self.stats_file

    @property
    def paths_path(self) -> Path:
        return Path(self.data_dir) / self.paths_file

    def keywords(self) -> List[str]:
        words = [w.strip() for w in self.filter_words.split(",")]
        words = [w for w in words if w]
        if self.filter_count > 0:
            words = words[:self.filter_count]
        return words


def _load_env_config() -> Dict[str, Any]:
    env_config = {}
    for name in Settings.model_fields:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value is not None:
            env_config[name] = value
    return env_config


def load_settings(overrides: Optional[Dict[str, Any]] = None, env_file: Optional[str] = None) -> Settings:
    """
    Builds validated settings.

    Args:
        overrides: Values that win over the environment; None entries are ignored
        env_file: Path to a .env file, defaults to ./.env when it exists

    Raises:
        ConfigurationError: if any value fails validation
    """
    if env_file and Path(env_file).exists():
        load_dotenv(env_file)
    elif Path(".env").exists():
        load_dotenv(".env")

    data = _load_env_config()
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


def setup_logging(settings: Settings) -> None:
    """Configures the root logger from settings."""
    log_level = getattr(logging, settings.log_level, logging.INFO)

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    simple_formatter = logging.Formatter(
        '%(asctime)s %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

    logger.debug("Logging setup completed")
