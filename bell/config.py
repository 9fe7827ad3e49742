"""Configuration loading for the bell service (bell.yml)."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from . import CONFIG_NAMES, SCHEDULE_FILE, SOUNDS_DIR, WEB_DIST_DIR

# Environment variable that points at an explicit config file
CONFIG_ENV = "BELL_CONFIG"

DEFAULT_ADDR = ":8080"


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class LogSettings:
    """Log sink settings, mirrors the `log` section of bell.yml."""
    file: str = "bell.log"
    max_size: int = 10  # megabytes
    max_backups: int = 3
    max_age: int = 28  # days
    level: str = "WARNING"


@dataclass
class Settings:
    """Top-level service settings."""
    addr: str = DEFAULT_ADDR
    log: LogSettings = field(default_factory=LogSettings)
    schedule_file: Path = SCHEDULE_FILE
    sounds_dir: Path = SOUNDS_DIR
    web_dir: Path = WEB_DIST_DIR

    @property
    def host(self) -> str:
        return parse_addr(self.addr)[0]

    @property
    def port(self) -> int:
        return parse_addr(self.addr)[1]


def parse_addr(addr: str) -> tuple[str, int]:
    """
    Split a "host:port" bind address.

    An empty host (":8080") binds every interface.
    """
    host, sep, port = str(addr).rpartition(":")
    if not sep:
        raise ConfigError(f"Invalid bind address (expected host:port): {addr!r}")
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in bind address: {addr!r}") from None
    if not 0 <= port_num <= 65535:
        raise ConfigError(f"Port out of range in bind address: {addr!r}")
    return host or "0.0.0.0", port_num


def find_config_file(path: Optional[str] = None) -> Path:
    """Locate bell.yml: explicit path, then $BELL_CONFIG, then the working directory."""
    explicit = path or os.environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit)

    for name in CONFIG_NAMES:
        candidate = Path.cwd() / name
        if candidate.exists():
            return candidate

    raise ConfigError(f"Could not find {' or '.join(CONFIG_NAMES)} in {Path.cwd()}")


def _int_setting(section: dict, key: str, default: int) -> int:
    value = section.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Setting log.{key} must be an integer, got {value!r}") from None


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


def settings_from_dict(raw: dict, base_dir: Optional[Path] = None) -> Settings:
    """Build Settings from a parsed bell.yml mapping."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")

    app_section = _section(raw, "app")
    log_section = _section(raw, "log")
    path_section = _section(raw, "paths")

    defaults = LogSettings()
    log_settings = LogSettings(
        file=str(log_section.get("file", defaults.file)),
        max_size=_int_setting(log_section, "max-size", defaults.max_size),
        max_backups=_int_setting(log_section, "max-backups", defaults.max_backups),
        max_age=_int_setting(log_section, "max-age", defaults.max_age),
        level=str(log_section.get("level", defaults.level)).upper(),
    )

    root = Path(base_dir) if base_dir is not None else Path.cwd()

    def resolve(key: str, default: Path) -> Path:
        value = Path(path_section.get(key) or default)
        if not value.is_absolute():
            value = root / value
        return value.absolute()

    settings = Settings(
        addr=str(app_section.get("addr", DEFAULT_ADDR)),
        log=log_settings,
        schedule_file=resolve("schedule", SCHEDULE_FILE),
        sounds_dir=resolve("sounds", SOUNDS_DIR),
        web_dir=resolve("web", WEB_DIST_DIR),
    )
    # Fail at load time rather than when the server binds
    parse_addr(settings.addr)
    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate bell.yml."""
    config_path = find_config_file(path)

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Could not load {config_path} configuration file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path} configuration file: {e}") from e

    return settings_from_dict(raw, base_dir=config_path.parent)
