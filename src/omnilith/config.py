"""
Configuration for embedding the kernel.

Resolution order for the config file:
    1. Explicit path
    2. Environment variable OMNILITH_CONFIG
    3. omnilith.toml in the current directory
    4. Built-in defaults (no file needed)

OMNILITH_DB and OMNILITH_LOG_LEVEL override the file.
"""
from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .kernel.errors import ConfigError

STORAGE_BACKENDS = ("sqlite", "memory")
IDENTITY_GENERATORS = ("uuid", "sequential")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_CONFIG_FILE = "omnilith.toml"


@dataclass
class KernelConfig:
    storage_backend: str = "sqlite"
    storage_path: str = "omnilith.db"
    identity_generator: str = "uuid"
    enforce_surfacing: bool = True
    log_level: str = "INFO"
    source: Optional[str] = None  # file the values came from, if any

    def __post_init__(self) -> None:
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigError(
                f"Unknown storage backend: {self.storage_backend} (expected one of {', '.join(STORAGE_BACKENDS)})"
            )
        if self.identity_generator not in IDENTITY_GENERATORS:
            raise ConfigError(
                f"Unknown identity generator: {self.identity_generator} "
                f"(expected one of {', '.join(IDENTITY_GENERATORS)})"
            )
        if not isinstance(self.enforce_surfacing, bool):
            raise ConfigError("access.enforce_surfacing must be a boolean")
        if not isinstance(self.log_level, str) or not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")
        self.log_level = self.log_level.upper()


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _resolve_path(path: Union[str, Path, None]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = os.environ.get("OMNILITH_CONFIG")
    if env_path:
        return Path(env_path)
    local = Path.cwd() / DEFAULT_CONFIG_FILE
    return local if local.exists() else None


def load_config(path: Union[str, Path, None] = None) -> KernelConfig:
    """Read configuration from TOML plus environment overrides."""
    config_path = _resolve_path(path)

    data: Dict[str, Any] = {}
    if config_path is not None:
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {config_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc

    storage = _section(data, "storage")
    identity = _section(data, "identity")
    access = _section(data, "access")
    log = _section(data, "logging")

    defaults = KernelConfig()
    return KernelConfig(
        storage_backend=storage.get("backend", defaults.storage_backend),
        storage_path=os.environ.get("OMNILITH_DB") or storage.get("path", defaults.storage_path),
        identity_generator=identity.get("generator", defaults.identity_generator),
        enforce_surfacing=access.get("enforce_surfacing", defaults.enforce_surfacing),
        log_level=os.environ.get("OMNILITH_LOG_LEVEL") or log.get("level", defaults.log_level),
        source=str(config_path) if config_path is not None else None,
    )


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Route omnilith loggers to stderr. Idempotent."""
    logger = logging.getLogger("omnilith")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if not any(getattr(h, "_omnilith", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._omnilith = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
