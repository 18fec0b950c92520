"""Read the YAML config file and validate it into a Config."""

from __future__ import annotations

import logging
import os
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from streamproxy.models.config import Config

logger = logging.getLogger(__name__)

# group/other permission bits; source URLs may embed camera passwords
_GROUP_OTHER_BITS = stat.S_IRWXG | stat.S_IRWXO


class ConfigErrorCode(str, Enum):
    """Machine-readable reason a config could not be loaded."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    EMPTY_FILE = "CONFIG_EMPTY_FILE"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """The config file is missing, unreadable, or fails validation."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path | str) -> Config:
    """Load the config file at ``path``.

    JSON files are accepted too, being valid YAML.

    Raises:
        ConfigError: with a ``ConfigErrorCode`` describing what went wrong.
    """
    path = Path(path)
    raw = _read_mapping(path)
    config = _validate(raw, path)
    logger.info("Loaded config %s with %d sources", path, len(config.sources))
    return config


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Validate an already-parsed config mapping."""
    return _validate(data, path=None)


def _read_mapping(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(
            f"Config file not found: {path}", code=ConfigErrorCode.FILE_NOT_FOUND, path=path
        )
    _warn_if_readable_by_others(path)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Cannot parse {path} as YAML: {exc}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=exc,
        ) from exc

    if raw is None:
        raise ConfigError(
            f"Config file is empty: {path}", code=ConfigErrorCode.EMPTY_FILE, path=path
        )
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Top level of {path} must be a mapping, got {type(raw).__name__}",
            code=ConfigErrorCode.ROOT_NOT_MAPPING,
            path=path,
        )
    return raw


def _validate(data: dict[str, Any], path: Path | None) -> Config:
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            format_validation_error(exc, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=exc,
        ) from exc


def format_validation_error(exc: ValidationError, path: Path | None = None) -> str:
    """Render pydantic errors one per line as ``location: message``."""
    header = f"Config validation failed ({path}):" if path else "Config validation failed:"
    lines = [header]
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        lines.append(f"  {location}: {error['msg']}" if location else f"  {error['msg']}")
    return "\n".join(lines)


def _warn_if_readable_by_others(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _GROUP_OTHER_BITS:
        logger.warning(
            "Config file permissions are too permissive for a file holding camera "
            "credentials: path=%s mode=%04o expected=0600",
            path,
            mode,
        )
