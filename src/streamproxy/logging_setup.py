from __future__ import annotations

import json
import logging
import logging.config
import os

DEFAULT_CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)s [%(camera_name)s] %(module)s:%(lineno)d %(message)s"
)
QUIET_LOGGERS = ("zeep", "httpx", "onvif", "uvicorn.access")

_default_camera_name = "-"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName", "camera_name"}


class _CameraNameFilter(logging.Filter):
    """Guarantees ``%(camera_name)s`` resolves for every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "camera_name", None):
            record.camera_name = _default_camera_name
        return True


class _JsonExtraFormatter(logging.Formatter):
    """Appends fields passed through ``extra=`` as an indented JSON block."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extract_extras(record)
        if extras:
            line = f"{line}\n{json.dumps(extras, indent=2, default=str, sort_keys=True)}"
        return line


def _extract_extras(record: logging.LogRecord) -> dict[str, object]:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


def set_camera_name(name: str | None) -> None:
    """Set the `camera_name` shown for records logged without one."""
    global _default_camera_name
    _default_camera_name = name or "-"


def configure_logging(*, log_level: str = "INFO", camera_name: str | None = None) -> None:
    """Install the console handler on the root logger.

    Lines show the camera a record belongs to; code scoped to one camera logs
    with ``extra={"camera_name": camera_id}``. ``CONSOLE_LOG_FORMAT`` replaces
    the line format.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"camera_name": {"()": _CameraNameFilter}},
            "formatters": {
                "console": {
                    "()": _JsonExtraFormatter,
                    "format": os.getenv("CONSOLE_LOG_FORMAT", DEFAULT_CONSOLE_FORMAT),
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": str(log_level).upper(),
                    "formatter": "console",
                    "filters": ["camera_name"],
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"level": "DEBUG", "handlers": ["console"]},
        }
    )
    set_camera_name(camera_name)
    logging.captureWarnings(True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
