"""Tests for logging setup module."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest

from streamproxy.logging_setup import QUIET_LOGGERS, configure_logging, set_camera_name


@pytest.fixture(autouse=True)
def reset_logging_state() -> Iterator[None]:
    """Reset global logging state before each test."""
    import streamproxy.logging_setup as module

    original_camera = module._default_camera_name

    yield

    module._default_camera_name = original_camera


@pytest.fixture(autouse=True)
def reset_logging_root() -> Iterator[None]:
    """Restore root logger handlers/levels after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    original_noisy_levels = {name: logging.getLogger(name).level for name in QUIET_LOGGERS}

    yield

    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(original_level)
    logging.captureWarnings(False)
    for name, level in original_noisy_levels.items():
        logging.getLogger(name).setLevel(level)


def _extras(output: str) -> dict[str, object]:
    lines = output.strip().splitlines()
    json_start = next(index for index, line in enumerate(lines) if line.strip().startswith("{"))
    return json.loads("\n".join(lines[json_start:]))


class TestCameraNameInjection:
    """Tests for camera name injection via configure_logging."""

    def test_injects_default_camera_name(self, capsys: pytest.CaptureFixture[str]) -> None:
        """The process-wide camera name fills records that carry none."""
        # Given: Logging configured with a camera-name formatter
        configure_logging(log_level="INFO")
        handler = logging.getLogger().handlers[0]
        handler.setFormatter(logging.Formatter("%(camera_name)s %(message)s"))
        set_camera_name("back_yard")

        # When: Logging a message
        logging.getLogger("test").info("hello")

        # Then: Output includes injected camera name
        captured = capsys.readouterr().out.strip().splitlines()
        assert any("back_yard hello" in line for line in captured)

    def test_record_camera_name_wins(self, capsys: pytest.CaptureFixture[str]) -> None:
        """A camera name passed via extra overrides the default."""
        configure_logging(log_level="INFO")
        handler = logging.getLogger().handlers[0]
        handler.setFormatter(logging.Formatter("%(camera_name)s %(message)s"))

        logging.getLogger("test").info("spawned", extra={"camera_name": "front"})

        captured = capsys.readouterr().out.strip().splitlines()
        assert any("front spawned" in line for line in captured)

    def test_missing_camera_name_renders_dash(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(log_level="INFO")

        logging.getLogger("test").info("fleet idle")

        assert "[-]" in capsys.readouterr().out


class TestLoggingExtras:
    """Tests for JSON extras formatting."""

    def test_extras_render_as_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Extra fields are rendered as JSON on a new line."""
        # Given: Logging configured with JSON extra formatter
        configure_logging(log_level="INFO")

        # When: Logging with extra fields
        logging.getLogger("test").info(
            "transcoder started",
            extra={"camera_name": "front", "pid": 4242, "command": ["--mkdir"]},
        )

        # Then: Extras are appended as JSON, without the camera name
        extras = _extras(capsys.readouterr().out)
        assert extras["pid"] == 4242
        assert extras["command"] == ["--mkdir"]
        assert "camera_name" not in extras


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_respects_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Records below the console level are not printed."""
        configure_logging(log_level="warning")

        logging.getLogger("test").info("quiet")
        logging.getLogger("test").warning("loud")

        output = capsys.readouterr().out
        assert "quiet" not in output
        assert "loud" in output

    def test_suppresses_third_party_loggers(self) -> None:
        """Sets third-party loggers to WARNING level."""
        configure_logging(log_level="DEBUG")

        assert logging.getLogger("zeep").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_console_format_from_env(
        self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """CONSOLE_LOG_FORMAT overrides the default console format."""
        monkeypatch.setenv("CONSOLE_LOG_FORMAT", "CUSTOM|%(levelname)s|%(message)s")

        configure_logging(log_level="INFO")
        logging.getLogger("test").info("formatted")

        assert "CUSTOM|INFO|formatted" in capsys.readouterr().out
