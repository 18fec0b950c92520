"""CLI entrypoint for streamproxy."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from streamproxy.app import Application
from streamproxy.config import ConfigError, load_config
from streamproxy.errors import StreamProxyError
from streamproxy.logging_setup import configure_logging


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


class StreamProxy:
    """streamproxy CLI - viewer-driven camera stream supervisor."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Run the camera fleet and the viewer server.

        Args:
            config: Path to YAML/JSON config file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        setup_logging(log_level)

        app = Application(Path(config))

        try:
            asyncio.run(app.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except StreamProxyError as e:
            print(f"✗ Startup failed: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass  # Handled by signal handlers

    def validate(self, config: str) -> None:
        """Validate config file without running.

        Args:
            config: Path to YAML/JSON config file
        """
        config_path = Path(config)

        try:
            cfg = load_config(config_path)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"✓ Config valid: {config_path}")
        print(f"  Output path: {cfg.output_path}")
        for source in cfg.sources:
            kind = "onvif" if source.onvif is not None else "rtsp"
            print(f"  Source {source.id}: {kind} (target latency {source.target_latency_secs:g}s)")
        print(f"  Transcoder: {' '.join(cfg.transcoder.command)}")
        print(f"  Idle timeout: {cfg.fleet.idle_timeout_s:g}s")
        print(f"  Server: {cfg.server.host}:{cfg.server.port}")


def main() -> None:
    fire.Fire(StreamProxy)


if __name__ == "__main__":
    main()
