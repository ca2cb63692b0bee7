"""Logging setup for the API and CLI entry points.

Modules only ever call ``logging.getLogger(__name__)``; handlers and
formatters are installed once here.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .config import LoggingSettings, settings

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(config: LoggingSettings | None = None, *, force: bool = False) -> None:
    """Configure the root logger once.

    Args:
        config: Logging settings (defaults to application settings)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    config = config or settings.logging

    if config.format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(config.level.upper())

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info(f"Logging configured (level={config.level}, format={config.format})")
