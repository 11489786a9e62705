"""
Logging setup for Flow Replay.

Console output goes through Rich. An optional log file receives either plain
lines or JSON lines; run log entries mirrored by ``RunLogger`` carry
``run_id`` and ``step_id`` attributes that the JSON format keeps as fields.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from flow_replay.config.settings import LoggingSettings

# Record attributes copied into JSON lines when present
RUN_FIELDS = ("run_id", "step_id", "status")

# Clients that are chatty at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "playwright")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for field in RUN_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(config: Optional[LoggingSettings] = None, verbose: bool = False) -> None:
    """
    Configure the root logger from logging settings.

    Args:
        config: Level, optional file and file format; defaults when None
        verbose: Force DEBUG regardless of the configured level
    """
    config = config or LoggingSettings()
    level = logging.DEBUG if verbose else getattr(logging, config.level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file, encoding="utf-8")
        file_handler.setLevel(level)
        if config.json_format:
            file_handler.setFormatter(JsonLineFormatter())
        else:
            file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
