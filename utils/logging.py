"""
Logging setup for the appropriations engine.

Provides:
  - JsonFormatter: emits newline-delimited JSON records, merging the compliance
    fields callers attach through ``extra={...}``.
  - configure_logging(): installs one stream handler on the root logger in
    either text or JSON format.

Engine modules never configure logging themselves; they only call
``logging.getLogger(__name__)``.  Entry points (the CLI, a host service)
call configure_logging() once at startup::

    from utils.config import EngineConfig
    from utils.logging import configure_logging

    cfg = EngineConfig.from_env()
    configure_logging(cfg.log_format, cfg.log_level)
"""

from __future__ import annotations

import json
import logging

# Fields merged from logger.info("...", extra={...}) into JSON output
EXTRA_FIELDS = (
    "transaction_id",
    "check",
    "severity",
    "statute",
    "fiscal_year",
    "appropriation",
    "workflow_state",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def configure_logging(log_format: str = "text", level: str | int = logging.INFO,
                      stream=None) -> logging.Handler:
    """Install a single stream handler on the root logger.

    Args:
        log_format: "json" for JsonFormatter, anything else for plain text
        level: Level name or number
        stream: Optional stream (defaults to stderr)

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(stream)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(handlers=[handler], level=level, force=True)
    return handler
