from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict

# Attributes every LogRecord has; anything else arrived through `extra=`.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "chromadb", "openai", "fastembed")

LEVEL_NAMES = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")
TRUTHY = {"1", "true", "yes", "on"}


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


class _PlainFormatter(logging.Formatter):
    """One line per record; `extra=` fields are appended as key=value."""

    SHORT = "%(levelname)s %(name)s - %(message)s"
    LONG = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(filename)s:%(lineno)d - %(message)s"

    def __init__(self, debug: bool = False) -> None:
        super().__init__(fmt=self.LONG if debug else self.SHORT, datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        extra = _extras(record)
        line = super().format(record)
        if not extra:
            return line
        return line + " " + " ".join(f"{k}={extra[k]}" for k in sorted(extra))


class _JsonFormatter(logging.Formatter):
    """Each record becomes one JSON object; `extra=` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = dict(
            ts=self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            level=record.levelname,
            logger=record.name,
            msg=record.getMessage(),
            thread=record.threadName,
        )
        doc.update(_extras(record))
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


def _coerce_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = str(level or "").strip().upper()
    if name in LEVEL_NAMES:
        return getattr(logging, name)
    return int(name) if name.isdigit() else logging.INFO


def setup_logging(level: str | int | None = None, json_logs: bool | None = None) -> None:
    """
    Configure root logging once for the process.

    Args:
        level: Logging level name or number. Falls back to LOG_LEVEL, then INFO.
        json_logs: Emit JSON lines to stderr. Falls back to DOCRAG_LOG_JSON.
    """
    final_level = _coerce_level(level or os.getenv("LOG_LEVEL"))
    if json_logs is None:
        json_logs = os.getenv("DOCRAG_LOG_JSON", "").lower() in TRUTHY

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(_JsonFormatter() if json_logs else _PlainFormatter(final_level <= logging.DEBUG))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(final_level)

    # third-party chatter stays at WARNING unless we are even quieter
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(final_level, logging.WARNING))
