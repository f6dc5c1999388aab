"""
Logging setup for the Tower harness.

Tower logs one kind of thing: what happened to an artefact. Every line
carries the same small set of verdict fields, stamped from the `extra`
dict the service and observer pass, plus the run being judged.

    TOWER_ENV=production   one JSON object per line on stdout
    anything else          `[12:00:01] INFO  tower.service: verdict_rendered
                            [run_id=run-1 verdict=STOP gaps=['NO_PROGRESS']]` on stderr

Usage:
    configure_logging()

    with run_context("run-1"):
        logger.info("verdict_rendered", extra={"verdict": "STOP"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

ENV_VAR = "TOWER_ENV"

# Record attributes rendered by VerdictFormatter, in output order.
VERDICT_FIELDS = (
    "run_id",
    "artefact_type",
    "verdict",
    "reason_code",
    "confidence",
    "gaps",
    "duration_ms",
    "error_type",
    "error",
)

_local = threading.local()


def get_run_id() -> Optional[str]:
    return getattr(_local, "run_id", None)


@contextmanager
def run_context(run_id: Optional[str]) -> Iterator[None]:
    """
    Attribute every record logged on this thread to `run_id` until exit.

    A falsy run_id leaves the current context alone. The previous value is
    restored on exit, so nested contexts unwind correctly.
    """
    if not run_id:
        yield
        return
    previous = get_run_id()
    _local.run_id = run_id
    try:
        yield
    finally:
        _local.run_id = previous


class RunIdFilter(logging.Filter):
    """Stamps the active run_id unless the call site passed one."""

    def filter(self, record: logging.LogRecord) -> bool:
        run_id = get_run_id()
        if run_id and not getattr(record, "run_id", None):
            record.run_id = run_id  # type: ignore[attr-defined]
        return True


class VerdictFormatter(logging.Formatter):
    """JSON lines when `as_json`, otherwise a compact coloured line."""

    _LEVEL_COLOURS = {
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[31m",
    }
    _RESET = "\033[0m"

    def __init__(self, as_json: bool = False) -> None:
        super().__init__()
        self.as_json = as_json

    @staticmethod
    def verdict_fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: getattr(record, key)
            for key in VERDICT_FIELDS
            if getattr(record, key, None) is not None
        }

    def format(self, record: logging.LogRecord) -> str:
        fields = self.verdict_fields(record)
        error = self.formatException(record.exc_info) if record.exc_info else None
        if self.as_json:
            return self._json_line(record, fields, error)
        return self._text_line(record, fields, error)

    def _json_line(
        self, record: logging.LogRecord, fields: dict[str, Any], error: Optional[str]
    ) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **fields,
        }
        if error:
            entry["exception"] = error
        return json.dumps(entry, default=str)

    def _text_line(
        self, record: logging.LogRecord, fields: dict[str, Any], error: Optional[str]
    ) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelno, "")
        level = f"{colour}{record.levelname:<7}{self._RESET if colour else ''}"
        line = f"[{self.formatTime(record, '%H:%M:%S')}] {level} {record.name}: {record.getMessage()}"
        if fields:
            line += " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        if error:
            line += "\n" + error
        return line


def configure_logging(env: Optional[str] = None, level: int = logging.INFO) -> None:
    """Install a single Tower handler on the root logger, replacing any others."""
    env = (env or os.environ.get(ENV_VAR, "development")).strip().lower()
    production = env == "production"

    handler = logging.StreamHandler(sys.stdout if production else sys.stderr)
    handler.setFormatter(VerdictFormatter(as_json=production))
    handler.addFilter(RunIdFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
