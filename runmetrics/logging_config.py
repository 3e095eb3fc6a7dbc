from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

CONTEXT_PREFIX = "ctx_"


class JSONFormatter(logging.Formatter):
    """One JSON object per log line.

    `ctx_*` extras are grouped under "context" with the prefix removed, so
    `extra={"ctx_activity_id": "a1"}` becomes `"context": {"activity_id": "a1"}`.
    When a calculation version is given every line is stamped with it, which
    lets results in a log be matched to the thresholds that produced them.
    """

    def __init__(self, calculation_version: str | None = None) -> None:
        super().__init__()
        self.calculation_version = calculation_version

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.calculation_version:
            log_entry["calculationVersion"] = self.calculation_version
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        context = {
            k[len(CONTEXT_PREFIX):]: v for k, v in record.__dict__.items() if k.startswith(CONTEXT_PREFIX)
        }
        if context:
            log_entry["context"] = context
        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    calculation_version: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structured JSON logging (stdout by default). No-op if already configured."""
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter(calculation_version))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # pandas pulls in numexpr, which announces its thread count at INFO
    logging.getLogger("numexpr").setLevel(logging.WARNING)
