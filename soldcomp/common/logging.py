"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from soldcomp.common.constants import JSON_LOG_FIELDS
from soldcomp.common.fs import ensure_dir
from soldcomp.common.run import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": utc_timestamp_iso(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        for field in JSON_LOG_FIELDS:
            if field not in payload:
                payload[field] = getattr(record, field, None)
        return json.dumps(payload, ensure_ascii=False)


def build_logger(run_id: str, log_path: Path, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(f"soldcomp.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    ensure_dir(log_path.parent)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(JsonLineFormatter())
    logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)


def log_warnings(logger: logging.Logger, warnings: list[dict], **context: Any) -> None:
    """Emit one WARNING line per warning dict returned by a core stage."""
    for warning in warnings:
        fields = dict(context)
        fields.update({key: value for key, value in warning.items() if key != "message"})
        fields.setdefault("status", "warning")
        log_event(logger, warning.get("message", ""), level=logging.WARNING, **fields)
