"""Structured logging configuration for wallcore."""

from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger


class JSONFormatter:
    """Serialize a loguru record into one JSON line."""

    def __call__(self, record: dict[str, Any]) -> str:
        payload = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "message": record["message"],
            "module": record.get("module", ""),
            "function": record.get("function", ""),
            "line": record.get("line", 0),
        }

        exc = record.get("exception")
        if exc is not None:
            payload["exception"] = {
                "type": exc.type.__name__ if exc.type else None,
                "value": str(exc.value) if exc.value else None,
            }

        # operation / wall_id bound via get_logger or operation_timer
        payload.update(record.get("extra", {}))

        # loguru treats the returned string as a format template
        return json.dumps(payload, ensure_ascii=False, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def setup_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure logging for the engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit one JSON object per line instead of coloured text.
        log_file: Optional path to a rotating log file.
    """
    logger.remove()

    if json_format:
        formatter: Any = JSONFormatter()
    else:
        formatter = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

    logger.add(sys.stderr, format=formatter, level=level, colorize=not json_format)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=formatter,
            level=level,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )


def get_logger(name: str | None = None, **context: Any) -> Any:
    """Return the loguru logger, optionally bound to a component name and context."""
    if name:
        context["name"] = name
    if context:
        return logger.bind(**context)
    return logger


@contextmanager
def operation_timer(operation: str, **context: Any) -> Iterator[dict[str, float]]:
    """Measure an operation and log its duration at DEBUG.

    The yielded dict receives ``elapsed_ms`` once the block exits.
    """
    timing: dict[str, float] = {"elapsed_ms": 0.0}
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing["elapsed_ms"] = (time.perf_counter() - start) * 1000.0
        logger.bind(operation=operation, **context).debug(
            "{} finished in {:.3f} ms", operation, timing["elapsed_ms"]
        )


__all__ = ["JSONFormatter", "setup_logging", "get_logger", "operation_timer"]
