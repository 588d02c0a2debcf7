from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from .settings import settings

LOGGER_NAME = "path_planner"
LOG_FILE_NAME = "planner.log.jsonl"


def build_formatter() -> JsonFormatter:
    """One JSON object per record: ``timestamp``, ``level``, ``event`` and the event's fields."""
    return JsonFormatter(
        "%(levelname)s %(message)s",
        rename_fields={"levelname": "level", "message": "event"},
        timestamp=True,
    )


def _file_handler(out_dir: str | Path) -> logging.Handler | None:
    # Stream output still works when OUT_DIR is read-only.
    log_dir = Path(out_dir) / "logs"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
    except OSError:
        return None


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False):
        return logger

    level = logging.getLevelName(settings.log_level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)
    logger.propagate = False

    formatter = build_formatter()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_handler = _file_handler(settings.out_dir)
    if file_handler is not None:
        handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    LOGGER.log(level, event, extra=fields)
