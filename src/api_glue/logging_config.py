"""structlog setup for the engine, applied on import.

`LOG_LEVEL` picks the level (`DEBUG=true` lowers the default to DEBUG). Output
goes to stderr: coloured console lines on a terminal, JSON lines otherwise.
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from .utils import get_data_dir

DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")


def save_debug_artifact(name: str, data: Any, config_id: str | None = None, phase: str | None = None) -> Path | None:
    """Dump `data` as JSON under `DEBUG_DIR` (default `<data dir>/debug`) in debug mode.

    Artifacts are grouped by config id, then phase. Returns the written path,
    or None when debug mode is off or the write failed.
    """
    if not DEBUG:
        return None

    target = Path(os.getenv("DEBUG_DIR") or get_data_dir() / "debug")
    for part in (config_id, phase):
        if part:
            target = target / part
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    path = target / f"{stamp}_{name}.json"

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    try:
        target.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    except (OSError, TypeError) as e:
        structlog.get_logger().warning("debug_artifact_failed", artifact=name, error=str(e))
        return None
    return path


def configure_logging() -> None:
    level = logging.getLevelName(LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=True)
            if sys.stderr.isatty()
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


configure_logging()
