import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config import LogConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_rotating_logger(
    name: str, log_config: LogConfig, *, level: int = logging.INFO
) -> logging.Logger:
    """
    Configure a logger that owns a single rotating file handler.
    Calling it again for the same name replaces the previous handler.
    """
    log_path: Path = log_config.path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return _install_handler(name, handler, level)


def setup_console_logger(name: str, *, level: int = logging.INFO) -> logging.Logger:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return _install_handler(name, handler, level)


def _install_handler(
    name: str, handler: logging.Handler, level: int
) -> logging.Logger:
    logger = logging.getLogger(name)
    for existing in list(logger.handlers):
        existing.close()
    logger.handlers.clear()
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured log line: a JSON object keyed by `event`."""
    payload: dict[str, Any] = {"event": event}
    payload.update(fields)
    if exc is not None:
        payload["error"] = str(exc) or exc.__class__.__name__
        payload["error_type"] = exc.__class__.__name__
    try:
        message = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        message = f"{event} {fields!r}"
    logger.log(level, message)
