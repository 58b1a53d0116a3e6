"""
Structured logging for the KeyScan service layer.

Every line is one JSON object carrying the match context (strategy, decision,
key ids, scores) under a "context" key. The matching core never logs; only
src/ and api/ write through these helpers.

Environment Variables:
    LOG_LEVEL: Level name for the "keyscan" logger (default: INFO).
    DEBUG: "true" forces DEBUG regardless of LOG_LEVEL.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
if os.environ.get("DEBUG", "false").lower() == "true":
    LOG_LEVEL = "DEBUG"

BASE_LOGGER_NAME = "keyscan"


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Scores may arrive as numpy scalars, outcomes as pydantic models.
        return json.dumps(entry, default=str)


def get_logger(name: str = BASE_LOGGER_NAME) -> logging.Logger:
    """
    Return a logger writing JSON lines to the console.

    The handler is attached once per logger name, so repeated calls (one per
    module import) do not duplicate output.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = get_logger()


def log_with_context(level: int, msg: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
    """Log msg on the keyscan logger with keyword context."""
    if context:
        kwargs.update(context)
    logger.log(level, msg, extra={"context": kwargs} if kwargs else {})


def info(msg: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
    log_with_context(logging.INFO, msg, context, **kwargs)


def warning(msg: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
    log_with_context(logging.WARNING, msg, context, **kwargs)


def exception(
    msg: str,
    exc: Optional[BaseException] = None,
    context: Optional[Dict[str, Any]] = None,
    **kwargs: Any
) -> None:
    """
    Log an ERROR with the type and text of the exception that caused it.

    Args:
        msg: What failed (e.g. "Key describer call failed").
        exc: The caught exception, if any.
        context: Extra context merged into the record.
        **kwargs: Additional context as keyword arguments.
    """
    if exc is not None:
        kwargs["exception_type"] = type(exc).__name__
        kwargs["exception_message"] = str(exc)
    log_with_context(logging.ERROR, msg, context, **kwargs)
