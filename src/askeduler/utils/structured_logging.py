r"""Structured logging utilities for machine-readable log output.

The retry engine and the orchestrator log their lifecycle events with
structured fields (``scope_id``, ``attempt``, ``state``). Those fields are
regular ``extra`` attributes of the log records, so they show up with any
formatter, and as JSON keys with the opt-in ``StructuredFormatter``.

Example:
    Enable structured logging for askeduler:

    ```python
    import logging
    from askeduler.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger("askeduler")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    ```

    askeduler never sets a correlation ID itself. Callers set one around a
    run to group the records of one logical operation:

    ```python
    from askeduler import retry_action
    from askeduler.utils.structured_logging import set_correlation_id, clear_correlation_id

    set_correlation_id("sync-42")
    try:
        result = await retry_action(fetch_page)
    finally:
        clear_correlation_id()
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_correlation_id",
    "get_correlation_id",
    "log_structured",
    "set_correlation_id",
]

import contextvars
import json
import logging
import time
from typing import Any

# Context variable for correlation ID (async-safe)
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "askeduler_correlation_id", default=None
)

# Attributes every LogRecord carries, everything else was passed as ``extra``
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def get_correlation_id() -> str | None:
    """Get the correlation ID of the current context.

    Returns:
        The current correlation ID, or None if not set.
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context.

    Timers capture the context they are scheduled in, so records emitted
    from timer callbacks carry the correlation ID that was set when the
    run started.

    Args:
        correlation_id: The correlation ID to set.

    Example:
        ```pycon
        >>> from askeduler.utils.structured_logging import (
        ...     get_correlation_id,
        ...     set_correlation_id,
        ... )
        >>> set_correlation_id("sync-42")
        >>> get_correlation_id()
        'sync-42'

        ```
    """
    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current context."""
    _correlation_id.set(None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Every record is rendered as one JSON object with the keys
    ``timestamp``, ``level``, ``logger``, ``message``, ``module``,
    ``function`` and ``line``, plus ``correlation_id`` when set,
    ``exception`` when the record carries exception info, and every field
    passed through ``extra``. Values that are not JSON serializable are
    rendered with ``repr``.

    Example:
        ```pycon
        >>> import json
        >>> import logging
        >>> from io import StringIO
        >>> from askeduler.utils.structured_logging import StructuredFormatter
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("doc_structured")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.INFO)
        >>> logger.info("Engine started", extra={"scope_id": "engine-1"})
        >>> json.loads(stream.getvalue())["scope_id"]
        'engine-1'

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = get_correlation_id()
        if correlation_id is not None:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        return json.dumps(log_data, default=repr)

    def formatTime(  # noqa: N802
        self, record: logging.LogRecord, datefmt: str | None = None
    ) -> str:
        """Format the record timestamp as ISO 8601 with millisecond precision.

        Args:
            record: The log record.
            datefmt: Ignored, the format is always ISO 8601.

        Returns:
            The formatted timestamp.
        """
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """Log a message with structured data.

    Args:
        logger: Logger to use.
        level: Log level (e.g., logging.DEBUG).
        message: Log message.
        **extra: Additional structured fields to include in the record.

    Example:
        ```pycon
        >>> import logging
        >>> from askeduler.utils.structured_logging import log_structured
        >>> logger = logging.getLogger("doc_log_structured")
        >>> log_structured(logger, logging.DEBUG, "Timer fired", scope_id="engine-1", attempt=2)

        ```
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=extra)
