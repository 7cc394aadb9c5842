r"""Utility functions for Retry-After parsing and structured logging."""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_correlation_id",
    "get_correlation_id",
    "log_structured",
    "parse_retry_after",
    "set_correlation_id",
]

from askeduler.utils.retry_after import parse_retry_after
from askeduler.utils.structured_logging import (
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    log_structured,
    set_correlation_id,
)
