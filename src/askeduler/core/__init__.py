r"""Configuration and validation shared by the scheduling components."""

from __future__ import annotations

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_MAX_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "MAX_RETRY_AFTER",
    "RETRY_STATUS_CODES",
    "RetryParams",
    "resolve_delay",
    "validate_delay",
    "validate_retry_params",
]

from askeduler.core.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TIMEOUT,
    DEFAULT_TIMEOUT,
    MAX_RETRY_AFTER,
    RETRY_STATUS_CODES,
    RetryParams,
)
from askeduler.core.validation import resolve_delay, validate_delay, validate_retry_params
