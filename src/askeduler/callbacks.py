r"""Callback types and data structures for observability.

This module provides callback support for the retry orchestrator,
enabling users to hook into the retry lifecycle for logging, metrics and
alerting.

The callback system provides four lifecycle hooks:
- on_attempt: Called when an action attempt starts
- on_retry: Called when a timer fired and the next attempt is about to start
- on_success: Called when an attempt succeeds
- on_failure: Called when the run fails (terminal error or exhausted budget)

Example:
    ```pycon
    >>> from askeduler import retry_action
    >>> from askeduler.callbacks import CallbackConfig, RetryInfo
    >>> def log_retry(retry_info: RetryInfo):
    ...     print(f"Attempt {retry_info.attempt}/{retry_info.max_retries + 1}")
    ...
    >>> callbacks = CallbackConfig(on_retry=log_retry)
    >>> result = await retry_action(fetch, callbacks=callbacks)  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = [
    "AttemptInfo",
    "CallbackConfig",
    "FailureInfo",
    "RetryInfo",
    "SuccessInfo",
    "invoke_on_attempt",
    "invoke_on_retry",
    "invoke_on_success",
]

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass
class AttemptInfo:
    """Information passed to on_attempt callback.

    Attributes:
        attempt: The attempt number (1-indexed). First attempt is 1.
        max_retries: Maximum number of retries configured.
    """

    attempt: int
    max_retries: int


@dataclass
class RetryInfo:
    """Information passed to on_retry callback.

    Attributes:
        attempt: The number of the attempt about to start (1-indexed).
            First retry is attempt 2.
        max_retries: Maximum number of retries configured.
        error: The last failure of the previous attempt (if any). ``None``
            when the previous attempt was still running and got cancelled.
    """

    attempt: int
    max_retries: int
    error: Exception | None


@dataclass
class SuccessInfo:
    """Information passed to on_success callback.

    Attributes:
        attempt: The attempt number that succeeded (1-indexed).
        max_retries: Maximum number of retries configured.
        result: The value produced by the action.
        total_time: Time elapsed since the run started (seconds).
    """

    attempt: int
    max_retries: int
    result: Any
    total_time: float


@dataclass
class FailureInfo:
    """Information passed to on_failure callback.

    Attributes:
        attempt: The number of the last attempt (1-indexed).
        max_retries: Maximum number of retries configured.
        error: The exception the run is rejected with.
        total_time: Time elapsed since the run started (seconds).
    """

    attempt: int
    max_retries: int
    error: Exception
    total_time: float


@dataclass
class CallbackConfig:
    """Configuration for callbacks.

    Attributes:
        on_attempt: Optional callback invoked when an attempt starts.
        on_retry: Optional callback invoked before each retry.
        on_success: Optional callback invoked when an attempt succeeds.
        on_failure: Optional callback invoked when the run fails.
    """

    on_attempt: Callable[[AttemptInfo], None] | None = None
    on_retry: Callable[[RetryInfo], None] | None = None
    on_success: Callable[[SuccessInfo], None] | None = None
    on_failure: Callable[[FailureInfo], None] | None = None


def invoke_on_attempt(
    on_attempt: Callable[[AttemptInfo], None] | None,
    *,
    attempt: int,
    max_retries: int,
) -> None:
    """Invoke on_attempt callback if provided.

    Args:
        on_attempt: Optional callback to invoke when an attempt starts.
        attempt: The attempt number (0-indexed internally). The callback
            receives this as a 1-indexed value (attempt + 1).
        max_retries: Maximum number of retries.
    """
    if on_attempt is not None:
        on_attempt(AttemptInfo(attempt=attempt + 1, max_retries=max_retries))


def invoke_on_retry(
    on_retry: Callable[[RetryInfo], None] | None,
    *,
    attempt: int,
    max_retries: int,
    last_error: Exception | None,
) -> None:
    """Invoke on_retry callback if provided.

    Args:
        on_retry: Optional callback to invoke before each retry.
        attempt: The number of the attempt about to start (0-indexed
            internally). The callback receives this as a 1-indexed value.
        max_retries: Maximum number of retries.
        last_error: The failure that preceded the retry (if any).
    """
    if on_retry is not None:
        on_retry(RetryInfo(attempt=attempt + 1, max_retries=max_retries, error=last_error))


def invoke_on_success(
    on_success: Callable[[SuccessInfo], None] | None,
    *,
    attempt: int,
    max_retries: int,
    result: Any,
    start_time: float,
) -> None:
    """Invoke on_success callback if provided.

    Args:
        on_success: Optional callback to invoke when an attempt succeeds.
        attempt: The attempt number that succeeded (0-indexed internally).
        max_retries: Maximum number of retries.
        result: The value produced by the action.
        start_time: The timestamp when the run started.
    """
    if on_success is not None:
        on_success(
            SuccessInfo(
                attempt=attempt + 1,
                max_retries=max_retries,
                result=result,
                total_time=time.time() - start_time,
            )
        )
