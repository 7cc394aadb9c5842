r"""Callback manager for orchestrating retry lifecycle events.

This module provides the CallbackManager class that handles invocation
of user-defined callbacks at various points in the retry lifecycle.
"""

from __future__ import annotations

__all__ = ["CallbackManager"]

import time
from typing import TYPE_CHECKING, Any

from askeduler.callbacks import (
    CallbackConfig,
    FailureInfo,
    invoke_on_attempt,
    invoke_on_retry,
    invoke_on_success,
)

if TYPE_CHECKING:
    from collections.abc import Callable


class CallbackManager:
    """Manages callback invocations during the retry lifecycle.

    Args:
        callbacks: Callback configuration. Defaults to no callbacks.

    Attributes:
        callbacks: Configuration containing callback functions for lifecycle events.
    """

    def __init__(self, callbacks: CallbackConfig | None = None) -> None:
        self.callbacks = callbacks if callbacks is not None else CallbackConfig()

    def on_attempt(self, attempt: int, max_retries: int) -> None:
        """Invoke on_attempt callback.

        Args:
            attempt: Current attempt number (0-indexed).
            max_retries: Maximum number of retries.
        """
        invoke_on_attempt(self.callbacks.on_attempt, attempt=attempt, max_retries=max_retries)

    def on_retry(self, attempt: int, max_retries: int, error: Exception | None) -> None:
        """Invoke on_retry callback.

        Args:
            attempt: Number of the attempt about to start (0-indexed).
            max_retries: Maximum number of retries.
            error: Failure of the previous attempt (if any).
        """
        invoke_on_retry(
            self.callbacks.on_retry,
            attempt=attempt,
            max_retries=max_retries,
            last_error=error,
        )

    def on_success(self, attempt: int, max_retries: int, result: Any, start_time: float) -> None:
        """Invoke on_success callback.

        Args:
            attempt: Attempt number that succeeded (0-indexed).
            max_retries: Maximum number of retries.
            result: The value produced by the action.
            start_time: Timestamp when the run started.
        """
        invoke_on_success(
            self.callbacks.on_success,
            attempt=attempt,
            max_retries=max_retries,
            result=result,
            start_time=start_time,
        )

    def on_failure(
        self, attempt: int, max_retries: int, error: Exception, start_time: float
    ) -> None:
        """Invoke on_failure callback.

        Args:
            attempt: Final attempt number (0-indexed).
            max_retries: Maximum number of retries.
            error: The error the run is rejected with.
            start_time: Timestamp when the run started.
        """
        on_failure: Callable[[FailureInfo], None] | None = self.callbacks.on_failure
        if on_failure is not None:
            on_failure(
                FailureInfo(
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=error,
                    total_time=time.time() - start_time,
                )
            )
