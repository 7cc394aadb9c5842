r"""Outcome classification for failed action attempts.

This module provides the OutcomeDecider class that encapsulates the logic
for deciding whether a failed attempt should be retried based on the
raised exception and an optional custom predicate.
"""

from __future__ import annotations

__all__ = ["OutcomeDecider"]

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from askeduler.exceptions import ActionError, RetryableActionError, TerminalActionError

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

# Transport failures retried when no custom predicate is configured
DEFAULT_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.RequestError,
    asyncio.TimeoutError,
    ConnectionError,
)


class OutcomeDecider:
    """Decides whether a failed attempt should be retried.

    ``ActionError`` instances carry their own classification and are
    returned unchanged. Any other exception is wrapped in a
    ``RetryableActionError`` or a ``TerminalActionError``.
    """

    def __init__(self, retry_if: Callable[[Exception], bool] | None = None) -> None:
        """Initialize outcome decider.

        Args:
            retry_if: Optional custom predicate returning ``True`` when an
                exception is transient. When unset, transport timeouts and
                connection errors are retryable and everything else is
                terminal.
        """
        self.retry_if = retry_if

    def is_retryable(self, exception: Exception) -> bool:
        """Determine if an exception that is not an ``ActionError`` is
        transient.

        Args:
            exception: The exception raised by the attempt.

        Returns:
            ``True`` if another attempt may succeed.
        """
        if self.retry_if is not None:
            return bool(self.retry_if(exception))
        return isinstance(exception, DEFAULT_RETRYABLE_EXCEPTIONS)

    def classify(self, exception: Exception) -> ActionError:
        """Classify the failure of an attempt.

        Args:
            exception: The exception raised by the attempt.

        Returns:
            The classified failure. The original exception is kept as
            ``cause`` (and ``__cause__``) when it is wrapped.
        """
        if isinstance(exception, ActionError):
            return exception
        name = type(exception).__name__
        if self.is_retryable(exception):
            logger.debug(f"Attempt failed with retryable {name}: {exception}")
            error: ActionError = RetryableActionError(
                f"Action failed with {name}: {exception}", cause=exception
            )
        else:
            logger.debug(f"Attempt failed with non-retryable {name}: {exception}")
            error = TerminalActionError(f"Action failed with {name}: {exception}", cause=exception)
        error.__cause__ = exception
        return error
