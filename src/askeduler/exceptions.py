r"""Exceptions raised by the scheduling primitives.

The taxonomy separates configuration errors (raised synchronously and
never retried), action failures (classified as retryable or terminal),
and exhaustion of the retry budget. Cancellation is not an application
error and is reported with ``asyncio.CancelledError``.
"""

from __future__ import annotations

__all__ = [
    "ActionError",
    "HttpStatusError",
    "InvalidTimeoutError",
    "RetryLimitExceededError",
    "RetryableActionError",
    "SchedulerError",
    "TerminalActionError",
]

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx


class SchedulerError(RuntimeError):
    """Base class of all the errors raised by ``askeduler``."""


class InvalidTimeoutError(SchedulerError, ValueError):
    """Raised when a resolved delay is not a finite non-negative number.

    This is a configuration error: it is raised synchronously when the
    delay is resolved and it is never retried.

    Args:
        value: The offending delay value.

    Example:
        ```pycon
        >>> from askeduler.exceptions import InvalidTimeoutError
        >>> raise InvalidTimeoutError(-1)
        Traceback (most recent call last):
            ...
        askeduler.exceptions.InvalidTimeoutError: Unexpected timeout value: -1

        ```
    """

    def __init__(self, value: Any) -> None:
        super().__init__(f"Unexpected timeout value: {value!r}")
        self.value = value


class ActionError(SchedulerError):
    """Failure produced by an action attempt.

    Args:
        message: A descriptive error message.
        retryable: Whether another attempt may succeed.
        delay_override: Optional delay in milliseconds to wait before the
            next attempt instead of the computed backoff.
        cause: The underlying exception, if any.

    Attributes:
        retryable: Whether another attempt may succeed.
        delay_override: Optional explicit delay before the next attempt.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        delay_override: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.delay_override = delay_override
        self.cause = cause


class RetryableActionError(ActionError):
    """Transient action failure, recovered by scheduling another attempt.

    Example:
        ```pycon
        >>> from askeduler.exceptions import RetryableActionError
        >>> err = RetryableActionError("busy", delay_override=500)
        >>> err.retryable, err.delay_override
        (True, 500)

        ```
    """

    def __init__(
        self,
        message: str,
        *,
        delay_override: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, retryable=True, delay_override=delay_override, cause=cause)


class TerminalActionError(ActionError):
    """Action failure that must not be retried."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message, retryable=False, cause=cause)


class HttpStatusError(TerminalActionError):
    """Non-retryable HTTP status returned by the HTTP action.

    Args:
        message: A descriptive error message.
        status_code: The HTTP status code of the response.
        response: The response object.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RetryLimitExceededError(SchedulerError):
    """Raised when the retry budget ran out before any attempt succeeded.

    Args:
        attempts: Number of attempts started.
        reason: ``"attempts"`` when the retry count was exhausted, or
            ``"deadline"`` when the overall deadline elapsed.
        last_error: The last retryable failure observed, if any.

    Example:
        ```pycon
        >>> from askeduler.exceptions import RetryLimitExceededError
        >>> err = RetryLimitExceededError(attempts=4)
        >>> err.attempts, err.reason
        (4, 'attempts')

        ```
    """

    def __init__(
        self,
        attempts: int,
        *,
        reason: str = "attempts",
        last_error: BaseException | None = None,
    ) -> None:
        if reason == "deadline":
            message = f"Unable to complete action: deadline elapsed after {attempts} attempts"
        else:
            message = f"Unable to complete action: retry limit reached after {attempts} attempts"
        super().__init__(message)
        self.attempts = attempts
        self.reason = reason
        self.last_error = last_error
