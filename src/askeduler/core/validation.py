r"""Parameter validation utilities for the retry scheduling logic.

This module provides validation functions for retry parameters and delay
values to ensure they meet the required constraints before they are handed
to the event loop.
"""

from __future__ import annotations

__all__ = ["resolve_delay", "validate_delay", "validate_retry_params"]

import math
from numbers import Real
from typing import TYPE_CHECKING

from askeduler.exceptions import InvalidTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable


def validate_delay(delay: object) -> float:
    """Validate a resolved delay value.

    Args:
        delay: The delay in milliseconds.

    Returns:
        The delay, unchanged.

    Raises:
        InvalidTimeoutError: If the delay is not a finite non-negative
            real number. Booleans are rejected.

    Example:
        ```pycon
        >>> from askeduler.core.validation import validate_delay
        >>> validate_delay(250)
        250
        >>> validate_delay(float("nan"))  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        askeduler.exceptions.InvalidTimeoutError: Unexpected timeout value: nan

        ```
    """
    if isinstance(delay, bool) or not isinstance(delay, Real):
        raise InvalidTimeoutError(delay)
    if not math.isfinite(delay) or delay < 0:
        raise InvalidTimeoutError(delay)
    return delay


def resolve_delay(delay: float | Callable[[], float]) -> float:
    """Resolve a literal delay or a delay producer into a validated value.

    A callable is evaluated exactly once.

    Args:
        delay: A delay in milliseconds or a zero-argument callable
            returning one.

    Returns:
        The validated delay in milliseconds.

    Raises:
        InvalidTimeoutError: If the resolved value is invalid.

    Example:
        ```pycon
        >>> from askeduler.core.validation import resolve_delay
        >>> resolve_delay(10)
        10
        >>> resolve_delay(lambda: 20)
        20

        ```
    """
    if callable(delay):
        delay = delay()
    return validate_delay(delay)


def validate_retry_params(
    max_retries: int,
    base_timeout: float = 0.0,
    max_timeout: float = 0.0,
    deadline: float | None = None,
    initial_delay: float | None = None,
) -> None:
    """Validate retry parameters.

    Args:
        max_retries: Maximum number of retries after the initial attempt.
            A negative value means unlimited retries.
        base_timeout: Base delay of the default backoff in milliseconds.
            Must be >= 0.
        max_timeout: Cap of the default backoff in milliseconds.
            Must be >= 0.
        deadline: Optional overall time bound in milliseconds.
            Must be finite and > 0 if provided.
        initial_delay: Optional fixed delay of the first wait in
            milliseconds. Must be a valid delay if provided.

    Raises:
        TypeError: If max_retries is not an integer.
        ValueError: If any other parameter is out of range.

    Example:
        ```pycon
        >>> from askeduler.core import validate_retry_params
        >>> validate_retry_params(max_retries=3)
        >>> validate_retry_params(max_retries=-1, deadline=5000)
        >>> validate_retry_params(max_retries=3, base_timeout=-1)  # doctest: +SKIP

        ```
    """
    if isinstance(max_retries, bool) or not isinstance(max_retries, int):
        msg = f"max_retries must be an int, got {max_retries!r}"
        raise TypeError(msg)
    if base_timeout < 0:
        msg = f"base_timeout must be >= 0, got {base_timeout}"
        raise ValueError(msg)
    if max_timeout < 0:
        msg = f"max_timeout must be >= 0, got {max_timeout}"
        raise ValueError(msg)
    if deadline is not None and not 0 < deadline < math.inf:
        msg = f"deadline must be finite and > 0, got {deadline}"
        raise ValueError(msg)
    if initial_delay is not None:
        validate_delay(initial_delay)
