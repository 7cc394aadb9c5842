r"""Configuration dataclass and defaults for the retry scheduler.

This module provides configuration constants and a dataclass-based
configuration object consumed by ``RetryEngine`` and ``Orchestrator``.
All durations are expressed in milliseconds.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_MAX_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "MAX_RETRY_AFTER",
    "RETRY_STATUS_CODES",
    "RetryParams",
]

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Union

from askeduler.core.validation import validate_delay, validate_retry_params

if TYPE_CHECKING:
    from collections.abc import Callable

    DelaySource = Union[float, Callable[[], float]]


# Default delay in milliseconds: base of the jittered backoff and fallback
# value of the Retry-After parsing
DEFAULT_TIMEOUT = 1000

# Default cap of a single jittered backoff delay in milliseconds
DEFAULT_MAX_TIMEOUT = 3000

# Upper bound applied to a delay parsed from a Retry-After header
MAX_RETRY_AFTER = 10000

# Default maximum number of retries
# Total attempts = max_retries + 1 (initial attempt)
DEFAULT_MAX_RETRIES = 3

# HTTP status codes the HTTP action reports as retryable
# 429 and 503 additionally honour the Retry-After header
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


@dataclass
class RetryParams:
    """Configuration of a bounded retry loop.

    Args:
        delay: Delay of each wait in milliseconds, either a literal value or
            a zero-argument callable evaluated once per wait. Defaults to a
            fresh ``FullJitterBackoff(base_timeout, max_timeout)``.
        base_timeout: Base delay of the default backoff.
        max_timeout: Cap of a single delay of the default backoff.
        max_retries: Maximum number of retries after the initial attempt.
            A negative value means unlimited retries.
        deadline: Optional overall time bound in milliseconds. When it
            elapses, the retry loop stops regardless of the remaining
            retry budget.
        initial_delay: Optional fixed delay of the first wait. When unset,
            the first wait uses ``delay`` like the following ones.

    Example:
        ```pycon
        >>> from askeduler.core.config import RetryParams
        >>> params = RetryParams()
        >>> params.max_retries
        3
        >>> params = RetryParams(delay=500, max_retries=-1, deadline=10000)
        >>> params.merge(max_retries=5).max_retries
        5
        >>> params.max_retries  # Original unchanged
        -1

        ```
    """

    delay: DelaySource | None = None
    base_timeout: float = DEFAULT_TIMEOUT
    max_timeout: float = DEFAULT_MAX_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    deadline: float | None = None
    initial_delay: float | None = None

    def __post_init__(self) -> None:
        """Validate configuration parameters after initialization.

        Raises:
            TypeError: If max_retries is not an integer.
            ValueError: If any parameter fails validation.
        """
        validate_retry_params(
            max_retries=self.max_retries,
            base_timeout=self.base_timeout,
            max_timeout=self.max_timeout,
            deadline=self.deadline,
            initial_delay=self.initial_delay,
        )
        if self.delay is not None and not callable(self.delay):
            validate_delay(self.delay)

    @property
    def unbounded(self) -> bool:
        """Whether the retry count is unlimited."""
        return self.max_retries < 0

    def next_delay_source(self) -> DelaySource:
        """Return the delay source consumed by a new retry engine.

        Backoff sequences are stateful and owned by exactly one engine, so
        a configured sequence is replaced by a fresh copy and the default
        backoff is created on every call.

        Returns:
            A literal delay or a zero-argument delay producer.

        Example:
            ```pycon
            >>> from askeduler.core.config import RetryParams
            >>> RetryParams(delay=200).next_delay_source()
            200
            >>> source = RetryParams(base_timeout=100, max_timeout=1000).next_delay_source()
            >>> 0 <= source() <= 100
            True

            ```
        """
        from askeduler.backoff import BaseBackoffSequence, FullJitterBackoff

        if self.delay is None:
            return FullJitterBackoff(base_delay=self.base_timeout, max_delay=self.max_timeout)
        if isinstance(self.delay, BaseBackoffSequence):
            return self.delay.fresh()
        return self.delay

    def merge(self, **overrides: Any) -> RetryParams:
        """Create new parameters with the specified fields overridden.

        Only non-None override values are applied.

        Args:
            **overrides: Keyword arguments for fields to override.

        Returns:
            A new ``RetryParams`` instance with overrides applied.
        """
        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **filtered_overrides)

    def to_dict(self) -> dict[str, Any]:
        """Convert the parameters to a dictionary.

        Returns:
            Dictionary with the retry parameters.

        Example:
            ```pycon
            >>> from askeduler.core.config import RetryParams
            >>> RetryParams(max_retries=5).to_dict()["max_retries"]
            5

            ```
        """
        return {
            "delay": self.delay,
            "base_timeout": self.base_timeout,
            "max_timeout": self.max_timeout,
            "max_retries": self.max_retries,
            "deadline": self.deadline,
            "initial_delay": self.initial_delay,
        }
