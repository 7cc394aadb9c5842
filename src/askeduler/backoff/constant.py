r"""Constant backoff sequence."""

from __future__ import annotations

__all__ = ["ConstantBackoff"]

from askeduler.backoff.base import BaseBackoffSequence
from askeduler.core.config import DEFAULT_TIMEOUT
from askeduler.core.validation import validate_delay


class ConstantBackoff(BaseBackoffSequence):
    """Backoff sequence returning the same delay on every call.

    Args:
        delay: The delay in milliseconds.

    Example:
        ```pycon
        >>> from askeduler.backoff import ConstantBackoff
        >>> backoff = ConstantBackoff(delay=250)
        >>> backoff(), backoff(), next(backoff)
        (250, 250, 250)

        ```
    """

    def __init__(self, delay: float = DEFAULT_TIMEOUT) -> None:
        self.delay = validate_delay(delay)

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(delay={self.delay})"

    def next_delay(self) -> float:
        return self.delay

    def fresh(self) -> ConstantBackoff:
        return self.__class__(delay=self.delay)
