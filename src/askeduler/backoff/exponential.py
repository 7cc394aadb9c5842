r"""Exponential and Full Jitter backoff sequences."""

from __future__ import annotations

__all__ = ["ExponentialBackoff", "FullJitterBackoff"]

import math
import random

from askeduler.backoff.base import BaseBackoffSequence
from askeduler.core.config import DEFAULT_MAX_TIMEOUT, DEFAULT_TIMEOUT


class ExponentialBackoff(BaseBackoffSequence):
    """Capped exponential backoff sequence.

    The ``k``-th call (0-indexed) returns
    ``min(max_delay, base_delay * 2 ** k)``. Once the exponential term
    reaches ``max_delay`` the bound stays pinned at ``max_delay`` without
    computing larger powers, so the sequence never overflows.

    Args:
        base_delay: The delay of the first call in milliseconds.
        max_delay: The cap of every delay in milliseconds.

    Attributes:
        iteration: Index of the last produced delay. Starts at ``-1`` and
            increments on every call.

    Example:
        ```pycon
        >>> from askeduler.backoff import ExponentialBackoff
        >>> backoff = ExponentialBackoff(base_delay=100, max_delay=1000)
        >>> [backoff.next_delay() for _ in range(6)]
        [100, 200, 400, 800, 1000, 1000]

        ```
    """

    def __init__(
        self, base_delay: float = DEFAULT_TIMEOUT, max_delay: float = DEFAULT_MAX_TIMEOUT
    ) -> None:
        if base_delay < 0 or not math.isfinite(base_delay):
            msg = f"base_delay must be a finite non-negative number, got {base_delay}"
            raise ValueError(msg)
        if max_delay < 0 or not math.isfinite(max_delay):
            msg = f"max_delay must be a finite non-negative number, got {max_delay}"
            raise ValueError(msg)

        self.base_delay = base_delay
        self.max_delay = max_delay
        self.iteration = -1
        self._saturated = False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(base_delay={self.base_delay}, "
            f"max_delay={self.max_delay}, iteration={self.iteration})"
        )

    def upper_bound(self) -> float:
        """Return the bound of the current iteration.

        Returns:
            ``min(max_delay, base_delay * 2 ** iteration)``, or ``0`` before
            the first call.
        """
        if self.iteration < 0 or self.base_delay == 0:
            return 0
        if self._saturated:
            return self.max_delay
        try:
            bound = self.base_delay * 2**self.iteration
        except OverflowError:
            # A float base cannot absorb the integer power
            bound = math.inf
        if bound >= self.max_delay:
            self._saturated = True
            return self.max_delay
        return bound

    def next_delay(self) -> float:
        self.iteration += 1
        return self.upper_bound()

    def fresh(self) -> ExponentialBackoff:
        return self.__class__(base_delay=self.base_delay, max_delay=self.max_delay)


class FullJitterBackoff(ExponentialBackoff):
    """Full Jitter exponential backoff sequence.

    The ``k``-th call (0-indexed) returns an integer drawn uniformly from
    ``[0, min(max_delay, base_delay * 2 ** k)]``. Drawing from the whole
    range desynchronizes concurrent retriers that fail at the same time.

    Args:
        base_delay: The bound of the first call in milliseconds.
        max_delay: The cap of every bound in milliseconds.
        rng: Optional random generator, defaults to the ``random`` module.

    Example:
        ```pycon
        >>> from askeduler.backoff import FullJitterBackoff
        >>> backoff = FullJitterBackoff(base_delay=100, max_delay=1000)
        >>> 0 <= backoff.next_delay() <= 100
        True
        >>> 0 <= backoff.next_delay() <= 200
        True
        >>> backoff.iteration
        1

        ```
    """

    def __init__(
        self,
        base_delay: float = DEFAULT_TIMEOUT,
        max_delay: float = DEFAULT_MAX_TIMEOUT,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(base_delay=base_delay, max_delay=max_delay)
        self._rng = rng

    def next_delay(self) -> float:
        bound = super().next_delay()
        randint = self._rng.randint if self._rng is not None else random.randint
        return randint(0, math.floor(bound))  # noqa: S311

    def fresh(self) -> FullJitterBackoff:
        return self.__class__(base_delay=self.base_delay, max_delay=self.max_delay, rng=self._rng)
