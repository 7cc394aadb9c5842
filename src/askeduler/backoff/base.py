r"""Abstract base class for backoff sequences."""

from __future__ import annotations

__all__ = ["BaseBackoffSequence"]

from abc import ABC, abstractmethod


class BaseBackoffSequence(ABC):
    """Abstract base class for backoff sequences.

    A backoff sequence is a stateful producer of successive delays. Every
    call advances the sequence, so a sequence must be owned by a single
    retry engine. A sequence is not restartable in place: use ``fresh()``
    to obtain a new sequence with the same parameters.

    A sequence can be used as a zero-argument delay producer
    (``sequence()``) or as an infinite iterator (``next(sequence)``).
    """

    @abstractmethod
    def next_delay(self) -> float:
        """Advance the sequence and return the next delay.

        Returns:
            The next delay in milliseconds.
        """

    @abstractmethod
    def fresh(self) -> BaseBackoffSequence:
        """Return a new sequence with the same parameters and a reset state.

        Returns:
            The new sequence.
        """

    def __call__(self) -> float:
        return self.next_delay()

    def __iter__(self) -> BaseBackoffSequence:
        return self

    def __next__(self) -> float:
        return self.next_delay()
