r"""Single-shot cancellable timers.

A ``Timer`` resolves its delay once, registers its expiry with the event
loop and reports completion exactly once. Its cancel handle synchronously
revokes the loop registration, so a cancelled timer never fires, even if
its deadline is reached in the same loop iteration.

Example:
    ```pycon
    >>> import asyncio
    >>> from askeduler.timer import Timer, TimerState
    >>> async def main():
    ...     fired = []
    ...     timer = Timer(10, lambda: fired.append(True))
    ...     cancel = timer.start()
    ...     cancel()
    ...     await asyncio.sleep(0.05)
    ...     return timer.state, fired
    ...
    >>> asyncio.run(main())
    (<TimerState.CANCELLED: 'cancelled'>, [])

    ```
"""

from __future__ import annotations

__all__ = ["Cancel", "Timer", "TimerState", "schedule"]

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from askeduler.core.validation import resolve_delay
from askeduler.signals import Signal, SignalKind

if TYPE_CHECKING:
    from askeduler.signals import SignalBus

logger: logging.Logger = logging.getLogger(__name__)

Cancel = Callable[[], None]


class TimerState(Enum):
    """Timer states.

    ``PENDING`` moves to exactly one of the terminal states ``FIRED`` or
    ``CANCELLED``.
    """

    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"


class Timer:
    """Single-shot cancellable delay.

    Args:
        delay: Delay in milliseconds, or a zero-argument callable returning
            one. A callable is evaluated exactly once, here.
        on_fire: Callable invoked once when the delay elapses.
        scope_id: Identity used to address the timer with signals.
        bus: Optional bus on which the timer listens for a ``TERMINATE``
            signal addressed to ``scope_id``.
        loop: Event loop, defaults to the running loop when started.

    Raises:
        InvalidTimeoutError: If the resolved delay is not a finite
            non-negative number.
        ValueError: If ``bus`` is given without ``scope_id``.
    """

    def __init__(
        self,
        delay: float | Callable[[], float],
        on_fire: Callable[[], Any],
        *,
        scope_id: str | None = None,
        bus: SignalBus | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if bus is not None and scope_id is None:
            msg = "scope_id is required to listen on a bus"
            raise ValueError(msg)
        self._delay = resolve_delay(delay)
        self._on_fire = on_fire
        self._scope_id = scope_id
        self._bus = bus
        self._loop = loop
        self._state = TimerState.PENDING
        self._handle: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(delay={self._delay}, "
            f"scope_id={self._scope_id!r}, state={self._state.value})"
        )

    @property
    def delay(self) -> float:
        """The resolved delay in milliseconds."""
        return self._delay

    @property
    def scope_id(self) -> str | None:
        return self._scope_id

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def started(self) -> bool:
        return self._handle is not None

    def start(self) -> Cancel:
        """Register the expiry with the event loop.

        Returns:
            The idempotent cancel handle of the timer.

        Raises:
            RuntimeError: If the timer was already started or cancelled.
        """
        if self._handle is not None or self._state is not TimerState.PENDING:
            msg = f"{self!r} cannot be started twice"
            raise RuntimeError(msg)
        loop = self._loop or asyncio.get_running_loop()
        if self._bus is not None:
            self._unsubscribe = self._bus.subscribe(self._scope_id, self._on_signal)
        self._handle = loop.call_later(self._delay / 1000, self._fire)
        logger.debug(f"Timer {self._scope_id} scheduled in {self._delay}ms")
        return self.cancel

    def cancel(self) -> None:
        """Cancel the timer.

        After this call ``on_fire`` is never invoked. Calling it again, or
        after the timer fired, has no effect.
        """
        if self._state is not TimerState.PENDING:
            return
        self._state = TimerState.CANCELLED
        if self._handle is not None:
            self._handle.cancel()
        self._detach()
        logger.debug(f"Timer {self._scope_id} cancelled")

    def _fire(self) -> None:
        if self._state is not TimerState.PENDING:
            return
        self._state = TimerState.FIRED
        self._detach()
        logger.debug(f"Timer {self._scope_id} fired after {self._delay}ms")
        self._on_fire()

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_signal(self, signal: Signal) -> None:
        if signal.kind is SignalKind.TERMINATE and signal.is_addressed_to(self._scope_id):
            self.cancel()


def schedule(
    delay: float | Callable[[], float],
    on_fire: Callable[[], Any],
    **kwargs: Any,
) -> Cancel:
    """Create and start a timer.

    Args:
        delay: Delay in milliseconds, or a zero-argument callable returning
            one.
        on_fire: Callable invoked once when the delay elapses.
        **kwargs: Additional keyword arguments passed to ``Timer``.

    Returns:
        The idempotent cancel handle of the timer.

    Raises:
        InvalidTimeoutError: If the resolved delay is invalid.
    """
    return Timer(delay, on_fire, **kwargs).start()
