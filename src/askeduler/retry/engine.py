r"""Retry engine driving successive timers within a retry budget.

The engine is an explicit state machine advanced by timer expirations and
by signals received on its bus::

    IDLE -> SCHEDULED -> ELAPSED -> SCHEDULED | EXHAUSTED
                      \-> TERMINATED (terminate request, deadline, failure)

Every timer firing increments the attempt counter exactly once. With
``max_retries = N >= 0`` the engine observes ``N + 1`` firings: the first
``N`` start a new iteration and the last one exhausts the budget.
"""

from __future__ import annotations

__all__ = ["RetryContext", "RetryEngine", "RetryState"]

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from askeduler.core.config import RetryParams
from askeduler.exceptions import InvalidTimeoutError, RetryLimitExceededError
from askeduler.signals import Signal, SignalKind
from askeduler.timer import Timer
from askeduler.utils.structured_logging import log_structured

if TYPE_CHECKING:
    from collections.abc import Callable

    from askeduler.signals import SignalBus
    from askeduler.timer import Cancel

logger: logging.Logger = logging.getLogger(__name__)


class RetryState(Enum):
    """Retry engine states.

    Attributes:
        IDLE: Created, not started.
        SCHEDULED: A timer is pending.
        ELAPSED: A timer fired and the next step is being decided.
        EXHAUSTED: The retry budget is spent (terminal).
        TERMINATED: Stopped on request, by the deadline or by an invalid
            delay (terminal).
    """

    IDLE = "idle"
    SCHEDULED = "scheduled"
    ELAPSED = "elapsed"
    EXHAUSTED = "exhausted"
    TERMINATED = "terminated"


TERMINAL_STATES = frozenset({RetryState.EXHAUSTED, RetryState.TERMINATED})


@dataclass
class RetryContext:
    """Mutable bookkeeping of a retry engine.

    Attributes:
        max_retries: Maximum number of retries, negative for unlimited.
        deadline: Optional overall time bound in milliseconds.
        attempt_counter: Number of timer firings so far.
        current_timer: The single live attempt timer, if any.
        deadline_timer: The live deadline timer, if any.
        started_at: Loop time when the engine started.
    """

    max_retries: int
    deadline: float | None = None
    attempt_counter: int = 0
    current_timer: Timer | None = None
    deadline_timer: Timer | None = None
    started_at: float | None = None

    def within_budget(self) -> bool:
        return self.max_retries < 0 or self.attempt_counter <= self.max_retries


class RetryEngine:
    """Schedules successive timers bounded by a retry count and a deadline.

    The engine publishes ``STARTED`` when it schedules its first timer,
    ``NEXT_ITERATION`` (metadata: counter) for every firing within budget,
    ``FINISHED`` (metadata: counter) when the budget is exhausted and
    ``FAILED`` when it stops abnormally. It reacts to ``TERMINATE`` and
    ``RESCHEDULE`` signals addressed to its scope.

    Args:
        bus: The bus of the run.
        params: Retry parameters. Defaults to ``RetryParams()``.
        scope_id: Identity of the engine on the bus. Defaults to a new
            ``"engine-<n>"`` scope.
        loop: Event loop, defaults to the running loop when started.

    Example:
        ```pycon
        >>> import asyncio
        >>> from askeduler.core import RetryParams
        >>> from askeduler.retry import RetryEngine, RetryState
        >>> from askeduler.signals import SignalBus
        >>> async def main():
        ...     engine = RetryEngine(SignalBus(), RetryParams(delay=1, max_retries=2))
        ...     engine.start()
        ...     while not engine.done:
        ...         await asyncio.sleep(0.01)
        ...     return engine.state, engine.attempt_counter
        ...
        >>> asyncio.run(main())
        (<RetryState.EXHAUSTED: 'exhausted'>, 3)

        ```
    """

    def __init__(
        self,
        bus: SignalBus,
        params: RetryParams | None = None,
        *,
        scope_id: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._bus = bus
        self._params = params if params is not None else RetryParams()
        self._scope_id = scope_id if scope_id is not None else bus.new_scope("engine")
        self._deadline_scope = f"{self._scope_id}:deadline"
        self._loop = loop
        self._delay_source = self._params.next_delay_source()
        self._context = RetryContext(
            max_retries=self._params.max_retries, deadline=self._params.deadline
        )
        self._state = RetryState.IDLE
        self._unsubscribe: Callable[[], None] | None = None

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(scope_id={self._scope_id!r}, "
            f"state={self._state.value}, attempt_counter={self._context.attempt_counter})"
        )

    @property
    def scope_id(self) -> str:
        return self._scope_id

    @property
    def state(self) -> RetryState:
        return self._state

    @property
    def context(self) -> RetryContext:
        return self._context

    @property
    def attempt_counter(self) -> int:
        return self._context.attempt_counter

    @property
    def done(self) -> bool:
        """Whether the engine reached a terminal state."""
        return self._state in TERMINAL_STATES

    def start(self) -> Cancel:
        """Subscribe to the bus and schedule the first timer.

        The first wait uses ``params.initial_delay`` when set, otherwise
        the configured delay source.

        Returns:
            The cancel handle of the engine (``terminate``).

        Raises:
            RuntimeError: If the engine is not idle.
            InvalidTimeoutError: If the first delay or the deadline is
                invalid. The engine is left terminated with nothing
                scheduled.
        """
        if self._state is not RetryState.IDLE:
            msg = f"{self!r} can only be started once"
            raise RuntimeError(msg)
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._context.started_at = loop.time()
        self._unsubscribe = self._bus.subscribe(self._scope_id, self._on_signal)
        first_delay = (
            self._params.initial_delay
            if self._params.initial_delay is not None
            else self._delay_source
        )
        try:
            if self._context.deadline is not None:
                self._context.deadline_timer = Timer(
                    self._context.deadline,
                    self._on_deadline,
                    scope_id=self._deadline_scope,
                    bus=self._bus,
                    loop=loop,
                )
            self._schedule(first_delay)
        except InvalidTimeoutError:
            self._state = RetryState.TERMINATED
            self._teardown()
            raise
        self._state = RetryState.SCHEDULED
        if self._context.deadline_timer is not None:
            self._context.deadline_timer.start()
        self._publish(SignalKind.STARTED, metadata=0)
        return self.terminate

    def terminate(self) -> None:
        """Stop the engine.

        Cancels the pending timers and unsubscribes from the bus. Calling it
        in a terminal state has no effect.
        """
        self._terminate(deadline=False)

    def reschedule(self, delay: float) -> None:
        """Replace the current wait with an explicit delay.

        The attempt counter is not modified. The request is ignored unless
        the engine is ``SCHEDULED``.

        Args:
            delay: The delay of the replacement timer in milliseconds.

        Raises:
            InvalidTimeoutError: If the delay is invalid. The current timer
                is left untouched.
        """
        if self._state is not RetryState.SCHEDULED:
            logger.debug(f"Engine {self._scope_id} ignores reschedule in state {self._state.value}")
            return
        self._schedule(delay)
        log_structured(
            logger,
            logging.DEBUG,
            f"Engine {self._scope_id} rescheduled in {delay}ms",
            scope_id=self._scope_id,
            attempt=self._context.attempt_counter,
            state=self._state.value,
        )

    def _schedule(self, delay: float | Callable[[], float]) -> None:
        # The replacement resolves its delay before the current timer is torn down
        timer = Timer(
            delay, self._on_timer_fired, scope_id=f"{self._scope_id}:timer", loop=self._loop
        )
        if self._context.current_timer is not None:
            self._context.current_timer.cancel()
        self._context.current_timer = timer
        timer.start()

    def _on_timer_fired(self) -> None:
        self._context.current_timer = None
        self._state = RetryState.ELAPSED
        self._context.attempt_counter += 1
        counter = self._context.attempt_counter
        if not self._context.within_budget():
            self._state = RetryState.EXHAUSTED
            self._teardown()
            log_structured(
                logger,
                logging.DEBUG,
                f"Engine {self._scope_id} exhausted after {counter} timer firings",
                scope_id=self._scope_id,
                attempt=counter,
                state=self._state.value,
            )
            self._publish(SignalKind.FINISHED, metadata=counter)
            return
        try:
            self._schedule(self._delay_source)
        except InvalidTimeoutError as exc:
            self._fail(exc)
            return
        self._state = RetryState.SCHEDULED
        self._publish(SignalKind.NEXT_ITERATION, metadata=counter)

    def _on_deadline(self) -> None:
        self._context.deadline_timer = None
        self._bus.publish(
            Signal(
                SignalKind.TERMINATE,
                origin_id=self._deadline_scope,
                target_ids=(self._scope_id,),
            )
        )

    def _on_signal(self, signal: Signal) -> None:
        if not signal.is_addressed_to(self._scope_id):
            return
        if signal.kind is SignalKind.TERMINATE:
            self._terminate(deadline=signal.origin_id == self._deadline_scope)
        elif signal.kind is SignalKind.RESCHEDULE:
            if signal.metadata is None:
                logger.debug(f"Engine {self._scope_id} ignores reschedule without delay")
                return
            try:
                self.reschedule(signal.metadata)
            except InvalidTimeoutError as exc:
                self._fail(exc)

    def _terminate(self, *, deadline: bool) -> None:
        if self.done:
            return
        self._state = RetryState.TERMINATED
        self._teardown()
        counter = self._context.attempt_counter
        log_structured(
            logger,
            logging.DEBUG,
            f"Engine {self._scope_id} terminated (deadline={deadline})",
            scope_id=self._scope_id,
            attempt=counter,
            state=self._state.value,
        )
        if deadline:
            self._publish(
                SignalKind.FAILED,
                error=RetryLimitExceededError(attempts=counter + 1, reason="deadline"),
            )

    def _fail(self, error: Exception) -> None:
        self._state = RetryState.TERMINATED
        self._teardown()
        logger.debug(f"Engine {self._scope_id} failed: {error}")
        self._publish(SignalKind.FAILED, error=error)

    def _teardown(self) -> None:
        if self._context.current_timer is not None:
            self._context.current_timer.cancel()
            self._context.current_timer = None
        if self._context.deadline_timer is not None:
            self._context.deadline_timer.cancel()
            self._context.deadline_timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _publish(
        self,
        kind: SignalKind,
        *,
        metadata: float | None = None,
        error: Exception | None = None,
    ) -> None:
        self._bus.publish(
            Signal(kind, origin_id=self._scope_id, metadata=metadata, error=error)
        )
