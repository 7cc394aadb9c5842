r"""Orchestrator composing an action with a retry engine.

The orchestrator runs a caller supplied action under a ``RetryEngine``
and exposes the outcome as a single future. The action and the engine
never reference each other: they coordinate through the ``SignalBus`` of
the run.

- A successful attempt terminates the engine and resolves the future.
- A retryable failure waits for the next timer firing, optionally after
  rescheduling the current wait with the delay carried by the failure.
- A terminal failure terminates the engine and rejects the future.
- An exhausted engine cancels the attempt in flight and rejects the
  future with ``RetryLimitExceededError``.
- Cancelling the future cancels the attempt in flight and the engine.
"""

from __future__ import annotations

__all__ = ["ActionFactory", "Orchestrator", "retry_action"]

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from askeduler.core.config import RetryParams
from askeduler.exceptions import InvalidTimeoutError, RetryLimitExceededError
from askeduler.retry.decider import OutcomeDecider
from askeduler.retry.engine import RetryEngine
from askeduler.retry.manager import CallbackManager
from askeduler.signals import Signal, SignalBus, SignalKind
from askeduler.utils.structured_logging import log_structured

if TYPE_CHECKING:
    from askeduler.callbacks import CallbackConfig

logger: logging.Logger = logging.getLogger(__name__)

ActionFactory = Callable[[], Awaitable[Any]]


class Orchestrator:
    """Runs an action with retries, backoff and bidirectional cancellation.

    Each call of ``action_factory`` starts one attempt and must return an
    awaitable. The awaitable is wrapped in a task whose ``cancel`` method
    is the cancel handle of the attempt. Only one attempt is in flight at
    any time: the previous attempt is cancelled before the next one is
    created.

    Args:
        action_factory: Zero-argument callable starting an attempt.
        params: Retry parameters. Defaults to ``RetryParams()``.
        decider: Classifier of attempt failures. Defaults to
            ``OutcomeDecider(retry_if)``.
        retry_if: Optional predicate used by the default decider.
        callbacks: Optional lifecycle callbacks.
        loop: Event loop, defaults to the running loop when started.

    Example:
        ```pycon
        >>> import asyncio
        >>> from askeduler.core import RetryParams
        >>> from askeduler.exceptions import RetryableActionError
        >>> from askeduler.retry import Orchestrator
        >>> calls = []
        >>> async def flaky():
        ...     calls.append(1)
        ...     if len(calls) < 3:
        ...         raise RetryableActionError("not yet")
        ...     return "done"
        ...
        >>> async def main():
        ...     return await Orchestrator(flaky, RetryParams(delay=20, max_retries=3)).run()
        ...
        >>> asyncio.run(main())
        'done'

        ```
    """

    def __init__(
        self,
        action_factory: ActionFactory,
        params: RetryParams | None = None,
        *,
        decider: OutcomeDecider | None = None,
        retry_if: Callable[[Exception], bool] | None = None,
        callbacks: CallbackConfig | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._action_factory = action_factory
        self.params = params if params is not None else RetryParams()
        self.decider = decider if decider is not None else OutcomeDecider(retry_if)
        self.callbacks = CallbackManager(callbacks)
        self._loop = loop

        self._bus: SignalBus | None = None
        self._engine: RetryEngine | None = None
        self._future: asyncio.Future | None = None
        self._scope_id: str | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._cancel_engine: Callable[[], None] | None = None
        self._task: asyncio.Future | None = None
        self._attempt = -1
        self._last_error: Exception | None = None
        self._start_time = 0.0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(scope_id={self._scope_id!r}, "
            f"attempts={self.attempts}, done={self.done})"
        )

    @property
    def bus(self) -> SignalBus | None:
        return self._bus

    @property
    def engine(self) -> RetryEngine | None:
        return self._engine

    @property
    def future(self) -> asyncio.Future | None:
        return self._future

    @property
    def attempts(self) -> int:
        """Number of attempts started so far."""
        return self._attempt + 1

    @property
    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def start(self) -> asyncio.Future:
        """Start the engine and the first attempt.

        Returns:
            The future of the run. It resolves with the value of the first
            successful attempt, or is rejected with a ``TerminalActionError``
            or a ``RetryLimitExceededError``. Cancelling it cancels the run.

        Raises:
            RuntimeError: If the orchestrator was already started.
            InvalidTimeoutError: If the first delay is invalid.
        """
        if self._future is not None:
            msg = f"{self!r} can only be started once"
            raise RuntimeError(msg)
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._future = loop.create_future()
        self._bus = SignalBus()
        self._scope_id = self._bus.new_scope("run")
        self._engine = RetryEngine(self._bus, self.params, loop=loop)
        self._unsubscribe = self._bus.subscribe(self._scope_id, self._on_signal)
        self._start_time = time.time()
        try:
            self._cancel_engine = self._engine.start()
        except InvalidTimeoutError:
            self._future.cancel()
            self._teardown()
            raise
        self._future.add_done_callback(self._on_future_done)
        self._start_attempt()
        return self._future

    async def run(self) -> Any:
        """Start the run and wait for its outcome.

        Returns:
            The value of the first successful attempt.

        Raises:
            TerminalActionError: If an attempt failed with a
                non-retryable error.
            RetryLimitExceededError: If the retry budget ran out.
            InvalidTimeoutError: If a delay is invalid.
            asyncio.CancelledError: If the run was cancelled.
        """
        return await self.start()

    def cancel(self) -> None:
        """Cancel the run.

        The attempt in flight and the engine are cancelled synchronously and
        the future ends cancelled. Calling it after the run settled has no
        effect.
        """
        if self._future is None or self._future.done():
            return
        self._cancel_action()
        self._teardown()
        self._future.cancel()

    def _start_attempt(self) -> None:
        self._attempt += 1
        log_structured(
            logger,
            logging.DEBUG,
            f"Run {self._scope_id} starts attempt {self._attempt + 1}",
            scope_id=self._scope_id,
            attempt=self._attempt + 1,
        )
        self.callbacks.on_attempt(self._attempt, self.params.max_retries)
        try:
            task = asyncio.ensure_future(self._action_factory(), loop=self._loop)
        except Exception as exc:  # noqa: BLE001
            self._task = None
            self._handle_failure(exc, reschedule=True)
            return
        self._task = task
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        if task is not self._task or self.done:
            if not task.cancelled():
                # Mark the outcome of a superseded attempt as retrieved
                task.exception()
            return
        self._task = None
        self._settle_outcome(task, reschedule=True)

    def _settle_outcome(self, task: asyncio.Future, *, reschedule: bool) -> None:
        if task.cancelled():
            logger.debug(f"Run {self._scope_id}: attempt {self._attempt + 1} was cancelled")
            return
        exc = task.exception()
        if exc is None:
            self._resolve(task.result())
        else:
            self._handle_failure(exc, reschedule=reschedule)

    def _handle_failure(self, exc: BaseException, *, reschedule: bool) -> None:
        error = self.decider.classify(exc)
        if not error.retryable:
            self._publish_terminate()
            self._reject(error)
            return
        self._last_error = error
        logger.debug(f"Run {self._scope_id}: attempt {self._attempt + 1} failed ({error})")
        if reschedule and error.delay_override is not None:
            self._bus.publish(
                Signal(
                    SignalKind.RESCHEDULE,
                    origin_id=self._scope_id,
                    target_ids=(self._engine.scope_id,),
                    metadata=error.delay_override,
                )
            )

    def _on_signal(self, signal: Signal) -> None:
        if not signal.is_addressed_to(self._scope_id) or signal.origin_id != self._engine.scope_id:
            return
        if signal.kind is SignalKind.STARTED:
            logger.debug(f"Run {self._scope_id}: engine {signal.origin_id} started")
        elif signal.kind is SignalKind.NEXT_ITERATION:
            self._next_iteration()
        elif signal.kind is SignalKind.FINISHED:
            self._reject(
                RetryLimitExceededError(attempts=self.attempts, last_error=self._last_error)
            )
        elif signal.kind is SignalKind.FAILED:
            error = signal.error
            if isinstance(error, RetryLimitExceededError):
                error = RetryLimitExceededError(
                    attempts=self.attempts, reason=error.reason, last_error=self._last_error
                )
            self._reject(error)

    def _next_iteration(self) -> None:
        if self.done:
            return
        previous = self._task
        self._task = None
        if previous is not None and previous.done():
            # The previous attempt finished before its done callback ran
            self._settle_outcome(previous, reschedule=False)
            if self.done:
                return
        error = self._last_error
        if previous is not None and not previous.done():
            previous.cancel()
            error = None
        self.callbacks.on_retry(self._attempt + 1, self.params.max_retries, error)
        self._start_attempt()

    def _resolve(self, result: Any) -> None:
        if self.done:
            return
        self._publish_terminate()
        self._future.set_result(result)
        log_structured(
            logger,
            logging.DEBUG,
            f"Run {self._scope_id} succeeded on attempt {self._attempt + 1}",
            scope_id=self._scope_id,
            attempt=self._attempt + 1,
        )
        self._teardown()
        self.callbacks.on_success(
            self._attempt, self.params.max_retries, result, self._start_time
        )

    def _reject(self, error: Exception) -> None:
        if self.done:
            return
        self._cancel_action()
        self._future.set_exception(error)
        log_structured(
            logger,
            logging.DEBUG,
            f"Run {self._scope_id} failed after {self._attempt + 1} attempts: {error}",
            scope_id=self._scope_id,
            attempt=self._attempt + 1,
        )
        self._teardown()
        self.callbacks.on_failure(
            self._attempt, self.params.max_retries, error, self._start_time
        )

    def _on_future_done(self, future: asyncio.Future) -> None:
        if future.cancelled():
            logger.debug(f"Run {self._scope_id} cancelled")
            self._cancel_action()
            self._teardown()

    def _publish_terminate(self) -> None:
        if self._engine is not None and not self._engine.done:
            self._bus.publish(
                Signal(
                    SignalKind.TERMINATE,
                    origin_id=self._scope_id,
                    target_ids=(self._engine.scope_id,),
                )
            )

    def _cancel_action(self) -> None:
        if self._task is not None:
            self._task.cancel()

    def _teardown(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._cancel_engine is not None:
            self._cancel_engine()
            self._cancel_engine = None
        elif self._engine is not None:
            self._engine.terminate()
        if self._bus is not None:
            self._bus.clear()


async def retry_action(
    action_factory: ActionFactory,
    params: RetryParams | None = None,
    **kwargs: Any,
) -> Any:
    """Run an action with retries and return its result.

    Args:
        action_factory: Zero-argument callable starting an attempt.
        params: Retry parameters. Defaults to ``RetryParams()``.
        **kwargs: Additional keyword arguments passed to ``Orchestrator``.

    Returns:
        The value of the first successful attempt.

    Raises:
        TerminalActionError: If an attempt failed with a non-retryable error.
        RetryLimitExceededError: If the retry budget ran out.

    Example:
        ```pycon
        >>> import asyncio
        >>> from askeduler import RetryParams, retry_action
        >>> async def ping():
        ...     return "pong"
        ...
        >>> asyncio.run(retry_action(ping, RetryParams(max_retries=0)))
        'pong'

        ```
    """
    return await Orchestrator(action_factory, params, **kwargs).run()
