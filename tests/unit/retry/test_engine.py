r"""Unit tests for the retry engine state machine."""

from __future__ import annotations

import asyncio

import pytest

from askeduler.backoff import ConstantBackoff
from askeduler.core import RetryParams
from askeduler.exceptions import InvalidTimeoutError, RetryLimitExceededError
from askeduler.retry.engine import RetryContext, RetryEngine, RetryState
from askeduler.signals import Signal, SignalBus, SignalKind
from askeduler.timer import TimerState


async def wait_until_done(engine: RetryEngine, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not engine.done:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def kinds(signals: list[Signal]) -> list[SignalKind]:
    return [signal.kind for signal in signals]


##################################
#     Tests for RetryContext     #
##################################


def test_retry_context_defaults() -> None:
    context = RetryContext(max_retries=3)
    assert context.attempt_counter == 0
    assert context.deadline is None
    assert context.current_timer is None
    assert context.deadline_timer is None


@pytest.mark.parametrize(
    ("max_retries", "counter", "expected"),
    [(3, 0, True), (3, 3, True), (3, 4, False), (0, 1, False), (-1, 10_000, True)],
)
def test_retry_context_within_budget(max_retries: int, counter: int, expected: bool) -> None:
    context = RetryContext(max_retries=max_retries, attempt_counter=counter)
    assert context.within_budget() is expected


#################################
#     Tests for RetryEngine     #
#################################


def test_retry_engine_creation(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=10, max_retries=2))
    assert engine.state == RetryState.IDLE
    assert engine.scope_id.startswith("engine-")
    assert engine.attempt_counter == 0
    assert engine.context.max_retries == 2
    assert not engine.done


def test_retry_engine_custom_scope_id(bus: SignalBus) -> None:
    engine = RetryEngine(bus, scope_id="my-engine")
    assert engine.scope_id == "my-engine"
    assert repr(engine) == "RetryEngine(scope_id='my-engine', state=idle, attempt_counter=0)"


@pytest.mark.asyncio
async def test_retry_engine_start(bus: SignalBus, signal_log: list[Signal]) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=2))
    cancel = engine.start()

    assert engine.state == RetryState.SCHEDULED
    assert engine.context.current_timer is not None
    assert engine.context.current_timer.delay == 1000
    assert signal_log == [Signal(SignalKind.STARTED, origin_id=engine.scope_id, metadata=0)]
    cancel()


@pytest.mark.asyncio
async def test_retry_engine_start_twice(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000))
    engine.start()
    with pytest.raises(RuntimeError, match=r"can only be started once"):
        engine.start()
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_exhausts_after_max_retries_plus_one_firings(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    """Test that N retries give N + 1 firings and one FINISHED signal."""
    engine = RetryEngine(bus, RetryParams(delay=1, max_retries=3))
    engine.start()
    await wait_until_done(engine)
    await asyncio.sleep(0.02)

    assert engine.state == RetryState.EXHAUSTED
    assert engine.attempt_counter == 4
    assert kinds(signal_log) == [
        SignalKind.STARTED,
        SignalKind.NEXT_ITERATION,
        SignalKind.NEXT_ITERATION,
        SignalKind.NEXT_ITERATION,
        SignalKind.FINISHED,
    ]
    assert [signal.metadata for signal in signal_log] == [0, 1, 2, 3, 4]
    assert engine.context.current_timer is None
    assert len(bus) == 1  # Only the observer


@pytest.mark.asyncio
async def test_retry_engine_zero_retries(bus: SignalBus, signal_log: list[Signal]) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1, max_retries=0))
    engine.start()
    await wait_until_done(engine)

    assert engine.attempt_counter == 1
    assert kinds(signal_log) == [SignalKind.STARTED, SignalKind.FINISHED]


@pytest.mark.asyncio
async def test_retry_engine_unbounded_until_terminated(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    """Test that a negative max_retries never exhausts."""
    engine = RetryEngine(bus, RetryParams(delay=0, max_retries=-1))
    engine.start()

    async def poll() -> None:
        while engine.attempt_counter < 50:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), 5.0)
    assert engine.state == RetryState.SCHEDULED
    engine.terminate()
    counter = engine.attempt_counter
    await asyncio.sleep(0.02)

    assert engine.state == RetryState.TERMINATED
    assert engine.attempt_counter == counter
    assert SignalKind.FINISHED not in kinds(signal_log)
    assert SignalKind.FAILED not in kinds(signal_log)


@pytest.mark.asyncio
async def test_retry_engine_terminate_cancels_timer(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=20, max_retries=3))
    engine.start()
    timer = engine.context.current_timer
    engine.terminate()
    await asyncio.sleep(0.05)

    assert engine.state == RetryState.TERMINATED
    assert timer.state == TimerState.CANCELLED
    assert engine.attempt_counter == 0
    assert engine.context.current_timer is None
    assert len(bus) == 0


@pytest.mark.asyncio
async def test_retry_engine_terminate_signal_idempotent(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    """Test that repeated TERMINATE signals have no additional effect."""
    engine = RetryEngine(bus, RetryParams(delay=20, max_retries=3))
    engine.start()
    terminate = Signal(SignalKind.TERMINATE, origin_id="run-9", target_ids=(engine.scope_id,))
    bus.publish(terminate)
    bus.publish(terminate)
    engine.terminate()
    await asyncio.sleep(0.05)

    assert engine.state == RetryState.TERMINATED
    assert kinds(signal_log) == [SignalKind.STARTED, SignalKind.TERMINATE, SignalKind.TERMINATE]


@pytest.mark.asyncio
async def test_retry_engine_ignores_signals_for_other_scopes(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=20, max_retries=3))
    engine.start()
    bus.publish(Signal(SignalKind.TERMINATE, origin_id="run-9", target_ids=("engine-99",)))
    assert engine.state == RetryState.SCHEDULED
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_terminate_after_exhaustion_noop(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    engine = RetryEngine(bus, RetryParams(delay=0, max_retries=1))
    engine.start()
    await wait_until_done(engine)
    engine.terminate()

    assert engine.state == RetryState.EXHAUSTED
    assert kinds(signal_log).count(SignalKind.FINISHED) == 1


@pytest.mark.asyncio
async def test_retry_engine_reschedule_signal(bus: SignalBus) -> None:
    """Test that RESCHEDULE replaces the wait without touching the counter."""
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.start()
    previous = engine.context.current_timer

    bus.publish(
        Signal(
            SignalKind.RESCHEDULE,
            origin_id="run-9",
            target_ids=(engine.scope_id,),
            metadata=500,
        )
    )

    assert engine.context.current_timer is not previous
    assert engine.context.current_timer.delay == 500
    assert previous.state == TimerState.CANCELLED
    assert engine.attempt_counter == 0
    assert engine.state == RetryState.SCHEDULED
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_reschedule_fires_with_new_delay(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.start()
    engine.reschedule(5)
    await asyncio.sleep(0.05)

    assert engine.attempt_counter == 1
    assert kinds(signal_log) == [SignalKind.STARTED, SignalKind.NEXT_ITERATION]
    assert engine.context.current_timer.delay == 1000
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_reschedule_without_delay_ignored(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.start()
    timer = engine.context.current_timer
    bus.publish(Signal(SignalKind.RESCHEDULE, origin_id="run-9", target_ids=(engine.scope_id,)))
    assert engine.context.current_timer is timer
    engine.terminate()


def test_retry_engine_reschedule_ignored_when_idle(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.reschedule(10)
    assert engine.state == RetryState.IDLE
    assert engine.context.current_timer is None


@pytest.mark.asyncio
async def test_retry_engine_reschedule_invalid_delay_method(bus: SignalBus) -> None:
    """Test that an invalid explicit delay leaves the current timer untouched."""
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.start()
    timer = engine.context.current_timer
    with pytest.raises(InvalidTimeoutError):
        engine.reschedule(-1)
    assert engine.context.current_timer is timer
    assert timer.state == TimerState.PENDING
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_reschedule_invalid_delay_signal(
    bus: SignalBus, signal_log: list[Signal]
) -> None:
    """Test that an invalid delay received on the bus fails the engine."""
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.start()
    bus.publish(
        Signal(
            SignalKind.RESCHEDULE,
            origin_id="run-9",
            target_ids=(engine.scope_id,),
            metadata=float("nan"),
        )
    )

    assert engine.state == RetryState.TERMINATED
    assert engine.context.current_timer is None
    failed = signal_log[-1]
    assert failed.kind == SignalKind.FAILED
    assert failed.origin_id == engine.scope_id
    assert isinstance(failed.error, InvalidTimeoutError)


@pytest.mark.asyncio
async def test_retry_engine_invalid_first_delay(bus: SignalBus, signal_log: list[Signal]) -> None:
    """Test that an invalid first delay raises and leaves nothing scheduled."""
    engine = RetryEngine(bus, RetryParams(delay=lambda: -1, max_retries=3))
    with pytest.raises(InvalidTimeoutError):
        engine.start()

    assert engine.state == RetryState.TERMINATED
    assert engine.context.current_timer is None
    assert signal_log == []
    assert len(bus) == 1  # Only the observer


@pytest.mark.parametrize("deadline", [float("inf"), float("nan"), -5])
@pytest.mark.asyncio
async def test_retry_engine_invalid_deadline(
    bus: SignalBus, signal_log: list[Signal], deadline: float
) -> None:
    """Test that an invalid deadline raises before any timer is scheduled."""
    engine = RetryEngine(bus, RetryParams(delay=1000, max_retries=3))
    engine.context.deadline = deadline
    with pytest.raises(InvalidTimeoutError):
        engine.start()

    assert engine.state == RetryState.TERMINATED
    assert engine.context.current_timer is None
    assert engine.context.deadline_timer is None
    assert signal_log == []
    assert len(bus) == 1  # Only the observer


@pytest.mark.asyncio
async def test_retry_engine_invalid_later_delay(bus: SignalBus, signal_log: list[Signal]) -> None:
    """Test that an invalid delay produced after a firing fails the engine."""
    delays = iter([0, float("inf")])
    engine = RetryEngine(bus, RetryParams(delay=lambda: next(delays), max_retries=3))
    engine.start()
    await wait_until_done(engine)

    assert engine.state == RetryState.TERMINATED
    assert kinds(signal_log) == [SignalKind.STARTED, SignalKind.FAILED]
    assert isinstance(signal_log[-1].error, InvalidTimeoutError)


@pytest.mark.asyncio
async def test_retry_engine_initial_delay(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=1000, initial_delay=0, max_retries=3))
    engine.start()
    assert engine.context.current_timer.delay == 0
    await asyncio.sleep(0.02)
    assert engine.attempt_counter == 1
    assert engine.context.current_timer.delay == 1000
    engine.terminate()


@pytest.mark.asyncio
async def test_retry_engine_backoff_sequence_is_fresh(bus: SignalBus) -> None:
    """Test that the engine consumes a copy of the configured sequence."""
    backoff = ConstantBackoff(delay=1)
    engine = RetryEngine(bus, RetryParams(delay=backoff, max_retries=1))
    engine.start()
    await wait_until_done(engine)
    assert engine.state == RetryState.EXHAUSTED


@pytest.mark.asyncio
async def test_retry_engine_deadline(bus: SignalBus, signal_log: list[Signal]) -> None:
    """Test that the deadline terminates the engine with a FAILED signal."""
    engine = RetryEngine(bus, RetryParams(delay=5, max_retries=-1, deadline=40))
    engine.start()
    assert engine.context.deadline_timer is not None
    await wait_until_done(engine)

    assert engine.state == RetryState.TERMINATED
    assert engine.context.current_timer is None
    assert engine.context.deadline_timer is None
    failed = signal_log[-1]
    assert failed.kind == SignalKind.FAILED
    assert failed.origin_id == engine.scope_id
    assert isinstance(failed.error, RetryLimitExceededError)
    assert failed.error.reason == "deadline"
    assert len(bus) == 1  # Only the observer


@pytest.mark.asyncio
async def test_retry_engine_deadline_cancelled_on_exhaustion(bus: SignalBus) -> None:
    engine = RetryEngine(bus, RetryParams(delay=0, max_retries=0, deadline=10_000))
    engine.start()
    deadline_timer = engine.context.deadline_timer
    await wait_until_done(engine)

    assert engine.state == RetryState.EXHAUSTED
    assert deadline_timer.state == TimerState.CANCELLED
