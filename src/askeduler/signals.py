r"""Scoped publish/subscribe relay between cancellable components.

Independently owned components (timers, a retry engine, the orchestrator
driving an action) request cancellation of each other by publishing
``Signal`` messages on a ``SignalBus`` instead of holding references to
each other. A bus is created for a single orchestrator run and discarded
when the run settles.

Example:
    ```pycon
    >>> from askeduler.signals import Signal, SignalBus, SignalKind
    >>> bus = SignalBus()
    >>> received = []
    >>> unsubscribe = bus.subscribe("engine-1", received.append)
    >>> bus.publish(Signal(SignalKind.TERMINATE, origin_id="run-1", target_ids=("engine-1",)))
    >>> received[0].kind
    <SignalKind.TERMINATE: 'terminate'>
    >>> unsubscribe()
    >>> len(bus)
    0

    ```
"""

from __future__ import annotations

__all__ = ["Listener", "Signal", "SignalBus", "SignalKind", "Unsubscribe"]

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger: logging.Logger = logging.getLogger(__name__)


class SignalKind(Enum):
    """Kinds of signals exchanged on a ``SignalBus``.

    Attributes:
        STARTED: A retry engine scheduled its first timer.
        NEXT_ITERATION: A timer fired within budget, a new attempt begins.
        FINISHED: A retry engine exhausted its retry budget.
        FAILED: A retry engine stopped abnormally, see ``Signal.error``.
        RESCHEDULE: Replace the current wait of the addressed engine with
            ``Signal.metadata`` milliseconds.
        TERMINATE: Stop the addressed component.
    """

    STARTED = "started"
    NEXT_ITERATION = "next_iteration"
    FINISHED = "finished"
    FAILED = "failed"
    RESCHEDULE = "reschedule"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class Signal:
    """Ephemeral message published on a ``SignalBus``.

    Args:
        kind: The kind of signal.
        origin_id: Scope id of the publisher. Listeners registered under
            this scope do not receive the signal.
        target_ids: Scope ids the signal is addressed to. An empty tuple
            addresses every listener.
        metadata: Optional numeric payload, e.g. an attempt counter or an
            explicit delay.
        error: Exception carried by a ``FAILED`` signal.
    """

    kind: SignalKind
    origin_id: str | None = None
    target_ids: tuple[str, ...] = ()
    metadata: float | None = None
    error: Exception | None = None

    def is_addressed_to(self, scope_id: str) -> bool:
        """Indicate whether a listener of the given scope should act.

        Args:
            scope_id: The scope id of the listener.

        Returns:
            ``True`` if the signal is a broadcast or targets the scope.

        Example:
            ```pycon
            >>> from askeduler.signals import Signal, SignalKind
            >>> Signal(SignalKind.TERMINATE).is_addressed_to("engine-1")
            True
            >>> Signal(SignalKind.TERMINATE, target_ids=("timer-2",)).is_addressed_to("engine-1")
            False

            ```
        """
        return not self.target_ids or scope_id in self.target_ids


Listener = Callable[[Signal], None]
Unsubscribe = Callable[[], None]


class SignalBus:
    """Relay delivering signals to the listeners of a run.

    The bus maps scope ids to the listeners registered under them. It
    skips the listeners of the publishing scope but does not filter on the
    targets of a signal: listeners check ``Signal.is_addressed_to``
    themselves.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, set[Listener]] = {}
        self._scopes = itertools.count(1)

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(scopes={sorted(self._listeners)})"

    def new_scope(self, prefix: str) -> str:
        """Return a scope id unique on this bus.

        Args:
            prefix: Prefix describing the component, e.g. ``"engine"``.

        Returns:
            The scope id, e.g. ``"engine-1"``.
        """
        return f"{prefix}-{next(self._scopes)}"

    def subscribe(self, scope_id: str, listener: Listener) -> Unsubscribe:
        """Register a listener under a scope.

        Args:
            scope_id: The identity of the subscribing component.
            listener: Callable invoked with every delivered signal.

        Returns:
            An idempotent callable removing the listener.
        """
        self._listeners.setdefault(scope_id, set()).add(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(scope_id)
            if listeners is None:
                return
            listeners.discard(listener)
            if not listeners:
                del self._listeners[scope_id]

        return unsubscribe

    def publish(self, signal: Signal) -> None:
        """Deliver a signal to every listener outside its origin scope.

        Listeners are collected before delivery, so a listener may
        subscribe or unsubscribe while the signal is being delivered. A
        listener removed during delivery is not called.

        Args:
            signal: The signal to deliver.
        """
        logger.debug(
            f"Publishing {signal.kind.value} from {signal.origin_id} "
            f"to {list(signal.target_ids) or 'all'}"
        )
        deliveries = [
            (scope_id, listener)
            for scope_id, listeners in self._listeners.items()
            if scope_id != signal.origin_id
            for listener in listeners
        ]
        for scope_id, listener in deliveries:
            if listener in self._listeners.get(scope_id, ()):
                listener(signal)

    def clear(self) -> None:
        """Remove every listener."""
        self._listeners.clear()
