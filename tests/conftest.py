from __future__ import annotations

from unittest.mock import Mock

import pytest

from askeduler.signals import Signal, SignalBus


@pytest.fixture
def bus() -> SignalBus:
    """Create an empty signal bus for one test."""
    return SignalBus()


@pytest.fixture
def signal_log(bus: SignalBus) -> list[Signal]:
    """Record every signal published on the ``bus`` fixture.

    The recorder is registered under its own scope, so it receives the
    signals of every other component of the bus.
    """
    received: list[Signal] = []
    bus.subscribe("observer", received.append)
    return received


@pytest.fixture
def mock_callback() -> Mock:
    """Create a mock callback function for testing callbacks.

    Returns:
        A Mock object that can be used as a callback function.

    Example:
        >>> def test_callback(mock_callback):
        ...     retry_action(ping, callbacks=CallbackConfig(on_attempt=mock_callback))
        ...     mock_callback.assert_called_once()
    """
    return Mock()
