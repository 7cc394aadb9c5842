r"""askeduler - Cancellable bounded-retry scheduling for asyncio.

This package drives repeated attempts of an asynchronous action with
"Full Jitter" exponential backoff, bounds them with a maximum retry count
and/or an overall deadline, and propagates cancellation in both directions
between the retry loop and the action, so that neither leaks pending
timers or in-flight work when the other terminates.

Key Features:
    - Single-shot cancellable timers with idempotent cancel handles
    - Full Jitter, exponential and constant backoff sequences
    - Retry engine implemented as an explicit state machine
    - Per-run signal bus for scoped cancellation between components
    - Delay override from the action, e.g. a server supplied Retry-After
    - Overall deadline racing the retry loop
    - Callback system and structured logging for observability
    - HTTP action built on httpx

Example:
    ```pycon
    >>> import asyncio
    >>> from askeduler import RetryParams, retry_action
    >>> async def fetch_quote():
    ...     return 42
    ...
    >>> asyncio.run(retry_action(fetch_quote, RetryParams(max_retries=3, deadline=5000)))
    42

    ```
"""

from __future__ import annotations

__all__ = [
    "ActionError",
    "FullJitterBackoff",
    "InvalidTimeoutError",
    "Orchestrator",
    "RetryEngine",
    "RetryLimitExceededError",
    "RetryParams",
    "RetryableActionError",
    "Signal",
    "SignalBus",
    "SignalKind",
    "TerminalActionError",
    "Timer",
    "__version__",
    "retry_action",
    "schedule",
]

from importlib.metadata import PackageNotFoundError, version

from askeduler.backoff import FullJitterBackoff
from askeduler.core.config import RetryParams
from askeduler.exceptions import (
    ActionError,
    InvalidTimeoutError,
    RetryableActionError,
    RetryLimitExceededError,
    TerminalActionError,
)
from askeduler.retry import Orchestrator, RetryEngine, retry_action
from askeduler.signals import Signal, SignalBus, SignalKind
from askeduler.timer import Timer, schedule

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
