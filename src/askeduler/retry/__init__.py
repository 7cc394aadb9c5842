r"""Retry package composing timers, a retry engine and an action.

Public API:
    - RetryEngine: State machine scheduling timers within a retry budget
    - RetryState: States of the retry engine
    - RetryContext: Bookkeeping of a retry engine
    - Orchestrator: Runs an action under a retry engine
    - OutcomeDecider: Classifies attempt failures
    - CallbackManager: Invokes lifecycle callbacks
    - retry_action: Coroutine running an action with retries
"""

from __future__ import annotations

__all__ = [
    "ActionFactory",
    "CallbackManager",
    "Orchestrator",
    "OutcomeDecider",
    "RetryContext",
    "RetryEngine",
    "RetryState",
    "retry_action",
]

from askeduler.retry.decider import OutcomeDecider
from askeduler.retry.engine import RetryContext, RetryEngine, RetryState
from askeduler.retry.manager import CallbackManager
from askeduler.retry.orchestrator import ActionFactory, Orchestrator, retry_action
