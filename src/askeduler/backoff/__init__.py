r"""Backoff sequences producing the delays between retry attempts.

This package provides stateful delay producers, including the "Full
Jitter" exponential policy used by default, a deterministic capped
exponential policy, and a constant policy.
"""

from __future__ import annotations

__all__ = [
    "BaseBackoffSequence",
    "ConstantBackoff",
    "ExponentialBackoff",
    "FullJitterBackoff",
]

from askeduler.backoff.base import BaseBackoffSequence
from askeduler.backoff.constant import ConstantBackoff
from askeduler.backoff.exponential import ExponentialBackoff, FullJitterBackoff
