"""Execution substrate shared by automations and sync.

Bounded fan-out, per-key concurrency limits, retry strategies and the
redeliver-with-backoff capability.
"""

from cadence.execution.batch import AsyncBatchExecutor, AsyncBatchItem, AsyncBatchResult
from cadence.execution.concurrency import KeyedLimiter
from cadence.execution.redelivery import BackoffRedelivery, NoRedelivery, Redelivery
from cadence.execution.retry import ExponentialBackoff, NoRetry, RetryStrategy

__all__ = [
    "AsyncBatchExecutor",
    "AsyncBatchItem",
    "AsyncBatchResult",
    "KeyedLimiter",
    "BackoffRedelivery",
    "NoRedelivery",
    "Redelivery",
    "ExponentialBackoff",
    "NoRetry",
    "RetryStrategy",
]
