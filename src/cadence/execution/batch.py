"""Async Batch Executor: asyncio fan-out with a bounded worker pool.

ARCHITECTURE
────────────
::

    AsyncBatchExecutor
      ├── .add(name, coroutine, params, gate)  ─ enqueue work item
      ├── .run_all()                           ─ asyncio.gather + semaphore
      └── AsyncBatchResult                     ─ succeeded / failed / peak

An item's optional ``gate`` (an async context manager factory, usually a
:class:`~cadence.execution.concurrency.KeyedLimiter` hold) is entered
*before* the pool semaphore, so an item waiting on its tenant's cap does
not occupy a pool slot.

Example::

    batch = AsyncBatchExecutor(max_concurrency=5)
    for reg in due:
        batch.add(reg.id, run_sync, {"data_source_id": reg.id})
    result = await batch.run_all()
    print(result.succeeded, result.failed, result.peak_concurrency)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Coroutine
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now

logger = get_logger(__name__)


@dataclass
class AsyncBatchItem:
    """A single item in an async batch."""

    name: str
    handler: Callable[..., Coroutine[Any, Any, Any]]
    params: dict[str, Any] = field(default_factory=dict)
    gate: Callable[[], AbstractAsyncContextManager[Any]] | None = None
    status: str = "pending"
    result: Any = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class AsyncBatchResult:
    """Aggregate result of running an async batch."""

    batch_id: str
    items: list[AsyncBatchItem]
    started_at: datetime
    completed_at: datetime
    peak_concurrency: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "failed")

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / API responses."""
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "peak_concurrency": self.peak_concurrency,
            "duration_seconds": self.duration_seconds,
            "items": [
                {
                    "name": i.name,
                    "status": i.status,
                    "duration_seconds": i.duration_seconds,
                    "error": i.error,
                }
                for i in self.items
            ],
        }


class AsyncBatchExecutor:
    """Async batch executor with semaphore-bounded concurrency.

    A failing item is recorded as ``failed`` and never aborts the batch.

    Parameters
    ----------
    max_concurrency : int
        Maximum simultaneous coroutines (default 5).
    """

    def __init__(self, max_concurrency: int = 5) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._max_concurrency = max_concurrency
        self._items: list[AsyncBatchItem] = []
        self._batch_id = str(uuid.uuid4())
        self._in_flight = 0
        self._peak = 0

    def add(
        self,
        name: str,
        handler: Callable[..., Coroutine[Any, Any, Any]],
        params: dict[str, Any] | None = None,
        gate: Callable[[], AbstractAsyncContextManager[Any]] | None = None,
    ) -> AsyncBatchExecutor:
        """Add an item to the batch.

        Args:
            name: Human-readable name for this item.
            handler: Async callable ``(params) -> result``.
            params: Dict of parameters passed to the handler.
            gate: Optional context manager factory entered before the pool slot.

        Returns:
            ``self`` for fluent chaining.
        """
        self._items.append(
            AsyncBatchItem(name=name, handler=handler, params=params or {}, gate=gate)
        )
        return self

    async def run_all(self) -> AsyncBatchResult:
        """Execute all items concurrently, bounded by ``max_concurrency``."""
        sem = asyncio.Semaphore(self._max_concurrency)
        started_at = utc_now()

        logger.info(
            "async_batch.start",
            batch_id=self._batch_id,
            items=len(self._items),
            max_concurrency=self._max_concurrency,
        )

        async def _run_one(item: AsyncBatchItem) -> AsyncBatchItem:
            gate = item.gate() if item.gate is not None else nullcontext()
            async with gate, sem:
                self._in_flight += 1
                self._peak = max(self._peak, self._in_flight)
                item.started_at = utc_now()
                item.status = "running"
                try:
                    item.result = await item.handler(item.params)
                    item.status = "completed"
                except Exception as e:
                    item.status = "failed"
                    item.error = str(e)
                    logger.warning(
                        "async_batch.item_failed",
                        batch_id=self._batch_id,
                        name=item.name,
                        error=str(e),
                    )
                finally:
                    self._in_flight -= 1
                    item.completed_at = utc_now()
                return item

        await asyncio.gather(*[_run_one(item) for item in self._items])

        result = AsyncBatchResult(
            batch_id=self._batch_id,
            items=self._items,
            started_at=started_at,
            completed_at=utc_now(),
            peak_concurrency=self._peak,
        )

        logger.info(
            "async_batch.complete",
            batch_id=self._batch_id,
            succeeded=result.succeeded,
            failed=result.failed,
            peak_concurrency=result.peak_concurrency,
            duration_seconds=result.duration_seconds,
        )

        return result

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def batch_id(self) -> str:
        return self._batch_id


__all__ = ["AsyncBatchExecutor", "AsyncBatchItem", "AsyncBatchResult"]
