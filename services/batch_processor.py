"""
Bounded batch dispatcher for recommendation calls.

Items run in consecutive chunks of ``max_concurrency``; a chunk has to fully
settle before the next one starts. Failures (including per-item timeouts)
come back as outcomes instead of exceptions, one outcome per input item, in
input order.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchOutcome(Generic[T, R]):
    """Settled result of one item; exactly one of ``value``/``error`` is meaningful."""

    index: int
    item: T
    success: bool
    value: Optional[R] = None
    error: Optional[BaseException] = None


class BatchProcessor:
    """Fixed-window concurrency limiter (not a work-stealing pool)."""

    def __init__(self, max_concurrency: int = 3, item_timeout: Optional[float] = None) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self.item_timeout = item_timeout

    async def _run_item(
        self,
        index: int,
        item: T,
        processor: Callable[[T], Awaitable[R]],
    ) -> BatchOutcome:
        try:
            if self.item_timeout is not None:
                value = await asyncio.wait_for(processor(item), timeout=self.item_timeout)
            else:
                value = await processor(item)
            return BatchOutcome(index=index, item=item, success=True, value=value)
        except asyncio.TimeoutError:
            logger.warning("Batch item %s timed out after %.1fs", index, self.item_timeout)
            return BatchOutcome(
                index=index,
                item=item,
                success=False,
                error=TimeoutError(f"item {index} timed out after {self.item_timeout}s"),
            )
        except Exception as exc:
            logger.warning("Batch item %s failed: %s", index, exc)
            return BatchOutcome(index=index, item=item, success=False, error=exc)

    async def process_batch(
        self,
        items: Sequence[T],
        processor: Callable[[T], Awaitable[R]],
        on_settled: Optional[Callable[[BatchOutcome], Any]] = None,
    ) -> List[BatchOutcome]:
        """
        Run ``processor`` over ``items`` with at most ``max_concurrency`` in flight.

        Args:
            items: Work items, dispatched in order.
            processor: Async callable producing the value for one item.
            on_settled: Called with each outcome as soon as it settles
                (completion order, not input order).

        Returns:
            One BatchOutcome per item, aligned with ``items``.
        """
        outcomes: List[BatchOutcome] = []
        start = time.time()

        for chunk_start in range(0, len(items), self.max_concurrency):
            chunk = items[chunk_start:chunk_start + self.max_concurrency]
            tasks = [
                asyncio.ensure_future(self._run_item(chunk_start + offset, item, processor))
                for offset, item in enumerate(chunk)
            ]
            try:
                for finished in asyncio.as_completed(tasks):
                    outcome = await finished
                    if on_settled is not None:
                        on_settled(outcome)
            finally:
                # A failing on_settled must not leave siblings running unobserved.
                await asyncio.gather(*tasks, return_exceptions=True)
            outcomes.extend(task.result() for task in tasks)

        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info(
            "Batch processed %d items (concurrency=%d, failed=%d) in %.0fms",
            len(outcomes),
            self.max_concurrency,
            failed,
            (time.time() - start) * 1000,
        )
        return outcomes


__all__ = ["BatchOutcome", "BatchProcessor"]
