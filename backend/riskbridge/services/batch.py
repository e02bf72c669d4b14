"""Best-effort batch execution: run every item, collect successes and failures."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchFailure(Generic[T]):
    item: T
    error: str


@dataclass
class BatchResult(Generic[T, R]):
    succeeded: list[tuple[T, R]] = field(default_factory=list)
    failed: list[BatchFailure[T]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


async def run_best_effort(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    label: str = "item",
) -> BatchResult[T, R]:
    """Apply `fn` to each item sequentially; a failing item never aborts the batch."""
    result: BatchResult[T, R] = BatchResult()
    for item in items:
        try:
            value = await fn(item)
        except Exception as exc:
            logger.warning("Batch %s %r failed: %s", label, item, exc)
            result.failed.append(BatchFailure(item=item, error=str(exc)))
            continue
        result.succeeded.append((item, value))
    return result
