"""Bounded-parallelism execution with all-settled semantics."""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Settled(Generic[T, R]):
    """Outcome of one item: either a value or the exception it raised."""

    __slots__ = ("item", "value", "error")

    def __init__(self, item: T, value: R | None = None, error: Exception | None = None):
        self.item = item
        self.value = value
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        return f"Settled(item={self.item!r}, ok={self.ok})"


CohortCallback = Callable[[int, int], Awaitable[None] | None]


async def run_in_cohorts(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    limit: int,
    on_cohort_settled: CohortCallback | None = None,
) -> list[Settled[T, R]]:
    """Run ``operation`` once per item, at most ``limit`` at a time.

    Items are split into sequential cohorts of ``limit``. A cohort only starts
    after every item of the previous one has settled. Exceptions are captured
    per item and never raised to the caller. ``on_cohort_settled(completed, total)``
    is called after each cohort.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    results: list[Settled[T, R]] = []
    total = len(items)
    for start in range(0, total, limit):
        cohort = items[start:start + limit]
        outcomes = await asyncio.gather(*(operation(item) for item in cohort), return_exceptions=True)
        for item, outcome in zip(cohort, outcomes):
            if isinstance(outcome, Exception):
                results.append(Settled(item, error=outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(Settled(item, value=outcome))

        if on_cohort_settled is not None:
            maybe = on_cohort_settled(len(results), total)
            if asyncio.iscoroutine(maybe):
                await maybe
    return results


async def run_all(items: Sequence[T], operation: Callable[[T], Awaitable[R]]) -> list[Settled[T, R]]:
    """Unbounded fan-out: every item starts at once, the call returns once all settle."""
    return await run_in_cohorts(items, operation, limit=max(len(items), 1))
