"""Bounded-concurrency fan-out helpers.

``work_map`` runs a coroutine function over a list of items with at most
``workers`` calls outstanding. Each item's outcome is captured in a
``WorkResult``; one failing item never aborts the others.
"""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Iterable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class WorkResult(Generic[R]):
    index: int
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def default_workers() -> int:
    return os.cpu_count() or 4


def resolve_workers(workers: int | None = None) -> int:
    resolved = default_workers() if workers is None else workers
    if isinstance(resolved, bool) or not isinstance(resolved, int) or resolved < 1:
        raise ValueError(f"workers must be >= 1, got {workers!r}")
    return resolved


async def work_map(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    workers: int | None = None,
) -> list[WorkResult[R]]:
    """Apply ``fn`` to every item; results come back in input order."""
    pool_size = min(resolve_workers(workers), len(items))
    results: list[WorkResult[R] | None] = [None] * len(items)
    cursor = 0

    async def _worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            try:
                results[index] = WorkResult(index=index, value=await fn(items[index]))
            except Exception as exc:
                results[index] = WorkResult(index=index, error=exc)

    if pool_size:
        await asyncio.gather(*(_worker() for _ in range(pool_size)))
    return [result for result in results if result is not None]


async def work_all(
    tasks: Sequence[Callable[[], Awaitable[Any]]],
    *,
    workers: int | None = None,
) -> list[WorkResult[Any]]:
    """Run heterogeneous zero-argument coroutine factories with bounded concurrency."""
    return await work_map(tasks, lambda task: task(), workers=workers)


async def work_stream(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    workers: int | None = None,
) -> AsyncIterator[WorkResult[R]]:
    """Yield results in completion order while keeping at most ``workers`` calls in flight."""
    limit = resolve_workers(workers)
    pending: set[asyncio.Task[WorkResult[R]]] = set()

    async def _run(index: int, item: T) -> WorkResult[R]:
        try:
            return WorkResult(index=index, value=await fn(item))
        except Exception as exc:
            return WorkResult(index=index, error=exc)

    try:
        for index, item in enumerate(items):
            if len(pending) >= limit:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    yield task.result()
            pending.add(asyncio.ensure_future(_run(index, item)))

        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                yield task.result()
    finally:
        for task in pending:
            task.cancel()
