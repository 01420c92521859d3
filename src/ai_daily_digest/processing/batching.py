from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")

GroupProgressFunc = Callable[[int, int], None]


def chunk_indexed(items: Sequence[T], size: int) -> list[list[tuple[int, T]]]:
    """Split into batches of `(original_index, item)` pairs."""
    size = max(1, size)
    indexed = list(enumerate(items))
    return [indexed[i : i + size] for i in range(0, len(indexed), size)]


async def run_in_groups(
    batches: list[list[tuple[int, T]]],
    worker: Callable[[list[tuple[int, T]]], Awaitable[None]],
    *,
    concurrency: int,
    on_progress: GroupProgressFunc | None = None,
) -> None:
    """Run `worker` over batches, `concurrency` at a time, joining each group.

    Workers own their failure handling; an exception escaping a worker is a bug
    and propagates. Progress fires after every group as `(batches_done, total)`.
    """
    width = max(1, concurrency)
    total = len(batches)
    for start in range(0, total, width):
        group = batches[start : start + width]
        await asyncio.gather(*(worker(batch) for batch in group))
        if on_progress is not None:
            on_progress(min(start + width, total), total)
