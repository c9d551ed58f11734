"""
Bounded batch execution shared by the transcription and render stages.

Work is split into fixed-width batches: all operations in a batch are
started together and awaited with asyncio.gather before the next batch
starts, so at most batch_size operations are ever in flight.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T, int], Awaitable[R]],
    on_batch_start: Optional[Callable[[int, int], Awaitable[None]]] = None,
) -> List[R]:
    """
    Run worker over items in sequential batches of concurrent calls.

    Args:
        items: Inputs, processed in order.
        batch_size: Maximum concurrent calls per batch.
        worker: Async callable receiving (item, index).
        on_batch_start: Optional async callable receiving (first_index, total)
            before each batch starts.

    Returns:
        Results in input order.

    Raises:
        ValueError: If batch_size is not positive.
        Exception: The first worker failure, after its batch has settled.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    total = len(items)
    results: List[R] = []

    for batch_start in range(0, total, batch_size):
        batch = items[batch_start:batch_start + batch_size]
        if on_batch_start is not None:
            await on_batch_start(batch_start, total)

        logger.debug(
            f"Starting batch {batch_start // batch_size + 1} "
            f"({len(batch)} of {total} items)"
        )
        outcomes = await asyncio.gather(
            *(worker(item, batch_start + offset) for offset, item in enumerate(batch)),
            return_exceptions=True,
        )

        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results.extend(outcomes)

    return results
