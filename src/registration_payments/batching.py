"""Bounded fan-out helper for Stripe API calls."""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def process_in_batches(
    items: Sequence[T],
    batch_size: int,
    processor: Callable[[T], R],
) -> List[R]:
    """Run ``processor`` over ``items`` with at most ``batch_size`` calls in flight.

    Items are taken one slice of ``batch_size`` at a time; the next slice only
    starts once every call of the current one has returned. Results come back
    in input order. Exceptions raised by ``processor`` propagate, so callers
    that want per-item tolerance must handle errors inside the processor.

    Args:
        items: Items to process.
        batch_size: Maximum number of concurrent calls.
        processor: Callable applied to each item.

    Returns:
        List of processor results, in the order of ``items``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: List[R] = []
    if not items:
        return results

    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            results.extend(executor.map(processor, batch))
    return results
