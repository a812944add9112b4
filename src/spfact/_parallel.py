"""
Column fan-out.

Splits the columns of a problem into contiguous chunks and evaluates a
worker on each chunk, either inline or on a joblib thread pool. Workers
own their outputs; nothing is shared between chunks except read-only
inputs, so no locking is needed. Results are returned in chunk order.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple, TypeVar

from joblib import Parallel, delayed

from spfact._config import config, resolve_threads

T = TypeVar("T")

__all__ = ["column_chunks", "map_chunks"]


def column_chunks(n: int, threads: int, chunk_size: Optional[int] = None) -> List[Tuple[int, int]]:
    """Half-open ``(start, stop)`` ranges covering ``range(n)``.

    With a single thread the whole range is one chunk. Otherwise chunks hold
    ``chunk_size`` columns, but never fewer than ``n / (4 * threads)`` so that
    each worker receives a handful of tasks rather than thousands.
    """
    if n <= 0:
        return []
    if threads <= 1:
        return [(0, n)]
    if chunk_size is None:
        chunk_size = config.parallel.chunk_size
    size = max(int(chunk_size), -(-n // (4 * threads)), 1)
    return [(start, min(start + size, n)) for start in range(0, n, size)]


def map_chunks(
    worker: Callable[[int, int], T],
    n: int,
    threads: Optional[int] = None,
    serial: bool = False,
) -> List[T]:
    """Apply ``worker(start, stop)`` over column chunks of ``range(n)``.

    Args:
        worker: Callable evaluated once per chunk.
        n: Number of columns.
        threads: Worker count (``None`` = configured default, 0 = all cores).
        serial: Force inline execution regardless of ``threads``.

    Returns:
        Worker results in chunk order.
    """
    n_threads = 1 if serial else resolve_threads(threads)
    chunks = column_chunks(n, n_threads)
    if n_threads <= 1 or len(chunks) <= 1:
        return [worker(start, stop) for start, stop in chunks]
    return Parallel(n_jobs=n_threads, backend="threading")(
        delayed(worker)(start, stop) for start, stop in chunks
    )

