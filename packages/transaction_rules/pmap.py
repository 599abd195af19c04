"""Order-preserving map over a bounded ``ThreadPoolExecutor``.

Modelled on the ``p-map`` package: call :func:`p_map` with an iterable, a
mapper and a ``concurrency`` cap. At most ``concurrency`` mapper calls run at
once, new work is submitted as earlier calls finish, and results come back in
input order. The first mapper error is re-raised after cancelling work that
has not started yet.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    thread_name_prefix: str = "p-map",
) -> list[OutT]:
    """Return ``[mapper(x) for x in iterable]`` computed on worker threads."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = enumerate(iterable)
    results: dict[int, OutT] = {}
    pending: dict[Future[OutT], int] = {}

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=thread_name_prefix) as pool:

        def _submit_next() -> bool:
            try:
                idx, item = next(items)
            except StopIteration:
                return False
            pending[pool.submit(mapper, item)] = idx
            return True

        for _ in range(concurrency):
            if not _submit_next():
                break

        while pending:
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = pending.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
            for _ in done:
                if not _submit_next():
                    break

    return [results[i] for i in range(len(results))]


__all__ = ["p_map"]
