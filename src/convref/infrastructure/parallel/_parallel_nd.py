"""
Data-parallel driver for the reference evaluators.

`parallel_nd` flattens an N-d iteration space, splits it into contiguous
balanced chunks and runs every chunk on a worker lane of a
`concurrent.futures.ThreadPoolExecutor`. Each call of the body computes one
output element end to end, so lanes share no mutable state and need no
locks.

Completion order across elements is unspecified; the value of each element
is not, since an element's reduction never leaves its lane.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from math import prod
from typing import Callable, List, Optional, Sequence, Tuple

from ...domain._config import RefConfig


MIN_ELEMS_PER_LANE = 256
"""Spaces smaller than this many elements per lane run on fewer lanes."""


def balance211(n: int, team: int, tid: int) -> Tuple[int, int]:
    """
    Contiguous `[start, end)` share of `n` items for lane `tid` of `team`.

    The first `n % team` lanes get one extra item, so shares differ by at
    most one.
    """
    if team <= 1:
        return 0, n
    base, rem = divmod(n, team)
    start = tid * base + min(tid, rem)
    end = start + base + (1 if tid < rem else 0)
    return start, end


def _unravel(flat: int, dims: Tuple[int, ...]) -> List[int]:
    idx = [0] * len(dims)
    for ax in range(len(dims) - 1, -1, -1):
        flat, idx[ax] = divmod(flat, dims[ax])
    return idx


def _run_range(
    dims: Tuple[int, ...], start: int, end: int, fn: Callable[..., None]
) -> None:
    if start >= end:
        return
    idx = _unravel(start, dims)
    last = len(dims) - 1
    for _ in range(end - start):
        fn(*idx)
        ax = last
        while ax >= 0:
            idx[ax] += 1
            if idx[ax] < dims[ax]:
                break
            idx[ax] = 0
            ax -= 1


def parallel_nd(
    dims: Sequence[int],
    fn: Callable[..., None],
    *,
    num_workers: Optional[int] = None,
) -> None:
    """
    Call `fn(*index)` once for every index of the `dims` space.

    Parameters
    ----------
    dims : Sequence[int]
        Extents of the iteration space, outermost first.
    fn : Callable[..., None]
        Body receiving one integer per dim.
    num_workers : Optional[int]
        Worker lanes; defaults to `RefConfig().num_workers`.

    Raises
    ------
    Exception
        The first exception raised by any lane is re-raised in the caller
        after all lanes have stopped.
    """
    dims = tuple(int(d) for d in dims)
    total = prod(dims)
    if total <= 0:
        return

    workers = num_workers if num_workers is not None else RefConfig().num_workers
    team = max(1, min(workers, total // MIN_ELEMS_PER_LANE))
    if team == 1:
        _run_range(dims, 0, total, fn)
        return

    with ThreadPoolExecutor(max_workers=team, thread_name_prefix="convref") as pool:
        futures = [
            pool.submit(_run_range, dims, *balance211(total, team, tid), fn)
            for tid in range(team)
        ]
    for f in futures:
        f.result()
