import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor
from contextlib import ExitStack
from typing import Callable, Iterable, List, Optional, TypeVar

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

T = TypeVar("T")
R = TypeVar("R")


def _resolve_n_jobs(n_jobs: Optional[int], n_items: int) -> int:
    """
    Number of worker processes; None or -1 means one per CPU core.
    """
    if n_jobs is None or n_jobs == -1:
        n_jobs = os.cpu_count() or 1
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be positive, None or -1, got {n_jobs}")
    return max(1, min(n_jobs, n_items))


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    n_jobs: Optional[int] = 1,
    verbose: bool = False,
    description: str = "Computing robust EBCI for each observation",
) -> List[R]:
    """
    Apply ``func`` to every item, optionally across worker processes.

    Results are returned in input order whatever the order of completion.
    ``func`` must be a picklable module-level callable when ``n_jobs > 1``.

    :param func: pure function of one item.
    :param items: inputs, one per observation.
    :param n_jobs: worker processes; 1 runs serially in this process.
    :param verbose: show a progress bar.
    :param description: progress bar label.
    :return: list of results, aligned with ``items``.
    """
    items = list(items)
    workers = _resolve_n_jobs(n_jobs, len(items))

    with ExitStack() as stack:
        if workers == 1:
            results = map(func, items)
        else:
            # spawn: JAX is multithreaded and must not be forked
            executor = stack.enter_context(
                ProcessPoolExecutor(
                    max_workers=workers,
                    mp_context=multiprocessing.get_context("spawn"),
                )
            )
            chunksize = max(1, len(items) // (4 * workers))
            results = executor.map(func, items, chunksize=chunksize)

        if not verbose:
            return list(results)

        progress = stack.enter_context(
            Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
            )
        )
        task = progress.add_task(description, total=len(items))
        out = []
        for result in results:
            out.append(result)
            progress.advance(task)
        return out
