from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Sequence, TypeVar

from slideharvest.errors import PipelineCancelledError

DEFAULT_WORKERS = 8
MIN_WORKERS = 1
MAX_WORKERS = 16

T = TypeVar("T")


def clamp_workers(workers: float | int | None) -> int:
    if workers is None:
        return DEFAULT_WORKERS
    return max(MIN_WORKERS, min(MAX_WORKERS, int(round(workers))))


def run_with_concurrency(
    tasks: Sequence[Callable[[], T]],
    workers: int,
    *,
    cancel_event: threading.Event | None = None,
) -> list[T]:
    """Run tasks with at most `workers` in flight and return results in task order.

    The first task error is re-raised once the tasks already running have
    finished; tasks that were not dispatched yet are never started. A set
    `cancel_event` stops further dispatching with PipelineCancelledError.
    """

    if not tasks:
        return []

    concurrency = min(clamp_workers(workers), len(tasks))
    results: list[Any] = [None] * len(tasks)
    in_flight: dict[Future[T], int] = {}
    next_index = 0

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="slideharvest") as pool:
        try:
            while next_index < len(tasks) or in_flight:
                while next_index < len(tasks) and len(in_flight) < concurrency:
                    if cancel_event is not None and cancel_event.is_set():
                        raise PipelineCancelledError("task executor")
                    in_flight[pool.submit(tasks[next_index])] = next_index
                    next_index += 1

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    index = in_flight.pop(future)
                    results[index] = future.result()
        except BaseException:
            for future in in_flight:
                future.cancel()
            raise

    return results
