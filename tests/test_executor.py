from __future__ import annotations

import threading
import time

import pytest

from slideharvest.errors import PipelineCancelledError
from slideharvest.runtime.executor import clamp_workers, run_with_concurrency


def test_run_with_concurrency_returns_results_in_task_order() -> None:
    delays = [0.05, 0.0, 0.03, 0.01]

    def _task(index: int, delay: float):
        def _run() -> int:
            time.sleep(delay)
            return index * 10

        return _run

    results = run_with_concurrency([_task(index, delay) for index, delay in enumerate(delays)], 4)

    assert results == [0, 10, 20, 30]


def test_run_with_concurrency_never_exceeds_worker_limit() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def _task() -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1

    run_with_concurrency([_task for _ in range(12)], 3)

    assert 1 <= peak <= 3


def test_run_with_concurrency_handles_empty_task_list() -> None:
    assert run_with_concurrency([], 8) == []


def test_run_with_concurrency_propagates_first_error_and_stops_dispatching() -> None:
    started: list[int] = []

    def _task(index: int):
        def _run() -> int:
            started.append(index)
            if index == 0:
                raise ValueError("boom")
            time.sleep(0.01)
            return index

        return _run

    with pytest.raises(ValueError, match="boom"):
        run_with_concurrency([_task(index) for index in range(20)], 1)

    assert started == [0]


def test_run_with_concurrency_raises_when_cancelled_before_dispatch() -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    calls: list[int] = []

    with pytest.raises(PipelineCancelledError):
        run_with_concurrency([lambda: calls.append(1)], 2, cancel_event=cancel_event)

    assert calls == []


@pytest.mark.parametrize(
    ("workers", "expected"),
    [(None, 8), (0, 1), (-3, 1), (4, 4), (16, 16), (64, 16), (2.6, 3)],
)
def test_clamp_workers(workers, expected: int) -> None:
    assert clamp_workers(workers) == expected
