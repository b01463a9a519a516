from __future__ import annotations

import math
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from meetscribe.errors import PassFailure
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.pool")

T = TypeVar("T")

ProgressFn = Callable[[int, int], None]


class WorkerPool(Generic[T]):
    """
    Bounded fan-out/fan-in over blocking engine calls.

    - at most `max_workers` tasks run at once
    - results come back in task order, whatever order they finish in
    - the first failure (or the overall deadline) cancels what is still
      queued and raises PassFailure
    """

    def __init__(self, max_workers: int = 10, *, task_timeout: Optional[float] = None) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = int(max_workers)
        self.task_timeout = task_timeout

    def _deadline(self, total: int, workers: int) -> Optional[float]:
        if self.task_timeout is None:
            return None
        waves = math.ceil(total / workers)
        return self.task_timeout * waves

    def run_all(self, tasks: Sequence[Callable[[], T]], *, on_progress: Optional[ProgressFn] = None) -> List[T]:
        total = len(tasks)
        if total == 0:
            return []

        workers = min(self.max_workers, total)
        ex = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="meetscribe-pass")
        futures: Dict[Future, int] = {}
        results: Dict[int, T] = {}
        try:
            futures = {ex.submit(task): i for i, task in enumerate(tasks)}
            pending = set(futures)
            completed = 0
            budget = self._deadline(total, workers)
            deadline = None if budget is None else time.monotonic() + budget

            while pending:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_EXCEPTION)
                if not done:
                    raise PassFailure(
                        f"worker pool timed out with {len(pending)}/{total} task(s) outstanding",
                        details={"timeout_sec": budget},
                    )
                for fut in sorted(done, key=lambda f: futures[f]):
                    idx = futures[fut]
                    exc = fut.exception()
                    if exc is not None:
                        logger.warning(f"Pool task {idx}/{total} failed: {exc}")
                        if isinstance(exc, PassFailure):
                            raise exc
                        raise PassFailure(f"task {idx} failed: {exc}", details={"index": idx}) from exc
                    results[idx] = fut.result()
                    completed += 1
                    if on_progress is not None:
                        on_progress(completed, total)
        finally:
            # Already-running calls finish in the background; queued ones are dropped.
            ex.shutdown(wait=False, cancel_futures=True)

        return [results[i] for i in range(total)]
