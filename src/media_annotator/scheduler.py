"""
Bounded worker pool over a single shared work list.

Every worker pulls the next item from the same list, so a slow video on one worker never holds
up the images queued behind it. Taking an item and bumping the progress counter happen under
one lock: each item is delivered to exactly one worker and every position is reported once.
"""

import threading
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, wait

from loguru import logger

from media_annotator.models import JobResult, RunSummary, WorkItem


DEFAULT_CONCURRENCY = 5

JobFn = Callable[[WorkItem], JobResult]


class WorkList:
    """Thread-safe queue of work items with an attached progress counter."""

    def __init__(self, items: Iterable[WorkItem]) -> None:
        self._items = deque(items)
        self._lock = threading.Lock()
        self.total = len(self._items)
        self.processed = 0

    def take(self) -> tuple[WorkItem, int] | None:
        """Pop one item and return it with its 1-based progress position, or None when empty."""
        with self._lock:
            if not self._items:
                return None
            item = self._items.popleft()
            self.processed += 1
            return item, self.processed

    def drain(self) -> list[WorkItem]:
        """Remove and return everything not yet taken."""
        with self._lock:
            remaining = list(self._items)
            self._items.clear()
            return remaining

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Scheduler:
    """
    Run a job function over a fixed list of items with exactly `concurrency` workers.

    Args:
        concurrency: Number of workers (at least 1)
        job_fn: Called once per item; exceptions are contained to that item
        cancel_event: When set, workers stop taking items and the rest are reported cancelled

    """

    def __init__(
        self,
        concurrency: int,
        job_fn: JobFn,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.concurrency = concurrency
        self.job_fn = job_fn
        self.cancel_event = cancel_event or threading.Event()

    def _run_one(self, item: WorkItem) -> JobResult:
        try:
            return self.job_fn(item)
        except Exception as exc:  # noqa: BLE001
            logger.opt(exception=exc).error(
                "unhandled_job_exception",
                file=item.name,
                error=str(exc),
            )
            return JobResult.failed(item, exc)

    def _worker(self, work: WorkList, worker_id: int) -> list[JobResult]:
        results: list[JobResult] = []
        with logger.contextualize(worker=worker_id):
            while not self.cancel_event.is_set():
                taken = work.take()
                if taken is None:
                    break
                item, position = taken
                logger.info(
                    "processing_file",
                    file=item.name,
                    progress=f"{position}/{work.total}",
                    percent=round(position / work.total * 100, 1),
                )
                results.append(self._run_one(item))
        return results

    def run(self, items: Iterable[WorkItem]) -> RunSummary:
        """
        Process every item and return once all workers have drained the list.

        The summary holds exactly one result per input item.
        """
        work = WorkList(items)
        logger.info("starting_workers", workers=self.concurrency, items=work.total)

        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="annotator",
        ) as pool:
            futures = [pool.submit(self._worker, work, n) for n in range(1, self.concurrency + 1)]
            try:
                wait(futures)
            except KeyboardInterrupt:
                logger.warning("interrupted_cancelling_remaining_work", remaining=len(work))
                self.cancel_event.set()
                wait(futures)

        results: list[JobResult] = []
        for future in futures:
            results.extend(future.result())
        results.extend(JobResult.cancelled(item) for item in work.drain())

        return RunSummary(results=results)
