from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .engine import SUPPORTED_EXTS, run_job
from .jobs import Job
from .results import Result, ResultStatus
from .settings import default_concurrency

logger = logging.getLogger(__name__)

Runner = Callable[[Job, threading.Event], Result]
ProgressCallback = Callable[[int, int], None]
ResultCallback = Callable[[int, Result], None]


class BatchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BatchSummary:
    total_files: int
    succeeded: int
    failed: int
    cancelled: int
    total_src_bytes: int
    total_out_bytes: int
    was_cancelled: bool = False

    @property
    def saved_bytes(self) -> int:
        return max(0, self.total_src_bytes - self.total_out_bytes)

    @property
    def saved_percent(self) -> float:
        if self.total_src_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.total_src_bytes) * 100.0


def summarize(results: Sequence[Result], was_cancelled: bool = False) -> BatchSummary:
    # Byte totals only count files that were actually written.
    done = [r for r in results if r.ok]
    return BatchSummary(
        total_files=len(results),
        succeeded=len(done),
        failed=sum(1 for r in results if r.failed),
        cancelled=sum(1 for r in results if r.status is ResultStatus.CANCELLED),
        total_src_bytes=sum(r.original_bytes for r in done),
        total_out_bytes=sum(r.new_bytes for r in done),
        was_cancelled=was_cancelled,
    )


def iter_images(
    paths: Sequence[Path],
    recursive: bool = True,
    exclude_dir: Optional[Path] = None,
    exclude_dir_name: Optional[str] = None,
) -> Iterable[Path]:
    """
    Yield supported image paths from a mixture of files and directories.

    exclude_dir:
        If provided, any files inside this directory will be skipped.
        (Prevents re-processing output files when output_dir is inside input_dir.)
    exclude_dir_name:
        Skip files in any subfolder with this name while scanning a folder,
        e.g. the per-file "resized" folders left by an earlier run.
    """
    exclude_resolved = exclude_dir.resolve() if exclude_dir else None

    for p in paths:
        p = Path(p)

        if p.is_file():
            if p.suffix.lower() in SUPPORTED_EXTS:
                if exclude_resolved and p.resolve().is_relative_to(exclude_resolved):
                    continue
                yield p
            continue

        if p.is_dir():
            pattern = "**/*" if recursive else "*"
            for f in sorted(p.glob(pattern)):
                if not f.is_file():
                    continue
                if f.suffix.lower() not in SUPPORTED_EXTS:
                    continue

                if exclude_resolved and f.resolve().is_relative_to(exclude_resolved):
                    continue
                if exclude_dir_name and exclude_dir_name in f.relative_to(p).parts[:-1]:
                    continue

                yield f


class BatchScheduler:
    """
    Runs jobs on a bounded thread pool and streams results back.

    One batch at a time:

        IDLE -> RUNNING -> COMPLETED
                        -> CANCELLING -> CANCELLED

    submit() returns an iterator of (index, Result) pairs in completion
    order; index is the job's position in the submitted list. The iterator
    finishes only once every worker has returned, so reaching its end means
    the batch is really over.

    cancel() is cooperative. Jobs that have not started yet are dropped (or
    return Cancelled at their first check); jobs already loading, encoding
    or writing run to completion so no half-written files are left behind.
    A cancel() that arrives before the first submit() makes that batch start
    out cancelled.
    Dropped jobs produce no pair; collect_results() fills them in.
    """

    def __init__(self, concurrency: Optional[int] = None, runner: Runner = run_job) -> None:
        self._concurrency = default_concurrency()
        if concurrency is not None:
            self.set_concurrency(concurrency)
        self._runner = runner
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._futures: List[Future] = []
        self._state = BatchState.IDLE
        self._cancel_pending = False

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def set_concurrency(self, n: int) -> None:
        """Takes effect for the next submit(); a running batch keeps its pool size."""
        n = int(n)
        if n < 1:
            raise ValueError(f"concurrency must be >= 1, got {n}")
        self._concurrency = n

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_pending or self._cancel_event.is_set()

    def submit(self, jobs: Sequence[Job], concurrency: Optional[int] = None) -> Iterator[Tuple[int, Result]]:
        if concurrency is not None:
            self.set_concurrency(concurrency)

        with self._lock:
            if self._state in (BatchState.RUNNING, BatchState.CANCELLING):
                raise RuntimeError("A batch is already running")

            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            cancel_first = self._cancel_pending
            self._cancel_pending = False
            if cancel_first:
                cancel_event.set()

            workers = self._concurrency
            logger.info("Starting batch of %d job(s) on %d worker(s)", len(jobs), workers)

            executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bir-worker")
            futures: Dict[Future, int] = {}
            for idx, job in enumerate(jobs):
                futures[executor.submit(self._run_one, job, cancel_event)] = idx

            self._futures = list(futures)
            self._state = BatchState.RUNNING
            if cancel_first:
                self._request_cancel()

        return self._drain(executor, futures, cancel_event)

    def cancel(self) -> None:
        with self._lock:
            if self._state is BatchState.IDLE:
                self._cancel_pending = True
                return
            if self._state is BatchState.RUNNING:
                self._request_cancel()

    def _request_cancel(self) -> None:
        # Caller holds self._lock.
        logger.info("Cancellation requested")
        self._cancel_event.set()
        self._state = BatchState.CANCELLING
        for f in self._futures:
            f.cancel()

    def _run_one(self, job: Job, cancel_event: threading.Event) -> Result:
        try:
            return self._runner(job, cancel_event)
        except Exception as exc:
            # One bad file must not take the batch down with it.
            logger.exception("Unexpected error processing %s", job.input_path)
            return Result(
                job_id=job.id,
                input_path=job.input_path,
                output_path=None,
                status=ResultStatus.FAILED_TO_SAVE,
                message=f"Unexpected error: {exc}",
            )

    def _drain(
        self,
        executor: ThreadPoolExecutor,
        futures: Dict[Future, int],
        cancel_event: threading.Event,
    ) -> Iterator[Tuple[int, Result]]:
        try:
            for fut in as_completed(futures):
                if fut.cancelled():
                    continue
                yield futures[fut], fut.result()
        except BaseException:
            # Consumer walked away or was interrupted: stop starting new work.
            self.cancel()
            raise
        finally:
            executor.shutdown(wait=True)
            with self._lock:
                self._futures = []
                self._state = BatchState.CANCELLED if cancel_event.is_set() else BatchState.COMPLETED
            logger.info("Batch %s", self._state.value)


def collect_results(
    jobs: Sequence[Job],
    stream: Iterable[Tuple[int, Result]],
    progress_callback: Optional[ProgressCallback] = None,
    result_callback: Optional[ResultCallback] = None,
) -> List[Result]:
    """
    Gather a result stream into a list in input order.

    Every job ends up with exactly one Result: jobs that never reported
    (dropped after a cancel) get a synthesized Cancelled result.
    """
    slots: List[Optional[Result]] = [None] * len(jobs)
    total = len(jobs)
    done = 0

    for idx, result in stream:
        slots[idx] = result
        done += 1
        if result_callback:
            result_callback(idx, result)
        if progress_callback:
            progress_callback(done, total)

    return [r if r is not None else Result.cancelled(jobs[i]) for i, r in enumerate(slots)]


def process_batch(
    jobs: Sequence[Job],
    concurrency: Optional[int] = None,
    progress_callback: Optional[ProgressCallback] = None,
    result_callback: Optional[ResultCallback] = None,
    scheduler: Optional[BatchScheduler] = None,
) -> tuple[List[Result], BatchSummary]:
    """
    Run jobs to the end and return (results in input order, summary).

    Pass your own scheduler to be able to cancel() it from another thread.
    """
    scheduler = scheduler or BatchScheduler()
    stream = scheduler.submit(jobs, concurrency)
    results = collect_results(jobs, stream, progress_callback, result_callback)
    summary = summarize(results, was_cancelled=scheduler.state is BatchState.CANCELLED)
    return results, summary
