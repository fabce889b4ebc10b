"""Fixed pool of isolated worker processes, one per dispatch slot.

Each worker is a single-process ``ProcessPoolExecutor`` so a job can be pinned
to a specific slot. Completion callbacks fire on executor threads; they only
re-emit through a queued signal so that everything downstream runs on the
thread that owns the pool.
"""

from __future__ import annotations

import contextlib
import multiprocessing
import os
from collections.abc import Callable
from concurrent.futures import Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool

from PySide6.QtCore import QObject, Qt, Signal, Slot

from image_compressor.logger import get_logger

from .executor import compress_job
from .types import Job, Result

_logger = get_logger("worker_pool")


# Workers never inherit the coordinator's Qt and executor threads.
_MP_CONTEXT = multiprocessing.get_context("spawn")


def _new_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(max_workers=1, mp_context=_MP_CONTEXT)


def default_pool_size() -> int:
    return max(1, os.cpu_count() or 1)


class Worker:
    """Handle for one worker process; the executor is replaced after a crash."""

    def __init__(self, index: int, factory: Callable[[], ProcessPoolExecutor]) -> None:
        self.index = index
        self._factory = factory
        self.executor = factory()
        self.restarts = 0

    def submit(self, fn: Callable, job: Job) -> Future:
        return self.executor.submit(fn, job)

    def restart(self) -> None:
        with contextlib.suppress(Exception):
            self.executor.shutdown(wait=False, cancel_futures=True)
        self.executor = self._factory()
        self.restarts += 1

    def shutdown(self, wait: bool = False) -> None:
        self.executor.shutdown(wait=wait, cancel_futures=True)


class WorkerPool(QObject):
    """Runs jobs on pinned worker processes and reports back per slot.

    The job function must be a pickleable top-level callable taking a ``Job``
    and returning a ``Result``.
    """

    job_finished = Signal(int, object)  # slot index, Result
    worker_fault = Signal(int, str, str)  # slot index, job id, message
    worker_restarted = Signal(int, str)  # slot index, message

    # Internal hop from executor threads to the owning thread.
    _completed = Signal(int, str, object, object)  # slot index, job id, Result|None, error|None

    def __init__(
        self,
        size: int | None = None,
        job_fn: Callable[[Job], Result] = compress_job,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._job_fn = job_fn
        count = size if size and size > 0 else default_pool_size()
        self.workers: tuple[Worker, ...] = tuple(Worker(i, _new_executor) for i in range(count))
        self._closed = False
        self._completed.connect(self._on_completed, Qt.ConnectionType.QueuedConnection)
        _logger.debug("WorkerPool init: workers=%s", count)

    @property
    def size(self) -> int:
        return len(self.workers)

    def submit(self, slot_index: int, job: Job) -> None:
        """Run ``job`` on worker ``slot_index``.

        A worker whose process died while idle is replaced and the job is
        handed to the replacement. Raises if that one rejects it too.
        """
        if self._closed:
            raise RuntimeError("worker pool is shut down")
        worker = self.workers[slot_index]
        _logger.debug("submit: id=%s file=%s slot=%s", job.id, job.filename, slot_index)
        try:
            future = worker.submit(self._job_fn, job)
        except BrokenProcessPool as e:
            message = f"{type(e).__name__}: {e}"
            _logger.error("worker %s found dead before id=%s: %s", slot_index, job.id, message)
            worker.restart()
            self.worker_restarted.emit(slot_index, message)
            future = worker.submit(self._job_fn, job)
        future.add_done_callback(lambda f, i=slot_index, job_id=job.id: self._on_future_done(i, job_id, f))

    def _on_future_done(self, slot_index: int, job_id: str, future: Future) -> None:
        # Executor thread: no bookkeeping here, just forward.
        if future.cancelled():
            self._completed.emit(slot_index, job_id, None, "job cancelled")
            return
        exc = future.exception()
        if exc is not None:
            self._completed.emit(slot_index, job_id, None, f"{type(exc).__name__}: {exc}")
            return
        self._completed.emit(slot_index, job_id, future.result(), None)

    @Slot(int, str, object, object)
    def _on_completed(self, slot_index: int, job_id: str, result: object, error: object) -> None:
        if self._closed:
            return
        if error is not None or not isinstance(result, Result):
            message = str(error or f"worker returned {type(result).__name__}")
            _logger.error("worker %s fault on id=%s: %s", slot_index, job_id, message)
            self.workers[slot_index].restart()
            self.worker_fault.emit(slot_index, job_id, message)
            return
        self.job_finished.emit(slot_index, result)

    def shutdown(self, wait: bool = False) -> None:
        self._closed = True
        for worker in self.workers:
            try:
                worker.shutdown(wait=wait)
            except Exception:
                _logger.exception("worker %s shutdown failed", worker.index)
