"""Work-conserving job dispatch over a fixed set of worker slots.

This is pure bookkeeping and runs on the coordinating thread only; it never
touches processes itself. The caller supplies ``send(slot, job_id)`` which
hands the job to the slot's worker, and feeds completions back through
``complete``/``fail_slot`` when results arrive.

State per batch::

    IDLE --submit--> RUNNING --queue empty--> DRAINING --last result--> IDLE
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from image_compressor.logger import get_logger

from .types import Result

_logger = get_logger("dispatcher")


class BatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"


@dataclass
class WorkerSlot:
    index: int
    handle: Any = None
    busy: bool = False
    job_id: str | None = None
    # Batch generation the running job belongs to.
    generation: int = 0


class DispatchQueue:
    def __init__(
        self,
        workers: Sequence[Any],
        send: Callable[[WorkerSlot, str], None],
        on_result: Callable[[Result], None] | None = None,
        on_finished: Callable[[int], None] | None = None,
        name_of: Callable[[str], str] | None = None,
    ) -> None:
        if not workers:
            raise ValueError("at least one worker is required")
        self._slots: tuple[WorkerSlot, ...] = tuple(WorkerSlot(i, w) for i, w in enumerate(workers))
        self._send = send
        self._on_result = on_result
        self._on_finished = on_finished
        self._name_of = name_of
        self._pending: deque[str] = deque()
        self._submitted: set[str] = set()
        self._results: dict[str, Result] = {}
        self._state = BatchState.IDLE
        self._generation = 0

    # ---- introspection ---------------------------------------------
    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def slots(self) -> tuple[WorkerSlot, ...]:
        return self._slots

    @property
    def pool_size(self) -> int:
        return len(self._slots)

    @property
    def busy_count(self) -> int:
        return sum(1 for s in self._slots if s.busy)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def submitted_count(self) -> int:
        return len(self._submitted)

    @property
    def completed_count(self) -> int:
        return len(self._results)

    @property
    def results(self) -> dict[str, Result]:
        return dict(self._results)

    def in_flight(self) -> dict[int, str]:
        return {s.index: s.job_id for s in self._slots if s.busy and s.job_id is not None}

    # ---- batch control ---------------------------------------------
    def submit(self, job_ids: Iterable[str]) -> int:
        """Queue ``job_ids`` and start dispatching.

        Submitting while a batch is RUNNING/DRAINING extends that batch;
        ids already part of the batch are ignored. Returns the number of
        newly queued ids.
        """
        ids = list(job_ids)
        if self._state is BatchState.IDLE and ids:
            # Fresh batch: previous results were already delivered.
            self._submitted.clear()
            self._results.clear()

        added = 0
        for job_id in ids:
            if job_id in self._submitted:
                _logger.debug("submit skip(duplicate): id=%s", job_id)
                continue
            self._submitted.add(job_id)
            self._pending.append(job_id)
            added += 1

        if not added:
            return 0

        if self._state is BatchState.IDLE:
            _logger.debug("batch start: jobs=%s pool=%s", added, self.pool_size)
        self._state = BatchState.RUNNING
        for slot in self._slots:
            if not self._pending:
                break
            if not slot.busy:
                self._fill(slot)
        self._update_state()
        return added

    def complete(self, slot_index: int, result: Result) -> bool:
        """Record ``result`` reported by slot ``slot_index`` and refill the slot.

        Returns False when the result was discarded (cleared batch, unknown or
        duplicate id).
        """
        slot = self._slots[slot_index]
        expected, generation = slot.job_id, slot.generation
        self._release(slot)

        if generation != self._generation:
            _logger.debug("late result discarded: id=%s slot=%s", result.id, slot_index)
            accepted = False
        else:
            if expected is not None and expected != result.id:
                _logger.warning("slot %s returned id=%s while running id=%s", slot_index, result.id, expected)
            accepted = self._record(result)

        self._refill()
        return accepted

    def fail_slot(self, slot_index: int, message: str) -> str | None:
        """Return a faulted slot to idle and fail the job it was running.

        Returns the id of the job that was failed, if any.
        """
        slot = self._slots[slot_index]
        job_id, generation = slot.job_id, slot.generation
        self._release(slot)
        failed = None
        if job_id is not None and generation == self._generation:
            self._record(Result.failure(job_id, self._filename(job_id), message))
            failed = job_id
        self._refill()
        return failed

    def clear(self) -> list[str]:
        """Drop queued work and forget the current batch.

        Jobs already running keep their slots until they report back; their
        results are then discarded. Returns the ids that were still queued.
        """
        dropped = list(self._pending)
        self._pending.clear()
        self._submitted.clear()
        self._results.clear()
        self._state = BatchState.IDLE
        self._generation += 1
        _logger.debug("batch cleared: dropped=%s in_flight=%s", len(dropped), self.busy_count)
        return dropped

    # ---- internals -------------------------------------------------
    def _filename(self, job_id: str) -> str:
        if self._name_of is None:
            return ""
        try:
            return self._name_of(job_id)
        except KeyError:
            return ""

    @staticmethod
    def _release(slot: WorkerSlot) -> None:
        slot.busy = False
        slot.job_id = None

    def _record(self, result: Result) -> bool:
        if result.id not in self._submitted:
            _logger.debug("unknown result discarded: id=%s", result.id)
            return False
        if result.id in self._results:
            _logger.warning("duplicate result discarded: id=%s", result.id)
            return False
        self._results[result.id] = result
        if self._on_result is not None:
            self._on_result(result)
        return True

    def _next_runnable(self) -> str | None:
        # An id still running from a cleared batch must not run twice at once.
        running = {s.job_id for s in self._slots if s.busy}
        for i, job_id in enumerate(self._pending):
            if job_id not in running:
                del self._pending[i]
                return job_id
        return None

    def _fill(self, slot: WorkerSlot) -> None:
        while self._pending and not slot.busy:
            job_id = self._next_runnable()
            if job_id is None:
                return
            slot.busy = True
            slot.job_id = job_id
            slot.generation = self._generation
            _logger.debug("assign: id=%s slot=%s pending=%s", job_id, slot.index, len(self._pending))
            try:
                self._send(slot, job_id)
            except Exception as e:
                _logger.exception("dispatch failed for id=%s on slot %s", job_id, slot.index)
                self._release(slot)
                self._record(Result.failure(job_id, self._filename(job_id), f"dispatch failed: {e}"))

    def _refill(self) -> None:
        # Normally only the slot that just reported is idle; a deferred id may
        # have become runnable for another idle slot too.
        for slot in self._slots:
            if not self._pending:
                break
            if not slot.busy:
                self._fill(slot)
        self._update_state()

    def _update_state(self) -> None:
        if self._state is BatchState.IDLE:
            return
        if self._pending:
            self._state = BatchState.RUNNING
            return
        if self.completed_count >= self.submitted_count:
            total = self.submitted_count
            self._state = BatchState.IDLE
            _logger.debug("batch finished: results=%s", total)
            if self._on_finished is not None:
                self._on_finished(total)
            return
        self._state = BatchState.DRAINING
