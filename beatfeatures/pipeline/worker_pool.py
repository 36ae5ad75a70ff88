"""Fixed-size worker pool with cooperative cancellation.

Workers are daemon threads that claim items from a shared queue until it
is empty or the run is cancelled. The thread calling ``WorkerPool.run``
is the coordinator: it settles exactly one delivery per item, records
failures, and flushes and closes the sink at the end.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Sequence

from .errors import FatalInputError, TaskError, WriteError
from .models import ItemFailure, ItemOutcome, RatedItem, RunReport, RunStatus
from .sink import ResultSink

logger = logging.getLogger(__name__)

Task = Callable[[RatedItem], ItemOutcome]
OutcomeCallback = Callable[[ItemOutcome, bool], None]


class CancellationToken:
    """Thread-safe, one-shot cancellation flag with a reason."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the run. Returns False if it was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class WorkerPool:
    def __init__(self, workers: int, grace_period_s: float = 5.0, poll_interval_s: float = 0.1) -> None:
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise FatalInputError(f"Invalid pool size {workers!r}: must be an integer >= 1")
        self.workers = workers
        self.grace_period_s = float(grace_period_s)
        self.poll_interval_s = float(poll_interval_s)

    def _run_task(self, task: Task, item: RatedItem) -> ItemOutcome:
        start = time.perf_counter()
        try:
            return task(item)
        except Exception as exc:
            logger.exception("Task for %s raised", item.reference)
            return ItemOutcome(
                item=item,
                error=TaskError(item.reference, f"{type(exc).__name__}: {exc}"),
                duration_s=time.perf_counter() - start,
            )

    def _worker_loop(
        self, pending: "queue.SimpleQueue[RatedItem]", task: Task, sink: ResultSink, token: CancellationToken
    ) -> None:
        while not token.cancelled:
            try:
                item = pending.get_nowait()
            except queue.Empty:
                return
            sink.deliver(self._run_task(task, item))

    def run(
        self,
        items: Sequence[RatedItem],
        task: Task,
        sink: ResultSink,
        token: Optional[CancellationToken] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> RunReport:
        token = token or CancellationToken()
        report = RunReport(total=len(items), discipline=sink.discipline, workers=self.workers)
        start = time.perf_counter()

        pending: "queue.SimpleQueue[RatedItem]" = queue.SimpleQueue()
        for item in items:
            pending.put(item)

        threads: List[threading.Thread] = []
        for index in range(min(self.workers, len(items))):
            thread = threading.Thread(
                target=self._worker_loop,
                args=(pending, task, sink, token),
                name=f"beatfeatures-worker-{index}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)

        write_error: Optional[WriteError] = None
        settled = 0
        deadline: Optional[float] = None
        try:
            while settled < len(items):
                if token.cancelled and deadline is None:
                    deadline = time.monotonic() + self.grace_period_s
                    logger.warning(
                        "Run cancelled (%s); waiting up to %.1fs for in-flight items",
                        token.reason,
                        self.grace_period_s,
                    )
                    # rows written so far reach disk even if the grace period runs out
                    sink.flush()
                if deadline is not None and time.monotonic() >= deadline:
                    break

                delivery = sink.next_delivery(self.poll_interval_s)
                if delivery is None:
                    if not any(t.is_alive() for t in threads):
                        # workers exited; pick up anything posted since the last poll
                        delivery = sink.next_delivery(0)
                        if delivery is None:
                            if not token.cancelled:
                                logger.error("Workers exited with %d items unsettled", len(items) - settled)
                            break
                    else:
                        continue

                settled += 1
                try:
                    written = sink.settle(delivery)
                except WriteError as exc:
                    logger.error("Can't write to output: %s", exc)
                    write_error = exc
                    token.cancel("write error")
                    break
                self._record(report, delivery.outcome, written, on_outcome)
        except WriteError as exc:
            logger.error("Can't flush output: %s", exc)
            write_error = exc
            token.cancel("write error")
        finally:
            try:
                sink.close()
            except WriteError as exc:
                logger.error("Can't close output: %s", exc)
                if write_error is None:
                    write_error = exc

        # rows the locked sink wrote before close() but the loop never settled
        while True:
            delivery = sink.next_delivery(0)
            if delivery is None:
                break
            self._record(report, delivery.outcome, delivery.written, on_outcome)

        report.elapsed_s = time.perf_counter() - start
        if write_error is not None:
            raise write_error
        if token.cancelled:
            report.status = RunStatus.INTERRUPTED
            report.cancel_reason = token.reason
        return report

    @staticmethod
    def _record(
        report: RunReport, outcome: ItemOutcome, written: bool, on_outcome: Optional[OutcomeCallback]
    ) -> None:
        if written:
            report.written += 1
        elif not outcome.ok:
            report.failures.append(ItemFailure.from_outcome(outcome))
        if on_outcome is not None:
            on_outcome(outcome, written)
