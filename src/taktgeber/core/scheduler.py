"""
Two-tier task scheduler for Taktgeber

Deterministic, single-threaded scheduler owning a microtask queue (pure FIFO)
and a macrotask queue (ordered by due time, FIFO among equal due times).

Event loop priority:
1. The host runs its synchronous code
2. ALL microtasks run, including ones scheduled while draining
3. ONE due macrotask runs, followed by a full microtask drain
4. Repeat

The scheduler never raises task errors into the host. Exceptions escaping a
task body and rejections nobody handled are delivered to the unhandled-error
sink instead.
"""

import heapq
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Deque, Dict, List, Optional, Union, TYPE_CHECKING

from .clock import Clock, clock_from_name
from .config import SchedulerConfig
from .errors import ErrorCode, SchedulerClosedError, TaktgeberError
from .models import (
    ErrorKind, QueueKind, ReportSource, SchedulerStats, UnhandledErrorReport
)

if TYPE_CHECKING:
    from .future import Future

logger = logging.getLogger(__name__)

Task = Callable[[], Any]
UnhandledErrorSink = Callable[[ErrorKind, UnhandledErrorReport], None]
Delay = Union[int, float, timedelta]

# Compact the macrotask heap once cancelled entries exceed this count and half
# of the heap
MIN_CANCELLED_FOR_COMPACTION = 100
CANCELLED_COMPACTION_FRACTION = 0.5


@dataclass(eq=False)
class ScheduledItem:
    """A unit of queued work"""
    task: Task
    queue: QueueKind
    sequence: int
    due_time: float = 0.0
    label: Optional[str] = None
    cancelled: bool = False
    executed: bool = False
    # Repeat period for interval tasks, None for one-shot tasks
    period: Optional[float] = None
    queued: bool = False

    def __lt__(self, other: "ScheduledItem") -> bool:
        return (self.due_time, self.sequence) < (other.due_time, other.sequence)

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.executed)


class CancellationToken:
    """Handle returned by schedule_macrotask and schedule_interval, accepted by Scheduler.cancel"""

    __slots__ = ("_scheduler", "_item")

    def __init__(self, scheduler: "Scheduler", item: ScheduledItem):
        self._scheduler = scheduler
        self._item = item

    @property
    def active(self) -> bool:
        return self._item.active

    @property
    def due_time(self) -> float:
        return self._item.due_time

    @property
    def label(self) -> Optional[str]:
        return self._item.label

    def cancel(self) -> bool:
        return self._scheduler.cancel(self)

    def __repr__(self) -> str:
        state = "active" if self.active else ("cancelled" if self._item.cancelled else "executed")
        return f"<CancellationToken seq={self._item.sequence} due={self._item.due_time:.3f} {state}>"


class Scheduler:
    """
    Deterministic microtask/macrotask scheduler driven by a host loop.

    Features:
    - Microtasks drained to exhaustion before any macrotask
    - Macrotasks ordered by (due time, insertion order)
    - Repeating interval macrotasks
    - Queue-level cancellation of macrotasks
    - Unhandled-error sink for task exceptions and unhandled rejections
    - Explicit lifecycle (close / context manager)
    """

    def __init__(self,
                 clock: Optional[Clock] = None,
                 sink: Optional[UnhandledErrorSink] = None,
                 config: Optional[SchedulerConfig] = None,
                 name: Optional[str] = None):
        self.config = config or SchedulerConfig()
        self.clock = clock or clock_from_name(self.config.clock)
        self.sink = sink
        self.name = name or f"scheduler-{id(self):x}"

        self._microtasks: Deque[ScheduledItem] = deque()
        self._macrotasks: List[ScheduledItem] = []
        self._sequence = itertools.count()
        self._live_macrotasks = 0
        self._cancelled_in_heap = 0

        # future id -> rejected future without a rejection handler
        self._pending_rejections: Dict[int, "Future"] = {}

        self._draining = False
        self._closed = False

        self._microtasks_run = 0
        self._macrotasks_run = 0
        self._macrotasks_cancelled = 0
        self._errors_reported = 0

        logger.debug(f"Scheduler created: {self.name} (clock={self.clock!r})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, report_cancelled: Optional[bool] = None) -> None:
        """
        Tear the scheduler down.

        Remaining work is dropped. Dropped macrotasks are reported to the sink
        as cancelled when `report_cancelled` (or the config default) is set.
        Rejections still unhandled at this point are reported as well.
        """
        if self._closed:
            return
        if report_cancelled is None:
            report_cancelled = self.config.report_cancelled_on_close

        dropped_microtasks = len(self._microtasks)
        self._microtasks.clear()

        dropped = sorted(item for item in self._macrotasks if item.active)
        self._macrotasks.clear()
        self._live_macrotasks = 0
        self._cancelled_in_heap = 0
        for item in dropped:
            item.cancelled = True
            item.queued = False
            self._macrotasks_cancelled += 1
            if report_cancelled:
                self._report(
                    ErrorKind.CANCELLED, ReportSource.TEARDOWN,
                    TaktgeberError(ErrorCode.TASK_CANCELLED, context={"label": item.label}),
                    label=item.label,
                )

        self._flush_unhandled_rejections()
        self._closed = True

        if dropped or dropped_microtasks:
            logger.warning(
                f"Scheduler {self.name} closed with {len(dropped)} macrotasks "
                f"and {dropped_microtasks} microtasks pending"
            )
        logger.debug(f"Scheduler closed: {self.name}")

    def __enter__(self) -> "Scheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self, what: str) -> None:
        if self._closed:
            raise SchedulerClosedError(context={"scheduler": self.name, "operation": what})

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def now(self) -> float:
        return self.clock.now()

    def next_due_time(self) -> Optional[float]:
        """Due time of the earliest live macrotask, or None"""
        self._discard_cancelled_head()
        if not self._macrotasks:
            return None
        return self._macrotasks[0].due_time

    def time_until_next(self) -> Optional[float]:
        due = self.next_due_time()
        if due is None:
            return None
        return max(0.0, due - self.now())

    def wait_until(self, when: float) -> None:
        """Let the clock reach `when`: jump a virtual clock, sleep on a real one"""
        advance_to = getattr(self.clock, "advance_to", None)
        if advance_to is not None:
            advance_to(when)
            return
        remaining = when - self.now()
        if remaining <= 0:
            return
        sleep = getattr(self.clock, "sleep", None)
        if sleep is not None:
            sleep(remaining)
        else:
            time.sleep(remaining)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_microtask(self, task: Task, label: Optional[str] = None) -> None:
        """Append a task to the microtask queue"""
        self._ensure_open("schedule_microtask")
        self._microtasks.append(
            ScheduledItem(task=task, queue=QueueKind.MICROTASK,
                          sequence=next(self._sequence), label=label)
        )

    def schedule_macrotask(self, task: Task, delay: Delay = 0.0,
                           label: Optional[str] = None) -> CancellationToken:
        """Insert a task into the macrotask queue at now + delay"""
        self._ensure_open("schedule_macrotask")
        if isinstance(delay, timedelta):
            delay = delay.total_seconds()
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")

        item = ScheduledItem(
            task=task,
            queue=QueueKind.MACROTASK,
            sequence=next(self._sequence),
            due_time=self.now() + delay,
            label=label,
        )
        self._push_macrotask(item)
        logger.debug(f"Macrotask scheduled: {label or item.sequence} due {item.due_time:.3f}")
        return CancellationToken(self, item)

    def schedule_interval(self, task: Task, period: Delay,
                          label: Optional[str] = None) -> CancellationToken:
        """
        Run `task` as a macrotask every `period` seconds, first at now + period.

        After each run the task is re-inserted at its previous due time plus
        `period`. Cancelling the returned token, also from inside the task
        itself, stops all further runs. drain_all() does not return while an
        interval is active.
        """
        self._ensure_open("schedule_interval")
        if isinstance(period, timedelta):
            period = period.total_seconds()
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")

        item = ScheduledItem(
            task=task,
            queue=QueueKind.MACROTASK,
            sequence=next(self._sequence),
            due_time=self.now() + period,
            label=label,
            period=float(period),
        )
        self._push_macrotask(item)
        logger.debug(f"Interval scheduled: {label or item.sequence} every {period:.3f}")
        return CancellationToken(self, item)

    def cancel(self, token: CancellationToken) -> bool:
        """
        Cancel a macrotask that has not run yet, or stop an interval.

        Returns True when the task was removed, False when it already ran or
        was already cancelled.
        """
        if token._scheduler is not self:
            logger.warning(f"Token {token!r} belongs to another scheduler")
            return False
        item = token._item
        if not item.active:
            return False
        item.cancelled = True
        self._macrotasks_cancelled += 1
        if item.queued:
            self._live_macrotasks -= 1
            self._cancelled_in_heap += 1
            self._maybe_compact()
        logger.debug(f"Macrotask cancelled: {item.label or item.sequence}")
        return True

    def _push_macrotask(self, item: ScheduledItem) -> None:
        item.queued = True
        heapq.heappush(self._macrotasks, item)
        self._live_macrotasks += 1

    def _maybe_compact(self) -> None:
        if (self._cancelled_in_heap > MIN_CANCELLED_FOR_COMPACTION and
                self._cancelled_in_heap > CANCELLED_COMPACTION_FRACTION * len(self._macrotasks)):
            self._macrotasks = [item for item in self._macrotasks if not item.cancelled]
            heapq.heapify(self._macrotasks)
            logger.debug(f"Compacted macrotask heap, dropped {self._cancelled_in_heap} cancelled entries")
            self._cancelled_in_heap = 0

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    @property
    def pending_microtasks(self) -> int:
        return len(self._microtasks)

    @property
    def pending_macrotasks(self) -> int:
        return self._live_macrotasks

    @property
    def draining(self) -> bool:
        """True while a microtask drain is running"""
        return self._draining

    def is_idle(self) -> bool:
        return not self._microtasks and self._live_macrotasks == 0

    def drain_microtasks(self) -> int:
        """
        Run the microtask queue to exhaustion, including microtasks scheduled
        during the drain. Returns the number of microtasks run.
        """
        if self._draining:
            # Already inside a drain further up the stack; it will pick up
            # anything queued from here.
            return 0
        count = 0
        self._draining = True
        try:
            while self._microtasks:
                item = self._microtasks.popleft()
                self._run_item(item)
                count += 1
        finally:
            self._draining = False
        self._check_idle()
        return count

    def run_one_macrotask(self) -> bool:
        """
        Drain microtasks, then run exactly one due macrotask and drain the
        microtasks it produced. Returns False when no macrotask was due.

        Called from inside a running microtask it does nothing and returns
        False: the microtask queue is still being drained further up the
        stack.
        """
        if self._draining:
            logger.debug("run_one_macrotask called during a microtask drain, ignored")
            return False
        self.drain_microtasks()
        item = self._pop_due_macrotask()
        if item is None:
            return False
        self._run_item(item)
        self.drain_microtasks()
        return True

    def drain_all(self) -> None:
        """
        Run until both queues are empty.

        Meant for tests and headless runs. Waits for macrotasks that are not
        yet due (see wait_until). A no-op when called from inside a running
        microtask.
        """
        if self._draining:
            logger.debug("drain_all called during a microtask drain, ignored")
            return
        while True:
            if self.run_one_macrotask():
                continue
            due = self.next_due_time()
            if due is not None:
                self.wait_until(due)
                continue
            # Reporting rejections may queue new work from the sink
            self._check_idle()
            if self.is_idle():
                break

    def _pop_due_macrotask(self) -> Optional[ScheduledItem]:
        self._discard_cancelled_head()
        if not self._macrotasks or self._macrotasks[0].due_time > self.now():
            return None
        item = heapq.heappop(self._macrotasks)
        item.queued = False
        self._live_macrotasks -= 1
        return item

    def _discard_cancelled_head(self) -> None:
        while self._macrotasks and self._macrotasks[0].cancelled:
            heapq.heappop(self._macrotasks).queued = False
            self._cancelled_in_heap -= 1

    def _run_item(self, item: ScheduledItem) -> None:
        if item.period is None:
            item.executed = True
        if item.queue is QueueKind.MICROTASK:
            self._microtasks_run += 1
        else:
            self._macrotasks_run += 1
        try:
            item.task()
        except Exception as e:
            self._report(ErrorKind.EXCEPTION, ReportSource(item.queue.value), e, label=item.label)
        if item.period is not None and not item.cancelled:
            if self._closed:
                item.executed = True
                return
            item.due_time += item.period
            item.sequence = next(self._sequence)
            self._push_macrotask(item)

    # ------------------------------------------------------------------
    # Unhandled errors
    # ------------------------------------------------------------------

    def track_rejection(self, future: "Future") -> None:
        """Remember a future that was rejected while nobody handled it"""
        if self.config.track_unhandled_rejections:
            self._pending_rejections[future.id] = future

    def untrack_rejection(self, future: "Future") -> None:
        """A rejection handler was attached after the rejection"""
        self._pending_rejections.pop(future.id, None)

    def _check_idle(self) -> None:
        if self._pending_rejections and self.is_idle():
            self._flush_unhandled_rejections()

    def _flush_unhandled_rejections(self) -> None:
        pending = list(self._pending_rejections.values())
        self._pending_rejections.clear()
        for future in pending:
            self._report(ErrorKind.REJECTION, ReportSource.FUTURE, future.error, future_id=future.id)

    def _report(self, kind: ErrorKind, source: ReportSource, error: Any,
                label: Optional[str] = None, future_id: Optional[int] = None) -> None:
        self._errors_reported += 1
        report = UnhandledErrorReport(
            kind=kind,
            source=source,
            error=error,
            label=label,
            future_id=future_id,
            scheduler_time=self.now(),
        )
        if self.sink is None:
            self._log_report(report)
            return
        try:
            self.sink(kind, report)
        except Exception:
            logger.exception(f"Unhandled-error sink failed while reporting {report.describe()}")

    def _log_report(self, report: UnhandledErrorReport) -> None:
        if report.kind is ErrorKind.CANCELLED:
            logger.warning(f"Dropped {report.describe()}")
            return
        exc_info = report.error if isinstance(report.error, BaseException) else None
        if report.kind is ErrorKind.REJECTION:
            logger.error(f"Unhandled rejection: {report.describe()}", exc_info=exc_info)
        else:
            logger.error(f"Uncaught exception: {report.describe()}", exc_info=exc_info)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            microtasks_run=self._microtasks_run,
            macrotasks_run=self._macrotasks_run,
            macrotasks_cancelled=self._macrotasks_cancelled,
            errors_reported=self._errors_reported,
            pending_microtasks=len(self._microtasks),
            pending_macrotasks=self._live_macrotasks,
            macrotask_heap_size=len(self._macrotasks),
            pending_rejections=len(self._pending_rejections),
            closed=self._closed,
        )

    def __repr__(self) -> str:
        return (f"<Scheduler {self.name} micro={len(self._microtasks)} "
                f"macro={self._live_macrotasks}{' closed' if self._closed else ''}>")


# ----------------------------------------------------------------------
# Process-wide default instance
# ----------------------------------------------------------------------

_default_scheduler: Optional[Scheduler] = None


def get_default_scheduler() -> Scheduler:
    """Return the default scheduler, creating a fresh one when needed"""
    global _default_scheduler
    if _default_scheduler is None or _default_scheduler.closed:
        _default_scheduler = Scheduler(name="default")
        logger.debug("Default scheduler initialized")
    return _default_scheduler


def set_default_scheduler(scheduler: Optional[Scheduler]) -> Optional[Scheduler]:
    """Install `scheduler` as the default and return the previous one"""
    global _default_scheduler
    previous = _default_scheduler
    _default_scheduler = scheduler
    return previous


def reset_default_scheduler(report_cancelled: Optional[bool] = None) -> None:
    """Close the default scheduler; the next lookup creates a new one"""
    global _default_scheduler
    if _default_scheduler is not None:
        _default_scheduler.close(report_cancelled=report_cancelled)
    _default_scheduler = None
