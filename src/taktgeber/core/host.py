"""
Host loop helpers.

A host owns the clock and decides when the scheduler makes progress. These
helpers cover the two common cases: block until one future settles, or keep
running timers until the work runs out.
"""

import logging
from typing import Any, Callable, Optional

from .errors import HostTimeoutError, InvalidStateError
from .future import Future
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


def run_until_complete(future: Future, scheduler: Optional[Scheduler] = None,
                       timeout: Optional[float] = None) -> Any:
    """
    Drive the scheduler until `future` settles.

    Returns the value or raises the rejection error. Raises HostTimeoutError
    when the next macrotask is due after `timeout`, and InvalidStateError
    when the scheduler runs out of work while the future is still pending.
    """
    scheduler = scheduler or future.scheduler
    if scheduler.draining:
        raise InvalidStateError(context={
            "future_id": future.id,
            "reason": "run_until_complete called from inside a microtask",
        })
    deadline = scheduler.now() + timeout if timeout is not None else None

    while True:
        scheduler.drain_microtasks()
        if not future.is_pending():
            break
        if scheduler.run_one_macrotask():
            continue
        due = scheduler.next_due_time()
        if due is None:
            raise InvalidStateError(context={
                "future_id": future.id,
                "reason": "scheduler ran out of work before the future settled",
            })
        if deadline is not None and due > deadline:
            raise HostTimeoutError(timeout, context={"future_id": future.id})
        scheduler.wait_until(due)

    return future.result()


def run_host_loop(scheduler: Scheduler,
                  until: Optional[Callable[[], bool]] = None,
                  idle_sleep: Optional[float] = None) -> int:
    """
    Wall-clock host loop.

    Runs due macrotasks, waits for the next due time in slices of at most
    `idle_sleep` seconds so `until` is polled, and returns once both queues
    are empty or `until()` is true. Returns the number of macrotasks run.
    """
    if idle_sleep is None:
        idle_sleep = scheduler.config.idle_sleep
    ran = 0

    while True:
        if until is not None and until():
            break
        if scheduler.run_one_macrotask():
            ran += 1
            continue
        due = scheduler.next_due_time()
        if due is None:
            break
        scheduler.wait_until(min(due, scheduler.now() + idle_sleep) if idle_sleep > 0 else due)

    logger.debug(f"Host loop finished after {ran} macrotasks")
    return ran
