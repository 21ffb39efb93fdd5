"""
async/await on top of Futures.

`spawn` drives a coroutine on a Scheduler: the body runs synchronously up to
its first `await`, and every `await future` resumes in a microtask once the
future settles. The coroutine's return value (or raised error) settles the
Future returned by `spawn`.
"""

import functools
import logging
from datetime import timedelta
from typing import Any, Callable, Coroutine, Optional, Union

from .errors import FutureTimeoutError
from .future import Future
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class CoroutineTask:
    """Steps a coroutine whenever the future it awaits settles"""

    def __init__(self, coro: Coroutine, future: Future):
        self._coro = coro
        self.future = future
        self._label = f"coroutine:{getattr(coro, '__qualname__', 'anonymous')}"

    def step(self, error: Optional[BaseException] = None) -> None:
        try:
            if error is None:
                awaited = self._coro.send(None)
            else:
                awaited = self._coro.throw(error)
        except StopIteration as stop:
            self.future.fulfill(stop.value)
            return
        except Exception as e:
            self.future.reject(e)
            return

        scheduler = self.future.scheduler
        if isinstance(awaited, Future):
            awaited.subscribe(self._resume, self._resume)
        elif awaited is None:
            # Bare yield: give other microtasks a turn
            scheduler.schedule_microtask(self.step, label=self._label)
        else:
            bad = TypeError(f"{self._label} awaited {awaited!r}, which is not a Future")
            scheduler.schedule_microtask(functools.partial(self.step, bad), label=self._label)

    def _resume(self, _outcome: Any) -> None:
        # Future.__await__ returns the value or raises the error itself
        self.step()


def spawn(coro: Coroutine, scheduler: Optional[Scheduler] = None) -> Future:
    """Start driving `coro` and return the Future of its result"""
    task = CoroutineTask(coro, Future(scheduler))
    task.step()
    return task.future


def async_function(fn: Optional[Callable[..., Coroutine]] = None, *,
                   scheduler: Optional[Scheduler] = None):
    """
    Decorator turning an ``async def`` into a function returning a Future.

    Usable bare (``@async_function``) or with a scheduler
    (``@async_function(scheduler=s)``).
    """
    def decorate(func: Callable[..., Coroutine]) -> Callable[..., Future]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Future:
            return spawn(func(*args, **kwargs), scheduler)
        return wrapper

    if fn is not None:
        return decorate(fn)
    return decorate


def sleep(delay: Union[float, timedelta], value: Any = None,
          scheduler: Optional[Scheduler] = None) -> Future:
    """Future fulfilled with `value` by a macrotask after `delay`"""
    future = Future(scheduler)
    future.scheduler.schedule_macrotask(lambda: future.fulfill(value), delay, label=f"sleep:{delay}")
    return future


def with_timeout(future: Future, delay: Union[float, timedelta]) -> Future:
    """
    Race `future` against a timer rejecting with FutureTimeoutError.

    The timer is cancelled as soon as `future` settles first.
    """
    scheduler = future.scheduler
    seconds = delay.total_seconds() if isinstance(delay, timedelta) else delay
    timer = Future(scheduler)
    token = scheduler.schedule_macrotask(
        lambda: timer.reject(FutureTimeoutError(seconds, context={"future_id": future.id})),
        seconds,
        label=f"timeout:future#{future.id}",
    )
    future.subscribe(lambda _: token.cancel(), lambda _: token.cancel())
    return Future.race([future, timer], scheduler)
