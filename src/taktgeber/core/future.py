"""
Future primitive for Taktgeber

A Future is a single-assignment container for an eventual value:

    pending -> fulfilled (value)
    pending -> rejected  (error)

Transitions happen at most once; the first settlement wins and later calls to
fulfill() or reject() are ignored. Reactions registered with then() always run
as microtasks on the future's scheduler, never inside the call that registers
them or settles the future.

Fulfilling a future with another adoptable future makes it mirror the inner
future's eventual outcome instead of fulfilling with the future object.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import (
    Any, Callable, Generator, Generic, Iterable, List, Optional, Tuple, TypeVar
)

from .errors import (
    AggregateRejection, ChainingCycleError, InvalidStateError, as_rejection
)
from .models import FutureState, Outcome
from .scheduler import Scheduler, get_default_scheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnFulfilled = Callable[[Any], Any]
OnRejected = Callable[[BaseException], Any]

_future_ids = itertools.count(1)


class Adoptable(ABC):
    """
    Capability: something a Future can adopt.

    Implementations call exactly one of the two callbacks once their outcome
    is known. Foreign future-likes opt in by subclassing or via
    ``Adoptable.register``.
    """

    @abstractmethod
    def subscribe(self, on_fulfilled: OnFulfilled, on_rejected: OnRejected) -> None:
        ...


def is_adoptable(value: Any) -> bool:
    return isinstance(value, Adoptable)


@dataclass
class Reaction:
    """Continuation pair plus the downstream future it settles (None for subscribe)"""
    on_fulfilled: Optional[OnFulfilled]
    on_rejected: Optional[OnRejected]
    downstream: Optional["Future"] = None


class Future(Adoptable, Generic[T]):
    """Promise-like eventual value bound to a Scheduler"""

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self._scheduler = scheduler or get_default_scheduler()
        self.id = next(_future_ids)
        self._state = FutureState.PENDING
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._reactions: List[Reaction] = []
        # Set by the first fulfill()/reject(); a future adopting another one
        # is locked while still pending.
        self._locked = False
        self._handled = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, scheduler: Optional[Scheduler] = None) -> "Future":
        return cls(scheduler)

    @classmethod
    def resolved(cls, value: Any = None, scheduler: Optional[Scheduler] = None) -> "Future":
        """Future fulfilled with `value`; a Future on the same scheduler is returned as is"""
        if isinstance(value, Future) and (scheduler is None or value._scheduler is scheduler):
            return value
        future = cls(scheduler)
        future.fulfill(value)
        return future

    @classmethod
    def rejected(cls, error: Any, scheduler: Optional[Scheduler] = None) -> "Future":
        future = cls(scheduler)
        future.reject(error)
        return future

    @classmethod
    def from_executor(cls, executor: Callable[[Callable[[Any], None], Callable[[Any], None]], Any],
                      scheduler: Optional[Scheduler] = None) -> "Future":
        """
        Run `executor(fulfill, reject)` synchronously and return the future it
        settles. An exception raised by the executor rejects the future unless
        it was already settled.
        """
        future = cls(scheduler)
        try:
            executor(future.fulfill, future.reject)
        except Exception as e:
            future.reject(e)
        return future

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def value(self) -> Any:
        return self._value

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def is_pending(self) -> bool:
        return self._state is FutureState.PENDING

    def is_fulfilled(self) -> bool:
        return self._state is FutureState.FULFILLED

    def is_rejected(self) -> bool:
        return self._state is FutureState.REJECTED

    def result(self) -> T:
        """Return the value, raise the rejection error, or InvalidStateError while pending"""
        if self._state is FutureState.FULFILLED:
            return self._value
        if self._state is FutureState.REJECTED:
            raise self._error
        raise InvalidStateError(context={"future_id": self.id})

    def outcome(self) -> Outcome:
        if self._state is FutureState.FULFILLED:
            return Outcome.fulfilled(self._value)
        if self._state is FutureState.REJECTED:
            return Outcome.rejected(self._error)
        raise InvalidStateError(context={"future_id": self.id})

    def __repr__(self) -> str:
        if self._state is FutureState.FULFILLED:
            detail = f" value={self._value!r}"
        elif self._state is FutureState.REJECTED:
            detail = f" error={self._error!r}"
        else:
            detail = " (adopting)" if self._locked else ""
        return f"<Future#{self.id} {self._state.value}{detail}>"

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def fulfill(self, value: Any = None) -> None:
        if self._locked:
            logger.debug(f"Ignoring fulfill on {self!r}")
            return
        self._locked = True
        self._resolve(value)

    def reject(self, error: Any) -> None:
        if self._locked:
            logger.debug(f"Ignoring reject on {self!r}")
            return
        self._locked = True
        self._settle(FutureState.REJECTED, error=as_rejection(error))

    def _resolve(self, value: Any) -> None:
        if value is self:
            self._settle(FutureState.REJECTED, error=ChainingCycleError(context={"future_id": self.id}))
        elif is_adoptable(value):
            # One microtask hop per adoption level keeps long adoption chains
            # off the call stack.
            self._scheduler.schedule_microtask(partial(self._adopt, value), label=f"adopt:future#{self.id}")
        else:
            self._settle(FutureState.FULFILLED, value=value)

    def _adopt(self, inner: Adoptable) -> None:
        resolve, reject = self._resolving_functions()
        try:
            inner.subscribe(resolve, reject)
        except Exception as e:
            reject(e)

    def _resolving_functions(self) -> Tuple[Callable[[Any], None], Callable[[Any], None]]:
        already_called = False

        def resolve(value: Any) -> None:
            nonlocal already_called
            if already_called:
                return
            already_called = True
            self._resolve(value)

        def reject(error: Any) -> None:
            nonlocal already_called
            if already_called:
                return
            already_called = True
            self._settle(FutureState.REJECTED, error=as_rejection(error))

        return resolve, reject

    def _settle(self, state: FutureState, value: Any = None,
                error: Optional[BaseException] = None) -> None:
        if self._state is not FutureState.PENDING:
            return
        self._state = state
        self._value = value
        self._error = error
        reactions, self._reactions = self._reactions, []
        for reaction in reactions:
            self._schedule_reaction(reaction)
        if state is FutureState.REJECTED and not self._handled:
            self._scheduler.track_rejection(self)

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    def subscribe(self, on_fulfilled: OnFulfilled, on_rejected: OnRejected) -> None:
        self._add_reaction(Reaction(on_fulfilled, on_rejected))

    def then(self, on_fulfilled: Optional[OnFulfilled] = None,
             on_rejected: Optional[OnRejected] = None) -> "Future":
        """
        Register continuations and return the downstream future.

        - returning a value fulfills downstream with it
        - returning an adoptable makes downstream adopt it
        - raising rejects downstream with the raised exception
        - a missing handler passes the outcome through unchanged
        """
        downstream = Future(self._scheduler)
        self._add_reaction(Reaction(on_fulfilled, on_rejected, downstream))
        return downstream

    def catch_error(self, on_rejected: OnRejected) -> "Future":
        return self.then(None, on_rejected)

    def finally_(self, on_settled: Callable[[], Any]) -> "Future":
        """
        Run `on_settled()` on either outcome and pass the original outcome on.

        If `on_settled` raises, downstream rejects with that error. If it
        returns an adoptable, the outcome is passed on once that settles.
        """
        def after(result: Any) -> Optional["Future"]:
            if is_adoptable(result):
                return Future.resolved(result, self._scheduler)
            return None

        def on_fulfilled(value: Any) -> Any:
            pending = after(on_settled())
            if pending is not None:
                return pending.then(lambda _: value)
            return value

        def on_rejected(error: BaseException) -> Any:
            pending = after(on_settled())
            if pending is not None:
                def rethrow(_):
                    raise error
                return pending.then(rethrow)
            raise error

        return self.then(on_fulfilled, on_rejected)

    def _add_reaction(self, reaction: Reaction) -> None:
        if self._state is FutureState.PENDING:
            self._reactions.append(reaction)
        else:
            if self._state is FutureState.REJECTED and not self._handled:
                self._scheduler.untrack_rejection(self)
            self._schedule_reaction(reaction)
        self._handled = True

    def _schedule_reaction(self, reaction: Reaction) -> None:
        self._scheduler.schedule_microtask(
            partial(self._run_reaction, reaction), label=f"reaction:future#{self.id}"
        )

    def _run_reaction(self, reaction: Reaction) -> None:
        fulfilled = self._state is FutureState.FULFILLED
        handler = reaction.on_fulfilled if fulfilled else reaction.on_rejected
        argument = self._value if fulfilled else self._error
        downstream = reaction.downstream

        if downstream is None:
            # subscribe(): errors escape to the scheduler's sink
            if handler is not None:
                handler(argument)
            return

        if handler is None:
            if fulfilled:
                downstream.fulfill(argument)
            else:
                downstream.reject(argument)
            return

        try:
            result = handler(argument)
        except Exception as e:
            downstream.reject(e)
        else:
            downstream.fulfill(result)

    # ------------------------------------------------------------------
    # Coroutine support
    # ------------------------------------------------------------------

    def __await__(self) -> Generator["Future", None, T]:
        # Always suspend, even when already settled
        yield self
        return self.result()

    # ------------------------------------------------------------------
    # Combinators
    # ------------------------------------------------------------------

    @classmethod
    def _coerce_all(cls, items: Iterable[Any], scheduler: Scheduler) -> List["Future"]:
        # Futures bound to another scheduler are adopted so every reaction of
        # the combinator runs on `scheduler`
        return [
            item if isinstance(item, Future) and item._scheduler is scheduler else cls.resolved(item, scheduler)
            for item in items
        ]

    @classmethod
    def all(cls, items: Iterable[Any], scheduler: Optional[Scheduler] = None) -> "Future":
        """Fulfill with every value in input order; reject with the first rejection"""
        result = cls(scheduler)
        futures = cls._coerce_all(items, result._scheduler)
        if not futures:
            result.fulfill([])
            return result

        values: List[Any] = [None] * len(futures)
        remaining = len(futures)

        for index, future in enumerate(futures):
            def on_fulfilled(value: Any, index: int = index) -> None:
                nonlocal remaining
                values[index] = value
                remaining -= 1
                if remaining == 0:
                    result.fulfill(values)

            future.subscribe(on_fulfilled, result.reject)
        return result

    @classmethod
    def all_settled(cls, items: Iterable[Any], scheduler: Optional[Scheduler] = None) -> "Future":
        """Fulfill with an Outcome per input once every input settled; never rejects"""
        result = cls(scheduler)
        futures = cls._coerce_all(items, result._scheduler)
        if not futures:
            result.fulfill([])
            return result

        outcomes: List[Optional[Outcome]] = [None] * len(futures)
        remaining = len(futures)

        def record(index: int, outcome: Outcome) -> None:
            nonlocal remaining
            outcomes[index] = outcome
            remaining -= 1
            if remaining == 0:
                result.fulfill(outcomes)

        for index, future in enumerate(futures):
            future.subscribe(
                lambda value, index=index: record(index, Outcome.fulfilled(value)),
                lambda error, index=index: record(index, Outcome.rejected(error)),
            )
        return result

    @classmethod
    def race(cls, items: Iterable[Any], scheduler: Optional[Scheduler] = None) -> "Future":
        """Settle like the first input to settle; stays pending for no inputs"""
        result = cls(scheduler)
        for future in cls._coerce_all(items, result._scheduler):
            future.subscribe(result.fulfill, result.reject)
        return result

    @classmethod
    def any(cls, items: Iterable[Any], scheduler: Optional[Scheduler] = None) -> "Future":
        """Fulfill with the first fulfillment; reject with AggregateRejection when all reject"""
        result = cls(scheduler)
        futures = cls._coerce_all(items, result._scheduler)
        if not futures:
            result.reject(AggregateRejection([]))
            return result

        errors: List[Optional[BaseException]] = [None] * len(futures)
        remaining = len(futures)

        for index, future in enumerate(futures):
            def on_rejected(error: BaseException, index: int = index) -> None:
                nonlocal remaining
                errors[index] = error
                remaining -= 1
                if remaining == 0:
                    result.reject(AggregateRejection(errors))

            future.subscribe(result.fulfill, on_rejected)
        return result
