"""
Tests for async/await support, sleep and with_timeout
"""

import pytest

from taktgeber.core import (
    Future,
    FutureTimeoutError,
    async_function,
    sleep,
    spawn,
    with_timeout,
)


class TestSpawn:

    def test_body_runs_synchronously_until_first_await(self, scheduler, log):
        async def body():
            log.append('before await')
            value = await Future.resolved(1, scheduler)
            log.append('after await')
            return value + 1

        result = spawn(body(), scheduler)
        log.append('caller continues')
        scheduler.drain_all()

        assert log == ['before await', 'caller continues', 'after await']
        assert result.value == 2

    def test_sequential_awaits_take_the_sum_of_delays(self, scheduler, clock):
        @async_function(scheduler=scheduler)
        async def sequential():
            first = await sleep(1, 'a', scheduler=scheduler)
            second = await sleep(2, 'b', scheduler=scheduler)
            return first + second

        result = sequential()
        scheduler.drain_all()
        assert result.value == 'ab'
        assert clock.now() == 3.0

    def test_parallel_awaits_take_the_max_delay(self, scheduler, clock):
        @async_function(scheduler=scheduler)
        async def parallel():
            first = sleep(1, 'a', scheduler=scheduler)
            second = sleep(2, 'b', scheduler=scheduler)
            values = await Future.all([first, second], scheduler)
            return ''.join(values)

        result = parallel()
        scheduler.drain_all()
        assert result.value == 'ab'
        assert clock.now() == 2.0

    def test_rejection_raises_inside_coroutine(self, scheduler, log):
        async def safe():
            try:
                await Future.rejected(ValueError("no user"), scheduler)
            except ValueError as e:
                log.append(f"caught {e}")
                return 'recovered'
            finally:
                log.append('cleanup')

        result = spawn(safe(), scheduler)
        scheduler.drain_all()
        assert log == ['caught no user', 'cleanup']
        assert result.value == 'recovered'

    def test_exception_rejects_result(self, scheduler, reports):
        async def failing():
            await Future.resolved(None, scheduler)
            raise KeyError("missing")

        result = spawn(failing(), scheduler)
        result.catch_error(lambda e: None)
        scheduler.drain_all()
        assert isinstance(result.error, KeyError)
        assert reports == []

    def test_returning_a_future_is_adopted(self, scheduler):
        async def returns_future():
            return sleep(1, 'adopted', scheduler=scheduler)

        result = spawn(returns_future(), scheduler)
        scheduler.drain_all()
        assert result.value == 'adopted'

    def test_decorator_without_arguments_uses_default_scheduler(self):
        @async_function
        async def answer():
            return 42

        result = answer()
        result.scheduler.drain_all()
        assert result.value == 42

    def test_decorator_preserves_metadata(self):
        @async_function
        async def documented():
            """Docstring survives"""

        assert documented.__name__ == 'documented'
        assert documented.__doc__ == 'Docstring survives'

    def test_awaiting_foreign_awaitable_rejects(self, scheduler):
        class Weird:
            def __await__(self):
                yield 'not a future'

        async def body():
            await Weird()

        result = spawn(body(), scheduler)
        result.catch_error(lambda e: None)
        scheduler.drain_all()
        assert isinstance(result.error, TypeError)


class TestSleepAndTimeout:

    def test_sleep_fulfills_after_delay(self, scheduler, clock):
        future = sleep(2.5, 'done', scheduler=scheduler)
        scheduler.drain_all()
        assert future.value == 'done'
        assert clock.now() == 2.5

    def test_timeout_rejects_slow_future(self, scheduler):
        slow = sleep(10, 'slow', scheduler=scheduler)
        result = with_timeout(slow, 1)
        result.catch_error(lambda e: None)
        scheduler.drain_all()

        assert isinstance(result.error, FutureTimeoutError)
        assert result.error.context["delay"] == 1
        assert slow.value == 'slow'

    def test_timer_cancelled_when_future_wins(self, scheduler, clock):
        fast = sleep(1, 'fast', scheduler=scheduler)
        result = with_timeout(fast, 5)
        scheduler.drain_all()

        assert result.value == 'fast'
        assert clock.now() == 1.0
        assert scheduler.stats().macrotasks_cancelled == 1

    def test_settled_futures_leave_no_timers_behind(self, scheduler):
        results = [with_timeout(Future.resolved(i, scheduler), 3600) for i in range(1000)]
        scheduler.drain_microtasks()

        stats = scheduler.stats()
        assert stats.pending_macrotasks == 0
        assert stats.macrotasks_cancelled == 1000
        assert stats.macrotask_heap_size < 1000
        scheduler.drain_all()
        assert [r.value for r in results] == list(range(1000))

    def test_timeout_error_is_structured(self, scheduler):
        result = with_timeout(Future(scheduler), 0.5)
        result.catch_error(lambda e: None)
        scheduler.drain_all()
        with pytest.raises(FutureTimeoutError) as excinfo:
            result.result()
        assert excinfo.value.to_dict()["error_code"] == "TG1005"
