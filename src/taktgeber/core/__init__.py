"""
Taktgeber core: scheduler, futures and the pieces around them.
"""

from .errors import (
    ErrorCode,
    TaktgeberError,
    RejectionError,
    ChainingCycleError,
    AggregateRejection,
    InvalidStateError,
    FutureTimeoutError,
    SchedulerClosedError,
    HostTimeoutError,
    ScenarioError,
)
from .models import FutureState, QueueKind, ErrorKind, ReportSource, Outcome, UnhandledErrorReport, SchedulerStats
from .config import SchedulerConfig, load_config, setup_logging
from .clock import Clock, MonotonicClock, VirtualClock
from .scheduler import (
    Scheduler,
    CancellationToken,
    get_default_scheduler,
    set_default_scheduler,
    reset_default_scheduler,
)
from .future import Future, Adoptable, is_adoptable
from .coroutines import spawn, async_function, sleep, with_timeout
from .host import run_until_complete, run_host_loop

__all__ = [
    # Errors
    'ErrorCode',
    'TaktgeberError',
    'RejectionError',
    'ChainingCycleError',
    'AggregateRejection',
    'InvalidStateError',
    'FutureTimeoutError',
    'SchedulerClosedError',
    'HostTimeoutError',
    'ScenarioError',

    # Models
    'FutureState',
    'QueueKind',
    'ErrorKind',
    'ReportSource',
    'Outcome',
    'UnhandledErrorReport',
    'SchedulerStats',

    # Config
    'SchedulerConfig',
    'load_config',
    'setup_logging',

    # Scheduling
    'Clock',
    'MonotonicClock',
    'VirtualClock',
    'Scheduler',
    'CancellationToken',
    'get_default_scheduler',
    'set_default_scheduler',
    'reset_default_scheduler',

    # Futures
    'Future',
    'Adoptable',
    'is_adoptable',
    'spawn',
    'async_function',
    'sleep',
    'with_timeout',

    # Host
    'run_until_complete',
    'run_host_loop',
]
