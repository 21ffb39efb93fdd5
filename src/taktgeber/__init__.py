"""Taktgeber - Deterministic microtask/macrotask scheduler with promise-like futures"""

__version__ = "0.1.0"

from taktgeber.core.future import Future
from taktgeber.core.scheduler import Scheduler, get_default_scheduler
from taktgeber.core.clock import VirtualClock, MonotonicClock

__all__ = [
    "Future",
    "Scheduler",
    "get_default_scheduler",
    "VirtualClock",
    "MonotonicClock",
]
