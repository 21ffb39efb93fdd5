"""
Core Models for Taktgeber

Pydantic records exchanged between the scheduler, futures and the host:
settlement outcomes, unhandled error reports and scheduler statistics.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Dict
from pydantic import BaseModel, Field


class FutureState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class QueueKind(str, Enum):
    MICROTASK = "microtask"
    MACROTASK = "macrotask"


class ErrorKind(str, Enum):
    """Kinds of reports delivered to the unhandled-error sink"""
    REJECTION = "rejection"
    EXCEPTION = "exception"
    CANCELLED = "cancelled"


class ReportSource(str, Enum):
    MICROTASK = "microtask"
    MACROTASK = "macrotask"
    FUTURE = "future"
    TEARDOWN = "teardown"


class Outcome(BaseModel):
    """Settlement record produced by Future.all_settled"""

    status: FutureState
    value: Any = None
    error: Any = None

    @classmethod
    def fulfilled(cls, value: Any) -> "Outcome":
        return cls(status=FutureState.FULFILLED, value=value)

    @classmethod
    def rejected(cls, error: BaseException) -> "Outcome":
        return cls(status=FutureState.REJECTED, error=error)

    @property
    def ok(self) -> bool:
        return self.status == FutureState.FULFILLED

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"status": self.status.value, "value": self.value}
        return {"status": self.status.value, "error": self.error}


class UnhandledErrorReport(BaseModel):
    """What the host sink receives for every error the scheduler swallowed"""

    kind: ErrorKind
    source: ReportSource
    error: Any = None
    label: Optional[str] = None
    future_id: Optional[int] = None
    scheduler_time: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def describe(self) -> str:
        where = self.label or (f"future#{self.future_id}" if self.future_id is not None else self.source.value)
        return f"{self.kind.value} in {where} at t={self.scheduler_time:.3f}: {self.error!r}"


class SchedulerStats(BaseModel):
    """Counters exposed by Scheduler.stats()"""

    microtasks_run: int = 0
    macrotasks_run: int = 0
    macrotasks_cancelled: int = 0
    errors_reported: int = 0
    pending_microtasks: int = 0
    pending_macrotasks: int = 0
    macrotask_heap_size: int = 0
    pending_rejections: int = 0
    closed: bool = False
