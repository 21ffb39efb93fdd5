"""
Error Registry for Taktgeber

Structured error definitions for the scheduler and future primitives.
Every error raised by the package carries an error code from the catalog,
optional context and the underlying cause.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Optional, List, Any
from datetime import datetime


class ErrorDomain(Enum):
    """High-level error domains"""
    FUTURE = "future"            # Settlement, adoption, combinators
    SCHEDULER = "scheduler"      # Queues, lifecycle, dispatch
    HOST = "host"                # Host loop helpers
    SCENARIO = "scenario"        # Scenario loading and replay
    CONFIG = "config"            # Configuration


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Error codes for the whole project"""

    # Future errors (1000-1999)
    REJECTED_WITH_VALUE = "TG1001"
    CHAINING_CYCLE = "TG1002"
    AGGREGATE_REJECTION = "TG1003"
    INVALID_STATE = "TG1004"
    FUTURE_TIMEOUT = "TG1005"

    # Scheduler errors (2000-2999)
    SCHEDULER_CLOSED = "TG2001"
    UNHANDLED_REJECTION = "TG2002"
    UNCAUGHT_TASK_ERROR = "TG2003"
    TASK_CANCELLED = "TG2004"

    # Host errors (3000-3999)
    HOST_TIMEOUT = "TG3001"

    # Scenario errors (4000-4999)
    SCENARIO_PARSE_ERROR = "TG4001"
    SCENARIO_UNKNOWN_STEP = "TG4002"

    # Config errors (5000-5999)
    CONFIG_VALIDATION_FAILED = "TG5001"


@dataclass
class ErrorDefinition:
    """Error definition with metadata"""
    code: ErrorCode
    domain: ErrorDomain
    message: str
    severity: ErrorSeverity
    resolution_hint: Optional[str] = None
    related_errors: Optional[List[ErrorCode]] = None


ERROR_CATALOG: Dict[ErrorCode, ErrorDefinition] = {

    ErrorCode.REJECTED_WITH_VALUE: ErrorDefinition(
        code=ErrorCode.REJECTED_WITH_VALUE,
        domain=ErrorDomain.FUTURE,
        message="Future was rejected with a non-exception value",
        severity=ErrorSeverity.LOW,
        resolution_hint="Inspect the 'reason' attribute for the original value",
    ),

    ErrorCode.CHAINING_CYCLE: ErrorDefinition(
        code=ErrorCode.CHAINING_CYCLE,
        domain=ErrorDomain.FUTURE,
        message="Chaining cycle detected: a future cannot adopt itself",
        severity=ErrorSeverity.MEDIUM,
        resolution_hint="Do not return a future from its own then() handler",
    ),

    ErrorCode.AGGREGATE_REJECTION: ErrorDefinition(
        code=ErrorCode.AGGREGATE_REJECTION,
        domain=ErrorDomain.FUTURE,
        message="All futures were rejected",
        severity=ErrorSeverity.MEDIUM,
        resolution_hint="Inspect the 'errors' attribute for every rejection reason",
    ),

    ErrorCode.INVALID_STATE: ErrorDefinition(
        code=ErrorCode.INVALID_STATE,
        domain=ErrorDomain.FUTURE,
        message="Future is still pending",
        severity=ErrorSeverity.LOW,
        resolution_hint="Drive the scheduler until the future settles before reading its result",
    ),

    ErrorCode.FUTURE_TIMEOUT: ErrorDefinition(
        code=ErrorCode.FUTURE_TIMEOUT,
        domain=ErrorDomain.FUTURE,
        message="Future did not settle before the timeout elapsed",
        severity=ErrorSeverity.MEDIUM,
        related_errors=[ErrorCode.HOST_TIMEOUT],
    ),

    ErrorCode.SCHEDULER_CLOSED: ErrorDefinition(
        code=ErrorCode.SCHEDULER_CLOSED,
        domain=ErrorDomain.SCHEDULER,
        message="Scheduler has been closed",
        severity=ErrorSeverity.HIGH,
        resolution_hint="Create a new Scheduler or reset the default scheduler",
    ),

    ErrorCode.UNHANDLED_REJECTION: ErrorDefinition(
        code=ErrorCode.UNHANDLED_REJECTION,
        domain=ErrorDomain.SCHEDULER,
        message="Future was rejected and no rejection handler was attached",
        severity=ErrorSeverity.HIGH,
        resolution_hint="Attach catch_error() or a then() rejection handler",
        related_errors=[ErrorCode.UNCAUGHT_TASK_ERROR],
    ),

    ErrorCode.UNCAUGHT_TASK_ERROR: ErrorDefinition(
        code=ErrorCode.UNCAUGHT_TASK_ERROR,
        domain=ErrorDomain.SCHEDULER,
        message="Exception escaped a scheduled task",
        severity=ErrorSeverity.HIGH,
        related_errors=[ErrorCode.UNHANDLED_REJECTION],
    ),

    ErrorCode.TASK_CANCELLED: ErrorDefinition(
        code=ErrorCode.TASK_CANCELLED,
        domain=ErrorDomain.SCHEDULER,
        message="Scheduled task was dropped before it ran",
        severity=ErrorSeverity.LOW,
    ),

    ErrorCode.HOST_TIMEOUT: ErrorDefinition(
        code=ErrorCode.HOST_TIMEOUT,
        domain=ErrorDomain.HOST,
        message="Host loop gave up waiting for the future",
        severity=ErrorSeverity.MEDIUM,
        related_errors=[ErrorCode.FUTURE_TIMEOUT],
    ),

    ErrorCode.SCENARIO_PARSE_ERROR: ErrorDefinition(
        code=ErrorCode.SCENARIO_PARSE_ERROR,
        domain=ErrorDomain.SCENARIO,
        message="Scenario file could not be parsed",
        severity=ErrorSeverity.MEDIUM,
        resolution_hint="Scenario files must be YAML or JSON mappings with a 'steps' list",
    ),

    ErrorCode.SCENARIO_UNKNOWN_STEP: ErrorDefinition(
        code=ErrorCode.SCENARIO_UNKNOWN_STEP,
        domain=ErrorDomain.SCENARIO,
        message="Scenario contains an unknown step",
        severity=ErrorSeverity.MEDIUM,
        resolution_hint="Valid steps: log, microtask, macrotask, promise_chain, reject",
    ),

    ErrorCode.CONFIG_VALIDATION_FAILED: ErrorDefinition(
        code=ErrorCode.CONFIG_VALIDATION_FAILED,
        domain=ErrorDomain.CONFIG,
        message="Configuration is invalid",
        severity=ErrorSeverity.HIGH,
    ),
}


class TaktgeberError(Exception):
    """Base exception for Taktgeber with structured error information"""

    def __init__(self,
                 error_code: ErrorCode,
                 context: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None,
                 custom_message: Optional[str] = None):
        """
        Initialize Taktgeber error

        Args:
            error_code: The specific error code from ErrorCode enum
            context: Additional context information (future id, task label, ...)
            cause: The underlying exception that caused this error
            custom_message: Optional custom message to override default
        """
        self.error_code = error_code
        self.definition = ERROR_CATALOG.get(error_code)
        if not self.definition:
            raise ValueError(f"Error code {error_code} not found in catalog")

        self.context = context or {}
        self.cause = cause
        self.custom_message = custom_message
        self.timestamp = datetime.utcnow()

        message = custom_message or self.definition.message
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def kind(self) -> str:
        """Short error kind, the code's enum name in lower case"""
        return self.error_code.name.lower()

    @property
    def message(self) -> str:
        return self.custom_message or self.definition.message

    @property
    def resolution_hint(self) -> Optional[str]:
        return self.definition.resolution_hint

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization"""
        return {
            "error_code": self.error_code.value,
            "kind": self.kind,
            "domain": self.definition.domain.value,
            "message": self.message,
            "severity": self.definition.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "resolution_hint": self.resolution_hint,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        base_msg = f"[{self.error_code.value}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            base_msg += f" (context: {context_str})"
        return base_msg


def get_error_definition(error_code: ErrorCode) -> Optional[ErrorDefinition]:
    """Get error definition by code"""
    return ERROR_CATALOG.get(error_code)


def get_errors_by_domain(domain: ErrorDomain) -> List[ErrorDefinition]:
    """Get all errors for a specific domain"""
    return [defn for defn in ERROR_CATALOG.values() if defn.domain == domain]


# Shortcut exception classes

class RejectionError(TaktgeberError):
    """Rejection carrying a value that is not an exception"""

    def __init__(self, reason: Any, context: Optional[Dict] = None):
        self.reason = reason
        super().__init__(ErrorCode.REJECTED_WITH_VALUE, context,
                         custom_message=f"Future rejected with {reason!r}")


class ChainingCycleError(TaktgeberError, TypeError):
    def __init__(self, context: Optional[Dict] = None):
        super().__init__(ErrorCode.CHAINING_CYCLE, context)


class AggregateRejection(TaktgeberError):
    """Raised by Future.any when every input rejected; errors are in input order"""

    def __init__(self, errors: List[BaseException], context: Optional[Dict] = None):
        self.errors = list(errors)
        super().__init__(ErrorCode.AGGREGATE_REJECTION, context,
                         custom_message=f"All {len(self.errors)} futures were rejected")


class InvalidStateError(TaktgeberError):
    def __init__(self, context: Optional[Dict] = None):
        super().__init__(ErrorCode.INVALID_STATE, context)


class FutureTimeoutError(TaktgeberError):
    def __init__(self, delay: float, context: Optional[Dict] = None):
        ctx = context or {}
        ctx.update({"delay": delay})
        super().__init__(ErrorCode.FUTURE_TIMEOUT, ctx)


class SchedulerClosedError(TaktgeberError):
    def __init__(self, context: Optional[Dict] = None):
        super().__init__(ErrorCode.SCHEDULER_CLOSED, context)


class HostTimeoutError(TaktgeberError):
    def __init__(self, timeout: float, context: Optional[Dict] = None):
        ctx = context or {}
        ctx.update({"timeout": timeout})
        super().__init__(ErrorCode.HOST_TIMEOUT, ctx)


class ScenarioError(TaktgeberError):
    def __init__(self, error_code: ErrorCode, detail: str,
                 context: Optional[Dict] = None, cause: Optional[BaseException] = None):
        super().__init__(error_code, context, cause, custom_message=detail)


def as_rejection(error: Any) -> BaseException:
    """Normalize a rejection payload to an exception instance."""
    if isinstance(error, BaseException):
        return error
    return RejectionError(error)
