"""
Scenario Loader

Loads event-loop ordering exercises from YAML or JSON and replays them on a
scheduler with a virtual clock. A scenario is a list of steps; the top-level
steps form the synchronous "script", nested steps run inside tasks.

    name: interview-question
    steps:
      - log: start
      - macrotask: {delay: 0, steps: [{log: timeout}]}
      - promise_chain: ["promise 1", "promise 2"]
      - log: end
    expect: [start, end, promise 1, promise 2, timeout]
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .clock import VirtualClock
from .errors import ErrorCode, ScenarioError
from .future import Future
from .models import ErrorKind, UnhandledErrorReport
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

STEP_KINDS = ("log", "microtask", "macrotask", "promise_chain", "reject", "raise")

Step = Dict[str, Any]


class Scenario(BaseModel):
    """A replayable event-loop exercise"""
    name: str = "Unnamed Scenario"
    description: str = ""
    steps: List[Step] = Field(default_factory=list)
    expect: Optional[List[str]] = None


class ScenarioResult(BaseModel):
    """Ordered log of a scenario run plus everything the sink received"""
    name: str
    log: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    expected: Optional[List[str]] = None

    @property
    def matched(self) -> Optional[bool]:
        if self.expected is None:
            return None
        return self.log == self.expected


def load_scenario_from_file(file_path: Union[str, Path]) -> Scenario:
    """Load a scenario from a YAML or JSON file."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {file_path}")

    with open(path, 'r') as f:
        try:
            if path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported file format: {path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError, ValueError) as e:
            raise ScenarioError(ErrorCode.SCENARIO_PARSE_ERROR, str(e),
                                context={"path": str(path)}, cause=e) from e

    scenario = load_scenario_from_dict(data)
    if scenario.name == "Unnamed Scenario":
        scenario.name = path.stem
    return scenario


def load_scenario_from_dict(data: Any) -> Scenario:
    """Validate parsed YAML/JSON and build a Scenario."""
    if not isinstance(data, dict):
        raise ScenarioError(ErrorCode.SCENARIO_PARSE_ERROR, "Scenario must be a mapping")
    try:
        scenario = Scenario(**data)
    except ValidationError as e:
        raise ScenarioError(ErrorCode.SCENARIO_PARSE_ERROR, str(e), cause=e) from e
    _validate_steps(scenario.steps, path="steps")
    return scenario


def _validate_steps(steps: List[Any], path: str) -> None:
    for index, step in enumerate(steps):
        where = f"{path}[{index}]"
        if not isinstance(step, dict) or len(step) != 1:
            raise ScenarioError(ErrorCode.SCENARIO_UNKNOWN_STEP,
                                f"{where}: each step must be a mapping with exactly one key")
        kind, body = next(iter(step.items()))
        if kind not in STEP_KINDS:
            raise ScenarioError(ErrorCode.SCENARIO_UNKNOWN_STEP,
                                f"{where}: unknown step '{kind}'", context={"step": kind})
        if kind == "macrotask" and isinstance(body, dict):
            delay = body.get("delay", 0)
            if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
                raise ScenarioError(ErrorCode.SCENARIO_PARSE_ERROR,
                                    f"{where}: macrotask delay must be a non-negative number, got {delay!r}",
                                    context={"step": kind, "delay": delay})
        if kind in ("microtask", "macrotask") and isinstance(body, dict):
            _validate_steps(body.get("steps", []), path=f"{where}.{kind}.steps")


class ScenarioRunner:
    """Executes scenario steps against one scheduler"""

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self.log: List[str] = []

    def run_steps(self, steps: List[Step]) -> None:
        for step in steps:
            kind, body = next(iter(step.items()))
            getattr(self, f"_step_{kind}")(body)

    def _record(self, label: Any) -> Callable[[Any], None]:
        def record(_=None) -> None:
            self.log.append(str(label))
        return record

    def _nested(self, body: Any) -> Callable[[], None]:
        # A string body is shorthand for a single log step
        if isinstance(body, dict):
            steps = body.get("steps")
            if steps is None and "log" in body:
                steps = [{"log": body["log"]}]
            steps = steps or []
        else:
            steps = [{"log": body}]
        return lambda: self.run_steps(steps)

    def _step_log(self, body: Any) -> None:
        self.log.append(str(body))

    def _step_microtask(self, body: Any) -> None:
        self.scheduler.schedule_microtask(self._nested(body), label="scenario:microtask")

    def _step_macrotask(self, body: Any) -> None:
        delay = body.get("delay", 0) if isinstance(body, dict) else 0
        self.scheduler.schedule_macrotask(self._nested(body), delay, label="scenario:macrotask")

    def _step_promise_chain(self, body: Any) -> None:
        labels = body if isinstance(body, list) else [body]
        future = Future.resolved(None, self.scheduler)
        for label in labels:
            future = future.then(self._record(label))

    def _step_reject(self, body: Any) -> None:
        if isinstance(body, dict):
            reason = body.get("reason", "rejected")
            catch = body.get("catch")
        else:
            reason, catch = body, None
        future = Future.rejected(reason, self.scheduler)
        if catch is not None:
            future.catch_error(self._record(catch))

    def _step_raise(self, body: Any) -> None:
        raise RuntimeError(str(body))


def run_scenario(scenario: Scenario, scheduler: Optional[Scheduler] = None) -> ScenarioResult:
    """
    Replay a scenario and return its ordered log.

    Without an explicit scheduler a fresh one on a virtual clock is used and
    closed afterwards. Errors routed to the unhandled-error sink are
    collected in the result.
    """
    result = ScenarioResult(name=scenario.name, expected=scenario.expect)

    def collect(kind: ErrorKind, report: UnhandledErrorReport) -> None:
        result.errors.append(f"{kind.value}: {report.error}")

    owns_scheduler = scheduler is None
    if owns_scheduler:
        scheduler = Scheduler(clock=VirtualClock(), sink=collect, name=f"scenario:{scenario.name}")

    runner = ScenarioRunner(scheduler)
    try:
        runner.run_steps(scenario.steps)
        scheduler.drain_all()
    finally:
        if owns_scheduler:
            scheduler.close()

    result.log = runner.log
    logger.info(f"Scenario '{scenario.name}' finished with {len(result.log)} log entries")
    return result
