"""
Global pytest configuration and fixtures for Taktgeber tests
"""

import logging
import sys
from pathlib import Path

import pytest

# Add the src directory to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / 'src'))

from taktgeber.core import Scheduler, VirtualClock, reset_default_scheduler  # noqa: E402

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)


@pytest.fixture(autouse=True)
def isolated_default_scheduler():
    """Every test starts and ends with a fresh default scheduler"""
    reset_default_scheduler()
    yield
    reset_default_scheduler()


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def reports():
    """Reports delivered to the scheduler's unhandled-error sink"""
    return []


@pytest.fixture
def scheduler(clock, reports):
    """Scheduler on a virtual clock that records sink reports"""
    def sink(kind, report):
        reports.append(report)

    sched = Scheduler(clock=clock, sink=sink, name="test")
    yield sched
    sched.close()


@pytest.fixture
def log():
    """Ordered execution log with a recorder factory"""
    class Log(list):
        def record(self, label):
            def recorder(*_args):
                self.append(label)
            return recorder
    return Log()


# Custom markers for test categorization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Tests that take more than 5 seconds")


@pytest.fixture
def scenario_data():
    """Provide the classic event-loop ordering exercise"""
    return {
        "name": "interview-question",
        "steps": [
            {"log": "start"},
            {"macrotask": {"delay": 0, "steps": [{"log": "timeout"}]}},
            {"promise_chain": ["promise 1", "promise 2"]},
            {"log": "end"},
        ],
        "expect": ["start", "end", "promise 1", "promise 2", "timeout"],
    }
