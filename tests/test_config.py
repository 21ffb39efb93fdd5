"""
Tests for configuration loading and the error catalog
"""

import logging

import pytest
import yaml

from taktgeber.core import ErrorCode, MonotonicClock, Scheduler, SchedulerConfig, TaktgeberError, VirtualClock
from taktgeber.core.config import load_config, setup_logging
from taktgeber.core.errors import (
    ERROR_CATALOG, ErrorDomain, RejectionError, as_rejection, get_errors_by_domain
)


class TestSchedulerConfig:

    def test_defaults(self, monkeypatch):
        for name in ('TAKTGEBER_LOG_LEVEL', 'TAKTGEBER_CLOCK', 'TAKTGEBER_REPORT_CANCELLED'):
            monkeypatch.delenv(name, raising=False)
        config = SchedulerConfig()
        assert config.log_level == "WARNING"
        assert config.clock == "monotonic"
        assert config.report_cancelled_on_close is False
        assert config.validate()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv('TAKTGEBER_CLOCK', 'virtual')
        monkeypatch.setenv('TAKTGEBER_REPORT_CANCELLED', 'yes')
        monkeypatch.setenv('TAKTGEBER_IDLE_SLEEP', '0.5')
        config = SchedulerConfig()
        assert config.clock == 'virtual'
        assert config.report_cancelled_on_close is True
        assert config.idle_sleep == 0.5

    def test_scheduler_builds_clock_from_config(self, monkeypatch):
        monkeypatch.delenv('TAKTGEBER_CLOCK', raising=False)
        assert isinstance(Scheduler(config=SchedulerConfig(clock='virtual')).clock, VirtualClock)
        assert isinstance(Scheduler(config=SchedulerConfig(clock='monotonic')).clock, MonotonicClock)

    @pytest.mark.parametrize("field,value", [
        ("clock", "sundial"),
        ("log_level", "CHATTY"),
        ("idle_sleep", -1),
    ])
    def test_validation(self, field, value):
        config = SchedulerConfig()
        setattr(config, field, value)
        with pytest.raises(ValueError):
            config.validate()

    def test_from_dict_ignores_unknown_keys(self):
        config = SchedulerConfig.from_dict({"clock": "virtual", "colour": "blue"})
        assert config.clock == "virtual"
        assert not hasattr(config, "colour")

    def test_load_config_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"log_level": "DEBUG", "report_cancelled_on_close": True}))
        config = load_config(path)
        assert config.log_level == "DEBUG"
        assert config.report_cancelled_on_close is True

    def test_load_config_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"clock": "sundial"}))
        with pytest.raises(TaktgeberError) as excinfo:
            load_config(path)
        assert excinfo.value.error_code == ErrorCode.CONFIG_VALIDATION_FAILED

    def test_load_config_requires_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(TaktgeberError):
            load_config(path)

    def test_load_config_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_setup_logging_debug(self):
        setup_logging(SchedulerConfig(log_level="DEBUG"))
        assert logging.getLogger('taktgeber').level == logging.DEBUG


class TestErrorCatalog:

    def test_every_code_has_a_definition(self):
        assert set(ERROR_CATALOG) == set(ErrorCode)

    def test_related_errors_exist(self):
        for definition in ERROR_CATALOG.values():
            for related in definition.related_errors or []:
                assert related in ERROR_CATALOG

    def test_errors_by_domain(self):
        codes = {d.code for d in get_errors_by_domain(ErrorDomain.FUTURE)}
        assert ErrorCode.AGGREGATE_REJECTION in codes
        assert ErrorCode.SCHEDULER_CLOSED not in codes

    def test_structured_error(self):
        cause = OSError("disk")
        error = TaktgeberError(ErrorCode.TASK_CANCELLED, context={"label": "timer"}, cause=cause)
        data = error.to_dict()

        assert data["error_code"] == "TG2004"
        assert data["kind"] == "task_cancelled"
        assert data["domain"] == "scheduler"
        assert data["context"] == {"label": "timer"}
        assert data["cause"] == "disk"
        assert error.__cause__ is cause
        assert "[TG2004]" in str(error)
        assert "label='timer'" in str(error)

    def test_as_rejection(self):
        error = ValueError("kept")
        assert as_rejection(error) is error
        wrapped = as_rejection({"code": 404})
        assert isinstance(wrapped, RejectionError)
        assert wrapped.reason == {"code": 404}
