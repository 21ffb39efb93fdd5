"""
Configuration management for Taktgeber

Provides environment-based configuration with sensible defaults and
optional YAML overrides.
"""

import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import TaktgeberError, ErrorCode

logger = logging.getLogger(__name__)

VALID_CLOCKS = ("monotonic", "virtual")
DEFAULT_CONFIG_FILE = Path.home() / '.taktgeber' / 'config.yaml'


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ('true', '1', 'yes')


@dataclass
class SchedulerConfig:
    """Configuration for schedulers and the command line"""

    # Logging
    log_level: str = "WARNING"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Error reporting
    report_cancelled_on_close: bool = False
    track_unhandled_rejections: bool = True

    # Time source
    clock: str = "monotonic"

    # Host loop
    idle_sleep: float = 0.01

    def __post_init__(self):
        """Load configuration from environment variables"""
        self.log_level = os.getenv('TAKTGEBER_LOG_LEVEL', self.log_level)
        self.report_cancelled_on_close = _env_flag('TAKTGEBER_REPORT_CANCELLED', self.report_cancelled_on_close)
        self.track_unhandled_rejections = _env_flag('TAKTGEBER_TRACK_UNHANDLED', self.track_unhandled_rejections)
        self.clock = os.getenv('TAKTGEBER_CLOCK', self.clock)
        self.idle_sleep = float(os.getenv('TAKTGEBER_IDLE_SLEEP', str(self.idle_sleep)))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchedulerConfig':
        """Create configuration from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        config = cls()
        # Explicit values win over environment defaults
        for key, value in data.items():
            if key in known:
                setattr(config, key, value)
        return config

    def validate(self) -> bool:
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.clock not in VALID_CLOCKS:
            raise ValueError(f"clock must be one of {VALID_CLOCKS}, got {self.clock!r}")

        if self.idle_sleep < 0:
            raise ValueError("idle_sleep must be non-negative")

        return True


def load_config(path: Optional[Union[str, Path]] = None) -> SchedulerConfig:
    """
    Load configuration from a YAML file.

    Falls back to defaults (plus environment overrides) when no path is given
    and the default config file does not exist.
    """
    config_file = Path(path) if path else DEFAULT_CONFIG_FILE
    if not config_file.exists():
        if path:
            raise FileNotFoundError(f"Config file not found: {config_file}")
        return SchedulerConfig()

    with open(config_file, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise TaktgeberError(ErrorCode.CONFIG_VALIDATION_FAILED,
                             context={"path": str(config_file)},
                             custom_message="Config file must contain a mapping")

    config = SchedulerConfig.from_dict(data)
    try:
        config.validate()
    except ValueError as e:
        raise TaktgeberError(ErrorCode.CONFIG_VALIDATION_FAILED,
                             context={"path": str(config_file)}, cause=e,
                             custom_message=str(e)) from e
    logger.debug(f"Loaded config from {config_file}")
    return config


def setup_logging(config: SchedulerConfig):
    """Setup logging based on configuration"""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=config.log_format
    )

    if config.log_level.upper() == 'DEBUG':
        logging.getLogger('taktgeber').setLevel(logging.DEBUG)


default_config = SchedulerConfig()
