"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- config: Typed, validated configuration

`config` depends on `risk_scoring.config`, so it is imported
directly (`from core.config import MonitoringConfig`) rather than
re-exported here.
"""

from .clock import ClockProtocol, MockClock, SystemClock, get_clock
from .exceptions import (
    Severity,
    MonitoringException,
    ConfigurationError,
    MissingConfigError,
    InvalidConfigError,
    MetricSourceError,
    CollectionError,
    SinkError,
    RiskScoringError,
)
