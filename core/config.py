"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
Typed, validated configuration for the monitoring core.

Configuration can be loaded from:
- Default values
- YAML config file
- Environment variables (MONITOR_*, RISK_THRESHOLD)

Later sources override earlier ones. Everything is validated
at load time; an invalid value raises ConfigurationError naming
the offending field.

============================================================
ENVIRONMENT VARIABLES
============================================================
MONITOR_<SECTION>_<FIELD> for every field, e.g.
- MONITOR_COLLECTOR_INTERVAL_SECONDS
- MONITOR_ALERTS_RESPONSE_TIME_MS
- MONITOR_SCALING_FALLBACK_STRATEGY

Shortcuts:
- MONITOR_INTERVAL   (collector.interval_seconds)
- RISK_THRESHOLD     (risk.risk_threshold)

============================================================
"""

import logging
import math
import os
import threading
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from risk_scoring.config import RiskScoringConfig

from .exceptions import ConfigurationError, InvalidConfigError, MissingConfigError


logger = logging.getLogger(__name__)


SCALING_STRATEGIES = (
    "horizontal",
    "vertical",
    "cache_optimization",
    "database_optimization",
)


def _require(key: str, value: Any, condition: bool, reason: str) -> None:
    if not condition:
        raise InvalidConfigError(key, value, reason)


def _non_negative(section: str, obj: Any) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, (int, float)) and (math.isnan(value) or value < 0):
            raise InvalidConfigError(f"{section}.{f.name}", value, "must be a non-negative number")


# =============================================================
# COLLECTOR
# =============================================================


@dataclass(frozen=True)
class CollectorConfig:
    """Collection loop and request tracking settings."""

    interval_seconds: float = 60.0
    retention_days: float = 7.0
    sample_cap: int = 1000
    source_timeout_seconds: float = 2.0
    shutdown_grace_seconds: float = 5.0
    sink_timeout_seconds: float = 5.0

    # APDEX target T; tolerating is up to 4T
    apdex_t_ms: float = 500.0
    slow_request_ms: float = 1000.0

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _non_negative("collector", self)
        _require("collector.interval_seconds", self.interval_seconds,
                 self.interval_seconds > 0, "must be greater than 0")
        _require("collector.sample_cap", self.sample_cap,
                 self.sample_cap >= 1, "must be at least 1")
        _require("collector.source_timeout_seconds", self.source_timeout_seconds,
                 self.source_timeout_seconds > 0, "must be greater than 0")
        _require("collector.apdex_t_ms", self.apdex_t_ms,
                 self.apdex_t_ms > 0, "must be greater than 0")


# =============================================================
# ALERT THRESHOLDS
# =============================================================


@dataclass(frozen=True)
class AlertThresholds:
    """
    One threshold per alert rule.

    Ratios are fractions in [0, 1]; usages are percentages.
    """

    response_time_ms: float = 500.0     # avg above -> warning
    apdex: float = 0.7                  # below -> critical
    success_rate: float = 0.95          # below -> critical
    cpu_usage: float = 80.0             # above -> warning
    free_memory_mb: float = 500.0       # below -> critical
    disk_usage: float = 90.0            # above -> critical
    failed_auth_attempts: float = 100   # above -> critical
    rollback_rate: float = 0.1          # above -> warning
    conversion_rate: float = 0.01       # below -> warning
    churn_rate: float = 0.1             # above -> warning
    risk_score: float = 0.7             # at or above -> critical

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _non_negative("alerts", self)
        for name in ("apdex", "success_rate", "rollback_rate", "conversion_rate",
                     "churn_rate", "risk_score"):
            value = getattr(self, name)
            _require(f"alerts.{name}", value, value <= 1, "must be a fraction in [0, 1]")
        for name in ("cpu_usage", "disk_usage"):
            value = getattr(self, name)
            _require(f"alerts.{name}", value, value <= 100, "must be a percentage in [0, 100]")


# =============================================================
# SCALING THRESHOLDS
# =============================================================


@dataclass(frozen=True)
class ScalingThresholds:
    """
    Thresholds for the scaling decision engine.

    request_rate, response_time_ms and error_rate also normalise
    snapshot values into risk categories, so they must be positive.
    """

    request_rate: float = 1000.0        # requests per second
    memory_usage: float = 80.0          # percent
    cpu_usage: float = 70.0             # percent
    response_time_ms: float = 200.0
    error_rate: float = 0.01
    cache_hit_rate: float = 0.8
    fallback_strategy: str = "horizontal"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _non_negative("scaling", self)
        for name in ("request_rate", "response_time_ms", "error_rate"):
            value = getattr(self, name)
            _require(f"scaling.{name}", value, value > 0, "must be greater than 0")
        _require("scaling.cache_hit_rate", self.cache_hit_rate,
                 self.cache_hit_rate <= 1, "must be a fraction in [0, 1]")
        _require("scaling.fallback_strategy", self.fallback_strategy,
                 self.fallback_strategy in SCALING_STRATEGIES,
                 f"must be one of {', '.join(SCALING_STRATEGIES)}")


# =============================================================
# MAIN CONFIGURATION
# =============================================================


_SECTIONS = {
    "collector": CollectorConfig,
    "alerts": AlertThresholds,
    "scaling": ScalingThresholds,
}

_ENV_SHORTCUTS = {
    "MONITOR_INTERVAL": ("collector", "interval_seconds"),
}


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Convert a raw YAML/env value to the type of the field default."""
    if isinstance(value, bool):
        raise InvalidConfigError(key, value, "must be a number")
    try:
        if isinstance(default, int):
            as_float = float(value)
            if not as_float.is_integer():
                raise InvalidConfigError(key, value, "must be an integer")
            return int(as_float)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError):
        raise InvalidConfigError(key, value, "must be a number")
    return str(value)


def _build_section(name: str, base: Any, values: Mapping[str, Any]) -> Any:
    if not isinstance(values, Mapping):
        raise InvalidConfigError(name, values, "must be a mapping")

    defaults = {f.name: getattr(base, f.name) for f in fields(base)}
    changes = {}
    for key, raw in values.items():
        if key not in defaults:
            raise InvalidConfigError(f"{name}.{key}", raw, "unknown setting")
        changes[key] = _coerce(f"{name}.{key}", raw, defaults[key])
    return replace(base, **changes)


def _build_risk(base: RiskScoringConfig, values: Mapping[str, Any]) -> RiskScoringConfig:
    if not isinstance(values, Mapping):
        raise InvalidConfigError("risk", values, "must be a mapping")

    merged = base.to_dict()
    merged.update(values)
    try:
        return RiskScoringConfig.from_dict(merged)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError("risk", values, str(e))


@dataclass(frozen=True)
class MonitoringConfig:
    """
    Main configuration for the monitoring core.

    Combines all sub-configurations. Read-only after load; reload
    by building a new instance and swapping it into a ConfigHolder.
    """

    collector: CollectorConfig = field(default_factory=CollectorConfig)
    alerts: AlertThresholds = field(default_factory=AlertThresholds)
    scaling: ScalingThresholds = field(default_factory=ScalingThresholds)
    risk: RiskScoringConfig = field(default_factory=RiskScoringConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError naming the first invalid field."""
        self.collector.validate()
        self.alerts.validate()
        self.scaling.validate()
        self.risk.validate()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["MonitoringConfig"] = None) -> "MonitoringConfig":
        """
        Build from a nested mapping with optional sections
        `collector`, `alerts`, `scaling` and `risk`.

        Missing settings keep the values of `base` (defaults if None).
        """
        base = base or cls()
        if data is None:
            return base
        if not isinstance(data, Mapping):
            raise InvalidConfigError("<root>", data, "configuration must be a mapping")

        unknown = set(data) - set(_SECTIONS) - {"risk"}
        if unknown:
            key = sorted(unknown)[0]
            raise InvalidConfigError(key, data[key], "unknown configuration section")

        sections = {
            name: _build_section(name, getattr(base, name), data[name]) if name in data else getattr(base, name)
            for name in _SECTIONS
        }
        risk = _build_risk(base.risk, data["risk"]) if "risk" in data else base.risk
        return cls(risk=risk, **sections)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], base: Optional["MonitoringConfig"] = None) -> "MonitoringConfig":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise MissingConfigError(str(path), source="yaml")

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML config {path}: {e}", cause=e)

        logger.info(f"Loaded configuration from {path}")
        return cls.from_dict(data or {}, base=base)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["MonitoringConfig"] = None,
    ) -> "MonitoringConfig":
        """Overlay MONITOR_* and RISK_THRESHOLD variables onto `base`."""
        environ = os.environ if environ is None else environ
        data: Dict[str, Dict[str, Any]] = {}

        for section, section_cls in _SECTIONS.items():
            for f in fields(section_cls):
                var = f"MONITOR_{section}_{f.name}".upper()
                if environ.get(var):
                    data.setdefault(section, {})[f.name] = environ[var]

        for var, (section, name) in _ENV_SHORTCUTS.items():
            if environ.get(var):
                data.setdefault(section, {})[name] = environ[var]

        if environ.get("RISK_THRESHOLD"):
            raw = environ["RISK_THRESHOLD"]
            try:
                data["risk"] = {"risk_threshold": float(raw)}
            except ValueError:
                raise InvalidConfigError("risk.risk_threshold", raw, "must be a number")

        return cls.from_dict(data, base=base)

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "MonitoringConfig":
        """Defaults, then the YAML file if given, then the environment."""
        config = cls.from_yaml(path) if path else cls()
        return cls.from_env(environ, base=config)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "collector": {f.name: getattr(self.collector, f.name) for f in fields(self.collector)},
            "alerts": {f.name: getattr(self.alerts, f.name) for f in fields(self.alerts)},
            "scaling": {f.name: getattr(self.scaling, f.name) for f in fields(self.scaling)},
            "risk": self.risk.to_dict(),
        }


# =============================================================
# HOLDER
# =============================================================


class ConfigHolder:
    """
    Process-wide configuration reference.

    Readers call `get()` once per unit of work and use that object
    throughout; `swap()` replaces the reference atomically, so a
    reader never sees a half-applied reload.
    """

    def __init__(self, config: Optional[MonitoringConfig] = None):
        self._config = config or MonitoringConfig()
        self._lock = threading.Lock()

    def get(self) -> MonitoringConfig:
        return self._config

    def swap(self, config: MonitoringConfig) -> MonitoringConfig:
        """Validate and install `config`; return the previous one."""
        config.validate()
        with self._lock:
            previous, self._config = self._config, config
        logger.info("Configuration reloaded")
        return previous
