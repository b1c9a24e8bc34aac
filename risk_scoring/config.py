"""
Risk Scoring - Configuration.

============================================================
PURPOSE
============================================================
Defines the configuration for the Risk Scorer: category
weights, mitigation triggers and level breakpoints.

Configurations are immutable and validated on construction,
so an invalid configuration fails at startup, not at first use.

============================================================
THRESHOLD PHILOSOPHY
============================================================
Levels use an inclusive lower bound:

Below MEDIUM breakpoint = LOW
Between MEDIUM and HIGH breakpoints = MEDIUM
At or above HIGH breakpoint = HIGH

A category whose effective value reaches the critical value
is CRITICAL and lifts the overall score to the critical floor.

============================================================
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict

from core.exceptions import InvalidConfigError


WEIGHT_TOLERANCE = 1e-6


def _default_weights() -> Dict[str, float]:
    return {
        "feature": 0.25,
        "dependency": 0.35,
        "model": 0.20,
        "environmental": 0.20,
    }


def _default_triggers() -> Dict[str, float]:
    return {
        "feature": 0.6,
        "dependency": 0.7,
        "model": 0.5,
        "environmental": 0.8,
    }


def _default_suggestions() -> Dict[str, str]:
    return {
        "feature": "Add feature flags",
        "dependency": "Implement circuit breaker",
        "model": "Increase test coverage",
        "environmental": "Security audit required",
    }


@dataclass(frozen=True)
class RiskScoringConfig:
    """
    Configuration for the Risk Scorer.

    Weights must sum to 1.0. Mitigation triggers and suggestions
    are keyed by category; categories without an entry never
    produce a suggestion.
    """

    weights: Dict[str, float] = field(default_factory=_default_weights)
    mitigation_triggers: Dict[str, float] = field(default_factory=_default_triggers)
    mitigation_suggestions: Dict[str, str] = field(default_factory=_default_suggestions)

    # Each recorded mitigation multiplies the category by (1 - discount)
    mitigation_discount: float = 0.2

    # Level breakpoints (inclusive lower bound)
    medium_breakpoint: float = 0.3
    high_breakpoint: float = 0.7

    # A category at or above critical_value forces score >= critical_floor
    critical_value: float = 1.0
    critical_floor: float = 0.7

    # Score above which mitigations are required
    risk_threshold: float = 0.5

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise InvalidConfigError naming the first offending field."""
        if not self.weights:
            raise InvalidConfigError("risk.weights", self.weights, "at least one category is required")

        for name, weight in self.weights.items():
            if not isinstance(weight, (int, float)) or math.isnan(weight) or weight < 0:
                raise InvalidConfigError(f"risk.weights.{name}", weight, "must be a non-negative number")

        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise InvalidConfigError("risk.weights", total, "weights must sum to 1.0")

        for name, trigger in self.mitigation_triggers.items():
            if not isinstance(trigger, (int, float)) or trigger < 0:
                raise InvalidConfigError(
                    f"risk.mitigation_triggers.{name}", trigger, "must be a non-negative number"
                )

        if not 0 <= self.mitigation_discount < 1:
            raise InvalidConfigError(
                "risk.mitigation_discount", self.mitigation_discount, "must be in [0, 1)"
            )

        if not 0 < self.medium_breakpoint < self.high_breakpoint <= 1:
            raise InvalidConfigError(
                "risk.high_breakpoint",
                (self.medium_breakpoint, self.high_breakpoint),
                "breakpoints must satisfy 0 < medium < high <= 1",
            )

        if not 0 < self.critical_value <= 1:
            raise InvalidConfigError("risk.critical_value", self.critical_value, "must be in (0, 1]")

        if not 0 <= self.critical_floor <= 1:
            raise InvalidConfigError("risk.critical_floor", self.critical_floor, "must be in [0, 1]")

        if not 0 <= self.risk_threshold <= 1:
            raise InvalidConfigError("risk.risk_threshold", self.risk_threshold, "must be in [0, 1]")

    @property
    def category_order(self):
        """Default categories first in their fixed order, then any others."""
        canonical = ["feature", "dependency", "model", "environmental"]
        ordered = [c for c in canonical if c in self.weights]
        ordered += [c for c in self.weights if c not in canonical]
        return ordered

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskScoringConfig":
        """Build from a plain mapping, e.g. the `risk` section of a YAML file."""
        defaults = cls()
        return cls(
            weights=dict(data.get("weights", defaults.weights)),
            mitigation_triggers=dict(data.get("mitigation_triggers", defaults.mitigation_triggers)),
            mitigation_suggestions=dict(
                data.get("mitigation_suggestions", defaults.mitigation_suggestions)
            ),
            mitigation_discount=float(data.get("mitigation_discount", defaults.mitigation_discount)),
            medium_breakpoint=float(data.get("medium_breakpoint", defaults.medium_breakpoint)),
            high_breakpoint=float(data.get("high_breakpoint", defaults.high_breakpoint)),
            critical_value=float(data.get("critical_value", defaults.critical_value)),
            critical_floor=float(data.get("critical_floor", defaults.critical_floor)),
            risk_threshold=float(data.get("risk_threshold", defaults.risk_threshold)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": dict(self.weights),
            "mitigation_triggers": dict(self.mitigation_triggers),
            "mitigation_suggestions": dict(self.mitigation_suggestions),
            "mitigation_discount": self.mitigation_discount,
            "medium_breakpoint": self.medium_breakpoint,
            "high_breakpoint": self.high_breakpoint,
            "critical_value": self.critical_value,
            "critical_floor": self.critical_floor,
            "risk_threshold": self.risk_threshold,
        }
