"""
Risk Scoring - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the Risk Scorer.

This module defines the enums, the capability interface and
the assessment result used by the risk scoring system.

============================================================
DESIGN PRINCIPLES
============================================================
- Assessments are immutable snapshots, never live objects
- Enums for discrete levels
- Composition over inheritance: any domain type can become
  assessable by implementing RiskAssessable

============================================================
RISK CATEGORIES
============================================================
The default category set:

1. FEATURE - Feature fit / implementation risk
2. DEPENDENCY - Reliability / schedule risk of external services
3. MODEL - Communication / complexity risk
4. ENVIRONMENTAL - Security / legal / operational risk

Callers may configure their own category names.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable


# ============================================================
# ENUMS
# ============================================================


class RiskCategory(str, Enum):
    """The default risk categories, in evaluation order."""

    FEATURE = "feature"
    DEPENDENCY = "dependency"
    MODEL = "model"
    ENVIRONMENTAL = "environmental"

    @classmethod
    def ordered(cls) -> List[str]:
        """Return the category names in their stable order."""
        return [c.value for c in cls]

    @property
    def description(self) -> str:
        return {
            RiskCategory.FEATURE: "Feature Fit/Implementation Risk",
            RiskCategory.DEPENDENCY: "Reliability/Schedule Risk",
            RiskCategory.MODEL: "Communication/Complexity Risk",
            RiskCategory.ENVIRONMENTAL: "Security/Legal/Operational Risk",
        }[self]


class RiskLevel(str, Enum):
    """
    Overall risk level of an assessment.

    Bands use an inclusive lower bound:
    - LOW: [0, 0.3)
    - MEDIUM: [0.3, 0.7)
    - HIGH: [0.7, 1.0]
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(
        cls,
        score: float,
        medium_breakpoint: float = 0.3,
        high_breakpoint: float = 0.7,
    ) -> "RiskLevel":
        if score >= high_breakpoint:
            return cls.HIGH
        if score >= medium_breakpoint:
            return cls.MEDIUM
        return cls.LOW


class CategoryLevel(str, Enum):
    """
    Level of a single category.

    CRITICAL means the category reached its critical value
    (by default the full 1.0, i.e. the measured threshold was hit).
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity_order(self) -> int:
        """Numeric ordering for severity comparison."""
        return {"low": 0, "medium": 1, "high": 2, "critical": 3}[self.value]


# ============================================================
# CAPABILITY INTERFACE
# ============================================================


RiskFactors = Mapping[str, float]
"""Category name -> raw risk value (unbounded, clamped before weighting)."""


@runtime_checkable
class RiskAssessable(Protocol):
    """
    Capability interface for anything that can be risk-scored.

    Implementations may omit accessors; a missing accessor counts
    as zero risk for that category.
    """

    def feature_risk(self) -> float: ...

    def dependency_risk(self) -> float: ...

    def model_risk(self) -> float: ...

    def environmental_risk(self) -> float: ...


# ============================================================
# OUTPUT CONTRACT
# ============================================================


@dataclass(frozen=True)
class RiskAssessment:
    """
    Result of one risk calculation.

    `categories` holds the clamped raw values, `effective` the
    values after mitigation discounts.
    """

    score: float
    level: RiskLevel
    categories: Dict[str, float]
    effective: Dict[str, float]
    category_levels: Dict[str, CategoryLevel]
    mitigations: Tuple[str, ...] = ()
    mitigation_history: Tuple[str, ...] = ()
    assessed_at: Optional[datetime] = None

    def level_of(self, category: str) -> CategoryLevel:
        """Level of one category; unknown categories are LOW."""
        return self.category_levels.get(category, CategoryLevel.LOW)

    def categories_at(self, level: CategoryLevel) -> List[str]:
        """Categories currently at exactly `level`."""
        return [name for name, lvl in self.category_levels.items() if lvl == level]

    @property
    def has_critical(self) -> bool:
        return CategoryLevel.CRITICAL in self.category_levels.values()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "categories": dict(self.categories),
            "effective": dict(self.effective),
            "category_levels": {k: v.value for k, v in self.category_levels.items()},
            "mitigations": list(self.mitigations),
            "mitigation_history": list(self.mitigation_history),
            "assessed_at": self.assessed_at.isoformat() if self.assessed_at else None,
        }


@dataclass(frozen=True)
class ActionRiskAssessment:
    """Risk of executing one request action."""

    score: float
    level: CategoryLevel
    factors: Dict[str, float] = field(default_factory=dict)
    assessed_at: Optional[datetime] = None

    @property
    def is_blocked(self) -> bool:
        """High and critical action risk should be refused."""
        return self.level in (CategoryLevel.HIGH, CategoryLevel.CRITICAL)
