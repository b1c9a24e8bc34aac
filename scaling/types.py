"""
Scaling - Type Definitions.

============================================================
CORE PRINCIPLE
============================================================
A scaling decision is a recommendation, not an action.
Provisioning belongs to whatever consumes the decision.

Every tick yields exactly one decision; NONE is a decision.

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from monitoring.models import MetricSnapshot
from risk_scoring.types import RiskAssessment


# ============================================================
# STRATEGIES
# ============================================================

class ScalingStrategy(str, Enum):
    """How to relieve pressure."""

    NONE = "none"
    """No action needed."""

    HORIZONTAL = "horizontal"
    """Add instances."""

    VERTICAL = "vertical"
    """Bigger instances (CPU / memory pressure)."""

    CACHE_OPTIMIZATION = "cache_optimization"
    """Improve the cache hit rate before adding capacity."""

    DATABASE_OPTIMIZATION = "database_optimization"
    """Environmental pressure points at the data layer."""


# ============================================================
# DECISION
# ============================================================

@dataclass(frozen=True)
class ScalingDecision:
    """One scaling recommendation per snapshot."""

    strategy: ScalingStrategy
    metrics: MetricSnapshot
    risks: RiskAssessment
    decided_at: datetime
    reason: str = ""

    @property
    def should_scale(self) -> bool:
        return self.strategy != ScalingStrategy.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "should_scale": self.should_scale,
            "decided_at": self.decided_at.isoformat(),
            "snapshot_timestamp": self.metrics.timestamp.isoformat(),
            "risk_score": self.risks.score,
            "risk_level": self.risks.level.value,
            "category_levels": {c: l.value for c, l in self.risks.category_levels.items()},
            "reason": self.reason,
        }
