"""
Scaling - Package.

Autoscaling recommendations driven by snapshot metrics and the
Risk Scorer. See `engine.py` for the decision rules.
"""

from .types import ScalingStrategy, ScalingDecision
from .engine import ScalingDecisionEngine, SnapshotRiskProfile


__all__ = [
    "ScalingStrategy",
    "ScalingDecision",
    "ScalingDecisionEngine",
    "SnapshotRiskProfile",
]
