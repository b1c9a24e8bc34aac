"""
Risk Scoring - Package.

============================================================
PURPOSE
============================================================
Converts multi-dimensional risk factors into a single
normalized score used to gate behaviour.

============================================================
WHAT IT IS
============================================================
- Pure, deterministic weighted scoring in [0, 1]
- Per-category clamping and compounding mitigation discounts
- Discrete levels: LOW, MEDIUM, HIGH
- Per-category levels, including CRITICAL

============================================================
FOUR RISK CATEGORIES
============================================================
1. FEATURE: Feature fit / implementation
2. DEPENDENCY: External service reliability
3. MODEL: Complexity / latency degradation
4. ENVIRONMENTAL: Security / operational stability

============================================================
USAGE
============================================================
    from risk_scoring import RiskScorer

    scorer = RiskScorer()
    assessment = scorer.assess(my_domain_object)

    if scorer.mitigations_required(assessment):
        for suggestion in assessment.mitigations:
            print(suggestion)

============================================================
"""

from .types import (
    RiskCategory,
    RiskLevel,
    CategoryLevel,
    RiskFactors,
    RiskAssessable,
    RiskAssessment,
    ActionRiskAssessment,
)
from .config import RiskScoringConfig
from .engine import (
    RiskScorer,
    MitigationLedger,
    calculate_risk,
    clamp,
    format_risk_summary,
)
from .action import ActionRiskAssessor, UserProfile


__all__ = [
    # Types
    "RiskCategory",
    "RiskLevel",
    "CategoryLevel",
    "RiskFactors",
    "RiskAssessable",
    "RiskAssessment",
    "ActionRiskAssessment",

    # Config
    "RiskScoringConfig",

    # Scorer
    "RiskScorer",
    "MitigationLedger",
    "calculate_risk",
    "clamp",
    "format_risk_summary",

    # Action risk
    "ActionRiskAssessor",
    "UserProfile",
]
