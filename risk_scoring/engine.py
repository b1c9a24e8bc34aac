"""
Risk Scoring - Scorer.

============================================================
PURPOSE
============================================================
Turns named risk-factor inputs into a bounded [0, 1] score,
a discrete level, per-category levels and suggested mitigations.

============================================================
ALGORITHM
============================================================
1. Clamp each raw category value to [0, 1]
2. Discount by mitigation history, compounding:
       effective = clamped * (1 - discount) ** mitigation_count
3. Weighted sum over the configured weights (sum to 1.0)
4. Critical floor: any effective value >= critical_value lifts
   the score to at least critical_floor
5. Clamp to [0, 1]
6. Map score to level (inclusive lower bounds)
7. Suggest mitigations from the pre-mitigation values

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: no clock reads, no randomness
- Monotonic in every category
- Mitigations never increase the score

============================================================
USAGE
============================================================
    from risk_scoring import RiskScorer

    scorer = RiskScorer()
    assessment = scorer.calculate(
        {"feature": 0.4, "dependency": 0.9, "model": 0.1, "environmental": 0.2},
        mitigations=["dependency"],
    )

    print(assessment.score, assessment.level.value)

============================================================
"""

import logging
import math
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from core.exceptions import RiskScoringError

from .config import RiskScoringConfig
from .types import (
    CategoryLevel,
    RiskAssessable,
    RiskAssessment,
    RiskFactors,
    RiskLevel,
)


logger = logging.getLogger(__name__)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


class RiskScorer:
    """
    Stateless risk calculator.

    One instance can be shared across threads; it holds only its
    immutable configuration.
    """

    def __init__(self, config: Optional[RiskScoringConfig] = None):
        self.config = config or RiskScoringConfig()

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    def calculate(
        self,
        factors: RiskFactors,
        mitigations: Iterable[str] = (),
        assessed_at: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        Perform a complete risk calculation.

        Args:
            factors: Category name -> raw value. Missing categories count as 0,
                     categories without a weight are ignored.
            mitigations: Ordered history of applied mitigations, by category.
            assessed_at: Timestamp to stamp on the result (never read from a clock).

        Returns:
            RiskAssessment

        Raises:
            RiskScoringError: On non-numeric values or unknown mitigation categories
        """
        config = self.config
        history = tuple(mitigations)
        counts = self._count_mitigations(history)

        clamped = self._clamp_factors(factors)

        effective: Dict[str, float] = {}
        for category in config.category_order:
            discount = (1.0 - config.mitigation_discount) ** counts.get(category, 0)
            effective[category] = clamped[category] * discount

        weighted = sum(effective[c] * config.weights[c] for c in config.category_order)

        if any(v >= config.critical_value for v in effective.values()):
            weighted = max(weighted, config.critical_floor)

        score = clamp(weighted)

        return RiskAssessment(
            score=score,
            level=RiskLevel.from_score(score, config.medium_breakpoint, config.high_breakpoint),
            categories=clamped,
            effective=effective,
            category_levels={c: self.category_level(v) for c, v in effective.items()},
            mitigations=tuple(self._suggest_mitigations(clamped)),
            mitigation_history=history,
            assessed_at=assessed_at,
        )

    def score(self, factors: RiskFactors, mitigations: Iterable[str] = ()) -> float:
        """Score only."""
        return self.calculate(factors, mitigations).score

    def assess(
        self,
        subject: RiskAssessable,
        mitigations: Iterable[str] = (),
        assessed_at: Optional[datetime] = None,
    ) -> RiskAssessment:
        """Calculate the assessment of any object exposing `<category>_risk()` accessors."""
        return self.calculate(self.factors_from(subject), mitigations, assessed_at)

    def factors_from(self, subject: object) -> Dict[str, float]:
        """
        Read `<category>_risk()` for every configured category.

        A subject that lacks an accessor contributes 0 for that
        category; this is logged at warning level.
        """
        factors: Dict[str, float] = {}
        for category in self.config.category_order:
            accessor = getattr(subject, f"{category}_risk", None)
            if accessor is None:
                logger.warning(
                    f"{type(subject).__name__} has no {category}_risk(); treating {category} risk as 0"
                )
                factors[category] = 0.0
                continue
            factors[category] = accessor()
        return factors

    def category_level(self, value: float) -> CategoryLevel:
        """Level of a single effective category value."""
        config = self.config
        if value >= config.critical_value:
            return CategoryLevel.CRITICAL
        if value >= config.high_breakpoint:
            return CategoryLevel.HIGH
        if value >= config.medium_breakpoint:
            return CategoryLevel.MEDIUM
        return CategoryLevel.LOW

    def mitigations_required(self, assessment: RiskAssessment) -> bool:
        """True when the score exceeds the configured risk threshold."""
        return assessment.score > self.config.risk_threshold

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _clamp_factors(self, factors: RiskFactors) -> Dict[str, float]:
        clamped: Dict[str, float] = {}
        for category in self.config.category_order:
            raw = factors.get(category, 0.0)
            if raw is None:
                raw = 0.0
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise RiskScoringError(
                    f"Risk factor '{category}' must be numeric",
                    context={"category": category, "value": repr(raw)},
                )
            if math.isnan(raw):
                raise RiskScoringError(
                    f"Risk factor '{category}' is NaN",
                    context={"category": category},
                )
            clamped[category] = clamp(float(raw))
        return clamped

    def _count_mitigations(self, history: Iterable[str]) -> Counter:
        counts: Counter = Counter()
        for category in history:
            if category not in self.config.weights:
                raise RiskScoringError(
                    f"Unknown mitigation category '{category}'",
                    context={"known": ",".join(self.config.category_order)},
                )
            counts[category] += 1
        return counts

    def _suggest_mitigations(self, clamped: Dict[str, float]) -> List[str]:
        config = self.config
        suggestions: List[str] = []
        for category in config.category_order:
            trigger = config.mitigation_triggers.get(category)
            suggestion = config.mitigation_suggestions.get(category)
            if trigger is None or suggestion is None:
                continue
            if clamped[category] > trigger:
                suggestions.append(suggestion)
        return suggestions


# ============================================================
# MITIGATION LEDGER
# ============================================================


class MitigationLedger:
    """
    Factors plus an ordered mitigation history for one subject.

    Recomputes the assessment on demand; every returned
    assessment is an independent snapshot.
    """

    def __init__(self, factors: RiskFactors, scorer: Optional[RiskScorer] = None):
        self._scorer = scorer or RiskScorer()
        self._factors = dict(factors)
        self._history: List[str] = []

    @property
    def history(self) -> List[str]:
        return list(self._history)

    def apply_mitigation(self, category: str) -> RiskAssessment:
        """Record a mitigation and return the new assessment."""
        if category not in self._scorer.config.weights:
            raise RiskScoringError(f"Unknown mitigation category '{category}'")
        self._history.append(category)
        logger.info(f"Mitigation applied to {category} (total {self._history.count(category)})")
        return self.calculate()

    def calculate(self, assessed_at: Optional[datetime] = None) -> RiskAssessment:
        return self._scorer.calculate(self._factors, self._history, assessed_at)


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def calculate_risk(
    factors: RiskFactors,
    mitigations: Iterable[str] = (),
    config: Optional[RiskScoringConfig] = None,
) -> RiskAssessment:
    """
    Convenience function to score risk in one call.

    For repeated scoring, prefer a persistent RiskScorer instance.
    """
    return RiskScorer(config).calculate(factors, mitigations)


def format_risk_summary(assessment: RiskAssessment) -> str:
    """Human-readable summary for logs."""
    lines = [
        f"Risk score: {assessment.score:.3f} ({assessment.level.value})",
    ]
    for category, value in assessment.effective.items():
        lines.append(
            f"  {category:<14} {value:.3f} {assessment.category_levels[category].value}"
        )
    if assessment.mitigations:
        lines.append("  Mitigations: " + "; ".join(assessment.mitigations))
    return "\n".join(lines)
