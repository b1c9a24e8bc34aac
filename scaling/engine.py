"""
Scaling - Decision Engine.

============================================================
PURPOSE
============================================================
Turns a snapshot into a scaling recommendation.

1. Normalise snapshot values against scaling thresholds into
   the four risk categories and score them with the Risk Scorer
2. Level each category against its threshold:

   feature        HIGH     if rate > 80% of the request limit
   dependency     HIGH     if any dependency is unhealthy
   model          HIGH     if avg response time > limit
   environmental  CRITICAL if error rate > limit
   otherwise      LOW

3. Scale if any category is CRITICAL, or two or more are HIGH
4. Pick a strategy; first matching rule wins:

   environmental CRITICAL      -> DATABASE_OPTIMIZATION
   memory or CPU over limit    -> VERTICAL
   request rate over limit     -> HORIZONTAL
   cache hit rate under limit  -> CACHE_OPTIMIZATION
   otherwise                   -> fallback (HORIZONTAL)

Pure over the snapshot. No provisioning happens here.

============================================================
"""

import logging
from dataclasses import replace
from typing import Dict, Optional, Tuple

from core.config import ScalingThresholds
from monitoring.models import MetricSnapshot, RequestMetrics
from risk_scoring.engine import RiskScorer
from risk_scoring.types import CategoryLevel, RiskAssessment, RiskCategory

from .types import ScalingDecision, ScalingStrategy


logger = logging.getLogger(__name__)


# Request rate above this share of the limit counts as HIGH load
REQUEST_RATE_HIGH_FRACTION = 0.8


def error_rate(requests: RequestMetrics) -> float:
    """Errors over total requests; 0 without traffic."""
    if requests.total <= 0:
        return 0.0
    return requests.errors / requests.total


# ============================================================
# SNAPSHOT RISK PROFILE
# ============================================================

class SnapshotRiskProfile:
    """
    Exposes a snapshot through the `<category>_risk()` accessors.

    Each value is the observed metric divided by its threshold,
    so 1.0 means the threshold was reached. These ratios feed the
    numeric score only; `category_levels` decides the levels.
    """

    def __init__(self, snapshot: MetricSnapshot, thresholds: ScalingThresholds):
        self.snapshot = snapshot
        self.thresholds = thresholds

    def feature_risk(self) -> float:
        """Request load."""
        return self.snapshot.application.requests.rate / self.thresholds.request_rate

    def dependency_risk(self) -> float:
        """Share of unhealthy dependencies."""
        deps = self.snapshot.risk.dependencies
        if deps.total <= 0:
            return 0.0
        return deps.unhealthy / deps.total

    def model_risk(self) -> float:
        """Latency degradation."""
        return self.snapshot.application.performance.avg_response_time / self.thresholds.response_time_ms

    def environmental_risk(self) -> float:
        """Error pressure."""
        return error_rate(self.snapshot.application.requests) / self.thresholds.error_rate

    def category_levels(self) -> Dict[str, CategoryLevel]:
        """
        Level each category with a strict comparison against its limit.

        Feature, dependency and model pressure top out at HIGH; only
        error pressure is CRITICAL.
        """
        t = self.thresholds
        app = self.snapshot.application

        def level(breached: bool, when_breached: CategoryLevel) -> CategoryLevel:
            return when_breached if breached else CategoryLevel.LOW

        return {
            RiskCategory.FEATURE.value: level(
                app.requests.rate > t.request_rate * REQUEST_RATE_HIGH_FRACTION, CategoryLevel.HIGH,
            ),
            RiskCategory.DEPENDENCY.value: level(
                self.snapshot.risk.dependencies.unhealthy > 0, CategoryLevel.HIGH,
            ),
            RiskCategory.MODEL.value: level(
                app.performance.avg_response_time > t.response_time_ms, CategoryLevel.HIGH,
            ),
            RiskCategory.ENVIRONMENTAL.value: level(
                error_rate(app.requests) > t.error_rate, CategoryLevel.CRITICAL,
            ),
        }



# ============================================================
# DECISION ENGINE
# ============================================================

class ScalingDecisionEngine:
    """
    Stateless scaling recommender.

    Usage:
        engine = ScalingDecisionEngine(thresholds)
        decision = engine.decide(snapshot)
        if decision.should_scale:
            provision(decision.strategy)
    """

    def __init__(
        self,
        thresholds: Optional[ScalingThresholds] = None,
        scorer: Optional[RiskScorer] = None,
    ):
        self.thresholds = thresholds or ScalingThresholds()
        self.scorer = scorer or RiskScorer()
        self.fallback = ScalingStrategy(self.thresholds.fallback_strategy)

    def assess_scaling_risks(self, snapshot: MetricSnapshot) -> RiskAssessment:
        """Score the snapshot's load, dependency, latency and error pressure."""
        profile = SnapshotRiskProfile(snapshot, self.thresholds)
        assessment = self.scorer.assess(profile, assessed_at=snapshot.timestamp)
        return replace(assessment, category_levels=profile.category_levels())

    def should_scale(self, assessment: RiskAssessment) -> bool:
        """Any category CRITICAL, or at least two HIGH."""
        if assessment.has_critical:
            return True
        return len(assessment.categories_at(CategoryLevel.HIGH)) >= 2

    def determine_strategy(
        self,
        snapshot: MetricSnapshot,
        assessment: RiskAssessment,
    ) -> ScalingStrategy:
        return self._select(snapshot, assessment)[0]

    def decide(
        self,
        snapshot: MetricSnapshot,
        assessment: Optional[RiskAssessment] = None,
    ) -> ScalingDecision:
        """Always returns a decision; NONE when scaling is not warranted."""
        if assessment is None:
            assessment = self.assess_scaling_risks(snapshot)

        if not self.should_scale(assessment):
            return ScalingDecision(
                strategy=ScalingStrategy.NONE,
                metrics=snapshot,
                risks=assessment,
                decided_at=snapshot.timestamp,
                reason="No critical category and fewer than two high categories",
            )

        strategy, reason = self._select(snapshot, assessment)
        logger.info(f"Scaling recommended: {strategy.value} ({reason})")

        return ScalingDecision(
            strategy=strategy,
            metrics=snapshot,
            risks=assessment,
            decided_at=snapshot.timestamp,
            reason=reason,
        )

    def _select(
        self,
        snapshot: MetricSnapshot,
        assessment: RiskAssessment,
    ) -> Tuple[ScalingStrategy, str]:
        t = self.thresholds
        infra = snapshot.infrastructure
        requests = snapshot.application.requests
        cache = snapshot.application.cache

        if assessment.level_of(RiskCategory.ENVIRONMENTAL.value) == CategoryLevel.CRITICAL:
            return (
                ScalingStrategy.DATABASE_OPTIMIZATION,
                f"Error rate {error_rate(requests):.4f} over threshold {t.error_rate:g}",
            )

        if infra.memory.usage > t.memory_usage or infra.cpu.usage > t.cpu_usage:
            return (
                ScalingStrategy.VERTICAL,
                f"Memory {infra.memory.usage:.1f}% / CPU {infra.cpu.usage:.1f}% over "
                f"limits {t.memory_usage:g}% / {t.cpu_usage:g}%",
            )

        if requests.rate > t.request_rate:
            return (
                ScalingStrategy.HORIZONTAL,
                f"Request rate {requests.rate:.1f}/s over {t.request_rate:g}/s",
            )

        if cache.hit_rate < t.cache_hit_rate:
            return (
                ScalingStrategy.CACHE_OPTIMIZATION,
                f"Cache hit rate {cache.hit_rate:.2f} under {t.cache_hit_rate:g}",
            )

        return self.fallback, "No specific bottleneck identified"
