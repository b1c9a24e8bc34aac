"""
Risk Scoring - Action Risk.

Scores the risk of executing a single request action from the
sensitivity of the action, the trust placed in the user, the
current system load and the time of day. Request handlers use
`is_blocked` to refuse risky actions while the system is stressed.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from core.clock import ClockProtocol, get_clock

from .types import ActionRiskAssessment, CategoryLevel


logger = logging.getLogger(__name__)


SENSITIVE_ACTIONS = frozenset({"create", "update", "destroy", "payment", "checkout"})
READONLY_ACTIONS = frozenset({"index", "show"})

ACTION_WEIGHTS: Dict[str, float] = {
    "data_sensitivity": 0.4,
    "user_trust": 0.3,
    "system_load": 0.2,
    "time_of_day": 0.1,
}


@dataclass(frozen=True)
class UserProfile:
    """What the assessor needs to know about the acting user."""

    account_age_days: int
    orders_count: int
    failed_login_attempts: int


class ActionRiskAssessor:
    """
    Per-request action risk.

    Levels (inclusive lower bound):
    [0, 0.3) low, [0.3, 0.6) medium, [0.6, 0.8) high, [0.8, 1] critical
    """

    def __init__(self, store=None, clock: Optional[ClockProtocol] = None):
        """
        Args:
            store: MetricStore holding `system.cpu_usage` and
                   `system.memory_usage` gauges (percent)
            clock: Clock for the time-of-day factor
        """
        self._store = store
        self._clock = clock or get_clock()

    def assess(self, action: str, user: Optional[UserProfile] = None) -> ActionRiskAssessment:
        factors = {
            "data_sensitivity": self.data_sensitivity(action),
            "user_trust": self.user_trust(user),
            "system_load": self.system_load(),
            "time_of_day": self.time_of_day(),
        }
        score = sum(value * ACTION_WEIGHTS[name] for name, value in factors.items())
        score = round(score, 2)

        assessment = ActionRiskAssessment(
            score=score,
            level=self.level_from_score(score),
            factors=factors,
            assessed_at=self._clock.now(),
        )
        if assessment.is_blocked:
            logger.warning(
                f"Action '{action}' blocked due to {assessment.level.value} risk: {score}"
            )
        return assessment

    @staticmethod
    def data_sensitivity(action: str) -> float:
        if action in SENSITIVE_ACTIONS:
            return 0.8
        if action in READONLY_ACTIONS:
            return 0.2
        return 0.5

    @staticmethod
    def user_trust(user: Optional[UserProfile]) -> float:
        # Anonymous users are least trusted
        if user is None:
            return 0.9

        factors = [
            0.2 if user.account_age_days > 30 else 0.5,
            0.1 if user.orders_count > 5 else 0.3,
            0.8 if user.failed_login_attempts > 3 else 0.2,
        ]
        return sum(factors) / len(factors)

    def system_load(self) -> float:
        if self._store is None:
            return 0.3

        cpu = float(self._store.get("system.cpu_usage", 0.0))
        memory = float(self._store.get("system.memory_usage", 0.0))

        if cpu > 80 or memory > 90:
            return 0.9
        if cpu > 60 or memory > 70:
            return 0.6
        return 0.3

    def time_of_day(self) -> float:
        hour = self._clock.now().hour
        if hour <= 5:
            return 0.7
        if 9 <= hour <= 16:
            return 0.2
        if 6 <= hour <= 8 or 17 <= hour <= 19:
            return 0.3
        return 0.5

    @staticmethod
    def level_from_score(score: float) -> CategoryLevel:
        if score >= 0.8:
            return CategoryLevel.CRITICAL
        if score >= 0.6:
            return CategoryLevel.HIGH
        if score >= 0.3:
            return CategoryLevel.MEDIUM
        return CategoryLevel.LOW
