"""
Alerts Package.

Alert rules and evaluation for the monitoring subsystem.
"""

from .rules import (
    AlertRule,
    HighResponseTimeRule,
    LowApdexRule,
    HighErrorRateRule,
    HighCpuUsageRule,
    LowMemoryRule,
    DiskSpaceCriticalRule,
    BruteForceRule,
    HighRollbackRateRule,
    LowConversionRateRule,
    HighChurnRateRule,
    HighRiskScoreRule,
    get_default_rules,
)
from .engine import AlertEngine, summarize_alerts


__all__ = [
    # Rules
    "AlertRule",
    "HighResponseTimeRule",
    "LowApdexRule",
    "HighErrorRateRule",
    "HighCpuUsageRule",
    "LowMemoryRule",
    "DiskSpaceCriticalRule",
    "BruteForceRule",
    "HighRollbackRateRule",
    "LowConversionRateRule",
    "HighChurnRateRule",
    "HighRiskScoreRule",
    "get_default_rules",

    # Engine
    "AlertEngine",
    "summarize_alerts",
]
