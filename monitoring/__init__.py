"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Samples runtime and business metrics, evaluates alert rules
and feeds the scaling engine.

PRINCIPLES:
1. CHEAP INGRESS - Request handlers only touch the MetricStore
2. ONE SNAPSHOT PER TICK - Immutable, shared by value
3. DETERMINISTIC - Explicit threshold rules, no predictions
4. RESILIENT - A failing source or sink never stops the loop

============================================================
WHAT THIS SUBSYSTEM MUST NOT DO
============================================================
- Provision capacity (it only recommends)
- Render dashboards
- Talk to specific paging/chat/cloud SDKs (sinks do that)

============================================================
"""

from .models import (
    # Snapshot groups
    RequestMetrics,
    PerformanceMetrics,
    CacheMetrics,
    DatabaseMetrics,
    JobMetrics,
    ApplicationMetrics,
    CpuMetrics,
    MemoryMetrics,
    DiskMetrics,
    NetworkMetrics,
    InfrastructureMetrics,
    BusinessMetrics,
    SecurityMetrics,
    StabilityMetrics,
    DependencyMetrics,
    RiskMetrics,
    MetricSnapshot,

    # Alerts
    AlertSeverity,
    AlertType,
    Alert,

    # Keys
    MetricName,
)
from .store import MetricStore, StoreSnapshot
from .sources import (
    MetricSource,
    CpuSource,
    MemorySource,
    DiskSource,
    NetworkSource,
    CallableSource,
    SourceReader,
    default_sources,
)
from .sinks import (
    Publisher,
    SnapshotRepository,
    InMemorySnapshotRepository,
    PersistenceSink,
    LoggingAlertNotifier,
    LoggingScalingSink,
)
from .collector import MetricsCollector
from .alerts import AlertEngine, AlertRule, get_default_rules
from .tracking import RequestTracker
from .health_checks import (
    HealthState,
    ComponentHealth,
    SystemHealth,
    HealthCheck,
    HealthChecker,
)
# `service` depends on `scaling`, which reads `monitoring.models`;
# import it as `monitoring.service`.


__all__ = [
    # Models
    "RequestMetrics",
    "PerformanceMetrics",
    "CacheMetrics",
    "DatabaseMetrics",
    "JobMetrics",
    "ApplicationMetrics",
    "CpuMetrics",
    "MemoryMetrics",
    "DiskMetrics",
    "NetworkMetrics",
    "InfrastructureMetrics",
    "BusinessMetrics",
    "SecurityMetrics",
    "StabilityMetrics",
    "DependencyMetrics",
    "RiskMetrics",
    "MetricSnapshot",
    "AlertSeverity",
    "AlertType",
    "Alert",
    "MetricName",

    # Store
    "MetricStore",
    "StoreSnapshot",

    # Sources
    "MetricSource",
    "CpuSource",
    "MemorySource",
    "DiskSource",
    "NetworkSource",
    "CallableSource",
    "SourceReader",
    "default_sources",

    # Sinks
    "Publisher",
    "SnapshotRepository",
    "InMemorySnapshotRepository",
    "PersistenceSink",
    "LoggingAlertNotifier",
    "LoggingScalingSink",

    # Collector / alerts
    "MetricsCollector",
    "AlertEngine",
    "AlertRule",
    "get_default_rules",

    # Ingress / health
    "RequestTracker",
    "HealthState",
    "ComponentHealth",
    "SystemHealth",
    "HealthCheck",
    "HealthChecker",
]
