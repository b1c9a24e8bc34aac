"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    MONITORING CORE - DATA MODEL                              ║
║                                                                              ║
║  Snapshots are immutable. Alerts are immutable and terminal.                 ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝

============================================================
CORE PRINCIPLES
============================================================

1. ONE SNAPSHOT PER TICK
   - Created by the collector
   - Never mutated after creation
   - Shared by value with every consumer

2. ZERO, NOT UNKNOWN
   - A fresh process with no traffic produces a valid snapshot
   - Absent counters read as zero

3. ALERTS ARE FACTS
   - An alert records what fired and against which snapshot
   - Resolution and deduplication belong to the notification layer

============================================================
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# APPLICATION METRICS
# ============================================================

@dataclass(frozen=True)
class RequestMetrics:
    total: int = 0
    rate: float = 0.0            # requests per second
    errors: int = 0
    success_rate: float = 1.0    # 1.0 when no requests yet

    @property
    def error_rate(self) -> float:
        return 1.0 - self.success_rate


@dataclass(frozen=True)
class PerformanceMetrics:
    avg_response_time: float = 0.0  # ms
    p50_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    apdex: float = 1.0


@dataclass(frozen=True)
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    hit_rate: float = 0.0


@dataclass(frozen=True)
class DatabaseMetrics:
    active_connections: int = 0
    pool_size: int = 0
    pool_usage: float = 0.0      # percent
    slow_queries: int = 0
    deadlocks: int = 0


@dataclass(frozen=True)
class JobMetrics:
    queued: int = 0
    processing: int = 0
    failed: int = 0
    retry_queue: int = 0


@dataclass(frozen=True)
class ApplicationMetrics:
    requests: RequestMetrics = field(default_factory=RequestMetrics)
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    cache: CacheMetrics = field(default_factory=CacheMetrics)
    database: DatabaseMetrics = field(default_factory=DatabaseMetrics)
    background_jobs: JobMetrics = field(default_factory=JobMetrics)


# ============================================================
# INFRASTRUCTURE METRICS
# ============================================================

@dataclass(frozen=True)
class CpuMetrics:
    usage: float = 0.0           # percent
    load_avg: float = 0.0        # 1-minute load average
    iowait: float = 0.0          # percent


@dataclass(frozen=True)
class MemoryMetrics:
    used_mb: float = 0.0
    free_mb: float = 0.0
    total_mb: float = 0.0
    usage: float = 0.0           # percent
    swap: float = 0.0            # percent


@dataclass(frozen=True)
class DiskMetrics:
    usage: float = 0.0           # percent


@dataclass(frozen=True)
class NetworkMetrics:
    bytes_in: int = 0
    bytes_out: int = 0
    connections: int = 0


@dataclass(frozen=True)
class InfrastructureMetrics:
    cpu: CpuMetrics = field(default_factory=CpuMetrics)
    memory: MemoryMetrics = field(default_factory=MemoryMetrics)
    disk: DiskMetrics = field(default_factory=DiskMetrics)
    network: NetworkMetrics = field(default_factory=NetworkMetrics)


# ============================================================
# BUSINESS METRICS
# ============================================================

@dataclass(frozen=True)
class BusinessMetrics:
    active_users: int = 0
    new_users: int = 0
    churn_rate: float = 0.0
    conversion_rate: float = 0.0
    cart_abandonment: float = 0.0
    daily_revenue: float = 0.0


# ============================================================
# RISK METRICS
# ============================================================

@dataclass(frozen=True)
class SecurityMetrics:
    failed_auth_attempts: int = 0
    suspicious_requests: int = 0
    blocked_ips: int = 0


@dataclass(frozen=True)
class StabilityMetrics:
    deployments: int = 0
    rollback_rate: float = 0.0
    mttr: float = 0.0            # minutes
    mtbf: float = 0.0            # hours


@dataclass(frozen=True)
class DependencyMetrics:
    total: int = 0
    unhealthy: int = 0


@dataclass(frozen=True)
class RiskMetrics:
    security: SecurityMetrics = field(default_factory=SecurityMetrics)
    stability: StabilityMetrics = field(default_factory=StabilityMetrics)
    dependencies: DependencyMetrics = field(default_factory=DependencyMetrics)


# ============================================================
# METRIC SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class MetricSnapshot:
    """
    Complete, immutable reduction of the metric store at one tick.

    This is the only value the alert and scaling engines see.
    """

    timestamp: datetime
    application: ApplicationMetrics = field(default_factory=ApplicationMetrics)
    infrastructure: InfrastructureMetrics = field(default_factory=InfrastructureMetrics)
    business: BusinessMetrics = field(default_factory=BusinessMetrics)
    risk: RiskMetrics = field(default_factory=RiskMetrics)

    def derived_fields(self) -> Dict[str, Any]:
        """Every field except the timestamp."""
        data = asdict(self)
        data.pop("timestamp")
        return data

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


# ============================================================
# ALERTS
# ============================================================

class AlertSeverity(Enum):
    """Alert severity tiers."""

    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(Enum):
    """Every alert the engine can raise."""

    HIGH_RESPONSE_TIME = "high_response_time"
    LOW_APDEX = "low_apdex"
    HIGH_ERROR_RATE = "high_error_rate"
    HIGH_CPU_USAGE = "high_cpu_usage"
    LOW_MEMORY = "low_memory"
    DISK_SPACE_CRITICAL = "disk_space_critical"
    BRUTE_FORCE_DETECTED = "brute_force_detected"
    HIGH_ROLLBACK_RATE = "high_rollback_rate"
    LOW_CONVERSION_RATE = "low_conversion_rate"
    HIGH_CHURN_RATE = "high_churn_rate"
    HIGH_RISK_SCORE = "high_risk_score"

    @property
    def title(self) -> str:
        return self.value.replace("_", " ").capitalize()


@dataclass(frozen=True)
class Alert:
    """An alert record."""

    alert_type: AlertType
    severity: AlertSeverity
    triggered_at: datetime
    snapshot: MetricSnapshot
    message: str = ""
    value: Optional[float] = None
    threshold: Optional[float] = None

    @property
    def alert_id(self) -> str:
        return f"{self.alert_type.value}_{int(self.triggered_at.timestamp())}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "triggered_at": self.triggered_at.isoformat(),
            "snapshot_timestamp": self.snapshot.timestamp.isoformat(),
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
        }


# ============================================================
# METRIC NAMES
# ============================================================

class MetricName:
    """
    Keys shared by writers and the collector.

    Counters only ever increase; gauges are overwritten;
    sample lists are bounded ring buffers.
    """

    # Requests (counters)
    REQUESTS_TOTAL = "requests.total"
    REQUESTS_ERRORS = "requests.errors"
    # Optional externally computed rate (gauge, requests/second)
    REQUESTS_RATE = "requests.rate"

    # Latency samples (ms) and APDEX buckets (counters)
    RESPONSE_TIMES = "response_times"
    APDEX_SATISFIED = "apdex.satisfied"
    APDEX_TOLERATING = "apdex.tolerating"
    APDEX_TOTAL = "apdex.total"
    SLOW_REQUESTS = "requests.slow"

    # Cache (counters)
    CACHE_HITS = "cache.hits"
    CACHE_MISSES = "cache.misses"
    CACHE_EVICTIONS = "cache.evictions"

    # Database
    DB_ACTIVE_CONNECTIONS = "db.active_connections"   # gauge
    DB_POOL_SIZE = "db.pool_size"                     # gauge
    DB_SLOW_QUERIES = "db.slow_queries"               # counter
    DB_DEADLOCKS = "db.deadlocks"                     # counter

    # Background jobs
    JOBS_QUEUED = "jobs.queued"                       # gauge
    JOBS_PROCESSING = "jobs.processing"               # gauge
    JOBS_FAILED = "jobs.failed"                       # counter
    JOBS_RETRY = "jobs.retry"                         # gauge

    # Business (gauges unless noted)
    USERS_ACTIVE = "users.active"
    USERS_NEW = "users.new"                           # counter
    CHURN_RATE = "users.churn_rate"
    CONVERSION_RATE = "revenue.conversion_rate"
    CART_ABANDONMENT = "revenue.cart_abandonment"
    DAILY_REVENUE = "revenue.daily"

    # Security (counters) and stability (gauges unless noted)
    AUTH_FAILED = "security.failed_auth"
    SUSPICIOUS_REQUESTS = "security.suspicious_requests"
    BLOCKED_IPS = "security.blocked_ips"              # gauge
    DEPLOYMENTS = "stability.deployments"             # counter
    ROLLBACK_RATE = "stability.rollback_rate"
    MTTR = "stability.mttr"
    MTBF = "stability.mtbf"

    # External dependencies (gauges)
    DEPENDENCIES_TOTAL = "dependencies.total"
    DEPENDENCIES_UNHEALTHY = "dependencies.unhealthy"

    # Published by the collector for request-time readers
    SYSTEM_CPU_USAGE = "system.cpu_usage"
    SYSTEM_MEMORY_USAGE = "system.memory_usage"

    # Self-monitoring (counters)
    COLLECTOR_TICKS = "monitoring.collector.ticks"
    COLLECTOR_TICK_ERRORS = "monitoring.collector.tick_errors"
    COLLECTOR_SOURCE_ERRORS = "monitoring.collector.source_errors"
    SINK_ERRORS = "monitoring.sinks.errors"
