# config/monitoring.py

import os

from prometheus_client import Counter, Histogram


class MonitoringConfig:
    """Monitoring and logging configuration"""

    MONITORING_ENABLED = os.environ.get("MONITORING_ENABLED", "false").lower() == "true"
    METRICS_ENDPOINT = os.environ.get("METRICS_ENDPOINT", "/metrics")

    # Logging Configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # 'json' or 'text'
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE_MAX_BYTES = int(os.environ.get("LOG_FILE_MAX_BYTES", 10485760))  # 10MB
    LOG_FILE_BACKUP_COUNT = int(os.environ.get("LOG_FILE_BACKUP_COUNT", 10))

    ENABLE_FILE_LOGGING = os.environ.get("ENABLE_FILE_LOGGING", "true").lower() == "true"
    ENABLE_CONSOLE_LOGGING = os.environ.get("ENABLE_CONSOLE_LOGGING", "true").lower() == "true"

    APP_NAME = os.environ.get("APP_NAME", "League Admin")
    APP_VERSION = os.environ.get("APP_VERSION", "0.1.0")


class DevelopmentMonitoringConfig(MonitoringConfig):
    """Development-specific monitoring configuration"""

    LOG_LEVEL = "DEBUG"
    LOG_FORMAT = "text"  # More readable in development
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = True


class ProductionMonitoringConfig(MonitoringConfig):
    """Production-specific monitoring configuration"""

    LOG_LEVEL = "INFO"
    LOG_FORMAT = "json"  # Structured logging for production
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = False  # Usually handled by container orchestration


class TestingMonitoringConfig(MonitoringConfig):
    """Testing-specific monitoring configuration"""

    MONITORING_ENABLED = False
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = False
    ENABLE_CONSOLE_LOGGING = False


class ImporterMonitoring:
    """Prometheus metric helpers for the import reconciliation engine."""

    ROW_OUTCOMES = Counter(
        "importer_row_outcomes_total",
        "Import rows by kind and resolution outcome.",
        labelnames=("kind", "outcome"),
    )
    MATCH_STRATEGY = Counter(
        "importer_match_strategy_total",
        "Household/person matches by winning strategy.",
        labelnames=("entity", "strategy"),
    )
    MATCH_AMBIGUOUS = Counter(
        "importer_match_ambiguous_total",
        "Matches where more than one candidate existed and the first was used.",
        labelnames=("entity", "strategy"),
    )
    CHUNK_FAILURES = Counter(
        "importer_chunk_failures_total",
        "Chunks rolled back because the store became unavailable.",
        labelnames=("kind",),
    )
    BATCH_LATENCY = Histogram(
        "importer_batch_seconds",
        "Wall-clock duration of an import batch.",
        labelnames=("kind", "status"),
        buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
    )
    BATCH_ROWS = Histogram(
        "importer_batch_rows",
        "Number of rows submitted per import batch.",
        labelnames=("kind",),
        buckets=(0, 1, 10, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
    )
    AUTO_LINK_OUTCOMES = Counter(
        "importer_auto_link_outcomes_total",
        "Unmatched records processed by the auto-link sweep.",
        labelnames=("outcome",),
    )

    @classmethod
    def record_row(cls, *, kind: str, outcome: str):
        cls.ROW_OUTCOMES.labels(kind=kind, outcome=outcome).inc()

    @classmethod
    def record_match(cls, *, entity: str, strategy: str, ambiguous: bool = False):
        cls.MATCH_STRATEGY.labels(entity=entity, strategy=strategy).inc()
        if ambiguous:
            cls.MATCH_AMBIGUOUS.labels(entity=entity, strategy=strategy).inc()

    @classmethod
    def record_chunk_failure(cls, *, kind: str):
        cls.CHUNK_FAILURES.labels(kind=kind).inc()

    @classmethod
    def record_batch(cls, *, kind: str, status: str, duration_seconds: float, row_count: int):
        cls.BATCH_LATENCY.labels(kind=kind, status=status).observe(max(duration_seconds, 0.0))
        cls.BATCH_ROWS.labels(kind=kind).observe(float(max(row_count, 0)))

    @classmethod
    def record_auto_link(cls, *, outcome: str, count: int = 1):
        if count > 0:
            cls.AUTO_LINK_OUTCOMES.labels(outcome=outcome).inc(count)
