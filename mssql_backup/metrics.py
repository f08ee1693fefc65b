from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

from .logger import get_logger

logger = get_logger(__name__)

REGISTRY = CollectorRegistry()

BACKUPS_TOTAL = Counter(
    "mssql_backups_total",
    "Total number of database backups attempted.",
    ["database_name", "status"],
    registry=REGISTRY,
)

BACKUP_DURATION_SECONDS = Histogram(
    "mssql_backup_duration_seconds",
    "Duration of BACKUP DATABASE statements in seconds.",
    ["database_name"],
    buckets=(1, 5, 15, 30, 60, 300, 900, 1800, 3600),
    registry=REGISTRY,
)

BACKUP_LAST_STATUS = Gauge(
    "mssql_backup_last_status",
    "Status of the last backup (1 for success, 0 for failure).",
    ["database_name"],
    registry=REGISTRY,
)

BACKUP_RUN_LAST_SUCCESS_TIMESTAMP_SECONDS = Gauge(
    "mssql_backup_run_last_success_timestamp_seconds",
    "Timestamp of the last backup run that completed.",
    registry=REGISTRY,
)

BACKUP_RUN_DATABASES = Gauge(
    "mssql_backup_run_databases",
    "Number of databases selected for backup in the last run.",
    registry=REGISTRY,
)


def write_metrics(path: str) -> None:
    """Writes the collectors in the textfile collector format."""
    try:
        write_to_textfile(path, REGISTRY)
        logger.debug(f"Metrics written to {path}")
    except OSError as e:
        logger.error(f"Failed to write metrics to {path}: {e}")
