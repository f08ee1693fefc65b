import time
from datetime import datetime, timezone
from typing import Callable, Collection, ContextManager, Optional

from .catalog import list_databases, resolve_backup_directory
from .config import Configuration
from .database import ServerSession, open_session
from .error_parser import parse_server_error
from .exceptions import BackupError, ConnectionError, DatabaseBackupError, QueryError
from .logger import get_logger
from .metrics import (
    BACKUPS_TOTAL, BACKUP_DURATION_SECONDS, BACKUP_LAST_STATUS,
    BACKUP_RUN_DATABASES, BACKUP_RUN_LAST_SUCCESS_TIMESTAMP_SECONDS
)
from .queries import backup_statement
from .schemas import BackupRunReport, BackupTarget
from .utils import backup_timestamp, join_server_path

logger = get_logger(__name__)

SessionFactory = Callable[[Configuration], ContextManager[ServerSession]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_backup_target(database: str, directory: str, moment: Optional[datetime] = None) -> BackupTarget:
    timestamp = backup_timestamp(moment)
    filename = f"{database}-{timestamp}.bak"
    return BackupTarget(
        database=database,
        destination_path=join_server_path(directory, filename),
        timestamp=timestamp,
    )


def backup_database(
    session: ServerSession,
    target: BackupTarget,
    known_databases: Collection[str],
    dry_run: bool = False,
) -> None:
    """
    Issues a full, overwriting BACKUP DATABASE for one target.

    The database name ends up in the statement text, so it must be one of the
    names the server reported for this run.
    """
    if target.database not in known_databases:
        raise DatabaseBackupError(
            target.database, "not an online user database reported by the server"
        )

    statement = backup_statement(target.database, target.destination_path)
    if dry_run:
        logger.info(f"Dry run, not executing: {statement}")
        return

    try:
        session.run_command(statement)
    except QueryError as e:
        raise DatabaseBackupError(target.database, str(e), parse_server_error(str(e))) from e


def _run_database_backup(
    session: ServerSession,
    database: str,
    directory: str,
    report: BackupRunReport,
    config: Configuration,
    clock: Callable[[], datetime],
) -> None:
    target = build_backup_target(database, directory, clock())
    logger.info(f"Backing up database: {database}")
    start_time = time.time()
    status = "failed"

    try:
        backup_database(session, target, report.databases, dry_run=config.dry_run)
        status = "completed"
        report.succeeded.append(database)
        logger.info(f"Database {database} backed up successfully to {target.destination_path}")
    except DatabaseBackupError as e:
        report.failed[database] = e.summary
        logger.error(f"Error backing up database {database}: {e} ({e.summary})")
    finally:
        if not config.dry_run:
            duration = time.time() - start_time
            BACKUPS_TOTAL.labels(database_name=database, status=status).inc()
            BACKUP_DURATION_SECONDS.labels(database_name=database).observe(duration)
            BACKUP_LAST_STATUS.labels(database_name=database).set(1 if status == "completed" else 0)
            logger.debug(f"Backup of {database} finished with status {status} in {duration:.2f}s")


def run_backups(
    config: Configuration,
    session_factory: SessionFactory = open_session,
    clock: Optional[Callable[[], datetime]] = None,
) -> BackupRunReport:
    """
    Backs up every online user database, one at a time.

    A failing database is logged and skipped; connection, directory and
    catalog failures end the run before any backup is attempted. The session
    is closed on every path.
    """
    clock = clock or utc_now
    report = BackupRunReport()
    logger.info(f"Starting backup run against {config.host}:{config.port}")

    try:
        with session_factory(config) as session:
            report.directory = resolve_backup_directory(session, config)
            report.databases = list_databases(session)
            BACKUP_RUN_DATABASES.set(len(report.databases))

            for database in report.databases:
                _run_database_backup(session, database, report.directory, report, config, clock)
    except ConnectionError as e:
        report.fatal_error = str(e)
        logger.error(f"Error in backup process: {e} ({parse_server_error(str(e))})")
        return report
    except BackupError as e:
        report.fatal_error = str(e)
        logger.error(f"Error in backup process: {e}")
        return report

    report.completed = True
    if not config.dry_run:
        BACKUP_RUN_LAST_SUCCESS_TIMESTAMP_SECONDS.set(time.time())
    logger.info(
        f"Backup run finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed."
    )
    return report
