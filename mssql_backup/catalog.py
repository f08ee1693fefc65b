from typing import List

from pydantic import ValidationError

from .config import Configuration
from .database import ServerSession
from .exceptions import DirectoryResolutionError, QueryError
from .logger import get_logger
from .queries import GET_BACKUP_DIRECTORY, LIST_DATABASES, SYSTEM_DATABASES
from .schemas import BackupDirectoryRow, DatabaseRow

logger = get_logger(__name__)


def resolve_backup_directory(session: ServerSession, config: Configuration) -> str:
    """
    Returns the directory the server writes backup files to.

    An explicit directory from the configuration is used as is, without
    contacting the server. Otherwise the instance default is read from the
    server's registry in a single round trip.
    """
    if config.explicit_backup_directory:
        logger.info(f"Using configured backup directory: {config.explicit_backup_directory}")
        return config.explicit_backup_directory

    try:
        rows = session.run_query(GET_BACKUP_DIRECTORY)
    except QueryError as e:
        raise DirectoryResolutionError(f"Could not read the default backup directory: {e}") from e

    if not rows:
        raise DirectoryResolutionError("No backup directory found.")

    try:
        row = BackupDirectoryRow.model_validate(rows[0])
    except ValidationError as e:
        raise DirectoryResolutionError(f"Unexpected backup directory row: {e}") from None
    if not row.default_backup_directory:
        raise DirectoryResolutionError("Default backup directory not found.")

    logger.info(f"Using server default backup directory: {row.default_backup_directory}")
    return row.default_backup_directory


def list_databases(session: ServerSession) -> List[str]:
    """
    Lists the online user databases.

    The query orders by name; without it the server does not guarantee any
    order. Raises QueryError when the catalog cannot be read.
    """
    names = []
    for raw_row in session.run_query(LIST_DATABASES):
        try:
            row = DatabaseRow.model_validate(raw_row)
        except ValidationError as e:
            raise QueryError(f"Unexpected row from sys.databases: {e}", LIST_DATABASES) from None
        if row.name.lower() in SYSTEM_DATABASES:
            logger.debug(f"Skipping system database: {row.name}")
            continue
        names.append(row.name)

    logger.info(f"Databases to back up ({len(names)}): {', '.join(names) or '-'}")
    return names
