"""Error kinds raised while running a backup."""


class BackupError(Exception):
    """Base class for every failure the backup run reports."""


class ConfigurationError(BackupError):
    """Raised when the effective configuration is missing or invalid."""


class ConnectionError(BackupError):
    """Raised when the session to the server cannot be established."""


class QueryError(BackupError):
    """Raised when the server rejects a statement."""

    def __init__(self, message: str, statement: str = None):
        super().__init__(message)
        self.statement = statement


class DirectoryResolutionError(BackupError):
    """Raised when no usable backup directory can be determined."""


class DatabaseBackupError(BackupError):
    """Raised when backing up one database fails."""

    def __init__(self, database: str, message: str, summary: str = None):
        super().__init__(f"Backup of database '{database}' failed: {message}")
        self.database = database
        self.summary = summary or message
