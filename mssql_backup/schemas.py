from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class BackupDirectoryRow(BaseModel):
    default_backup_directory: Optional[str] = Field(default=None, alias="DefaultBackupDirectory")


class DatabaseRow(BaseModel):
    name: str


class BackupTarget(BaseModel):
    database: str
    destination_path: str
    timestamp: str

    class Config:
        frozen = True


class BackupRunReport(BaseModel):
    directory: Optional[str] = None
    databases: List[str] = []
    succeeded: List[str] = []
    failed: Dict[str, str] = {}
    completed: bool = False
    fatal_error: Optional[str] = None

    def exit_code(self, fail_on_error: bool = False) -> int:
        """0 for a completed run, 1 for a fatal error, 2 for database failures when asked."""
        if not self.completed:
            return 1
        if fail_on_error and self.failed:
            return 2
        return 0
