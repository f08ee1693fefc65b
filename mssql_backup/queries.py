from .utils import quote_identifier, quote_literal

SYSTEM_DATABASES = ("master", "tempdb", "model", "msdb")

LIST_DATABASES = (
    "SELECT name FROM sys.databases "
    "WHERE state_desc = 'ONLINE' "
    "AND name NOT IN ('master', 'tempdb', 'model', 'msdb') "
    "ORDER BY name"
)

GET_BACKUP_DIRECTORY = """SET NOCOUNT ON;
DECLARE @BackupDirectory NVARCHAR(512);
EXEC master.dbo.xp_instance_regread
    N'HKEY_LOCAL_MACHINE',
    N'SOFTWARE\\Microsoft\\MSSQLServer\\MSSQLServer',
    N'BackupDirectory',
    @BackupDirectory OUTPUT;
SELECT @BackupDirectory AS DefaultBackupDirectory;"""

BACKUP_OPTIONS = "FORMAT, INIT, SKIP, NOREWIND, NOUNLOAD, STATS=10"


def backup_statement(database: str, destination_path: str) -> str:
    # Identifiers and the DISK target cannot be bound as parameters here.
    return (
        f"BACKUP DATABASE {quote_identifier(database)} "
        f"TO DISK={quote_literal(destination_path)} "
        f"WITH {BACKUP_OPTIONS}"
    )
