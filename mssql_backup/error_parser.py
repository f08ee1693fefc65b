# mssql_backup/error_parser.py

def parse_server_error(message: str) -> str:
    """
    Parses an error message returned by SQL Server or the ODBC driver and
    returns a human-readable summary.
    """
    message = (message or "").lower()

    if "login failed" in message or "28000" in message:
        return "Authentication error: the user or password was rejected by the server."
    if "ssl provider" in message or "certificate" in message:
        return "Connection error: TLS negotiation failed. Check the encrypt and certificate trust settings."
    if "tcp provider" in message or "login timeout expired" in message or "08001" in message:
        return "Connection error: the server could not be reached. Check the host and port."
    if "operating system error 5" in message or "access is denied" in message:
        return "Permission error: the SQL Server service account cannot write to the backup directory."
    if "operating system error 3" in message or "cannot find the path specified" in message:
        return "Path error: the backup directory does not exist on the database server."
    if "operating system error 112" in message or "not enough space" in message or "insufficient free space" in message:
        return "Disk error: there is not enough free space in the backup directory."
    if "cannot open backup device" in message:
        return "Device error: the server could not open the backup file."
    if "query timeout expired" in message or "hyt00" in message:
        return "Timeout error: the statement did not finish within the request timeout."
    if "permission denied" in message:
        return "Permission error: the login lacks the BACKUP DATABASE permission."
    if "does not exist" in message and "database" in message:
        return "Database error: the database no longer exists on the server."
    if "cannot be opened" in message or "is offline" in message:
        return "Database error: the database is not online."

    return "Unknown error: the server reported a failure that could not be classified. Check the full log for details."
