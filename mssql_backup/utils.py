import re
from datetime import datetime, timezone

WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")


def backup_timestamp(moment: datetime = None) -> str:
    """
    Formats a moment as a filesystem-safe UTC timestamp.
    - ISO 8601 layout with whole-second resolution.
    - Colons replaced by hyphens, no fractional part.
    """
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H-%M-%S")


def quote_identifier(name: str) -> str:
    """Quotes a T-SQL identifier with brackets, escaping closing brackets."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quotes a T-SQL string literal, escaping single quotes."""
    return "'" + value.replace("'", "''") + "'"


def server_path_separator(directory: str) -> str:
    if "\\" in directory or WINDOWS_DRIVE.match(directory):
        return "\\"
    return "/"


def join_server_path(directory: str, filename: str) -> str:
    """
    Joins a directory as seen by the database server with a file name.
    The server may run on another OS than this process, so the separator is
    taken from the directory itself rather than from os.path.
    """
    separator = server_path_separator(directory)
    return directory.rstrip("/\\") + separator + filename
