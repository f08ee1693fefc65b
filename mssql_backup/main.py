"""Command line entry point.

Usage:
  MSSQL_USER=sa MSSQL_PASSWORD=... mssql-backup
  mssql-backup --host db1 --user sa --directory /var/backups/mssql
"""
import sys

import click
from click.core import ParameterSource
from dotenv import load_dotenv

from .backup_manager import run_backups
from .config import resolve_config
from .exceptions import ConfigurationError
from .logger import get_logger, setup_logging
from .metrics import write_metrics

logger = get_logger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--user", "-U", help="Login name [env: MSSQL_USER].")
@click.option("--password", "-P", help="Login password [env: MSSQL_PASSWORD].")
@click.option("--host", "-H", help="Server host name [env: MSSQL_HOST, default: localhost].")
@click.option("--port", type=int, help="Server port [env: MSSQL_PORT, default: 1433].")
@click.option("--directory", "-d", help="Backup directory as seen by the server [env: MSSQL_DIRECTORY]. "
                                      "Defaults to the instance's default backup directory.")
@click.option("--driver", help="ODBC driver name [env: MSSQL_DRIVER].")
@click.option("--encrypt/--no-encrypt", help="Encrypt the connection [env: MSSQL_ENCRYPT].")
@click.option("--trust-server-certificate/--verify-server-certificate",
              help="Accept self-signed server certificates [env: MSSQL_TRUST_SERVER_CERTIFICATE].")
@click.option("--request-timeout", type=int, help="Per-statement timeout in seconds [env: MSSQL_REQUEST_TIMEOUT].")
@click.option("--login-timeout", type=int, help="Login timeout in seconds [env: MSSQL_LOGIN_TIMEOUT].")
@click.option("--metrics-file", type=click.Path(dir_okay=False),
              help="Write Prometheus metrics to this file [env: MSSQL_METRICS_FILE].")
@click.option("--config", "-c", type=click.Path(dir_okay=False),
              help="YAML file with an 'mssql' section [env: MSSQL_CONFIG_FILE].")
@click.option("--dry-run", is_flag=True, help="Log the BACKUP statements without running them.")
@click.option("--fail-on-error", is_flag=True,
              help="Exit with status 2 when any database backup failed.")
@click.option("--log-level", help="Logging level [env: LOG_LEVEL, default: INFO].")
def cli(log_level, **options):
    """Back up every online user database of a SQL Server instance."""
    setup_logging(log_level=log_level)

    # Only flags given on the command line may override the environment.
    ctx = click.get_current_context()
    given = {
        name: value for name, value in options.items()
        if ctx.get_parameter_source(name) is not ParameterSource.DEFAULT
    }

    try:
        config = resolve_config(given)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    report = run_backups(config)

    if config.metrics_file:
        write_metrics(config.metrics_file)

    sys.exit(report.exit_code(fail_on_error=config.fail_on_error))


def main():  # pragma: no cover - thin wrapper
    load_dotenv()
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
