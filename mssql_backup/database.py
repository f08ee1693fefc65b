from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from .config import Configuration
from .exceptions import ConnectionError, QueryError
from .logger import get_logger

logger = get_logger(__name__)


def build_connection_url(config: Configuration) -> URL:
    return URL.create(
        "mssql+pyodbc",
        username=config.user,
        password=config.password.get_secret_value(),
        host=config.host,
        port=config.port,
        query={
            "driver": config.driver,
            "Encrypt": "yes" if config.encrypt else "no",
            "TrustServerCertificate": "yes" if config.trust_server_certificate else "no",
        },
    )


def create_server_engine(config: Configuration) -> Engine:
    """
    Creates an engine for a single connection per run.
    Every statement issued on its connections is bounded by the request timeout.
    """
    engine = create_engine(
        build_connection_url(config),
        poolclass=NullPool,
        connect_args={"timeout": config.login_timeout},
    )

    @event.listens_for(engine, "connect")
    def set_query_timeout(dbapi_connection, connection_record):
        dbapi_connection.timeout = config.request_timeout

    return engine


class ServerSession:
    """One live connection to the server, owned by a single backup run."""

    def __init__(self, connection: Connection, engine: Optional[Engine] = None):
        self._connection = connection
        self._engine = engine

    @property
    def closed(self) -> bool:
        return self._connection is None

    def _require_connection(self, statement: str) -> Connection:
        if self._connection is None:
            raise QueryError("The session is already closed.", statement)
        return self._connection

    def run_query(self, statement: str, params=None) -> List[dict]:
        """Runs a statement and returns its rows as column -> value mappings."""
        connection = self._require_connection(statement)
        logger.debug(f"Executing query: {statement}")
        try:
            result = connection.exec_driver_sql(statement, params)
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings()]
        except DBAPIError as e:
            raise QueryError(str(e.orig or e), statement) from e
        except SQLAlchemyError as e:
            raise QueryError(str(e), statement) from e

    def run_command(self, statement: str) -> None:
        """
        Runs a long statement on a driver cursor, consuming every result set.
        BACKUP reports its progress as informational result sets and only
        completes once they have all been read.
        """
        connection = self._require_connection(statement)
        dbapi_error = connection.dialect.loaded_dbapi.Error
        logger.debug(f"Executing command: {statement}")
        cursor = connection.connection.cursor()
        try:
            cursor.execute(statement)
            while cursor.nextset():
                pass
        except dbapi_error as e:
            raise QueryError(str(e), statement) from e
        finally:
            cursor.close()

    def close(self) -> None:
        if self._connection is None:
            return
        try:
            self._connection.close()
        except SQLAlchemyError as e:
            logger.warning(f"Error while closing the MSSQL connection: {e}")
        finally:
            self._connection = None
            if self._engine is not None:
                self._engine.dispose()
        logger.info("Connection to MSSQL database closed.")


def connect(config: Configuration) -> ServerSession:
    try:
        engine = create_server_engine(config)
    except ImportError as e:
        raise ConnectionError(
            f"pyodbc is not available: install pyodbc and an ODBC driver for SQL Server ({e})"
        ) from e

    try:
        connection = engine.connect()
        # BACKUP DATABASE is not allowed inside a user transaction.
        connection.execution_options(isolation_level="AUTOCOMMIT")
    except SQLAlchemyError as e:
        engine.dispose()
        reason = e.orig if isinstance(e, DBAPIError) and e.orig is not None else e
        raise ConnectionError(f"Could not connect to {config.host}:{config.port}: {reason}") from e

    logger.info(f"Connected to MSSQL database at {config.host}:{config.port}.")
    return ServerSession(connection, engine)


@contextmanager
def open_session(config: Configuration) -> Iterator[ServerSession]:
    """Opens the run's session and guarantees it is closed on every exit path."""
    session = connect(config)
    try:
        yield session
    finally:
        session.close()
