from unittest import mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from conftest import make_config
from mssql_backup import database
from mssql_backup.database import ServerSession, build_connection_url, connect, open_session
from mssql_backup.exceptions import ConnectionError, QueryError


class DriverError(Exception):
    pass


@pytest.fixture
def sqlite_session():
    engine = create_engine("sqlite://")
    session = ServerSession(engine.connect(), engine)
    yield session
    session.close()


def test_connection_url_relaxes_tls_by_default(config):
    url = build_connection_url(config)
    assert url.drivername == "mssql+pyodbc"
    assert url.host == "db1"
    assert url.port == 1433
    assert url.username == "sa"
    assert url.password == "x"
    assert url.query["Encrypt"] == "no"
    assert url.query["TrustServerCertificate"] == "yes"
    assert url.query["driver"] == "ODBC Driver 18 for SQL Server"


def test_connection_url_can_verify_certificates():
    url = build_connection_url(make_config(encrypt=True, trust_server_certificate=False))
    assert url.query["Encrypt"] == "yes"
    assert url.query["TrustServerCertificate"] == "no"


def test_run_query_returns_row_mappings(sqlite_session):
    rows = sqlite_session.run_query("SELECT 'orders' AS name UNION ALL SELECT 'billing'")
    assert rows == [{"name": "orders"}, {"name": "billing"}]


def test_run_query_binds_parameters(sqlite_session):
    rows = sqlite_session.run_query("SELECT ? AS name", ("orders",))
    assert rows == [{"name": "orders"}]


def test_statement_without_result_set_returns_no_rows(sqlite_session):
    assert sqlite_session.run_query("CREATE TABLE backups (name TEXT)") == []


def test_server_error_becomes_query_error(sqlite_session):
    with pytest.raises(QueryError, match="no such table") as exc_info:
        sqlite_session.run_query("SELECT name FROM missing_table")
    assert exc_info.value.statement == "SELECT name FROM missing_table"


def test_close_is_idempotent(sqlite_session):
    sqlite_session.close()
    sqlite_session.close()
    assert sqlite_session.closed
    with pytest.raises(QueryError, match="closed"):
        sqlite_session.run_query("SELECT 1")


def _mock_connection():
    connection = mock.MagicMock()
    connection.dialect.loaded_dbapi.Error = DriverError
    return connection, connection.connection.cursor.return_value


def test_run_command_drains_every_result_set():
    connection, cursor = _mock_connection()
    cursor.nextset.side_effect = [True, True, False]
    ServerSession(connection).run_command("BACKUP DATABASE [orders] TO DISK='/b/o.bak'")
    cursor.execute.assert_called_once_with("BACKUP DATABASE [orders] TO DISK='/b/o.bak'")
    assert cursor.nextset.call_count == 3
    cursor.close.assert_called_once()


def test_run_command_wraps_driver_errors():
    connection, cursor = _mock_connection()
    cursor.execute.side_effect = DriverError("Operating system error 5(Access is denied.)")
    with pytest.raises(QueryError, match="Access is denied"):
        ServerSession(connection).run_command("BACKUP DATABASE [orders] TO DISK='/b/o.bak'")
    cursor.close.assert_called_once()


def test_close_releases_connection_and_engine():
    connection, _ = _mock_connection()
    engine = mock.MagicMock()
    session = ServerSession(connection, engine)
    session.close()
    session.close()
    connection.close.assert_called_once()
    engine.dispose.assert_called_once()


def test_connect_failure_raises_connection_error(monkeypatch, config, tmp_path):
    unreachable = create_engine(f"sqlite:///{tmp_path}/missing/dir/server.db")
    monkeypatch.setattr(database, "create_server_engine", lambda config: unreachable)
    with pytest.raises(ConnectionError, match="db1:1433"):
        connect(config)


def test_open_session_closes_on_error(monkeypatch, config):
    monkeypatch.setattr(database, "create_server_engine", lambda config: create_engine("sqlite://"))
    with pytest.raises(RuntimeError):
        with open_session(config) as session:
            assert session.run_query("SELECT 1 AS one") == [{"one": 1}]
            raise RuntimeError("boom")
    assert session.closed


def query_timeout_listener(engine):
    return next(fn for fn in engine.pool.dispatch.connect if getattr(fn, "__name__", "") == "set_query_timeout")


@pytest.fixture
def recorded_engine_args(monkeypatch):
    """Builds engines against a stand-in pyodbc module and records the arguments."""
    import sqlalchemy

    driver = mock.MagicMock(version="5.1.0", paramstyle="qmark")
    recorded = {}

    def create_engine_with_stand_in_driver(url, **kwargs):
        recorded.update(kwargs)
        return sqlalchemy.create_engine(url, module=driver, **kwargs)

    monkeypatch.setattr(database, "create_engine", create_engine_with_stand_in_driver)
    return recorded


def test_engine_sets_request_timeout_on_every_connection(recorded_engine_args):
    engine = database.create_server_engine(make_config(request_timeout=3600, login_timeout=15))
    dbapi_connection = mock.MagicMock()
    query_timeout_listener(engine)(dbapi_connection, None)
    assert dbapi_connection.timeout == 3600
    assert recorded_engine_args["connect_args"] == {"timeout": 15}
    assert recorded_engine_args["poolclass"] is NullPool
    engine.dispose()


def test_default_request_timeout_is_one_hour(recorded_engine_args):
    engine = database.create_server_engine(make_config())
    dbapi_connection = mock.MagicMock()
    query_timeout_listener(engine)(dbapi_connection, None)
    assert dbapi_connection.timeout == 3600
    engine.dispose()


def test_connect_runs_in_autocommit(monkeypatch, config):
    monkeypatch.setattr(database, "create_server_engine", lambda config: create_engine("sqlite://"))
    session = connect(config)
    try:
        assert session._connection.get_execution_options()["isolation_level"] == "AUTOCOMMIT"
    finally:
        session.close()


def test_sqlalchemy_errors_become_query_errors(sqlite_session):
    sqlite_session._connection.close()
    with pytest.raises(QueryError):
        sqlite_session.run_query("SELECT 1")
