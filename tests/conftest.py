from contextlib import contextmanager

import pytest

from mssql_backup.config import Configuration
from mssql_backup.exceptions import QueryError
from mssql_backup.queries import GET_BACKUP_DIRECTORY, LIST_DATABASES


class FakeSession:
    """Stands in for ServerSession; records every statement it receives."""

    def __init__(self, directory="/var/backups/mssql", databases=(), failing=(), list_error=None):
        self.directory_rows = [] if directory is None else [{"DefaultBackupDirectory": directory}]
        self.database_rows = [{"name": name} for name in databases]
        self.failing = set(failing)
        self.list_error = list_error
        self.queries = []
        self.commands = []
        self.close_count = 0

    def run_query(self, statement, params=None):
        self.queries.append(statement)
        if statement == GET_BACKUP_DIRECTORY:
            return self.directory_rows
        if statement == LIST_DATABASES:
            if self.list_error:
                raise QueryError(self.list_error, statement)
            return self.database_rows
        raise AssertionError(f"Unexpected query: {statement}")

    def run_command(self, statement):
        self.commands.append(statement)
        for name in self.failing:
            if f"[{name}]" in statement:
                raise QueryError(
                    "Cannot open backup device. Operating system error 5(Access is denied.)",
                    statement,
                )

    def close(self):
        self.close_count += 1


class UntouchableSession:
    def run_query(self, statement, params=None):
        pytest.fail(f"The session should not be queried, got: {statement}")

    def run_command(self, statement):
        pytest.fail(f"The session should not be used, got: {statement}")

    def close(self):
        pass


def make_config(**overrides) -> Configuration:
    values = {"user": "sa", "password": "x", "host": "db1", "port": 1433}
    values.update(overrides)
    return Configuration(**values)


def factory_for(session):
    @contextmanager
    def open_fake_session(config):
        try:
            yield session
        finally:
            session.close()

    return open_fake_session


@pytest.fixture
def config():
    return make_config()
