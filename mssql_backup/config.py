import os
from typing import Mapping, Optional

import yaml
from pydantic import BaseModel, SecretStr, ValidationError, field_validator

from .exceptions import ConfigurationError
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1433
DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_REQUEST_TIMEOUT = 3600  # 1 hour, backups of large databases run long
DEFAULT_LOGIN_TIMEOUT = 30

CONFIG_FILE_VARIABLE = "MSSQL_CONFIG_FILE"

# Setting name -> environment variables, the first one set wins.
ENVIRONMENT_VARIABLES = {
    "user": ("MSSQL_USER",),
    "password": ("MSSQL_PASSWORD",),
    "host": ("MSSQL_HOST", "MSSQL_SERVER"),
    "port": ("MSSQL_PORT",),
    "directory": ("MSSQL_DIRECTORY",),
    "driver": ("MSSQL_DRIVER",),
    "encrypt": ("MSSQL_ENCRYPT",),
    "trust_server_certificate": ("MSSQL_TRUST_SERVER_CERTIFICATE",),
    "request_timeout": ("MSSQL_REQUEST_TIMEOUT",),
    "login_timeout": ("MSSQL_LOGIN_TIMEOUT",),
    "metrics_file": ("MSSQL_METRICS_FILE",),
}

# Settings YAML may hand over as numbers, e.g. an unquoted numeric password.
STRING_SETTINGS = ("user", "password", "host", "directory", "driver", "metrics_file")

# Settings that only make sense on the command line.
RUN_SETTINGS = ("dry_run", "fail_on_error")


class Configuration(BaseModel):
    user: str
    password: SecretStr = SecretStr("")
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    explicit_backup_directory: Optional[str] = None
    driver: str = DEFAULT_DRIVER
    encrypt: bool = False
    trust_server_certificate: bool = True
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    login_timeout: int = DEFAULT_LOGIN_TIMEOUT
    dry_run: bool = False
    fail_on_error: bool = False
    metrics_file: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("port", "request_timeout", "login_timeout")
    @classmethod
    def must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    def describe(self) -> dict:
        """The resolved settings that are safe to show to an operator."""
        return self.model_dump(exclude={"password"})


def load_config_file(path: str) -> dict:
    """Reads settings from the `mssql` mapping of a YAML file."""
    if not os.path.isfile(path):
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Error reading {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping.")

    section = data.get("mssql", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"The 'mssql' section of {path} must be a mapping.")

    known = set(ENVIRONMENT_VARIABLES)
    for key in section:
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' in {path}.")
    values = {key: value for key, value in section.items() if key in known}
    for key in STRING_SETTINGS:
        if isinstance(values.get(key), (int, float)) and not isinstance(values[key], bool):
            values[key] = str(values[key])
    return values


def _is_set(name: str, value) -> bool:
    if value is None:
        return False
    # An empty password is a valid value, an empty host is not.
    if isinstance(value, str) and value == "" and name != "password":
        return False
    return True


def _from_environment(name: str, environ: Mapping) -> Optional[str]:
    for variable in ENVIRONMENT_VARIABLES[name]:
        value = environ.get(variable)
        if _is_set(name, value):
            return value
    return None


def resolve_config(
    overrides: Optional[Mapping] = None,
    environ: Optional[Mapping] = None,
) -> Configuration:
    """
    Builds the effective configuration.

    Command line values win over environment variables, which win over the
    optional YAML config file, which wins over the defaults.
    """
    overrides = dict(overrides or {})
    environ = os.environ if environ is None else environ

    config_file = overrides.pop("config", None) or environ.get(CONFIG_FILE_VARIABLE) or None
    file_values = load_config_file(config_file) if config_file else {}

    values = {}
    for name in ENVIRONMENT_VARIABLES:
        if _is_set(name, overrides.get(name)):
            values[name] = overrides[name]
            continue
        env_value = _from_environment(name, environ)
        if env_value is not None:
            values[name] = env_value
        elif _is_set(name, file_values.get(name)):
            values[name] = file_values[name]

    for name in RUN_SETTINGS:
        if overrides.get(name) is not None:
            values[name] = overrides[name]

    if "user" not in values:
        raise ConfigurationError("MSSQL_USER is required (set the variable or pass --user).")

    if "directory" in values:
        values["explicit_backup_directory"] = values.pop("directory")

    try:
        config = Configuration(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from None

    logger.info(f"Resolved configuration: {config.describe()}")
    return config
