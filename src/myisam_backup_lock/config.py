"""Configuration

Reads the MySQL maintenance credentials from a Debian style client config
(``/etc/mysql/debian.cnf``) and the tool's own settings from environment
variables.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from myisam_backup_lock.exceptions import ConfigError
from myisam_backup_lock.models import ConnectionParameters

logger = structlog.get_logger()

DEFAULT_SOCKET_PATH = "/var/run/mysqld/backup.sock"
DEFAULT_MYSQL_CONFIG_PATH = "/etc/mysql/debian.cnf"

CLIENT_SECTION = "client"
REQUIRED_CLIENT_KEYS = ("host", "user", "password", "socket")


@dataclass(frozen=True)
class LockerSettings:
    """Runtime settings

    Every value can be overridden through a ``MYISAM_LOCK_*`` environment
    variable; command-line flags take precedence over both.
    """

    socket_path: str = DEFAULT_SOCKET_PATH
    mysql_config_path: str = DEFAULT_MYSQL_CONFIG_PATH

    # Lock holder liveness poll (seconds)
    poll_interval: float = 0.1

    # Unlock signaler retry bound: 10 x 50ms
    signal_attempts: int = 10
    signal_interval: float = 0.05

    # MySQL connect timeout (seconds)
    connect_timeout: int = 10

    @classmethod
    def from_env(cls) -> LockerSettings:
        """Load settings from environment variables"""

        def get_float(key: str, default: float) -> float:
            value = os.getenv(f"MYISAM_LOCK_{key}")
            if value:
                try:
                    return float(value)
                except ValueError:
                    pass
            return default

        def get_int(key: str, default: int) -> int:
            value = os.getenv(f"MYISAM_LOCK_{key}")
            if value:
                try:
                    return int(value)
                except ValueError:
                    pass
            return default

        return cls(
            socket_path=os.getenv("MYISAM_LOCK_SOCKET_PATH") or DEFAULT_SOCKET_PATH,
            mysql_config_path=os.getenv("MYISAM_LOCK_MYSQL_CONFIG") or DEFAULT_MYSQL_CONFIG_PATH,
            poll_interval=get_float("POLL_INTERVAL", 0.1),
            signal_attempts=get_int("SIGNAL_ATTEMPTS", 10),
            signal_interval=get_float("SIGNAL_INTERVAL", 0.05),
            connect_timeout=get_int("CONNECT_TIMEOUT", 10),
        )


def read_client_config(path: str | Path) -> dict[str, str]:
    """Read the ``[client]`` section of a MySQL option file

    Section and key names are matched case-insensitively. Inline comments are
    kept as part of the value, since passwords may contain ``#`` or ``;``.
    Keys written without a value are read as empty strings. A value wrapped in
    matching single or double quotes loses the quotes, as in MySQL itself.

    Args:
        path: Path to the option file

    Returns:
        Every key of the ``[client]`` section, lower-cased

    Raises:
        ConfigError: The file cannot be read or parsed, the section is missing,
            or one of ``host``, ``user``, ``password``, ``socket`` is absent
    """
    log = logger.bind(config_path=str(path))

    parser = configparser.ConfigParser(
        allow_no_value=True,
        interpolation=None,
        strict=False,
        default_section="__no_defaults__",
    )
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except OSError as e:
        raise ConfigError(f"cannot read MySQL configuration {path}: {e}") from e
    except (configparser.Error, UnicodeDecodeError) as e:
        raise ConfigError(f"cannot parse MySQL configuration {path}: {e}") from e

    section = next((s for s in parser.sections() if s.lower() == CLIENT_SECTION), None)
    if section is None:
        raise ConfigError(f"failed to get mysql client configuration: no [client] section in {path}")

    values = {key: _unquote(value or "") for key, value in parser.items(section)}
    missing = [key for key in REQUIRED_CLIENT_KEYS if key not in values]
    if missing:
        raise ConfigError(
            f"failed to get mysql client configuration: missing {', '.join(missing)} in {path}"
        )

    log.debug("MySQL client configuration loaded", keys=sorted(values))
    return values


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def build_connection_parameters(client_config: dict[str, str]) -> ConnectionParameters:
    """Turn a ``[client]`` mapping into socket transport parameters"""
    return ConnectionParameters(
        host=client_config.get("host", "localhost"),
        user=client_config["user"],
        password=client_config["password"],
        socket=client_config["socket"],
    )


def load_connection_parameters(path: str | Path) -> ConnectionParameters:
    """Read the option file at ``path`` and resolve the connection parameters"""
    return build_connection_parameters(read_client_config(path))
