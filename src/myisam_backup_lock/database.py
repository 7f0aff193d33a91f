"""MySQL session handling over the local Unix socket"""

from __future__ import annotations

import pymysql
import structlog
from pymysql.connections import Connection

from myisam_backup_lock.exceptions import DatabaseConnectionError
from myisam_backup_lock.models import ConnectionParameters

logger = structlog.get_logger()


def open_session(params: ConnectionParameters, connect_timeout: int = 10) -> Connection:
    """Open the single session a lock session runs on

    Args:
        params: Resolved connection parameters
        connect_timeout: Seconds to wait for the server

    Returns:
        An open PyMySQL connection in autocommit mode

    Raises:
        DatabaseConnectionError: The server cannot be reached or rejects the login
    """
    log = logger.bind(dsn=params.describe())
    log.debug("Opening MySQL session")

    try:
        connection = pymysql.connect(**params.connect_kwargs(connect_timeout))
    except pymysql.MySQLError as e:
        log.error("MySQL connection error", error=str(e))
        raise DatabaseConnectionError(f"cannot connect to {params.describe()}: {e}") from e
    except OSError as e:
        log.error("MySQL socket error", error=str(e))
        raise DatabaseConnectionError(f"cannot connect to {params.describe()}: {e}") from e

    log.info("MySQL session opened", server_version=connection.get_server_info())
    return connection


def is_alive(connection: Connection) -> bool:
    """Ping the server without reconnecting

    A reconnect would open a new session and silently drop any table lock
    held by the old one, so a failed ping is reported instead.
    """
    try:
        connection.ping(reconnect=False)
    except (pymysql.MySQLError, OSError) as e:
        logger.debug("MySQL ping failed", error=str(e))
        return False
    return True


def close_quietly(connection: Connection) -> None:
    """Close the session, logging instead of raising on failure"""
    try:
        connection.close()
    except (pymysql.MySQLError, OSError) as e:
        logger.warning("Failed to close MySQL session", error=str(e))
