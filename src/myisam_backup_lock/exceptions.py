"""Custom exceptions

Classifies the failures of a lock session, an unlock signal and the
configuration that feeds them.
"""

from __future__ import annotations


class BackupLockError(Exception):
    """Base class for myisam-backup-lock errors"""


class ConfigError(BackupLockError):
    """Configuration error

    Raised when the MySQL client configuration file cannot be read or parsed,
    or when the [client] section lacks a required key.
    """


class DatabaseConnectionError(BackupLockError):
    """Database connection error

    Raised when the session to the MySQL server cannot be opened.
    """


class QueryError(BackupLockError):
    """Query error

    Raised when table enumeration, the lock statement or the unlock statement
    fails on the server.
    """

    def __init__(self, statement: str, message: str) -> None:
        self.statement = statement
        super().__init__(f"[{statement}] {message}")


class LockPreconditionError(BackupLockError):
    """Raised when there is nothing meaningful to lock"""


class ChannelError(BackupLockError):
    """Rendezvous channel error

    Raised when the listening socket cannot be bound, or when accepting or
    reading the release connection fails.
    """

    def __init__(self, socket_path: str, message: str) -> None:
        self.socket_path = socket_path
        super().__init__(f"{socket_path}: {message}")


class StaleChannelError(ChannelError):
    """The socket path already exists, left over from an unclean shutdown"""

    def __init__(self, socket_path: str) -> None:
        super().__init__(
            socket_path,
            "path already exists; a previous lock session did not shut down cleanly, "
            "remove it manually once no locker is running",
        )


class SignalError(BackupLockError):
    """Unlock signal error

    Raised when the signaler cannot connect within its retry bound, or when
    the write fails on an established connection.
    """

    def __init__(self, socket_path: str, message: str) -> None:
        self.socket_path = socket_path
        super().__init__(f"{socket_path}: {message}")
