"""Data models

Typed models shared by the table selector, the lock holder and the CLI.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class LockState(str, Enum):
    """Lock holder state"""

    IDLE = "idle"
    LOCKED = "locked"
    WAITING_FOR_RELEASE = "waiting_for_release"
    UNLOCKED = "unlocked"
    LOCK_FAILED = "lock_failed"
    FORCED_UNLOCK = "forced_unlock"


class ConnectionParameters(BaseModel):
    """Resolved credentials and transport for the local MySQL server

    Only the Unix socket transport is supported; ``host`` is kept for log
    context and is not used to connect.
    """

    model_config = ConfigDict(frozen=True)

    user: str
    password: SecretStr
    socket: str
    host: str = "localhost"

    def connect_kwargs(self, connect_timeout: int = 10) -> dict[str, Any]:
        """Keyword arguments for ``pymysql.connect`` over the Unix socket"""
        return {
            "user": self.user,
            "password": self.password.get_secret_value(),
            "unix_socket": self.socket,
            "connect_timeout": connect_timeout,
            "autocommit": True,
        }

    def describe(self) -> str:
        """Password-free descriptor, e.g. ``debian-sys-maint@unix(/run/mysqld/mysqld.sock)/``"""
        return f"{self.user}@unix({self.socket})/"


class TableName(BaseModel):
    """A base table, addressed by schema and name"""

    model_config = ConfigDict(frozen=True)

    table_schema: str
    table_name: str

    @property
    def qualified(self) -> str:
        return f"{self.table_schema}.{self.table_name}"

    @property
    def quoted(self) -> str:
        """Backtick-quoted identifier safe to splice into a statement"""
        return f"{_quote_identifier(self.table_schema)}.{_quote_identifier(self.table_name)}"


def _quote_identifier(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


class LockSessionSummary(BaseModel):
    """Outcome of one lock session"""

    tables: list[str] = Field(default_factory=list)
    state: LockState = LockState.IDLE
    liveness_checks: int = 0
    liveness_failures: int = 0
    ignored_payloads: int = 0
    held_seconds: float = 0.0
    unlock_succeeded: bool = False
