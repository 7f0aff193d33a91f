"""Shared test fixtures"""

from __future__ import annotations

import os
import socket
import tempfile
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import structlog

from myisam_backup_lock.models import TableName

DEBIAN_CNF = """\
# Automatically generated for Debian scripts. DO NOT TOUCH!
[client]
host     = localhost
user     = debian-sys-maint
password = s3cr3t#with;marks
socket   = /var/run/mysqld/mysqld.sock
[mysql_upgrade]
host     = localhost
user     = debian-sys-maint
password = s3cr3t#with;marks
socket   = /var/run/mysqld/mysqld.sock
"""


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo configure_logging so later tests do not write to a closed capture stream"""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_cursor() -> MagicMock:
    """Mock PyMySQL cursor"""
    cursor = MagicMock()
    cursor.fetchall.return_value = ()
    return cursor


@pytest.fixture
def mock_connection(mock_cursor: MagicMock) -> MagicMock:
    """Mock PyMySQL connection whose cursor() context yields mock_cursor"""
    connection = MagicMock()
    connection.cursor.return_value.__enter__.return_value = mock_cursor
    return connection


@pytest.fixture
def socket_path() -> Iterator[str]:
    """Rendezvous socket path in a short temporary directory

    Unix socket paths are limited to about 100 bytes, which pytest's
    tmp_path can exceed.
    """
    with tempfile.TemporaryDirectory(prefix="mbl-", dir="/tmp") as directory:
        yield os.path.join(directory, "backup.sock")


@pytest.fixture
def debian_cnf(tmp_path: Path) -> Path:
    """A complete Debian maintenance option file"""
    path = tmp_path / "debian.cnf"
    path.write_text(DEBIAN_CNF)
    return path


@pytest.fixture
def sample_tables() -> tuple[TableName, ...]:
    """Sample MyISAM tables"""
    return (
        TableName(table_schema="shop", table_name="orders"),
        TableName(table_schema="shop", table_name="order_items"),
        TableName(table_schema="wiki", table_name="page"),
    )


def _send_when_listening(path: str, payload: bytes, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while True:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(path)
        except OSError:
            sock.close()
            if time.monotonic() > deadline:
                raise
            time.sleep(0.01)
            continue
        with sock:
            sock.sendall(payload)
        return


@pytest.fixture
def send_when_listening() -> Callable[..., None]:
    """Connect to a socket path as soon as it accepts connections and write a payload"""
    return _send_when_listening
