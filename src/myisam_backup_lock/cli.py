"""CLI command handling

Provides the lock, unlock and list modes.
"""

from __future__ import annotations

import argparse
import logging
import sys

import structlog

from myisam_backup_lock import __version__
from myisam_backup_lock.config import LockerSettings, load_connection_parameters
from myisam_backup_lock.database import close_quietly, open_session
from myisam_backup_lock.exceptions import BackupLockError
from myisam_backup_lock.holder import LockHolder
from myisam_backup_lock.models import LockSessionSummary, TableName
from myisam_backup_lock.rendezvous import remove_channel_path, send_release_token
from myisam_backup_lock.tables import select_myisam_tables

logger = structlog.get_logger()


def configure_logging(verbose: bool = False) -> None:
    """Configure structlog; JSON lines on stderr, console output with --verbose"""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if verbose else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )


def run_lock_session(
    config_path: str,
    socket_path: str,
    settings: LockerSettings,
) -> LockSessionSummary:
    """Lock every MyISAM table and hold the lock until released

    Args:
        config_path: MySQL client option file with the maintenance credentials
        socket_path: Path of the rendezvous socket
        settings: Runtime settings (poll interval, connect timeout)

    Returns:
        Summary of the finished session

    Raises:
        BackupLockError: Any failure; configuration errors are raised before
            the database is contacted
    """
    params = load_connection_parameters(config_path)
    connection = open_session(params, settings.connect_timeout)
    try:
        tables = select_myisam_tables(connection)
        holder = LockHolder(connection, socket_path, poll_interval=settings.poll_interval)
        return holder.hold(tables)
    finally:
        close_quietly(connection)


def list_tables(config_path: str, settings: LockerSettings) -> tuple[TableName, ...]:
    """Return the tables a lock session would cover, without locking"""
    params = load_connection_parameters(config_path)
    connection = open_session(params, settings.connect_timeout)
    try:
        return select_myisam_tables(connection)
    finally:
        close_quietly(connection)


def cmd_lock(args: argparse.Namespace, settings: LockerSettings) -> int:
    """Run the --lock-tables mode"""
    log = logger.bind(mode="lock", socket_path=args.unix_socket_path)
    try:
        summary = run_lock_session(args.mysql_config_path, args.unix_socket_path, settings)
    except BackupLockError as e:
        log.error("Lock session failed", error=str(e))
        return 1

    log.info(
        "Backup lock released",
        state=summary.state.value,
        table_count=len(summary.tables),
        held_seconds=summary.held_seconds,
        liveness_failures=summary.liveness_failures,
        ignored_payloads=summary.ignored_payloads,
        unlock_succeeded=summary.unlock_succeeded,
    )
    return 0


def cmd_unlock(args: argparse.Namespace, settings: LockerSettings) -> int:
    """Run the --unlock-tables mode"""
    log = logger.bind(mode="unlock", socket_path=args.unix_socket_path)
    try:
        attempt = send_release_token(
            args.unix_socket_path,
            attempts=settings.signal_attempts,
            interval=settings.signal_interval,
        )
    except BackupLockError as e:
        log.error("Unlock signal failed", error=str(e))
        return 1

    remove_channel_path(args.unix_socket_path)
    log.info("Unlock signal delivered", attempt=attempt)
    return 0


def cmd_list_tables(args: argparse.Namespace, settings: LockerSettings) -> int:
    """Run the --list-tables mode"""
    log = logger.bind(mode="list")
    try:
        tables = list_tables(args.mysql_config_path, settings)
    except BackupLockError as e:
        log.error("Table listing failed", error=str(e))
        return 1

    for table in tables:
        print(table.qualified)
    log.info("Tables listed", count=len(tables))
    return 0


def create_parser(settings: LockerSettings | None = None) -> argparse.ArgumentParser:
    """Create the CLI parser; defaults come from ``settings``"""
    settings = settings or LockerSettings()
    parser = argparse.ArgumentParser(
        prog="myisam-backup-lock",
        description="Hold a read lock on all MyISAM tables for the duration of a backup",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--lock-tables",
        action="store_true",
        help="issue lock to all MyISAM tables and wait for the unlock signal",
    )
    mode.add_argument(
        "--unlock-tables",
        action="store_true",
        help="signal a running locker to unlock all tables",
    )
    mode.add_argument(
        "--list-tables",
        action="store_true",
        help="print the tables a lock would cover and exit",
    )

    parser.add_argument(
        "--unix-socket-path",
        default=settings.socket_path,
        help=f"unix socket path to use for communication (default: {settings.socket_path})",
    )
    parser.add_argument(
        "--mysql-config-path",
        default=settings.mysql_config_path,
        help=f"path to MySQL configuration file (default: {settings.mysql_config_path})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable debug logging with console output",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser
