"""Lock holder

Takes one read lock over every selected table, then waits on the rendezvous
channel until the backup agent sends the release token. However the wait
ends, the unlock statement is issued and the socket path removed, in that
order, before :meth:`LockHolder.hold` returns or raises.
"""

from __future__ import annotations

import os
import time
from collections.abc import Sequence

import pymysql
import structlog
from pymysql.connections import Connection

from myisam_backup_lock.database import is_alive
from myisam_backup_lock.exceptions import (
    ChannelError,
    LockPreconditionError,
    QueryError,
    StaleChannelError,
)
from myisam_backup_lock.models import LockSessionSummary, LockState, TableName
from myisam_backup_lock.rendezvous import RendezvousListener, is_release_token

logger = structlog.get_logger()

UNLOCK_STATEMENT = "UNLOCK TABLES"
DEFAULT_POLL_INTERVAL = 0.1


def build_lock_statement(tables: Sequence[TableName]) -> str:
    """One statement locking every table together

    The server takes all the locks or none; a partial lock never happens.
    """
    return f"FLUSH TABLES {', '.join(t.quoted for t in tables)} WITH READ LOCK"


def release_lock(connection: Connection) -> bool:
    """Issue ``UNLOCK TABLES``, logging instead of raising on failure

    Returns:
        True if the server accepted the statement
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute(UNLOCK_STATEMENT)
    except (pymysql.MySQLError, OSError) as e:
        logger.error("Unlock statement failed", error=str(e))
        return False
    logger.info("Tables unlocked")
    return True


class LockGuard:
    """Releases a held lock and its rendezvous channel on exit

    Entered right after the lock statement succeeds. On every exit path it
    issues the unlock statement first and closes the attached listener
    second; neither step raises.
    """

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self.listener: RendezvousListener | None = None
        self.unlock_succeeded = False

    def attach(self, listener: RendezvousListener) -> RendezvousListener:
        self.listener = listener
        return listener

    def __enter__(self) -> LockGuard:
        return self

    def __exit__(self, *exc_info: object) -> None:
        try:
            self.unlock_succeeded = release_lock(self._connection)
        finally:
            if self.listener is not None:
                self.listener.close()


class LockHolder:
    """Holds the backup lock for one session

    Args:
        connection: Open MySQL session; the lock lives and dies with it
        socket_path: Where the rendezvous channel is bound
        poll_interval: Seconds between liveness pings while waiting
    """

    def __init__(
        self,
        connection: Connection,
        socket_path: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._connection = connection
        self.socket_path = socket_path
        self.poll_interval = poll_interval
        self.state = LockState.IDLE
        self.summary = LockSessionSummary()
        self._log = logger.bind(socket_path=socket_path)

    def _transition(self, state: LockState) -> None:
        self._log.debug("Lock state changed", previous=self.state.value, state=state.value)
        self.state = state
        self.summary.state = state

    def hold(self, tables: Sequence[TableName]) -> LockSessionSummary:
        """Lock ``tables`` and block until the release token arrives

        Args:
            tables: Tables to lock, as returned by the table selector

        Returns:
            Summary of the finished session

        Raises:
            LockPreconditionError: ``tables`` is empty
            StaleChannelError: The socket path already exists; nothing was locked
            QueryError: The lock statement failed; nothing was locked
            ChannelError: The channel failed after locking; the lock has been released
        """
        if self.state is not LockState.IDLE:
            raise RuntimeError(f"lock holder already used (state: {self.state.value})")

        tables = tuple(tables)
        self.summary.tables = [t.qualified for t in tables]
        log = self._log.bind(table_count=len(tables))

        if not tables:
            self._transition(LockState.LOCK_FAILED)
            raise LockPreconditionError("no MyISAM tables found; refusing to take an empty lock")
        if os.path.lexists(self.socket_path):
            self._transition(LockState.LOCK_FAILED)
            raise StaleChannelError(self.socket_path)

        statement = build_lock_statement(tables)
        log.info("Locking tables")
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(statement)
        except (pymysql.MySQLError, OSError) as e:
            self._transition(LockState.LOCK_FAILED)
            log.error("Lock statement failed", error=str(e))
            raise QueryError("lock_tables", str(e)) from e

        self._transition(LockState.LOCKED)
        locked_at = time.monotonic()

        guard = LockGuard(self._connection)
        try:
            with guard:
                try:
                    listener = guard.attach(RendezvousListener.bind(self.socket_path))
                    self._transition(LockState.WAITING_FOR_RELEASE)
                    log.info("Tables locked, waiting for release token")
                    self._wait_for_release(listener)
                except ChannelError as e:
                    log.error("Rendezvous channel failed, releasing lock", error=str(e))
                    self._transition(LockState.FORCED_UNLOCK)
                    raise
                except BaseException:
                    self._transition(LockState.FORCED_UNLOCK)
                    raise
            self._transition(LockState.UNLOCKED)
        finally:
            self.summary.held_seconds = round(time.monotonic() - locked_at, 3)
            self.summary.unlock_succeeded = guard.unlock_succeeded

        log.info(
            "Lock session finished",
            held_seconds=self.summary.held_seconds,
            liveness_checks=self.summary.liveness_checks,
        )
        return self.summary

    def _wait_for_release(self, listener: RendezvousListener) -> None:
        alive = True
        while True:
            self.summary.liveness_checks += 1
            if is_alive(self._connection):
                alive = True
            else:
                self.summary.liveness_failures += 1
                if alive:
                    # The lock is most likely gone with the session; keep waiting
                    # so the backup agent still gets a listener to talk to.
                    self._log.warning("MySQL session lost while holding the lock")
                alive = False

            payload = listener.receive(timeout=self.poll_interval)
            if payload is None:
                continue
            if is_release_token(payload):
                self._log.info("Release token received")
                return

            self.summary.ignored_payloads += 1
            self._log.warning("Ignoring unexpected message on rendezvous channel", payload=payload[:64])
