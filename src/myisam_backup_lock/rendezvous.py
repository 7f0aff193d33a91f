"""Rendezvous channel between the lock holder and the backup agent

The lock holder binds a Unix stream socket and waits for the release token;
the unlock signaler, run as a separate process, connects and writes it.
"""

from __future__ import annotations

import errno
import os
import socket
import time

import structlog

from myisam_backup_lock.exceptions import ChannelError, SignalError, StaleChannelError

logger = structlog.get_logger()

RELEASE_TOKEN = "UNLOCK_MYISAM_TABLES"
RECEIVE_BUFFER_SIZE = 1024

DEFAULT_SIGNAL_ATTEMPTS = 10
DEFAULT_SIGNAL_INTERVAL = 0.05


def is_release_token(payload: str) -> bool:
    """True if ``payload`` is the release token, ignoring surrounding whitespace"""
    return payload.strip() == RELEASE_TOKEN


def remove_channel_path(socket_path: str) -> bool:
    """Remove the socket file, best-effort

    Returns:
        True if this call removed the file
    """
    try:
        os.unlink(socket_path)
    except FileNotFoundError:
        logger.debug("Socket path already removed", socket_path=socket_path)
        return False
    except OSError as e:
        logger.warning("Failed to remove socket path", socket_path=socket_path, error=str(e))
        return False
    return True


class RendezvousListener:
    """Listening end of the rendezvous channel

    Use :meth:`bind` to create one. The socket file is removed by
    :meth:`close`, which is safe to call more than once.
    """

    def __init__(self, sock: socket.socket, socket_path: str) -> None:
        self._sock = sock
        self.socket_path = socket_path
        self._closed = False

    @classmethod
    def bind(cls, socket_path: str) -> RendezvousListener:
        """Bind and listen at ``socket_path``

        Raises:
            StaleChannelError: Something already exists at the path
            ChannelError: The socket cannot be bound or put in listening mode
        """
        if os.path.lexists(socket_path):
            raise StaleChannelError(socket_path)

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(socket_path)
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                raise StaleChannelError(socket_path) from e
            raise ChannelError(socket_path, f"bind failed: {e}") from e

        listener = cls(sock, socket_path)
        try:
            sock.listen(1)
        except OSError as e:
            listener.close()
            raise ChannelError(socket_path, f"listen failed: {e}") from e

        logger.info("Rendezvous channel listening", socket_path=socket_path)
        return listener

    def receive(self, timeout: float | None = None) -> str | None:
        """Accept one connection and read one message from it

        Args:
            timeout: Seconds to wait for a client; ``None`` waits forever

        Returns:
            The decoded message, or None if no client connected in time

        Raises:
            ChannelError: Accepting or reading failed, or the listener is closed
        """
        if self._closed:
            raise ChannelError(self.socket_path, "listener is closed")

        self._sock.settimeout(timeout)
        try:
            conn, _ = self._sock.accept()
        except socket.timeout:
            return None
        except OSError as e:
            raise ChannelError(self.socket_path, f"accept failed: {e}") from e

        with conn:
            conn.setblocking(True)
            try:
                data = conn.recv(RECEIVE_BUFFER_SIZE)
            except OSError as e:
                raise ChannelError(self.socket_path, f"read failed: {e}") from e

        return data.decode("utf-8", errors="replace")

    def close(self) -> None:
        """Close the socket and remove its path, logging failures"""
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Failed to close rendezvous socket", socket_path=self.socket_path, error=str(e))
        if remove_channel_path(self.socket_path):
            logger.debug("Socket path removed", socket_path=self.socket_path)

    def __enter__(self) -> RendezvousListener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def send_release_token(
    socket_path: str,
    attempts: int = DEFAULT_SIGNAL_ATTEMPTS,
    interval: float = DEFAULT_SIGNAL_INTERVAL,
) -> int:
    """Write the release token to the lock holder's socket

    The lock holder may not be listening yet when this runs, so connecting is
    retried up to ``attempts`` times, ``interval`` seconds apart. Whether the
    holder acted on the token is not confirmed.

    Args:
        socket_path: Path the lock holder listens on
        attempts: Maximum number of connection attempts
        interval: Seconds between attempts

    Returns:
        The attempt number that delivered the token (1-based)

    Raises:
        SignalError: No attempt connected, or the write failed once connected
    """
    log = logger.bind(socket_path=socket_path)
    payload = f"{RELEASE_TOKEN}\n".encode()
    last_error: OSError | None = None

    for attempt in range(1, attempts + 1):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(socket_path)
        except OSError as e:
            sock.close()
            last_error = e
            log.debug("Connect attempt failed", attempt=attempt, error=str(e))
            if attempt < attempts:
                time.sleep(interval)
            continue

        with sock:
            try:
                sock.sendall(payload)
            except OSError as e:
                log.error("Release token write failed", attempt=attempt, error=str(e))
                raise SignalError(socket_path, f"write failed: {e}") from e

        log.info("Release token sent", attempt=attempt)
        return attempt

    raise SignalError(socket_path, f"could not connect after {attempts} attempts: {last_error}")
