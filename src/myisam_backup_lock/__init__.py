"""myisam-backup-lock

Holds a read lock on every MyISAM table of the local MySQL server while an
external backup runs, and releases it when the backup signals completion
over a Unix socket.

Usage:
    myisam-backup-lock --lock-tables &
    # ... run the backup ...
    myisam-backup-lock --unlock-tables
"""

from myisam_backup_lock.holder import LockHolder
from myisam_backup_lock.models import ConnectionParameters, LockSessionSummary, LockState, TableName
from myisam_backup_lock.rendezvous import RELEASE_TOKEN, send_release_token

__all__ = [
    "RELEASE_TOKEN",
    "ConnectionParameters",
    "LockHolder",
    "LockSessionSummary",
    "LockState",
    "TableName",
    "send_release_token",
]
__version__ = "0.1.0"
