#!/usr/bin/env python3
"""myisam-backup-lock main entry point

Usage:
    myisam-backup-lock --lock-tables
    myisam-backup-lock --unlock-tables
    python -m myisam_backup_lock --list-tables --verbose
"""

from __future__ import annotations

import sys

import structlog

from myisam_backup_lock.cli import (
    cmd_list_tables,
    cmd_lock,
    cmd_unlock,
    configure_logging,
    create_parser,
)
from myisam_backup_lock.config import LockerSettings


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    settings = LockerSettings.from_env()
    parser = create_parser(settings)
    args = parser.parse_args(argv)

    if not (args.lock_tables or args.unlock_tables or args.list_tables):
        print(f"Use {parser.prog} -h to see all options")
        return 0

    configure_logging(args.verbose)
    try:
        if args.lock_tables:
            return cmd_lock(args, settings)
        elif args.unlock_tables:
            return cmd_unlock(args, settings)
        else:
            return cmd_list_tables(args, settings)
    except Exception as e:
        structlog.get_logger().exception("Unexpected error", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
