"""
Purge Request Logs
==================

Deletes gateway request-log entries older than the retention window
(MEETGATE_LOG_RETENTION_DAYS, default 30).

Usage:
    python -m app.scripts.purge_request_logs [--days N]
"""

import argparse
import sys
from typing import List, Optional

from app.config import settings
from app.core.database import get_engine, init_db
from app.services.request_logger import RequestLogger


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Delete old gateway request-log entries")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.log_retention_days,
        help=f"Keep entries newer than this many days (default {settings.log_retention_days})",
    )
    args = parser.parse_args(argv)

    if args.days < 0:
        print("--days must be >= 0", file=sys.stderr)
        return 2

    engine = get_engine()
    init_db(engine)
    removed = RequestLogger(engine=engine).purge_older_than(args.days)
    print(f"Removed {removed} request log entr{'y' if removed == 1 else 'ies'} older than {args.days} days.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
