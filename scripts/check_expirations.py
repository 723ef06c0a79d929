#!/usr/bin/env python3
"""Expire outstanding tips past their expiry, without fetching quotes.

Tips close at the last stored price for their (symbol, exchange), or at
entry if that instrument was never priced. Meant to run hourly so tips
expiring outside market hours close on time.

Usage:
    python scripts/check_expirations.py
    python scripts/check_expirations.py --db-path data/tipscore.db
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

log = logging.getLogger(__name__)


def main() -> None:
    from tipscore.logging_config import setup_logging
    from tipscore.monitor.price_monitor import expire_overdue_tips
    from tipscore.store.db_path import resolve_db_path

    parser = argparse.ArgumentParser(description="Expire overdue tips")
    parser.add_argument("--db-path", type=str, default=None, help="SQLite DB path override")
    parser.add_argument("--structured-logs", action="store_true", help="JSON log lines")
    args = parser.parse_args()

    setup_logging("check_expirations", structured=args.structured_logs)

    summary = expire_overdue_tips(db_path=resolve_db_path(args.db_path))
    log.info(summary.format_summary())
    print(f"Expired: {summary.closed} | Flagged: {len(summary.flagged)} | Errors: {summary.errors}")

    if summary.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
