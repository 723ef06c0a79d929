#!/usr/bin/env python3
"""Price monitor tick: fetch quotes for outstanding tips and advance their status.

Usage:
    # One tick against the default DB
    python scripts/update_prices.py

    # Tick, then recompute scores for every creator
    python scripts/update_prices.py --score

    # Structured (JSON) logs to data/logs/
    python scripts/update_prices.py --structured-logs
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

log = logging.getLogger(__name__)


def main() -> None:
    from tipscore.logging_config import setup_logging
    from tipscore.monitor.price_monitor import check_outstanding_tips
    from tipscore.scoring.recompute import recompute_all_scores
    from tipscore.store.db_path import resolve_db_path

    parser = argparse.ArgumentParser(description="Check outstanding tips against live prices")
    parser.add_argument("--db-path", type=str, default=None, help="SQLite DB path override")
    parser.add_argument(
        "--score",
        action="store_true",
        help="Recompute creator scores after the tick",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent price lookups (default: settings.monitor_max_workers)",
    )
    parser.add_argument("--structured-logs", action="store_true", help="JSON log lines")
    args = parser.parse_args()

    run_id = setup_logging("update_prices", structured=args.structured_logs)
    db_path = resolve_db_path(args.db_path)
    log.info("Price tick db=%s", db_path)

    summary = check_outstanding_tips(db_path=db_path, max_workers=args.workers)
    log.info(summary.format_summary())

    if args.score and summary.closed:
        score_summary = recompute_all_scores(db_path=db_path)
        log.info(score_summary.format_summary())

    # Heartbeat (cron 死活監視用)
    heartbeat = Path(__file__).resolve().parent.parent / "data" / "heartbeat"
    heartbeat.parent.mkdir(parents=True, exist_ok=True)
    heartbeat.write_text(datetime.now(timezone.utc).isoformat() + "\n")

    print(f"\n{'=' * 50}")
    print(f"  Price tick [{run_id}]")
    print(f"  Checked: {summary.checked} | Transitions: {len(summary.transitions)}")
    print(f"  Closed: {summary.closed} | No price: {len(summary.skipped_symbols)}")
    print(f"  Flagged: {len(summary.flagged)} | Errors: {summary.errors}")
    print(f"{'=' * 50}")

    if summary.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
