#!/usr/bin/env python3
"""Recompute creator RMT scores from resolved tips.

Usage:
    # Every creator with resolved tips
    python scripts/recalculate_scores.py --all

    # One creator
    python scripts/recalculate_scores.py --creator ch_123

    # Compute and print without writing scores or snapshots
    python scripts/recalculate_scores.py --all --dry-run
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

log = logging.getLogger(__name__)


def _print_score(creator_id: str, score) -> None:
    tf = score.timeframe_accuracy
    print(f"\n{creator_id}")
    print(f"  RMT: {score.rmt_score:.2f} ({score.tier})" + (" [provisional]" if score.is_provisional else ""))
    print(
        f"  Accuracy {score.accuracy_score:.1f} | Risk-adj {score.risk_adjusted_score:.1f} "
        f"| Consistency {score.consistency_score:.1f} | Volume {score.volume_factor_score:.1f}"
    )
    print(
        f"  Tips: {score.total_scored_tips} | Hit rate: {score.accuracy_rate:.1%} "
        f"± {score.confidence_interval:.1f} | Avg RR: {score.avg_risk_reward_ratio:.2f}"
    )
    for name in ("intraday", "swing", "positional", "long_term"):
        value = getattr(tf, name)
        if value is not None:
            print(f"    {name}: {value:.1%}")


def main() -> None:
    from tipscore.logging_config import setup_logging
    from tipscore.scoring.recompute import recompute_all_scores, recompute_creator_score
    from tipscore.store.db_path import resolve_db_path

    parser = argparse.ArgumentParser(description="Recompute creator scores")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--creator", type=str, help="Creator ID to recompute")
    group.add_argument("--all", action="store_true", help="Recompute every creator")
    parser.add_argument("--dry-run", action="store_true", help="Do not write scores")
    parser.add_argument("--db-path", type=str, default=None, help="SQLite DB path override")
    parser.add_argument("--structured-logs", action="store_true", help="JSON log lines")
    args = parser.parse_args()

    setup_logging("recalculate_scores", structured=args.structured_logs)

    db_path = resolve_db_path(args.db_path)
    commit = not args.dry_run

    if args.creator:
        score = recompute_creator_score(args.creator, db_path=db_path, commit=commit)
        if score is None:
            print(f"No resolved tips for {args.creator}")
            return
        _print_score(args.creator, score)
        return

    summary = recompute_all_scores(db_path=db_path, commit=commit)
    for creator_id, score in sorted(summary.scores.items()):
        _print_score(creator_id, score)
    print(f"\n{summary.format_summary().splitlines()[0]}")
    if args.dry_run:
        print("(dry-run: nothing written)")
    if summary.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
