"""Recompute and persist creator scores from the tip store."""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from tipscore.config import settings
from tipscore.monitor.resolution import validate_levels
from tipscore.scoring.composite import CompositeScore, calculate_composite_score
from tipscore.store.db import (
    flag_tip,
    list_resolved_tips,
    list_scored_creator_ids,
    write_creator_score,
)

logger = logging.getLogger(__name__)


@dataclass
class RecomputeSummary:
    """Summary of a recompute run."""

    scores: dict[str, CompositeScore] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    errors: int = 0

    def format_summary(self) -> str:
        if not self.scores:
            return f"Score recompute: no creators scored (errors {self.errors})."
        lines = [
            "Score Recompute Summary",
            f"Scored: {len(self.scores)} | Skipped: {len(self.skipped)} | Errors: {self.errors}",
        ]
        for creator_id, s in sorted(self.scores.items(), key=lambda kv: -kv[1].rmt_score):
            flag = " (provisional)" if s.is_provisional else ""
            lines.append(
                f"  {creator_id}: RMT {s.rmt_score:.1f} {s.tier} "
                f"n={s.total_scored_tips} acc={s.accuracy_rate:.1%}{flag}"
            )
        return "\n".join(lines)


def recompute_creator_score(
    creator_id: str,
    *,
    db_path: Path | str | None = None,
    now: datetime | None = None,
    commit: bool = True,
) -> CompositeScore | None:
    """Score one creator from their resolved tips.

    Malformed tips are flagged and left out. Returns None if nothing is left
    to score; otherwise the score, written (live row + snapshot) when
    ``commit`` is set.
    """
    now = now or datetime.now(timezone.utc)
    tips = []
    for tip in list_resolved_tips(creator_id, db_path=db_path):
        reason = validate_levels(tip)
        if reason is None:
            tips.append(tip)
            continue
        logger.warning("Excluding tip %d of %s from scoring: %s", tip.id, creator_id, reason)
        try:
            flag_tip(tip.id, reason, db_path=db_path)
        except sqlite3.Error:
            logger.exception("Failed to flag tip %d", tip.id)

    if not tips:
        logger.info("No resolved tips for %s, score unchanged", creator_id)
        return None

    score = calculate_composite_score(tips, now=now)
    if commit:
        write_creator_score(creator_id, score, calculated_at=now, db_path=db_path)
        logger.info(
            "Scored %s: RMT %.2f %s (n=%d)",
            creator_id, score.rmt_score, score.tier, score.total_scored_tips,
        )
    return score


def recompute_all_scores(
    *,
    db_path: Path | str | None = None,
    now: datetime | None = None,
    max_workers: int | None = None,
    commit: bool = True,
) -> RecomputeSummary:
    """Recompute every creator with resolved tips, in parallel across creators."""
    now = now or datetime.now(timezone.utc)
    summary = RecomputeSummary()
    creator_ids = list_scored_creator_ids(db_path)
    if not creator_ids:
        logger.info("No creators with resolved tips")
        return summary

    workers = max(1, min(max_workers or settings.score_max_workers, len(creator_ids)))
    logger.info("Recomputing %d creators (%d workers)", len(creator_ids), workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(
                recompute_creator_score, cid, db_path=db_path, now=now, commit=commit,
            ): cid
            for cid in creator_ids
        }
        for fut in as_completed(futures):
            cid = futures[fut]
            try:
                score = fut.result()
            except Exception:
                logger.exception("Score recompute failed for %s", cid)
                summary.errors += 1
                continue
            if score is None:
                summary.skipped.append(cid)
            else:
                summary.scores[cid] = score

    summary.skipped.sort()
    return summary
