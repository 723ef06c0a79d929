"""Consistency scorer.

Rewards a steady hit/miss sequence over a volatile one. Outcomes are read
in closing order; a flip is any change from hit to miss or back.

    score = 100 * (0.8 * (1 - flips / (n - 1)) + 0.2 * min(longest_win / 10, 1))

Fewer than two tips, or no hits at all, scores 0.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from tipscore.config import settings
from tipscore.scoring.accuracy import is_hit
from tipscore.store.models import ResolvedTip

STABILITY_WEIGHT = 0.8
STREAK_WEIGHT = 0.2


@dataclass(frozen=True)
class MonthlyAccuracy:
    month: str  # YYYY-MM
    total: int
    hits: int

    @property
    def accuracy(self) -> float:
        return self.hits / self.total if self.total else 0.0


@dataclass(frozen=True)
class ConsistencyResult:
    consistency_score: float  # 0-100
    swing_rate: float
    longest_win_streak: int
    longest_loss_streak: int
    win_streak: int  # current, from the most recent close backwards
    loss_streak: int
    monthly: tuple[MonthlyAccuracy, ...] = ()
    monthly_cv: float = 0.0


def _ordered(tips: list[ResolvedTip]) -> list[ResolvedTip]:
    return sorted(tips, key=lambda t: (t.closed_at, t.id))


def longest_streaks(outcomes: list[bool]) -> tuple[int, int]:
    """(longest win streak, longest loss streak)."""
    best_win = best_loss = run = 0
    prev: bool | None = None
    for hit in outcomes:
        run = run + 1 if hit == prev else 1
        prev = hit
        if hit:
            best_win = max(best_win, run)
        else:
            best_loss = max(best_loss, run)
    return best_win, best_loss


def current_streaks(outcomes: list[bool]) -> tuple[int, int]:
    """(win, loss) streak ending at the latest outcome; one of them is 0."""
    if not outcomes:
        return 0, 0
    last = outcomes[-1]
    run = 0
    for hit in reversed(outcomes):
        if hit != last:
            break
        run += 1
    return (run, 0) if last else (0, run)


def monthly_breakdown(tips: list[ResolvedTip]) -> tuple[MonthlyAccuracy, ...]:
    buckets: dict[str, list[int]] = {}
    for t in _ordered(tips):
        key = t.closed_at.strftime("%Y-%m")
        bucket = buckets.setdefault(key, [0, 0])
        bucket[0] += 1
        bucket[1] += int(is_hit(t))
    return tuple(
        MonthlyAccuracy(month=m, total=total, hits=hits)
        for m, (total, hits) in sorted(buckets.items())
    )


def coefficient_of_variation(values: list[float]) -> float:
    """Population CV; 0 for fewer than two values or a zero mean."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    return float(arr.std()) / mean


def calculate_consistency(tips: list[ResolvedTip]) -> ConsistencyResult:
    outcomes = [is_hit(t) for t in _ordered(tips)]
    win_streak, loss_streak = current_streaks(outcomes)
    longest_win, longest_loss = longest_streaks(outcomes)
    monthly = monthly_breakdown(tips)
    monthly_cv = coefficient_of_variation([m.accuracy for m in monthly])

    n = len(outcomes)
    if n < 2 or not any(outcomes):
        return ConsistencyResult(
            consistency_score=0.0,
            swing_rate=0.0,
            longest_win_streak=longest_win,
            longest_loss_streak=longest_loss,
            win_streak=win_streak,
            loss_streak=loss_streak,
            monthly=monthly,
            monthly_cv=monthly_cv,
        )

    flips = sum(1 for a, b in zip(outcomes, outcomes[1:]) if a != b)
    swing_rate = flips / (n - 1)
    streak_part = min(longest_win / settings.consistency_streak_target, 1.0)
    score = 100 * (STABILITY_WEIGHT * (1 - swing_rate) + STREAK_WEIGHT * streak_part)

    return ConsistencyResult(
        consistency_score=max(0.0, min(100.0, score)),
        swing_rate=swing_rate,
        longest_win_streak=longest_win,
        longest_loss_streak=longest_loss,
        win_streak=win_streak,
        loss_streak=loss_streak,
        monthly=monthly,
        monthly_cv=monthly_cv,
    )
