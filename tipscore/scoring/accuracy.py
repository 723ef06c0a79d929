"""Accuracy scorer with exponential recency decay.

A tip counts as a hit when it reached any target. Each tip is weighted by
``exp(-ln2 / half_life * days_since_closed)`` so a call closed one
half-life ago counts half as much as one closed today.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import numpy as np

from tipscore.config import settings
from tipscore.store.models import ResolvedTip


@dataclass(frozen=True)
class AccuracyResult:
    accuracy_score: float  # 0-100
    accuracy_rate: float  # raw hits / total
    weighted_accuracy_rate: float
    total_tips: int
    hit_count: int
    miss_count: int


def is_hit(tip: ResolvedTip) -> bool:
    return tip.status.is_target_hit


def recency_weights(
    tips: list[ResolvedTip],
    now: datetime,
    half_life_days: float,
) -> np.ndarray:
    """Decay weight per tip, by fractional days since close (never negative)."""
    ages = np.array(
        [max(0.0, (now - t.closed_at).total_seconds() / 86400) for t in tips],
        dtype=float,
    )
    return np.exp(-math.log(2) / half_life_days * ages)


def calculate_accuracy(
    tips: list[ResolvedTip],
    *,
    half_life_days: float | None = None,
    now: datetime | None = None,
) -> AccuracyResult:
    if not tips:
        return AccuracyResult(
            accuracy_score=0.0,
            accuracy_rate=0.0,
            weighted_accuracy_rate=0.0,
            total_tips=0,
            hit_count=0,
            miss_count=0,
        )

    now = now or datetime.now(timezone.utc)
    half_life = half_life_days or settings.recency_half_life_days

    hits = np.array([1.0 if is_hit(t) else 0.0 for t in tips])
    weights = recency_weights(tips, now, half_life)
    total = len(tips)
    hit_count = int(hits.sum())

    weight_sum = float(weights.sum())
    # 全件が極端に古いと重みが 0 に潰れる
    if weight_sum > 0:
        weighted_rate = float((hits * weights).sum() / weight_sum)
    else:
        weighted_rate = hit_count / total

    return AccuracyResult(
        accuracy_score=weighted_rate * 100,
        accuracy_rate=hit_count / total,
        weighted_accuracy_rate=weighted_rate,
        total_tips=total,
        hit_count=hit_count,
        miss_count=total - hit_count,
    )


def calculate_filtered_accuracy(
    tips: list[ResolvedTip],
    predicate: Callable[[ResolvedTip], bool],
) -> float | None:
    """Raw accuracy rate over the tips matching ``predicate``; None if none match."""
    subset = [t for t in tips if predicate(t)]
    if not subset:
        return None
    return sum(1 for t in subset if is_hit(t)) / len(subset)
