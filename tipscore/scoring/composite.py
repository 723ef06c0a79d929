"""Composite RMT score.

Combines the four component scores with the configured weights
(0.40 accuracy, 0.30 risk-adjusted, 0.20 consistency, 0.10 volume by
default), adds a confidence interval on the accuracy rate and derives the
tier from the final score.

Usage:
    from tipscore.scoring.composite import calculate_composite_score
    score = calculate_composite_score(resolved_tips)
    if score.is_provisional:
        ...  # fewer than min_tips_for_rating tips; callers decide how to show it
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from scipy.stats import norm

from tipscore.config import settings
from tipscore.scoring.accuracy import AccuracyResult, calculate_accuracy, calculate_filtered_accuracy
from tipscore.scoring.consistency import ConsistencyResult, calculate_consistency
from tipscore.scoring.risk_adjusted import RiskAdjustedResult, calculate_risk_adjusted
from tipscore.scoring.volume import VolumeResult, calculate_volume_factor
from tipscore.store.models import CreatorTier, ResolvedTip, Timeframe

logger = logging.getLogger(__name__)

_TIERS_ABOVE_UNRATED = (
    CreatorTier.BRONZE,
    CreatorTier.SILVER,
    CreatorTier.GOLD,
    CreatorTier.PLATINUM,
    CreatorTier.DIAMOND,
)


@dataclass(frozen=True)
class TimeframeAccuracy:
    intraday: float | None = None
    swing: float | None = None
    positional: float | None = None
    long_term: float | None = None


@dataclass(frozen=True)
class CompositeScore:
    rmt_score: float
    accuracy_score: float
    risk_adjusted_score: float
    consistency_score: float
    volume_factor_score: float
    confidence_interval: float
    accuracy_rate: float
    weighted_accuracy_rate: float
    avg_return_pct: float
    avg_risk_reward_ratio: float
    best_tip_return_pct: float | None
    worst_tip_return_pct: float | None
    win_streak: int
    loss_streak: int
    tier: CreatorTier
    total_scored_tips: int
    is_provisional: bool
    timeframe_accuracy: TimeframeAccuracy = field(default_factory=TimeframeAccuracy)
    score_period_start: datetime | None = None
    score_period_end: datetime | None = None


@dataclass(frozen=True)
class ComponentScores:
    """Raw component results, for reporting and debugging."""

    accuracy: AccuracyResult
    risk_adjusted: RiskAdjustedResult
    consistency: ConsistencyResult
    volume: VolumeResult


def determine_tier(rmt_score: float, thresholds: list[float] | None = None) -> CreatorTier:
    """Map a score to its tier; thresholds are inclusive lower bounds."""
    bounds = thresholds or settings.tier_thresholds()
    idx = bisect.bisect_right(bounds, rmt_score)
    if idx == 0:
        return CreatorTier.UNRATED
    return _TIERS_ABOVE_UNRATED[idx - 1]


def z_score(confidence_level: float | None = None) -> float:
    level = confidence_level or settings.confidence_level
    return float(norm.ppf(0.5 + level / 2))


def calculate_confidence_interval(
    accuracy_rate: float,
    sample_size: int,
    confidence_level: float | None = None,
) -> float:
    """Width (in score points) of the normal-approximation interval on the rate."""
    if sample_size <= 0:
        return 0.0
    p = max(0.0, min(1.0, accuracy_rate))
    return z_score(confidence_level) * math.sqrt(p * (1 - p) / sample_size) * 100


def calculate_timeframe_accuracy(tips: list[ResolvedTip]) -> TimeframeAccuracy:
    def _for(tf: Timeframe) -> float | None:
        return calculate_filtered_accuracy(tips, lambda t: t.timeframe == tf)

    return TimeframeAccuracy(
        intraday=_for(Timeframe.INTRADAY),
        swing=_for(Timeframe.SWING),
        positional=_for(Timeframe.POSITIONAL),
        long_term=_for(Timeframe.LONG_TERM),
    )


def calculate_components(
    tips: list[ResolvedTip],
    *,
    half_life_days: float | None = None,
    now: datetime | None = None,
) -> ComponentScores:
    return ComponentScores(
        accuracy=calculate_accuracy(tips, half_life_days=half_life_days, now=now),
        risk_adjusted=calculate_risk_adjusted(tips),
        consistency=calculate_consistency(tips),
        volume=calculate_volume_factor(len(tips)),
    )


def combine(components: ComponentScores) -> float:
    rmt = (
        settings.weight_accuracy * components.accuracy.accuracy_score
        + settings.weight_risk_adjusted * components.risk_adjusted.risk_adjusted_score
        + settings.weight_consistency * components.consistency.consistency_score
        + settings.weight_volume_factor * components.volume.volume_factor_score
    )
    return max(0.0, min(100.0, rmt))


def calculate_composite_score(
    tips: list[ResolvedTip],
    *,
    half_life_days: float | None = None,
    now: datetime | None = None,
) -> CompositeScore:
    """Score a creator's resolved tips. Empty input gives an all-zero UNRATED score."""
    now = now or datetime.now(timezone.utc)
    components = calculate_components(tips, half_life_days=half_life_days, now=now)
    acc = components.accuracy
    ra = components.risk_adjusted
    cons = components.consistency

    rmt = combine(components)
    total = len(tips)

    score = CompositeScore(
        rmt_score=rmt,
        accuracy_score=acc.accuracy_score,
        risk_adjusted_score=ra.risk_adjusted_score,
        consistency_score=cons.consistency_score,
        volume_factor_score=components.volume.volume_factor_score,
        confidence_interval=calculate_confidence_interval(acc.accuracy_rate, total),
        accuracy_rate=acc.accuracy_rate,
        weighted_accuracy_rate=acc.weighted_accuracy_rate,
        avg_return_pct=ra.avg_return_pct,
        avg_risk_reward_ratio=ra.avg_risk_reward_ratio,
        best_tip_return_pct=ra.best_tip_return_pct,
        worst_tip_return_pct=ra.worst_tip_return_pct,
        win_streak=cons.win_streak,
        loss_streak=cons.loss_streak,
        tier=determine_tier(rmt),
        total_scored_tips=total,
        is_provisional=total < settings.min_tips_for_rating,
        timeframe_accuracy=calculate_timeframe_accuracy(tips),
        score_period_start=min((t.tip_timestamp for t in tips), default=None),
        score_period_end=max((t.closed_at for t in tips), default=None),
    )
    logger.debug(
        "RMT %.2f (A=%.1f R=%.1f C=%.1f V=%.1f) n=%d tier=%s",
        rmt,
        score.accuracy_score,
        score.risk_adjusted_score,
        score.consistency_score,
        score.volume_factor_score,
        total,
        score.tier,
    )
    return score
