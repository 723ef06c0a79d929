"""Volume factor: log-scaled credit for track-record size."""

from __future__ import annotations

import math
from dataclasses import dataclass

from tipscore.config import settings


@dataclass(frozen=True)
class VolumeResult:
    volume_factor_score: float  # 0-100
    total_tips: int


def calculate_volume_factor(total_tips: int, max_expected_tips: int | None = None) -> VolumeResult:
    """log10(n) / log10(max_expected) * 100, clamped; n <= 0 scores 0.

    A single tip scores 0 (log10(1) == 0); max_expected tips or more score 100.
    """
    if total_tips <= 0:
        return VolumeResult(volume_factor_score=0.0, total_tips=max(total_tips, 0))
    cap = max_expected_tips or settings.max_expected_tips
    score = math.log10(total_tips) / math.log10(cap) * 100
    return VolumeResult(
        volume_factor_score=max(0.0, min(100.0, score)),
        total_tips=total_tips,
    )
