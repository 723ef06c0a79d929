"""Risk-adjusted return scorer.

Per-tip return is measured at the price the call was actually good for:
the stop for a stopped tip, an equal-weight blend of the reached targets
for a multi-target tip, the close otherwise. The score maps the average
risk-reward ratio from [floor, ceiling] onto 0-100.
"""

from __future__ import annotations

from dataclasses import dataclass

from tipscore.config import settings
from tipscore.monitor.resolution import calculate_return_pct
from tipscore.store.models import ResolvedTip, TipStatus

# Share of the position closed at each reached target, by number of defined targets
_BLEND_WEIGHTS: dict[int, tuple[float, ...]] = {
    2: (0.5, 0.5),
    3: (0.33, 0.33, 0.34),
}

# Targets reached for an intermediate terminal status
_REACHED = {
    TipStatus.TARGET_1_HIT: 1,
    TipStatus.TARGET_2_HIT: 2,
    TipStatus.TARGET_3_HIT: 3,
}


@dataclass(frozen=True)
class TipReturnDetail:
    tip_id: int
    return_pct: float
    risk_pct: float
    risk_reward_ratio: float


@dataclass(frozen=True)
class RiskAdjustedResult:
    risk_adjusted_score: float  # 0-100
    avg_return_pct: float
    avg_risk_reward_ratio: float
    best_tip_return_pct: float | None
    worst_tip_return_pct: float | None
    tip_details: tuple[TipReturnDetail, ...] = ()


def _blended_target_return(tip: ResolvedTip) -> float:
    targets = tip.targets
    if len(targets) == 1:
        price = tip.closed_price if tip.closed_price is not None else tip.target1
        return calculate_return_pct(tip.direction, tip.entry_price, price)

    reached = targets[: _REACHED.get(tip.status, len(targets))]
    if len(reached) == 1:
        return calculate_return_pct(tip.direction, tip.entry_price, reached[0])
    return sum(
        w * calculate_return_pct(tip.direction, tip.entry_price, target)
        for w, target in zip(_BLEND_WEIGHTS[len(reached)], reached)
    )


def calculate_tip_return(tip: ResolvedTip) -> float:
    """Directional return for one resolved tip, in percent."""
    if tip.status == TipStatus.STOPLOSS_HIT:
        return calculate_return_pct(tip.direction, tip.entry_price, tip.stop_loss)
    if tip.status.is_target_hit:
        return _blended_target_return(tip)
    price = tip.closed_price if tip.closed_price is not None else tip.entry_price
    return calculate_return_pct(tip.direction, tip.entry_price, price)


def calculate_tip_detail(tip: ResolvedTip) -> TipReturnDetail:
    return_pct = calculate_tip_return(tip)
    risk_pct = abs(tip.entry_price - tip.stop_loss) / tip.entry_price * 100
    if tip.status == TipStatus.STOPLOSS_HIT:
        rr = -1.0
    elif risk_pct == 0:
        rr = 0.0
    else:
        rr = return_pct / risk_pct
    return TipReturnDetail(
        tip_id=tip.id,
        return_pct=return_pct,
        risk_pct=risk_pct,
        risk_reward_ratio=rr,
    )


def normalize_risk_reward(
    avg_rr: float,
    floor: float | None = None,
    ceiling: float | None = None,
) -> float:
    floor = settings.risk_adjusted_floor if floor is None else floor
    ceiling = settings.risk_adjusted_ceiling if ceiling is None else ceiling
    normalized = (avg_rr - floor) / (ceiling - floor)
    return max(0.0, min(1.0, normalized)) * 100


def calculate_risk_adjusted(tips: list[ResolvedTip]) -> RiskAdjustedResult:
    if not tips:
        return RiskAdjustedResult(
            risk_adjusted_score=0.0,
            avg_return_pct=0.0,
            avg_risk_reward_ratio=0.0,
            best_tip_return_pct=None,
            worst_tip_return_pct=None,
        )

    details = tuple(calculate_tip_detail(t) for t in tips)
    returns = [d.return_pct for d in details]
    avg_return = sum(returns) / len(returns)
    avg_rr = sum(d.risk_reward_ratio for d in details) / len(details)

    return RiskAdjustedResult(
        risk_adjusted_score=normalize_risk_reward(avg_rr),
        avg_return_pct=avg_return,
        avg_risk_reward_ratio=avg_rr,
        best_tip_return_pct=max(returns),
        worst_tip_return_pct=min(returns),
        tip_details=details,
    )
