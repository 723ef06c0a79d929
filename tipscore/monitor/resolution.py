"""Tip resolution state machine.

Evaluates one tip against a current price and decides whether its status
advances. Pure functions only: nothing here touches the store.

Status graph::

    ACTIVE -> TARGET_1_HIT -> TARGET_2_HIT -> TARGET_3_HIT -> ALL_TARGETS_HIT
       |            |               |               |
       +------------+---------------+---------------+--> STOPLOSS_HIT | EXPIRED

The last *defined* target always resolves to ALL_TARGETS_HIT, so a
single-target tip goes straight from ACTIVE to ALL_TARGETS_HIT.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from tipscore.store.models import Direction, ResolvedTip, Tip, TipStatus, Transition

logger = logging.getLogger(__name__)

_TERMINAL_EXITS = frozenset({TipStatus.STOPLOSS_HIT, TipStatus.EXPIRED})

ALLOWED_TRANSITIONS: dict[TipStatus, frozenset[TipStatus]] = {
    TipStatus.ACTIVE: frozenset({TipStatus.TARGET_1_HIT, TipStatus.ALL_TARGETS_HIT}) | _TERMINAL_EXITS,
    TipStatus.TARGET_1_HIT: frozenset({TipStatus.TARGET_2_HIT, TipStatus.ALL_TARGETS_HIT}) | _TERMINAL_EXITS,
    TipStatus.TARGET_2_HIT: frozenset({TipStatus.TARGET_3_HIT, TipStatus.ALL_TARGETS_HIT}) | _TERMINAL_EXITS,
    TipStatus.TARGET_3_HIT: frozenset({TipStatus.ALL_TARGETS_HIT}) | _TERMINAL_EXITS,
    TipStatus.ALL_TARGETS_HIT: frozenset(),
    TipStatus.STOPLOSS_HIT: frozenset(),
    TipStatus.EXPIRED: frozenset(),
}

# Progress along the success path; used to reject regressions
_PROGRESS = {
    TipStatus.ACTIVE: 0,
    TipStatus.TARGET_1_HIT: 1,
    TipStatus.TARGET_2_HIT: 2,
    TipStatus.TARGET_3_HIT: 3,
    TipStatus.ALL_TARGETS_HIT: 4,
}

_INTERMEDIATE = {
    1: TipStatus.TARGET_1_HIT,
    2: TipStatus.TARGET_2_HIT,
    3: TipStatus.TARGET_3_HIT,
}


def can_transition(old: TipStatus, new: TipStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[old]


def calculate_return_pct(direction: Direction | str, entry_price: float, price: float) -> float:
    """Directional return in percent.

    BUY: (price - entry) / entry * 100
    SELL: (entry - price) / entry * 100
    """
    if Direction(direction) == Direction.BUY:
        return (price - entry_price) / entry_price * 100
    return (entry_price - price) / entry_price * 100


def calculate_risk_reward(
    direction: Direction | str,
    entry_price: float,
    stop_loss: float,
    closed_price: float,
    status: TipStatus,
) -> float:
    """Realized risk-reward ratio.

    Stop-loss exits are exactly -1. Otherwise return / risk with
    risk = |entry - stop_loss| / entry; zero risk maps to 0.
    """
    if status == TipStatus.STOPLOSS_HIT:
        return -1.0
    risk = abs(entry_price - stop_loss) / entry_price
    if risk == 0:
        return 0.0
    return (calculate_return_pct(direction, entry_price, closed_price) / 100) / risk


def validate_levels(tip: Tip | ResolvedTip) -> str | None:
    """Price-level checks shared by the monitor and the scorers.

    Besides positivity, the levels must point the way the trade does: for a
    BUY the stop sits below entry and each target above the previous one
    (entry < target1 < target2 < target3); a SELL mirrors that.
    """
    if tip.entry_price is None or tip.entry_price <= 0:
        return "non-positive entry price"
    if tip.target1 is None or tip.target1 <= 0:
        return "non-positive target1"
    if tip.stop_loss is None or tip.stop_loss <= 0:
        return "non-positive stop-loss"
    if tip.target3 is not None and tip.target2 is None:
        return "target3 set without target2"

    # sign = +1 for BUY, -1 for SELL; "beyond" means further in the trade direction
    sign = 1 if Direction(tip.direction) == Direction.BUY else -1
    if sign * (tip.stop_loss - tip.entry_price) >= 0:
        return f"stop-loss on wrong side of entry for {Direction(tip.direction)}"
    levels = [tip.entry_price, *tip.targets]
    for k in range(1, len(levels)):
        if sign * (levels[k] - levels[k - 1]) <= 0:
            prev = "entry" if k == 1 else f"target{k - 1}"
            return f"target{k} not beyond {prev} for {Direction(tip.direction)}"
    return None


def validate_tip(tip: Tip) -> str | None:
    """Return a reason string if the tip cannot be evaluated, else None."""
    reason = validate_levels(tip)
    if reason is None and tip.expires_at is None:
        return "missing expiry"
    return reason


def _stop_loss_breached(tip: Tip, price: float) -> bool:
    if tip.direction == Direction.BUY:
        return price <= tip.stop_loss
    return price >= tip.stop_loss


def _target_crossed(tip: Tip, target: float, price: float) -> bool:
    if tip.direction == Direction.BUY:
        return price >= target
    return price <= target


def _check_targets(tip: Tip, price: float) -> tuple[TipStatus, int] | None:
    """Highest reachable target status, with the 1-based target index.

    Target k is only considered once target k-1 has a hit timestamp.
    """
    targets = tip.targets
    hit_times = tip.target_hit_times
    for k in range(len(targets), 0, -1):
        if k > 1 and hit_times[k - 2] is None:
            continue
        if _target_crossed(tip, targets[k - 1], price):
            if k == len(targets):
                return TipStatus.ALL_TARGETS_HIT, k
            return _INTERMEDIATE[k], k
    return None


def _resolve(tip: Tip, price: float, new_status: TipStatus, now: datetime) -> Transition:
    target_hits: tuple[int, ...] = ()
    if new_status == TipStatus.ALL_TARGETS_HIT:
        # 未記録の target hit 時刻はすべて now で埋める
        target_hits = tuple(
            k for k, hit_at in enumerate(tip.target_hit_times[: len(tip.targets)], start=1)
            if hit_at is None
        )
    return Transition(
        tip_id=tip.id,
        symbol=tip.symbol,
        old_status=tip.status,
        new_status=new_status,
        price=price,
        timestamp=now,
        target_hits=target_hits,
        closed_price=price,
        return_pct=calculate_return_pct(tip.direction, tip.entry_price, price),
        risk_reward_ratio=calculate_risk_reward(
            tip.direction, tip.entry_price, tip.stop_loss, price, new_status,
        ),
    )


def evaluate(tip: Tip, current_price: float, now: datetime | None = None) -> Transition | None:
    """Evaluate a tip against the current price.

    Order: expiry, then stop-loss, then targets (highest first). Returns the
    transition to apply, or None when nothing changes. Terminal tips are
    always a no-op.
    """
    if tip.status.is_terminal:
        return None
    now = now or datetime.now(timezone.utc)

    if now >= tip.expires_at:
        return _resolve(tip, current_price, TipStatus.EXPIRED, now)

    if _stop_loss_breached(tip, current_price):
        return _resolve(tip, current_price, TipStatus.STOPLOSS_HIT, now)

    hit = _check_targets(tip, current_price)
    if hit is None:
        return None
    new_status, k = hit

    # 価格が戻っただけの後退 (TARGET_2_HIT -> TARGET_1_HIT 等) は無視
    if _PROGRESS[new_status] <= _PROGRESS[tip.status]:
        return None
    if not can_transition(tip.status, new_status):
        logger.warning(
            "Tip %d: %s -> %s not allowed, ignoring", tip.id, tip.status, new_status,
        )
        return None

    if new_status == TipStatus.ALL_TARGETS_HIT:
        return _resolve(tip, current_price, new_status, now)

    return Transition(
        tip_id=tip.id,
        symbol=tip.symbol,
        old_status=tip.status,
        new_status=new_status,
        price=current_price,
        timestamp=now,
        target_hits=(k,) if tip.target_hit_times[k - 1] is None else (),
    )
