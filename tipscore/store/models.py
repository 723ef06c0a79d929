"""Data models for the tip store.

Dataclasses and enums only, no DB access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum


class TipStatus(StrEnum):
    ACTIVE = "ACTIVE"
    TARGET_1_HIT = "TARGET_1_HIT"
    TARGET_2_HIT = "TARGET_2_HIT"
    TARGET_3_HIT = "TARGET_3_HIT"
    ALL_TARGETS_HIT = "ALL_TARGETS_HIT"
    STOPLOSS_HIT = "STOPLOSS_HIT"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_target_hit(self) -> bool:
        return self in TARGET_HIT_STATUSES


TERMINAL_STATUSES = frozenset(
    {TipStatus.ALL_TARGETS_HIT, TipStatus.STOPLOSS_HIT, TipStatus.EXPIRED}
)

# Monitored by the price monitor
OUTSTANDING_STATUSES = frozenset(
    {
        TipStatus.ACTIVE,
        TipStatus.TARGET_1_HIT,
        TipStatus.TARGET_2_HIT,
        TipStatus.TARGET_3_HIT,
    }
)

# Statuses that count as a successful call
TARGET_HIT_STATUSES = frozenset(
    {
        TipStatus.TARGET_1_HIT,
        TipStatus.TARGET_2_HIT,
        TipStatus.TARGET_3_HIT,
        TipStatus.ALL_TARGETS_HIT,
    }
)


class Direction(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


class Timeframe(StrEnum):
    INTRADAY = "INTRADAY"
    SWING = "SWING"
    POSITIONAL = "POSITIONAL"
    LONG_TERM = "LONG_TERM"


TIMEFRAME_EXPIRY_DAYS: dict[Timeframe, int] = {
    Timeframe.INTRADAY: 1,
    Timeframe.SWING: 14,
    Timeframe.POSITIONAL: 90,
    Timeframe.LONG_TERM: 365,
}


def default_expiry(tip_timestamp: datetime, timeframe: Timeframe | str) -> datetime:
    """Expiry used when the producer does not supply one."""
    return tip_timestamp + timedelta(days=TIMEFRAME_EXPIRY_DAYS[Timeframe(timeframe)])


class AssetClass(StrEnum):
    EQUITY = "EQUITY"
    EQUITY_NSE = "EQUITY_NSE"
    EQUITY_BSE = "EQUITY_BSE"
    INDEX = "INDEX"
    FUTURES = "FUTURES"
    OPTIONS = "OPTIONS"
    CRYPTO = "CRYPTO"
    COMMODITY = "COMMODITY"


class CreatorTier(StrEnum):
    UNRATED = "UNRATED"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"
    DIAMOND = "DIAMOND"


@dataclass
class Tip:
    id: int
    creator_id: str
    symbol: str
    exchange: str
    direction: Direction
    entry_price: float
    stop_loss: float
    target1: float
    timeframe: Timeframe
    asset_class: AssetClass
    tip_timestamp: datetime
    expires_at: datetime
    status: TipStatus = TipStatus.ACTIVE
    target2: float | None = None
    target3: float | None = None
    target1_hit_at: datetime | None = None
    target2_hit_at: datetime | None = None
    target3_hit_at: datetime | None = None
    stop_loss_hit_at: datetime | None = None
    closed_price: float | None = None
    closed_at: datetime | None = None
    return_pct: float | None = None
    risk_reward_ratio: float | None = None
    status_updated_at: datetime | None = None

    @property
    def targets(self) -> list[float]:
        """Defined targets in order (target2/target3 only when set)."""
        out = [self.target1]
        if self.target2 is not None:
            out.append(self.target2)
            if self.target3 is not None:
                out.append(self.target3)
        return out

    @property
    def target_hit_times(self) -> list[datetime | None]:
        return [self.target1_hit_at, self.target2_hit_at, self.target3_hit_at]


@dataclass(frozen=True)
class ResolvedTip:
    """Read-only view of a terminal tip, as consumed by the scorers."""

    id: int
    creator_id: str
    status: TipStatus
    direction: Direction
    timeframe: Timeframe
    entry_price: float
    stop_loss: float
    target1: float
    closed_at: datetime
    tip_timestamp: datetime
    target2: float | None = None
    target3: float | None = None
    closed_price: float | None = None
    return_pct: float | None = None
    risk_reward_ratio: float | None = None

    @property
    def targets(self) -> list[float]:
        out = [self.target1]
        if self.target2 is not None:
            out.append(self.target2)
            if self.target3 is not None:
                out.append(self.target3)
        return out


@dataclass(frozen=True)
class Transition:
    """A status change produced by the resolution state machine.

    Close fields are populated only for terminal transitions.
    """

    tip_id: int
    symbol: str
    old_status: TipStatus
    new_status: TipStatus
    price: float
    timestamp: datetime
    target_hits: tuple[int, ...] = ()  # 1-based targets whose hit_at is set by this transition
    closed_price: float | None = None
    return_pct: float | None = None
    risk_reward_ratio: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.new_status.is_terminal

    def to_fields(self) -> dict[str, object]:
        """Column updates for the tips table (timestamps as datetimes)."""
        fields: dict[str, object] = {
            "status": self.new_status.value,
            "status_updated_at": self.timestamp,
        }
        for k in self.target_hits:
            fields[f"target{k}_hit_at"] = self.timestamp
        if self.new_status == TipStatus.STOPLOSS_HIT:
            fields["stop_loss_hit_at"] = self.timestamp
        if self.is_terminal:
            fields["closed_price"] = self.closed_price
            fields["closed_at"] = self.timestamp
            fields["return_pct"] = self.return_pct
            fields["risk_reward_ratio"] = self.risk_reward_ratio
        return fields


@dataclass
class TipFlag:
    id: int
    tip_id: int
    reason: str
    flagged_at: str


@dataclass
class CreatorScoreRecord:
    creator_id: str
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
    intraday_accuracy: float | None
    swing_accuracy: float | None
    positional_accuracy: float | None
    long_term_accuracy: float | None
    tier: str
    total_scored_tips: int
    is_provisional: bool
    score_period_start: str | None
    score_period_end: str | None
    calculated_at: str


@dataclass
class ScoreSnapshot:
    id: int
    creator_id: str
    rmt_score: float
    accuracy_rate: float
    total_scored_tips: int
    tier: str
    created_at: str
