"""Shared test helpers. Import in test files: from tests.helpers import insert_tip."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

from tipscore.connectors.yahoo_finance import PriceQuote
from tipscore.store.db import insert_tip as _insert_tip
from tipscore.store.models import (
    AssetClass,
    Direction,
    ResolvedTip,
    Timeframe,
    Tip,
    TipStatus,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def insert_tip(db_path: Path, **overrides) -> int:
    """Insert an ACTIVE tip with sensible defaults. Override any field via kwargs."""
    defaults = {
        "creator_id": "ch_alpha",
        "symbol": "RELIANCE",
        "exchange": "NSE",
        "direction": Direction.BUY,
        "entry_price": 1000.0,
        "stop_loss": 950.0,
        "target1": 1100.0,
        "timeframe": Timeframe.SWING,
        "asset_class": AssetClass.EQUITY_NSE,
        "tip_timestamp": T0,
    }
    defaults.update(overrides)
    return _insert_tip(db_path=db_path, **defaults)


def make_tip(**overrides) -> Tip:
    """In-memory ACTIVE BUY tip: entry 1000, stop 950, target 1100, 14 day expiry."""
    tip = Tip(
        id=1,
        creator_id="ch_alpha",
        symbol="RELIANCE",
        exchange="NSE",
        direction=Direction.BUY,
        entry_price=1000.0,
        stop_loss=950.0,
        target1=1100.0,
        timeframe=Timeframe.SWING,
        asset_class=AssetClass.EQUITY_NSE,
        tip_timestamp=T0,
        expires_at=T0 + timedelta(days=14),
    )
    return replace(tip, **overrides)


def make_resolved(
    status: TipStatus = TipStatus.ALL_TARGETS_HIT,
    *,
    closed_at: datetime | None = None,
    tip_id: int = 1,
    **overrides,
) -> ResolvedTip:
    """Resolved BUY tip (entry 1000, stop 950, target 1100) closed at its natural price."""
    closed_at = closed_at or T0 + timedelta(days=1)
    natural_close = {
        TipStatus.STOPLOSS_HIT: 950.0,
        TipStatus.EXPIRED: 1000.0,
    }.get(status, 1100.0)
    fields = {
        "id": tip_id,
        "creator_id": "ch_alpha",
        "status": status,
        "direction": Direction.BUY,
        "timeframe": Timeframe.SWING,
        "entry_price": 1000.0,
        "stop_loss": 950.0,
        "target1": 1100.0,
        "closed_at": closed_at,
        "tip_timestamp": closed_at - timedelta(days=1),
        "closed_price": natural_close,
    }
    fields.update(overrides)
    return ResolvedTip(**fields)


def make_history(outcomes: str, *, start: datetime = T0, step_days: float = 1.0) -> list[ResolvedTip]:
    """Build a history from 'H'/'M' characters, one close per step, oldest first."""
    tips = []
    for i, ch in enumerate(outcomes):
        status = TipStatus.ALL_TARGETS_HIT if ch == "H" else TipStatus.STOPLOSS_HIT
        tips.append(
            make_resolved(status, tip_id=i + 1, closed_at=start + timedelta(days=i * step_days))
        )
    return tips


def quote(symbol: str, price: float, ts: datetime = T0) -> PriceQuote:
    return PriceQuote(symbol=symbol, price=price, timestamp=ts)


def fixed_prices(prices: dict[str, float | None], ts: datetime = T0):
    """Price source stub: symbol -> price (None = unavailable). Records calls."""
    calls: list[tuple[str, str]] = []

    def _source(symbol: str, exchange: str) -> PriceQuote | None:
        calls.append((symbol, exchange))
        price = prices.get(symbol)
        return None if price is None else quote(symbol, price, ts)

    _source.calls = calls  # type: ignore[attr-defined]
    return _source
