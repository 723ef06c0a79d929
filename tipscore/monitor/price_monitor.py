"""Batch price monitor: drive the resolution state machine over open tips.

One quote per (symbol, exchange) per cycle. Quotes are fetched from a
bounded thread pool; evaluation and writes stay on the calling thread.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from tipscore.config import settings
from tipscore.connectors.yahoo_finance import PriceQuote, get_current_price
from tipscore.monitor.resolution import evaluate, validate_tip
from tipscore.store.db import (
    apply_transition,
    flag_tip,
    get_last_price,
    list_outstanding_tips,
    update_last_price,
)
from tipscore.store.models import AssetClass, Tip, TipStatus, Transition

logger = logging.getLogger(__name__)

PriceSource = Callable[[str, str], "PriceQuote | None"]

# Asset classes quoted on a fixed venue regardless of the tip's exchange
EXCHANGE_OVERRIDES: dict[AssetClass, str] = {
    AssetClass.CRYPTO: "CRYPTO",
    AssetClass.COMMODITY: "MCX",
}


def effective_exchange(tip: Tip) -> str:
    return EXCHANGE_OVERRIDES.get(tip.asset_class, tip.exchange)


def group_tips_by_instrument(tips: list[Tip]) -> dict[tuple[str, str], list[Tip]]:
    groups: dict[tuple[str, str], list[Tip]] = defaultdict(list)
    for tip in tips:
        groups[(tip.symbol, effective_exchange(tip))].append(tip)
    return dict(groups)


@dataclass
class MonitorSummary:
    """Summary of one monitor cycle."""

    transitions: list[Transition] = field(default_factory=list)
    checked: int = 0
    priced_symbols: int = 0
    skipped_symbols: list[str] = field(default_factory=list)
    flagged: list[int] = field(default_factory=list)
    errors: int = 0

    @property
    def closed(self) -> int:
        return sum(1 for t in self.transitions if t.is_terminal)

    def format_summary(self) -> str:
        if not self.checked and not self.flagged:
            return "Price monitor: no outstanding tips."
        lines = [
            "Price Monitor Summary",
            f"Checked: {self.checked} | Symbols priced: {self.priced_symbols} "
            f"| Skipped: {len(self.skipped_symbols)}",
            f"Transitions: {len(self.transitions)} (closed {self.closed}) "
            f"| Flagged: {len(self.flagged)} | Errors: {self.errors}",
        ]
        for t in self.transitions:
            lines.append(
                f"  #{t.tip_id} {t.symbol}: {t.old_status} -> {t.new_status} @ {t.price:.2f}"
            )
        if self.skipped_symbols:
            lines.append(f"  no price: {', '.join(self.skipped_symbols)}")
        return "\n".join(lines)


def _fetch_one(
    price_source: PriceSource, symbol: str, exchange: str,
) -> PriceQuote | None:
    try:
        return price_source(symbol, exchange)
    except Exception:
        logger.exception("Price source failed for %s (%s)", symbol, exchange)
        return None


def _fetch_quotes(
    keys: list[tuple[str, str]],
    price_source: PriceSource,
    max_workers: int,
) -> dict[tuple[str, str], PriceQuote | None]:
    if not keys:
        return {}
    workers = max(1, min(max_workers, len(keys)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            key: pool.submit(_fetch_one, price_source, key[0], key[1]) for key in keys
        }
        return {key: fut.result() for key, fut in futures.items()}


def _flag_malformed(
    tips: list[Tip], summary: MonitorSummary, db_path: Path | str | None,
) -> list[Tip]:
    valid: list[Tip] = []
    for tip in tips:
        reason = validate_tip(tip)
        if reason is None:
            valid.append(tip)
            continue
        logger.warning("Tip %d (%s) is malformed: %s", tip.id, tip.symbol, reason)
        try:
            flag_tip(tip.id, reason, db_path=db_path)
        except sqlite3.Error:
            logger.exception("Failed to flag tip %d", tip.id)
            summary.errors += 1
        summary.flagged.append(tip.id)
    return valid


def _commit(
    transition: Transition, summary: MonitorSummary, db_path: Path | str | None,
) -> None:
    try:
        applied = apply_transition(transition, db_path=db_path)
    except sqlite3.Error:
        logger.exception(
            "Failed to apply %s -> %s for tip %d",
            transition.old_status, transition.new_status, transition.tip_id,
        )
        summary.errors += 1
        return
    if not applied:
        logger.info(
            "Tip %d already moved past %s, skipping", transition.tip_id, transition.old_status,
        )
        return
    logger.info(
        "Tip %d %s: %s -> %s @ %.4f",
        transition.tip_id,
        transition.symbol,
        transition.old_status,
        transition.new_status,
        transition.price,
    )
    summary.transitions.append(transition)


def check_outstanding_tips(
    price_source: PriceSource | None = None,
    *,
    db_path: Path | str | None = None,
    now: datetime | None = None,
    max_workers: int | None = None,
) -> MonitorSummary:
    """Run one monitor cycle over every outstanding tip."""
    price_source = price_source or get_current_price
    now = now or datetime.now(timezone.utc)
    summary = MonitorSummary()

    tips = _flag_malformed(list_outstanding_tips(db_path), summary, db_path)
    if not tips:
        logger.info("No outstanding tips to check")
        return summary

    groups = group_tips_by_instrument(tips)
    logger.info("Checking %d tips across %d instruments", len(tips), len(groups))
    quotes = _fetch_quotes(
        list(groups), price_source, max_workers or settings.monitor_max_workers,
    )

    for (symbol, exchange), group in groups.items():
        quote = quotes.get((symbol, exchange))
        if quote is None:
            logger.warning("No price for %s (%s), %d tips deferred", symbol, exchange, len(group))
            summary.skipped_symbols.append(symbol)
            continue
        summary.priced_symbols += 1

        for tip in group:
            summary.checked += 1
            transition = evaluate(tip, quote.price, now)
            if transition is not None:
                _commit(transition, summary, db_path)

        try:
            update_last_price(symbol, exchange, quote.price, quote.timestamp, db_path=db_path)
        except sqlite3.Error:
            logger.exception("Failed to store last price for %s (%s)", symbol, exchange)
            summary.errors += 1

    return summary


def expire_overdue_tips(
    *,
    db_path: Path | str | None = None,
    now: datetime | None = None,
) -> MonitorSummary:
    """Expire outstanding tips past their expiry without fetching quotes.

    Closes at the last stored price for the tip's (symbol, exchange), or at
    entry when that instrument was never priced.
    """
    now = now or datetime.now(timezone.utc)
    summary = MonitorSummary()

    tips = _flag_malformed(list_outstanding_tips(db_path), summary, db_path)
    overdue = [t for t in tips if now >= t.expires_at]
    if not overdue:
        logger.info("No overdue tips")
        return summary

    last_prices: dict[tuple[str, str], float | None] = {}
    for tip in overdue:
        summary.checked += 1
        key = (tip.symbol, effective_exchange(tip))
        if key not in last_prices:
            try:
                row = get_last_price(*key, db_path=db_path)
            except sqlite3.Error:
                logger.exception("Failed to read last price for %s (%s)", *key)
                row = None
            last_prices[key] = row[0] if row else None
        price = last_prices[key]
        if price is None:
            logger.info("Tip %d %s never priced, expiring at entry", tip.id, tip.symbol)
            price = tip.entry_price

        transition = evaluate(tip, price, now)
        if transition is None or transition.new_status != TipStatus.EXPIRED:
            continue
        _commit(transition, summary, db_path)

    return summary
