"""SQLite store for tips, last-seen prices and creator scores."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from tipscore.store.db_path import resolve_db_path
from tipscore.store.models import (
    OUTSTANDING_STATUSES,
    TERMINAL_STATUSES,
    AssetClass,
    CreatorScoreRecord,
    Direction,
    ResolvedTip,
    ScoreSnapshot,
    Timeframe,
    Tip,
    TipFlag,
    TipStatus,
    Transition,
    default_expiry,
)
from tipscore.store.schema import _connect

if TYPE_CHECKING:
    from tipscore.scoring.composite import CompositeScore


def _open(db_path: Path | str | None) -> sqlite3.Connection:
    return _connect(resolve_db_path(db_path))


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_ts(ts: str | None) -> datetime | None:
    """Parse a stored ISO8601 timestamp; naive values are taken as UTC."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _placeholders(values) -> str:
    return ",".join("?" for _ in values)


def _row_to_tip(row: sqlite3.Row) -> Tip:
    return Tip(
        id=row["id"],
        creator_id=row["creator_id"],
        symbol=row["symbol"],
        exchange=row["exchange"],
        direction=Direction(row["direction"]),
        entry_price=row["entry_price"],
        stop_loss=row["stop_loss"],
        target1=row["target1"],
        target2=row["target2"],
        target3=row["target3"],
        timeframe=Timeframe(row["timeframe"]),
        asset_class=AssetClass(row["asset_class"]),
        tip_timestamp=_parse_ts(row["tip_timestamp"]),  # type: ignore[arg-type]
        expires_at=_parse_ts(row["expires_at"]),  # type: ignore[arg-type]
        status=TipStatus(row["status"]),
        target1_hit_at=_parse_ts(row["target1_hit_at"]),
        target2_hit_at=_parse_ts(row["target2_hit_at"]),
        target3_hit_at=_parse_ts(row["target3_hit_at"]),
        stop_loss_hit_at=_parse_ts(row["stop_loss_hit_at"]),
        closed_price=row["closed_price"],
        closed_at=_parse_ts(row["closed_at"]),
        return_pct=row["return_pct"],
        risk_reward_ratio=row["risk_reward_ratio"],
        status_updated_at=_parse_ts(row["status_updated_at"]),
    )


def _row_to_resolved(row: sqlite3.Row) -> ResolvedTip:
    return ResolvedTip(
        id=row["id"],
        creator_id=row["creator_id"],
        status=TipStatus(row["status"]),
        direction=Direction(row["direction"]),
        timeframe=Timeframe(row["timeframe"]),
        entry_price=row["entry_price"],
        stop_loss=row["stop_loss"],
        target1=row["target1"],
        target2=row["target2"],
        target3=row["target3"],
        closed_price=row["closed_price"],
        closed_at=_parse_ts(row["closed_at"]),  # type: ignore[arg-type]
        tip_timestamp=_parse_ts(row["tip_timestamp"]),  # type: ignore[arg-type]
        return_pct=row["return_pct"],
        risk_reward_ratio=row["risk_reward_ratio"],
    )


# ---------------------------------------------------------------------------
# Tips
# ---------------------------------------------------------------------------


def insert_tip(
    *,
    creator_id: str,
    symbol: str,
    exchange: str,
    direction: Direction | str,
    entry_price: float,
    stop_loss: float,
    target1: float,
    target2: float | None = None,
    target3: float | None = None,
    timeframe: Timeframe | str = Timeframe.SWING,
    asset_class: AssetClass | str = AssetClass.EQUITY,
    tip_timestamp: datetime | None = None,
    expires_at: datetime | None = None,
    db_path: Path | str | None = None,
) -> int:
    """Insert a new ACTIVE tip. Returns tip id.

    Tips are produced upstream (extractor / manual entry); this exists for
    seeding and tests. Status always starts at ACTIVE.
    """
    tip_timestamp = tip_timestamp or datetime.now(timezone.utc)
    if expires_at is None:
        expires_at = default_expiry(tip_timestamp, timeframe)
    conn = _open(db_path)
    try:
        cur = conn.execute(
            """INSERT INTO tips
               (creator_id, symbol, exchange, direction, entry_price, stop_loss,
                target1, target2, target3, timeframe, asset_class,
                tip_timestamp, expires_at, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                creator_id,
                symbol,
                exchange,
                Direction(direction).value,
                entry_price,
                stop_loss,
                target1,
                target2,
                target3,
                Timeframe(timeframe).value,
                AssetClass(asset_class).value,
                _iso(tip_timestamp),
                _iso(expires_at),
                TipStatus.ACTIVE.value,
                _now_iso(),
            ),
        )
        conn.commit()
        return cur.lastrowid  # type: ignore[return-value]
    finally:
        conn.close()


def get_tip(tip_id: int, db_path: Path | str | None = None) -> Tip | None:
    conn = _open(db_path)
    try:
        row = conn.execute("SELECT * FROM tips WHERE id = ?", (tip_id,)).fetchone()
        return _row_to_tip(row) if row else None
    finally:
        conn.close()


def list_outstanding_tips(db_path: Path | str | None = None) -> list[Tip]:
    """Return every tip the price monitor still has to watch."""
    statuses = [s.value for s in OUTSTANDING_STATUSES]
    conn = _open(db_path)
    try:
        rows = conn.execute(
            f"""SELECT * FROM tips
                WHERE status IN ({_placeholders(statuses)})
                ORDER BY symbol, id""",
            statuses,
        ).fetchall()
        return [_row_to_tip(r) for r in rows]
    finally:
        conn.close()


def list_resolved_tips(creator_id: str, db_path: Path | str | None = None) -> list[ResolvedTip]:
    """Return a creator's terminal tips, oldest call first."""
    statuses = [s.value for s in TERMINAL_STATUSES]
    conn = _open(db_path)
    try:
        rows = conn.execute(
            f"""SELECT * FROM tips
                WHERE creator_id = ?
                  AND status IN ({_placeholders(statuses)})
                  AND closed_at IS NOT NULL
                ORDER BY tip_timestamp, id""",
            [creator_id, *statuses],
        ).fetchall()
        return [_row_to_resolved(r) for r in rows]
    finally:
        conn.close()


def list_scored_creator_ids(db_path: Path | str | None = None) -> list[str]:
    """Creators with at least one terminal tip."""
    statuses = [s.value for s in TERMINAL_STATUSES]
    conn = _open(db_path)
    try:
        rows = conn.execute(
            f"""SELECT DISTINCT creator_id FROM tips
                WHERE status IN ({_placeholders(statuses)})
                ORDER BY creator_id""",
            statuses,
        ).fetchall()
        return [r["creator_id"] for r in rows]
    finally:
        conn.close()


def apply_transition(transition: Transition, db_path: Path | str | None = None) -> bool:
    """Commit one state-machine transition.

    The UPDATE is guarded on the tip still being in ``old_status`` and not
    terminal, so a transition is never applied twice and terminal rows are
    never rewritten. Target hit timestamps already set are kept.
    Returns True if the row was updated.
    """
    fields = transition.to_fields()
    assignments: list[str] = []
    params: list[object] = []
    for col, value in fields.items():
        if isinstance(value, datetime):
            value = _iso(value)
        if col.startswith("target") and col.endswith("_hit_at"):
            assignments.append(f"{col} = COALESCE({col}, ?)")
        else:
            assignments.append(f"{col} = ?")
        params.append(value)

    terminal = [s.value for s in TERMINAL_STATUSES]
    conn = _open(db_path)
    try:
        cur = conn.execute(
            f"""UPDATE tips SET {", ".join(assignments)}
                WHERE id = ? AND status = ?
                  AND status NOT IN ({_placeholders(terminal)})""",
            [*params, transition.tip_id, transition.old_status.value, *terminal],
        )
        conn.commit()
        return cur.rowcount == 1
    finally:
        conn.close()


def flag_tip(tip_id: int, reason: str, db_path: Path | str | None = None) -> None:
    """Mark a tip for operator review (idempotent per reason)."""
    conn = _open(db_path)
    try:
        conn.execute(
            "INSERT OR IGNORE INTO tip_flags (tip_id, reason, flagged_at) VALUES (?, ?, ?)",
            (tip_id, reason, _now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def list_flagged_tips(db_path: Path | str | None = None) -> list[TipFlag]:
    conn = _open(db_path)
    try:
        rows = conn.execute("SELECT * FROM tip_flags ORDER BY id").fetchall()
        return [TipFlag(**dict(r)) for r in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Stocks (last-seen price)
# ---------------------------------------------------------------------------


def update_last_price(
    symbol: str,
    exchange: str,
    price: float,
    timestamp: datetime,
    db_path: Path | str | None = None,
) -> None:
    """Upsert the last price seen for a (symbol, exchange) instrument."""
    conn = _open(db_path)
    try:
        conn.execute(
            """INSERT INTO stocks (symbol, exchange, last_price, last_price_at, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(symbol, exchange) DO UPDATE SET
                   last_price = excluded.last_price,
                   last_price_at = excluded.last_price_at,
                   updated_at = excluded.updated_at""",
            (symbol, exchange, price, _iso(timestamp), _now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def get_last_price(
    symbol: str, exchange: str, db_path: Path | str | None = None,
) -> tuple[float, datetime | None] | None:
    """Return (last_price, last_price_at) or None if never priced on that exchange."""
    conn = _open(db_path)
    try:
        row = conn.execute(
            "SELECT last_price, last_price_at FROM stocks WHERE symbol = ? AND exchange = ?",
            (symbol, exchange),
        ).fetchone()
        if row is None or row["last_price"] is None:
            return None
        return row["last_price"], _parse_ts(row["last_price_at"])
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Creator scores
# ---------------------------------------------------------------------------


def write_creator_score(
    creator_id: str,
    score: CompositeScore,
    *,
    calculated_at: datetime | None = None,
    db_path: Path | str | None = None,
) -> None:
    """Upsert the live score row and append a snapshot in one transaction."""
    calculated = _iso(calculated_at or datetime.now(timezone.utc))
    tf = score.timeframe_accuracy
    row = {
        "creator_id": creator_id,
        "rmt_score": score.rmt_score,
        "accuracy_score": score.accuracy_score,
        "risk_adjusted_score": score.risk_adjusted_score,
        "consistency_score": score.consistency_score,
        "volume_factor_score": score.volume_factor_score,
        "confidence_interval": score.confidence_interval,
        "accuracy_rate": score.accuracy_rate,
        "weighted_accuracy_rate": score.weighted_accuracy_rate,
        "avg_return_pct": score.avg_return_pct,
        "avg_risk_reward_ratio": score.avg_risk_reward_ratio,
        "best_tip_return_pct": score.best_tip_return_pct,
        "worst_tip_return_pct": score.worst_tip_return_pct,
        "win_streak": score.win_streak,
        "loss_streak": score.loss_streak,
        "intraday_accuracy": tf.intraday,
        "swing_accuracy": tf.swing,
        "positional_accuracy": tf.positional,
        "long_term_accuracy": tf.long_term,
        "tier": score.tier.value,
        "total_scored_tips": score.total_scored_tips,
        "is_provisional": int(score.is_provisional),
        "score_period_start": _iso(score.score_period_start),
        "score_period_end": _iso(score.score_period_end),
        "calculated_at": calculated,
    }
    cols = list(row)
    updates = ", ".join(f"{c} = excluded.{c}" for c in cols if c != "creator_id")

    conn = _open(db_path)
    try:
        with conn:
            conn.execute(
                f"""INSERT INTO creator_scores ({", ".join(cols)})
                    VALUES ({_placeholders(cols)})
                    ON CONFLICT(creator_id) DO UPDATE SET {updates}""",
                [row[c] for c in cols],
            )
            conn.execute(
                """INSERT INTO score_snapshots
                   (creator_id, rmt_score, accuracy_rate, total_scored_tips, tier, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    creator_id,
                    score.rmt_score,
                    score.accuracy_rate,
                    score.total_scored_tips,
                    score.tier.value,
                    calculated,
                ),
            )
    finally:
        conn.close()


def get_creator_score(
    creator_id: str, db_path: Path | str | None = None,
) -> CreatorScoreRecord | None:
    conn = _open(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM creator_scores WHERE creator_id = ?", (creator_id,),
        ).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["is_provisional"] = bool(data["is_provisional"])
        return CreatorScoreRecord(**data)
    finally:
        conn.close()


def list_score_snapshots(
    creator_id: str, db_path: Path | str | None = None,
) -> list[ScoreSnapshot]:
    """Snapshot history for a creator, oldest first."""
    conn = _open(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM score_snapshots WHERE creator_id = ? ORDER BY id",
            (creator_id,),
        ).fetchall()
        return [ScoreSnapshot(**dict(r)) for r in rows]
    finally:
        conn.close()
