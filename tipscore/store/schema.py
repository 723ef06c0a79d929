"""Database schema DDL.

Table definitions and the connection helper only; queries live in db.py.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "data" / "tipscore.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tips (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    creator_id      TEXT NOT NULL,
    symbol          TEXT NOT NULL,
    exchange        TEXT NOT NULL,
    direction       TEXT NOT NULL,
    entry_price     REAL NOT NULL,
    stop_loss       REAL NOT NULL,
    target1         REAL NOT NULL,
    target2         REAL,
    target3         REAL,
    timeframe       TEXT NOT NULL,
    asset_class     TEXT NOT NULL,
    tip_timestamp   TEXT NOT NULL,
    expires_at      TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'ACTIVE',
    target1_hit_at  TEXT,
    target2_hit_at  TEXT,
    target3_hit_at  TEXT,
    stop_loss_hit_at TEXT,
    closed_price    REAL,
    closed_at       TEXT,
    return_pct      REAL,
    risk_reward_ratio REAL,
    status_updated_at TEXT,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tips_status ON tips(status);
CREATE INDEX IF NOT EXISTS idx_tips_creator ON tips(creator_id, status);

-- Last quote per instrument; one symbol can trade on several exchanges
CREATE TABLE IF NOT EXISTS stocks (
    symbol          TEXT NOT NULL,
    exchange        TEXT NOT NULL DEFAULT '',
    last_price      REAL,
    last_price_at   TEXT,
    updated_at      TEXT NOT NULL,
    PRIMARY KEY (symbol, exchange)
);

CREATE TABLE IF NOT EXISTS tip_flags (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    tip_id          INTEGER NOT NULL REFERENCES tips(id),
    reason          TEXT NOT NULL,
    flagged_at      TEXT NOT NULL,
    UNIQUE(tip_id, reason)
);
"""

CREATOR_SCORES_SQL = """
CREATE TABLE IF NOT EXISTS creator_scores (
    creator_id          TEXT PRIMARY KEY,
    rmt_score           REAL NOT NULL,
    accuracy_score      REAL NOT NULL,
    risk_adjusted_score REAL NOT NULL,
    consistency_score   REAL NOT NULL,
    volume_factor_score REAL NOT NULL,
    confidence_interval REAL NOT NULL,
    accuracy_rate       REAL NOT NULL,
    weighted_accuracy_rate REAL NOT NULL,
    avg_return_pct      REAL NOT NULL,
    avg_risk_reward_ratio REAL NOT NULL,
    best_tip_return_pct REAL,
    worst_tip_return_pct REAL,
    win_streak          INTEGER NOT NULL DEFAULT 0,
    loss_streak         INTEGER NOT NULL DEFAULT 0,
    intraday_accuracy   REAL,
    swing_accuracy      REAL,
    positional_accuracy REAL,
    long_term_accuracy  REAL,
    tier                TEXT NOT NULL,
    total_scored_tips   INTEGER NOT NULL,
    is_provisional      INTEGER NOT NULL DEFAULT 1,
    score_period_start  TEXT,
    score_period_end    TEXT,
    calculated_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS score_snapshots (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    creator_id          TEXT NOT NULL,
    rmt_score           REAL NOT NULL,
    accuracy_rate       REAL NOT NULL,
    total_scored_tips   INTEGER NOT NULL,
    tier                TEXT NOT NULL,
    created_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_creator ON score_snapshots(creator_id, created_at);
"""


def _connect(db_path: Path | str | None = None) -> sqlite3.Connection:
    """Open (or create) the SQLite database and ensure schema exists."""
    db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA_SQL)
    conn.executescript(CREATOR_SCORES_SQL)
    return conn
