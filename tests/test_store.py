"""Tests for the tip store (tipscore/store/db.py)."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest

from tests.helpers import T0, insert_tip, make_history
from tipscore.monitor.resolution import evaluate
from tipscore.scoring.composite import calculate_composite_score
from tipscore.store.db import (
    apply_transition,
    flag_tip,
    get_creator_score,
    get_last_price,
    get_tip,
    list_flagged_tips,
    list_outstanding_tips,
    list_resolved_tips,
    list_scored_creator_ids,
    list_score_snapshots,
    update_last_price,
    write_creator_score,
)
from tipscore.store.models import Timeframe, TipStatus
from tipscore.store.schema import _connect


class TestConnect:
    def test_creates_database(self, db_path: Path):
        assert not db_path.exists()
        conn = _connect(db_path)
        conn.close()
        assert db_path.exists()

    def test_creates_tables(self, db_path: Path):
        conn = _connect(db_path)
        names = {
            r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert {"tips", "stocks", "tip_flags", "creator_scores", "score_snapshots"} <= names

    def test_stocks_keyed_by_instrument(self, db_path: Path):
        conn = _connect(db_path)
        cols = {r["name"]: r["pk"] for r in conn.execute("PRAGMA table_info(stocks)")}
        conn.close()
        assert cols["symbol"] == 1
        assert cols["exchange"] == 2

class TestTips:
    def test_insert_defaults(self, db_path):
        tip_id = insert_tip(db_path)
        tip = get_tip(tip_id, db_path)
        assert tip.status == TipStatus.ACTIVE
        assert tip.tip_timestamp == T0
        assert tip.expires_at == T0 + timedelta(days=14)
        assert tip.closed_price is None
        assert tip.closed_at is None

    @pytest.mark.parametrize(
        "timeframe,days",
        [
            (Timeframe.INTRADAY, 1),
            (Timeframe.SWING, 14),
            (Timeframe.POSITIONAL, 90),
            (Timeframe.LONG_TERM, 365),
        ],
    )
    def test_default_expiry_by_timeframe(self, db_path, timeframe, days):
        tip = get_tip(insert_tip(db_path, timeframe=timeframe), db_path)
        assert tip.expires_at - tip.tip_timestamp == timedelta(days=days)

    def test_get_missing(self, db_path):
        assert get_tip(999, db_path) is None

    def test_outstanding_excludes_terminal(self, db_path, now):
        a = insert_tip(db_path)
        b = insert_tip(db_path, symbol="TCS")
        apply_transition(evaluate(get_tip(a, db_path), 1100.0, now), db_path)
        assert [t.id for t in list_outstanding_tips(db_path)] == [b]


class TestApplyTransition:
    def test_terminal_sets_close_fields(self, db_path, now):
        tip_id = insert_tip(db_path)
        assert apply_transition(evaluate(get_tip(tip_id, db_path), 940.0, now), db_path)

        tip = get_tip(tip_id, db_path)
        assert tip.status == TipStatus.STOPLOSS_HIT
        assert tip.stop_loss_hit_at == now
        assert tip.closed_price == 940.0
        assert tip.closed_at == now
        assert tip.return_pct == pytest.approx(-6.0)
        assert tip.risk_reward_ratio == -1.0
        assert tip.status_updated_at == now

    def test_intermediate_leaves_close_fields_null(self, db_path, now):
        tip_id = insert_tip(db_path, target2=1200.0)
        apply_transition(evaluate(get_tip(tip_id, db_path), 1150.0, now), db_path)
        tip = get_tip(tip_id, db_path)
        assert tip.status == TipStatus.TARGET_1_HIT
        assert tip.target1_hit_at == now
        assert tip.closed_price is None
        assert tip.return_pct is None

    def test_never_applied_twice(self, db_path, now):
        tip_id = insert_tip(db_path)
        transition = evaluate(get_tip(tip_id, db_path), 1100.0, now)
        assert apply_transition(transition, db_path) is True
        assert apply_transition(transition, db_path) is False

    def test_terminal_row_not_rewritten(self, db_path, now):
        tip_id = insert_tip(db_path)
        active = get_tip(tip_id, db_path)
        apply_transition(evaluate(active, 1100.0, now), db_path)

        # A stale evaluation of the same ACTIVE snapshot must not overwrite the close
        stale = evaluate(active, 900.0, now + timedelta(hours=1))
        assert apply_transition(stale, db_path) is False
        tip = get_tip(tip_id, db_path)
        assert tip.status == TipStatus.ALL_TARGETS_HIT
        assert tip.closed_price == 1100.0

    def test_existing_hit_timestamp_kept(self, db_path, now):
        tip_id = insert_tip(db_path, target2=1200.0)
        apply_transition(evaluate(get_tip(tip_id, db_path), 1150.0, now), db_path)
        later = now + timedelta(hours=2)
        tip = get_tip(tip_id, db_path)
        apply_transition(evaluate(tip, 1250.0, later), db_path)

        tip = get_tip(tip_id, db_path)
        assert tip.status == TipStatus.ALL_TARGETS_HIT
        assert tip.target1_hit_at == now
        assert tip.target2_hit_at == later


class TestResolvedTips:
    def test_only_terminal_with_close(self, db_path, now):
        a = insert_tip(db_path)
        insert_tip(db_path, symbol="TCS")
        apply_transition(evaluate(get_tip(a, db_path), 1100.0, now), db_path)

        resolved = list_resolved_tips("ch_alpha", db_path)
        assert [t.id for t in resolved] == [a]
        assert resolved[0].closed_at == now
        assert list_scored_creator_ids(db_path) == ["ch_alpha"]

    def test_other_creator_excluded(self, db_path, now):
        a = insert_tip(db_path, creator_id="ch_beta")
        apply_transition(evaluate(get_tip(a, db_path), 1100.0, now), db_path)
        assert list_resolved_tips("ch_alpha", db_path) == []


class TestFlags:
    def test_flag_is_idempotent_per_reason(self, db_path):
        tip_id = insert_tip(db_path)
        flag_tip(tip_id, "non-positive target1", db_path)
        flag_tip(tip_id, "non-positive target1", db_path)
        flag_tip(tip_id, "missing expiry", db_path)
        assert [f.reason for f in list_flagged_tips(db_path)] == [
            "non-positive target1",
            "missing expiry",
        ]


class TestLastPrice:
    def test_never_priced(self, db_path):
        assert get_last_price("RELIANCE", "NSE", db_path) is None

    def test_upsert(self, db_path):
        update_last_price("RELIANCE", "NSE", 1010.0, T0, db_path=db_path)
        update_last_price("RELIANCE", "NSE", 1020.0, T0 + timedelta(minutes=5), db_path=db_path)
        price, ts = get_last_price("RELIANCE", "NSE", db_path)
        assert price == 1020.0
        assert ts == T0 + timedelta(minutes=5)

        conn = _connect(db_path)
        rows = conn.execute("SELECT symbol, exchange FROM stocks").fetchall()
        conn.close()
        assert [tuple(r) for r in rows] == [("RELIANCE", "NSE")]

    def test_exchanges_kept_apart(self, db_path):
        update_last_price("RELIANCE", "NSE", 1010.0, T0, db_path=db_path)
        update_last_price("RELIANCE", "BSE", 1012.5, T0 + timedelta(minutes=1), db_path=db_path)
        assert get_last_price("RELIANCE", "NSE", db_path)[0] == 1010.0
        assert get_last_price("RELIANCE", "BSE", db_path)[0] == 1012.5
        assert get_last_price("RELIANCE", "MCX", db_path) is None


class TestCreatorScores:
    def test_upsert_and_snapshot(self, db_path):
        tips = make_history("HHMH")
        score = calculate_composite_score(tips, now=tips[-1].closed_at)
        write_creator_score("ch_alpha", score, calculated_at=T0, db_path=db_path)

        worse = replace(score, rmt_score=10.0)
        write_creator_score("ch_alpha", worse, calculated_at=T0 + timedelta(days=1), db_path=db_path)

        row = get_creator_score("ch_alpha", db_path)
        assert row.rmt_score == 10.0
        assert row.win_streak == 1
        assert row.score_period_start == tips[0].tip_timestamp.isoformat()

        snaps = list_score_snapshots("ch_alpha", db_path)
        assert [s.rmt_score for s in snaps] == [pytest.approx(score.rmt_score), 10.0]
