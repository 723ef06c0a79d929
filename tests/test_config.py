"""Tests for settings validation (tipscore/config.py)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tipscore.config import Settings


class TestScoringValidation:
    def test_defaults_valid(self):
        s = Settings(_env_file=None)
        assert s.weight_accuracy + s.weight_risk_adjusted + s.weight_consistency + s.weight_volume_factor == pytest.approx(1.0)
        assert s.tier_thresholds() == [20.0, 40.0, 60.0, 75.0, 90.0]

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError, match="sum to 1.0"):
            Settings(_env_file=None, weight_accuracy=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError, match="non-negative"):
            Settings(
                _env_file=None,
                weight_accuracy=0.8,
                weight_risk_adjusted=-0.1,
            )

    def test_half_life_positive(self):
        with pytest.raises(ValidationError, match="half_life"):
            Settings(_env_file=None, recency_half_life_days=0)

    def test_floor_below_ceiling(self):
        with pytest.raises(ValidationError, match="floor"):
            Settings(_env_file=None, risk_adjusted_floor=5.0, risk_adjusted_ceiling=5.0)

    def test_confidence_level_range(self):
        with pytest.raises(ValidationError, match="confidence_level"):
            Settings(_env_file=None, confidence_level=1.0)

    def test_tiers_increasing(self):
        with pytest.raises(ValidationError, match="tier thresholds"):
            Settings(_env_file=None, tier_gold_min=30.0)

    @pytest.mark.parametrize("value", [0, -3])
    def test_streak_target_positive(self, value):
        with pytest.raises(ValidationError, match="consistency_streak_target"):
            Settings(_env_file=None, consistency_streak_target=value)

    def test_price_timeout_positive(self):
        with pytest.raises(ValidationError, match="price_timeout_sec"):
            Settings(_env_file=None, price_timeout_sec=0)

    def test_rate_limit_positive(self):
        with pytest.raises(ValidationError, match="rate limit"):
            Settings(_env_file=None, price_rate_limit_requests=0)

    @pytest.mark.parametrize("field", ["monitor_max_workers", "score_max_workers"])
    def test_worker_pools_positive(self, field):
        with pytest.raises(ValidationError, match=field):
            Settings(_env_file=None, **{field: 0})

    def test_env_streak_target_zero_fails_at_load(self, monkeypatch):
        monkeypatch.setenv("CONSISTENCY_STREAK_TARGET", "0")
        with pytest.raises(ValidationError, match="consistency_streak_target"):
            Settings(_env_file=None)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RECENCY_HALF_LIFE_DAYS", "30")
        assert Settings(_env_file=None).recency_half_life_days == 30.0
