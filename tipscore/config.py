from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # === Store ===
    db_path: str = ""  # 空なら data/tipscore.db

    # === Composite weights (must sum to 1.0) ===
    weight_accuracy: float = 0.40
    weight_risk_adjusted: float = 0.30
    weight_consistency: float = 0.20
    weight_volume_factor: float = 0.10

    # === Component scorers ===
    recency_half_life_days: float = 90.0
    risk_adjusted_floor: float = -2.0  # avg RR at which the sub-score is 0
    risk_adjusted_ceiling: float = 5.0  # avg RR at which the sub-score is 100
    max_expected_tips: int = 2000  # volume needed for a full volume factor
    consistency_streak_target: int = 10  # win streak that maxes the streak bonus

    # === Composite metadata ===
    min_tips_for_rating: int = 20  # below this the score is provisional
    confidence_level: float = 0.95

    # Tier thresholds on the RMT score (lower bound, inclusive)
    tier_bronze_min: float = 20.0
    tier_silver_min: float = 40.0
    tier_gold_min: float = 60.0
    tier_platinum_min: float = 75.0
    tier_diamond_min: float = 90.0

    # === Price source (Yahoo Finance chart API) ===
    yahoo_chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    price_timeout_sec: float = 5.0
    price_rate_limit_requests: int = 5
    price_rate_limit_window_sec: float = 1.0

    # === Batch jobs ===
    monitor_max_workers: int = 4  # concurrent price lookups per tick
    score_max_workers: int = 8  # concurrent creator recomputes

    @model_validator(mode="after")
    def _check_scoring(self) -> "Settings":
        weights = (
            self.weight_accuracy,
            self.weight_risk_adjusted,
            self.weight_consistency,
            self.weight_volume_factor,
        )
        if any(w < 0 for w in weights):
            raise ValueError("scoring weights must be non-negative")
        if abs(sum(weights) - 1.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 1.0 (got {sum(weights):.4f})")
        if self.recency_half_life_days <= 0:
            raise ValueError("recency_half_life_days must be positive")
        if self.risk_adjusted_floor >= self.risk_adjusted_ceiling:
            raise ValueError("risk_adjusted_floor must be below risk_adjusted_ceiling")
        if not 0 < self.confidence_level < 1:
            raise ValueError("confidence_level must be in (0, 1)")
        if self.max_expected_tips <= 1:
            raise ValueError("max_expected_tips must be greater than 1")
        if self.consistency_streak_target <= 0:
            raise ValueError("consistency_streak_target must be positive")
        if self.price_timeout_sec <= 0:
            raise ValueError("price_timeout_sec must be positive")
        if self.price_rate_limit_requests <= 0 or self.price_rate_limit_window_sec <= 0:
            raise ValueError("price rate limit must allow at least one request per positive window")
        for name in ("monitor_max_workers", "score_max_workers"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        tiers = self.tier_thresholds()
        if any(lo >= hi for lo, hi in zip(tiers, tiers[1:])):
            raise ValueError("tier thresholds must be strictly increasing")
        return self

    def tier_thresholds(self) -> list[float]:
        return [
            self.tier_bronze_min,
            self.tier_silver_min,
            self.tier_gold_min,
            self.tier_platinum_min,
            self.tier_diamond_min,
        ]


settings = Settings()
