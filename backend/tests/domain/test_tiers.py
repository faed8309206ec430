"""
等级分级与奖励配置快照测试
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from app.domain.tiers import (
    DEFAULT_REWARD_CONFIG, TierRule, RewardConfigUpdate, classify_tier, next_tier, validate_tiers
)

THREE_TIERS = [
    TierRule(name="Bronze", threshold=0, discount=5),
    TierRule(name="Silver", threshold=100, discount=10),
    TierRule(name="Gold", threshold=500, discount=15),
]


class TestClassifyTier:

    @pytest.mark.parametrize("balance,expected", [
        (0, "Bronze"), (99, "Bronze"), (100, "Silver"), (105, "Silver"), (499, "Silver"), (500, "Gold"),
    ])
    def test_highest_tier_reached(self, balance, expected):
        assert classify_tier(balance, THREE_TIERS) == expected

    def test_monotonic_in_balance(self):
        """余额增加，等级不会下降"""
        order = [t.name for t in DEFAULT_REWARD_CONFIG.tiers]
        ranks = [order.index(DEFAULT_REWARD_CONFIG.classify(b)) for b in range(0, 1500, 7)]
        assert ranks == sorted(ranks)

    def test_equal_thresholds_pick_later_tier(self):
        tiers = [TierRule(name="A", threshold=0), TierRule(name="B", threshold=50), TierRule(name="C", threshold=50)]
        assert classify_tier(50, tiers) == "C"


class TestNextTier:

    def test_silver_to_gold(self):
        upcoming = next_tier("Silver", 105, THREE_TIERS)
        assert upcoming.tier == "Gold"
        assert upcoming.points_needed == 395
        assert upcoming.discount == 15

    def test_top_tier_has_none(self):
        assert next_tier("Gold", 800, THREE_TIERS) is None

    def test_unknown_tier_falls_back_to_classification(self):
        assert next_tier("Diamond", 10, THREE_TIERS).tier == "Silver"


class TestValidateTiers:

    def test_default_is_valid(self):
        assert validate_tiers(DEFAULT_REWARD_CONFIG.tiers) is None

    def test_lowest_must_be_zero(self):
        tiers = [TierRule(name="Bronze", threshold=10), TierRule(name="Silver", threshold=100)]
        assert validate_tiers(tiers) is not None

    def test_must_be_non_decreasing(self):
        tiers = [TierRule(name="Bronze", threshold=0), TierRule(name="Silver", threshold=600),
                 TierRule(name="Gold", threshold=500)]
        assert validate_tiers(tiers) is not None

    def test_duplicate_names(self):
        tiers = [TierRule(name="Bronze", threshold=0), TierRule(name="Bronze", threshold=5)]
        assert validate_tiers(tiers) is not None


class TestRewardConfigSnapshot:

    def test_defaults(self):
        config = DEFAULT_REWARD_CONFIG
        assert config.tier_names == ["Bronze", "Silver", "Gold", "Platinum"]
        assert [t.threshold for t in config.tiers] == [0, 100, 500, 1000]
        assert config.discount_for("Platinum") == 20
        assert config.expiry.enabled and config.expiry.duration_days == 365

    def test_points_for_flat_categories(self):
        assert DEFAULT_REWARD_CONFIG.points_for("booking") == 10
        assert DEFAULT_REWARD_CONFIG.points_for("referral", Decimal("999")) == 50

    def test_points_for_spend_categories(self):
        assert DEFAULT_REWARD_CONFIG.points_for("purchase", Decimal("15")) == 15
        assert DEFAULT_REWARD_CONFIG.points_for("rental", Decimal("45")) == 22
        assert DEFAULT_REWARD_CONFIG.points_for("purchase") == 0
        assert DEFAULT_REWARD_CONFIG.points_for("other", Decimal("100")) == 0

    def test_expires_at(self):
        now = datetime(2025, 1, 1)
        assert DEFAULT_REWARD_CONFIG.expires_at(now) == now + timedelta(days=365)
        disabled = DEFAULT_REWARD_CONFIG.merge(RewardConfigUpdate(expiry_enabled=False))
        assert disabled.expires_at(now) is None

    def test_merge_partial_changes(self):
        merged = DEFAULT_REWARD_CONFIG.merge(RewardConfigUpdate(
            thresholds={"Silver": 200}, discounts={"Gold": 18}, point_values={"purchase": 2},
        ))
        assert [t.threshold for t in merged.tiers] == [0, 200, 500, 1000]
        assert merged.discount_for("Gold") == 18
        assert merged.point_values["purchase"] == 2
        assert merged.point_values["booking"] == 10
        # 原快照不变
        assert DEFAULT_REWARD_CONFIG.tiers[1].threshold == 100

    def test_merge_unknown_tier(self):
        with pytest.raises(ValueError):
            DEFAULT_REWARD_CONFIG.merge(RewardConfigUpdate(thresholds={"Diamond": 5000}))

    def test_snapshot_is_frozen(self):
        with pytest.raises(Exception):
            DEFAULT_REWARD_CONFIG.version = 2
