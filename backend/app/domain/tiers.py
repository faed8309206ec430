"""
等级分级与奖励配置快照

RewardConfigSnapshot 是数据库中唯一一条 RewardConfig 记录的不可变副本，
每次积分操作读取一次并显式传入，分级与积分计算都只依赖这个值。
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# 按次计分的类别（其余按消费金额计分）
FLAT_CATEGORIES = ("booking", "referral")


class TierRule(BaseModel):
    """单个等级：门槛与折扣百分比"""
    model_config = ConfigDict(frozen=True)

    name: str
    threshold: int = Field(..., ge=0)
    discount: float = Field(0, ge=0, le=100)


class ExpiryPolicy(BaseModel):
    """积分过期策略"""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    duration_days: int = Field(365, ge=1)


class NextTier(BaseModel):
    """下一等级信息"""
    tier: str
    points_needed: int
    discount: float


class RewardConfigUpdate(BaseModel):
    """
    奖励配置的部分修改

    thresholds / discounts 按等级名合并，point_values 按类别合并，
    未出现的字段保持不变。
    """
    thresholds: Optional[Dict[str, int]] = None
    discounts: Optional[Dict[str, float]] = None
    point_values: Optional[Dict[str, float]] = None
    expiry_enabled: Optional[bool] = None
    expiry_duration_days: Optional[int] = None


def validate_tiers(tiers: List[TierRule]) -> Optional[str]:
    """校验等级表，返回错误描述；合法时返回 None"""
    if not tiers:
        return "至少需要一个等级"
    names = [t.name for t in tiers]
    if len(set(names)) != len(names):
        return "等级名称重复"
    if tiers[0].threshold != 0:
        return f"最低等级 {tiers[0].name} 的门槛固定为 0"
    for lower, upper in zip(tiers, tiers[1:]):
        if upper.threshold < lower.threshold:
            return f"等级门槛必须非递减: {lower.name}({lower.threshold}) > {upper.name}({upper.threshold})"
    return None


def classify_tier(balance: int, tiers: List[TierRule]) -> str:
    """余额达到的最高等级"""
    label = tiers[0].name
    for tier in tiers:
        if tier.threshold <= balance:
            label = tier.name
    return label


def next_tier(current_tier: str, balance: int, tiers: List[TierRule]) -> Optional[NextTier]:
    """当前等级的下一级；已是最高等级时返回 None"""
    names = [t.name for t in tiers]
    if current_tier not in names:
        current_tier = classify_tier(balance, tiers)
    index = names.index(current_tier)
    if index + 1 >= len(tiers):
        return None
    upcoming = tiers[index + 1]
    return NextTier(
        tier=upcoming.name,
        points_needed=max(upcoming.threshold - balance, 0),
        discount=upcoming.discount,
    )


class RewardConfigSnapshot(BaseModel):
    """奖励配置快照"""
    model_config = ConfigDict(frozen=True)

    version: int = 1
    tiers: List[TierRule]
    point_values: Dict[str, float]
    expiry: ExpiryPolicy = ExpiryPolicy()

    @property
    def tier_names(self) -> List[str]:
        return [t.name for t in self.tiers]

    def classify(self, balance: int) -> str:
        return classify_tier(balance, self.tiers)

    def next_tier(self, current_tier: str, balance: int) -> Optional[NextTier]:
        return next_tier(current_tier, balance, self.tiers)

    def discount_for(self, tier_name: str) -> float:
        for tier in self.tiers:
            if tier.name == tier_name:
                return tier.discount
        return 0

    def expires_at(self, now: datetime) -> Optional[datetime]:
        """新流水的过期时间；策略关闭时永不过期"""
        if not self.expiry.enabled:
            return None
        return now + timedelta(days=self.expiry.duration_days)

    def points_for(self, category: str, spend: Optional[Decimal] = None) -> int:
        """
        按类别计算积分

        booking / referral 按次计分；purchase / rental 按消费金额乘以积分值后向下取整。
        """
        value = self.point_values.get(category, 0)
        if category in FLAT_CATEGORIES:
            return int(value)
        if spend is None:
            return 0
        points = Decimal(str(spend)) * Decimal(str(value))
        return int(points.to_integral_value(rounding=ROUND_FLOOR))

    def merge(self, update: RewardConfigUpdate) -> "RewardConfigSnapshot":
        """
        合并部分修改，返回新快照（版本号不变，由保存方递增）

        Raises:
            ValueError: 引用了不存在的等级
        """
        unknown = set(update.thresholds or {}) | set(update.discounts or {})
        unknown -= set(self.tier_names)
        if unknown:
            raise ValueError(f"未知等级: {', '.join(sorted(unknown))}")

        tiers = [
            TierRule(
                name=t.name,
                threshold=(update.thresholds or {}).get(t.name, t.threshold),
                discount=(update.discounts or {}).get(t.name, t.discount),
            )
            for t in self.tiers
        ]
        point_values = dict(self.point_values)
        point_values.update(update.point_values or {})
        expiry = ExpiryPolicy(
            enabled=self.expiry.enabled if update.expiry_enabled is None else update.expiry_enabled,
            duration_days=(self.expiry.duration_days if update.expiry_duration_days is None
                           else update.expiry_duration_days),
        )
        return RewardConfigSnapshot(
            version=self.version, tiers=tiers, point_values=point_values, expiry=expiry
        )


DEFAULT_REWARD_CONFIG = RewardConfigSnapshot(
    version=1,
    tiers=[
        TierRule(name="Bronze", threshold=0, discount=5),
        TierRule(name="Silver", threshold=100, discount=10),
        TierRule(name="Gold", threshold=500, discount=15),
        TierRule(name="Platinum", threshold=1000, discount=20),
    ],
    point_values={"booking": 10, "purchase": 1, "rental": 0.5, "referral": 50},
    expiry=ExpiryPolicy(enabled=True, duration_days=365),
)
