"""
领域事件定义 (Domain Events)
服务在事务提交之后发布，订阅者在自己的会话里处理
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 预订相关
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_STATUS_CHANGED = "reservation.status_changed"
    RESERVATION_CANCELLED = "reservation.cancelled"

    # 积分相关
    LEDGER_ENTRY_POSTED = "ledger.entry_posted"
    TIER_CHANGED = "ledger.tier_changed"

    # 配置相关
    REWARD_CONFIG_UPDATED = "reward_config.updated"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


@dataclass
class ReservationCreatedData(BaseEventData):
    """预订创建事件数据"""
    reservation_id: int = 0
    resource_id: int = 0
    resource_kind: str = ""
    resource_name: str = ""
    requester_id: int = 0
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    status: str = ""
    price: Decimal = Decimal("0")


@dataclass
class ReservationStatusChangedData(BaseEventData):
    """预订状态变更事件数据"""
    reservation_id: int = 0
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None


@dataclass
class ReservationCancelledData(BaseEventData):
    """预订取消事件数据"""
    reservation_id: int = 0
    resource_id: int = 0
    resource_kind: str = ""
    requester_id: int = 0
    old_status: str = ""
    price: Decimal = Decimal("0")
    cancellation_fee: Decimal = Decimal("0")
    cancelled_by: Optional[int] = None
    reason: str = ""


@dataclass
class LedgerEntryPostedData(BaseEventData):
    """积分流水事件数据"""
    entry_id: int = 0
    member_id: int = 0
    amount: int = 0
    category: str = ""
    points_total: int = 0
    tier: str = ""


@dataclass
class TierChangedData(BaseEventData):
    """会员等级变更事件数据"""
    member_id: int = 0
    old_tier: str = ""
    new_tier: str = ""
    points_total: int = 0
    trigger: str = ""          # entry_posted / expiry_sweep / config_changed


@dataclass
class RewardConfigUpdatedData(BaseEventData):
    """奖励配置变更事件数据"""
    version: int = 0
    changed_by: Optional[int] = None
    accounts_reclassified: int = 0
