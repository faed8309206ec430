"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, model_validator
from app.models.ontology import ReservationStatus, PaymentStatus, LedgerCategory


# ============== 预订 Schemas ==============

class ReservationCreate(BaseModel):
    """
    预订 / 租赁请求

    房间：start_at / end_at 为整点时刻；乐器：为当天零点（结束日当天计入）。
    """
    resource_id: int
    start_at: datetime
    end_at: datetime
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def to_local_time(self):
        # 存储统一使用服务器本地无时区时间；带时区的输入先换算再去掉时区
        if self.start_at.tzinfo is not None:
            self.start_at = self.start_at.astimezone().replace(tzinfo=None)
        if self.end_at.tzinfo is not None:
            self.end_at = self.end_at.astimezone().replace(tzinfo=None)
        return self


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
    reason: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReservationResponse(BaseModel):
    id: int
    resource_id: int
    resource_kind: str
    requester_id: int
    start_at: datetime
    end_at: datetime
    duration_units: int
    status: ReservationStatus
    payment_status: PaymentStatus
    price: Decimal
    cancellation_fee: Optional[Decimal] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 可用性 Schemas ==============

class AvailabilitySlotResponse(BaseModel):
    label: str
    start: datetime
    end: datetime
    available: bool
    reservation_ids: List[int] = []
    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    resource_id: int
    resource_kind: str
    resource_name: str
    is_active: bool
    available: bool
    slots: List[AvailabilitySlotResponse] = []
    conflicts: List[ReservationResponse] = []
    model_config = ConfigDict(from_attributes=True)


# ============== 积分 Schemas ==============

class LedgerEntryResponse(BaseModel):
    id: int
    amount: int
    category: LedgerCategory
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    excluded_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class NextTierResponse(BaseModel):
    tier: str
    points_needed: int
    discount: float
    model_config = ConfigDict(from_attributes=True)


class AccountSummaryResponse(BaseModel):
    member_id: int
    points: int
    tier: str
    discount: float
    next_tier: Optional[NextTierResponse] = None
    history: List[LedgerEntryResponse] = []
    model_config = ConfigDict(from_attributes=True)


class PointsPost(BaseModel):
    """
    结算方记账请求

    给出 amount 时直接记账；否则按类别的积分值与 spend 计算。
    """
    member_id: int
    category: LedgerCategory = LedgerCategory.PURCHASE
    amount: Optional[int] = None
    spend: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=255)
    reference_type: Optional[str] = Field(None, max_length=20)
    reference_id: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def amount_or_spend(self):
        if self.amount is None and self.spend is None:
            raise ValueError("amount 与 spend 至少提供一个")
        return self


# ============== 奖励配置 Schemas ==============

class TierResponse(BaseModel):
    name: str
    threshold: int
    discount: float
    model_config = ConfigDict(from_attributes=True)


class RewardConfigResponse(BaseModel):
    version: int
    tiers: List[TierResponse]
    point_values: Dict[str, float]
    expiry_enabled: bool
    expiry_duration_days: int


class RewardConfigChange(BaseModel):
    """部分修改：未提供的字段保持不变"""
    thresholds: Optional[Dict[str, int]] = None
    discounts: Optional[Dict[str, float]] = None
    point_values: Optional[Dict[str, float]] = None
    expiry_enabled: Optional[bool] = None
    expiry_duration_days: Optional[int] = None
    reason: Optional[str] = None


class ConfigHistoryResponse(BaseModel):
    version: int
    old_value: Optional[dict] = None
    new_value: dict
    changed_by: Optional[int] = None
    changed_at: datetime
    change_reason: Optional[str] = None
    is_current: bool


class SweepReportResponse(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    accounts_scanned: int
    accounts_changed: int
    entries_excluded: int
    points_removed: int
    failed_accounts: List[int] = []
    model_config = ConfigDict(from_attributes=True)
