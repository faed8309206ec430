"""
本体对象定义 (Ontology Objects)
业务实体：资源（排练室 / 乐器）、预订、会员（积分账户）、积分流水、奖励配置

资源采用单表继承：Room 与 Item 共享预订契约，
区别只在于时间粒度（整小时 / 整天）与费率字段的含义。
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, JSON, Index
)
from sqlalchemy.orm import relationship, synonym
from app.database import Base
from app.domain.granularity import GranularityRule, HOURLY, DAILY
from app.domain.tiers import ExpiryPolicy, RewardConfigSnapshot, TierRule


# ============== 枚举定义 ==============

class ResourceKind(str, Enum):
    """资源类别"""
    ROOM = "room"    # 排练室 / 录音棚，按小时预订
    ITEM = "item"    # 乐器，按天租赁


class RoomType(str, Enum):
    """房间类型"""
    PRACTICE = "practice"
    STUDIO = "studio"


class InstrumentType(str, Enum):
    """乐器类型"""
    STRING = "string"
    WIND = "wind"
    PERCUSSION = "percussion"
    ELECTRONIC = "electronic"
    OTHER = "other"


class ItemCondition(str, Enum):
    """器材成色"""
    NEW = "new"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ReservationStatus(str, Enum):
    """预订状态枚举"""
    PENDING = "pending"        # 待确认
    CONFIRMED = "confirmed"    # 已确认
    CANCELLED = "cancelled"    # 已取消
    COMPLETED = "completed"    # 已完成


# 占用时段的状态：只有这些状态参与冲突检测
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class PaymentStatus(str, Enum):
    """支付状态"""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class LedgerCategory(str, Enum):
    """积分来源类别"""
    BOOKING = "booking"
    PURCHASE = "purchase"
    RENTAL = "rental"
    REFERRAL = "referral"
    OTHER = "other"


class MemberRole(str, Enum):
    """会员角色"""
    MEMBER = "member"
    ARTIST = "artist"
    ADMIN = "admin"


# ============== 本体对象定义 ==============

class Member(Base):
    """
    会员对象 - 同时是积分账户

    points_total 是派生值：等于未过期流水之和（下限为 0），
    tier 始终是当前配置下对 points_total 的分级结果。
    """
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    role = Column(SQLEnum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    is_active = Column(Boolean, default=True)
    points_total = Column(Integer, default=0, nullable=False)     # 当前有效积分
    tier = Column(String(20), default="Bronze", nullable=False)   # 当前等级
    tier_updated_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 链接
    ledger_entries = relationship(
        "LedgerEntry", back_populates="member", order_by="LedgerEntry.id"
    )
    reservations = relationship(
        "Reservation", back_populates="requester", foreign_keys="Reservation.requester_id"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN


class Resource(Base):
    """
    可预订资源（单表继承基类）

    rate 对房间是小时费率，对乐器是日租金；
    is_active 对乐器即"可租"标记。
    """
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(10), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    rate = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    # Room 专有
    room_type = Column(SQLEnum(RoomType))
    capacity = Column(Integer)
    location = Column(String(200))
    # Item 专有
    instrument_type = Column(SQLEnum(InstrumentType))
    brand = Column(String(100))
    condition = Column(SQLEnum(ItemCondition))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    reservations = relationship("Reservation", back_populates="resource")

    __mapper_args__ = {"polymorphic_on": kind}

    @property
    def granularity_rule(self) -> GranularityRule:
        return HOURLY if self.resource_kind == ResourceKind.ROOM else DAILY

    @property
    def resource_kind(self) -> ResourceKind:
        return ResourceKind(self.kind)


class Room(Resource):
    """排练室 / 录音棚：整小时粒度，半开区间"""
    __mapper_args__ = {"polymorphic_identity": ResourceKind.ROOM.value}

    hourly_rate = synonym("rate")


class Item(Resource):
    """可租乐器：整天粒度，首尾两天都计入"""
    __mapper_args__ = {"polymorphic_identity": ResourceKind.ITEM.value}

    daily_rate = synonym("rate")
    is_available = synonym("is_active")


class Reservation(Base):
    """
    预订对象 - 房间预订与乐器租赁共用

    start_at / end_at 以资源粒度存储：房间为整点时刻（结束时刻不占用），
    乐器为当天零点（结束日当天占用）。记录只做状态迁移，从不删除。
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    resource_kind = Column(String(10), nullable=False)
    requester_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    duration_units = Column(Integer, nullable=False)     # 小时数或天数（含首尾）
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    cancellation_fee = Column(Numeric(10, 2))
    notes = Column(Text)
    cancel_reason = Column(Text)
    cancelled_by = Column(Integer, ForeignKey("members.id"))
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 链接
    resource = relationship("Resource", back_populates="reservations")
    requester = relationship("Member", back_populates="reservations", foreign_keys=[requester_id])
    canceller = relationship("Member", foreign_keys=[cancelled_by])

    __table_args__ = (
        Index("ix_reservations_resource_status", "resource_id", "status"),
        Index("ix_reservations_requester", "requester_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RESERVATION_STATUSES


class LedgerEntry(Base):
    """
    积分流水 - 只追加，不修改金额、不重排

    过期流水不物理删除：excluded_at 记录它被清理程序排除出余额的时间，
    余额计算只看 expires_at。
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    amount = Column(Integer, nullable=False)              # 正数为累积，负数为冲销
    category = Column(SQLEnum(LedgerCategory), nullable=False)
    description = Column(String(255))
    reference_type = Column(String(20))                   # reservation / order / ...
    reference_id = Column(String(64))
    reverses_entry_id = Column(Integer, ForeignKey("ledger_entries.id"))
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    expires_at = Column(DateTime)
    excluded_at = Column(DateTime)

    member = relationship("Member", back_populates="ledger_entries")

    __table_args__ = (
        Index("ix_ledger_entries_member", "member_id"),
        Index("ix_ledger_entries_expiry", "expires_at", "excluded_at"),
        Index("ix_ledger_entries_reference", "reference_type", "reference_id"),
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class RewardConfig(Base):
    """
    奖励配置 - 全局唯一（固定主键 1），带版本号

    tiers: [{"name": "Bronze", "threshold": 0, "discount": 5}, ...]（门槛非递减）
    point_values: {"booking": 10, "purchase": 1, "rental": 0.5, "referral": 50}
    """
    __tablename__ = "reward_config"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True)
    version = Column(Integer, default=1, nullable=False)
    tiers = Column(JSON, nullable=False)
    point_values = Column(JSON, nullable=False)
    expiry_enabled = Column(Boolean, default=True, nullable=False)
    expiry_duration_days = Column(Integer, default=365, nullable=False)
    updated_at = Column(DateTime, default=datetime.now)
    updated_by = Column(Integer, ForeignKey("members.id"))

    def to_snapshot(self) -> RewardConfigSnapshot:
        """数据库记录 → 不可变快照"""
        return RewardConfigSnapshot(
            version=self.version,
            tiers=[TierRule(**t) for t in self.tiers],
            point_values=dict(self.point_values),
            expiry=ExpiryPolicy(enabled=self.expiry_enabled, duration_days=self.expiry_duration_days),
        )
