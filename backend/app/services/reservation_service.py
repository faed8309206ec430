"""
预订服务 - 本体操作层
管理 Reservation 对象：房间按小时预订、乐器按天租赁，共用一套准入与生命周期

- 准入检查（加载已占用时段 → 冲突检测 → 计价 → 写入）在资源锁内完成
- 业务错误以 Result 返回；存储故障以 StorageError 抛出
- 领域事件在提交之后、锁外发布
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from core.engine.event_bus import Event, event_bus
from core.engine.keyed_lock import KeyedLock, resource_locks
from core.result import Result
from app.config import settings
from app.database import storage_guard
from app.domain.actor import Actor
from app.domain.calendar import ResourceCalendar
from app.domain.cancellation import CancellationPolicy
from app.domain.errors import ErrorKind
from app.domain.granularity import TimePoint, TimeRange
from app.domain.lifecycle import CANCELLED, check_payment_change, check_status_transition
from app.domain.overlap import overlap_case
from app.models.events import (
    EventType, ReservationCancelledData, ReservationCreatedData, ReservationStatusChangedData,
)
from app.models.ontology import (
    ACTIVE_RESERVATION_STATUSES, Member, PaymentStatus, Reservation, ReservationStatus,
    Resource, ResourceKind,
)

logger = logging.getLogger(__name__)

# 乐器日历一次最多查询的天数
MAX_CALENDAR_DAYS = 366


@dataclass
class AvailabilitySlot:
    label: str
    start: datetime
    end: datetime
    available: bool
    reservation_ids: List[int] = field(default_factory=list)


@dataclass
class AvailabilityView:
    """资源可用性视图"""
    resource_id: int
    resource_kind: str
    resource_name: str
    is_active: bool
    available: bool
    slots: List[AvailabilitySlot] = field(default_factory=list)
    conflicts: List[Reservation] = field(default_factory=list)


class ReservationService:
    """预订服务"""

    def __init__(
        self,
        db: Session,
        event_publisher: Callable[[Event], None] = None,
        clock: Callable[[], datetime] = None,
        locks: KeyedLock = None,
        policy: CancellationPolicy = None,
        initial_statuses: Dict[str, str] = None,
    ):
        self.db = db
        # 支持依赖注入，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock or datetime.now
        self._locks = locks or resource_locks
        self._policy = policy or CancellationPolicy.from_settings(settings)
        self._initial_statuses = initial_statuses or {
            ResourceKind.ROOM.value: settings.ROOM_INITIAL_STATUS,
            ResourceKind.ITEM.value: settings.ITEM_INITIAL_STATUS,
        }

    # ============== 查询 ==============

    def get_reservation(self, reservation_id: int, actor: Actor) -> Result:
        """获取单个预订（仅预订人或管理员可见）"""
        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            return Result.fail(ErrorKind.NOT_FOUND, "预订不存在", reservation_id=reservation_id)
        if not actor.may_act_on(reservation.requester_id):
            return Result.fail(ErrorKind.UNAUTHORIZED, "无权查看该预订")
        return Result.ok(reservation)

    def list_for_requester(self, requester_id: int) -> List[Reservation]:
        """会员自己的预订（新的在前）"""
        return self.db.query(Reservation).filter(
            Reservation.requester_id == requester_id
        ).order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()

    def list_for_resource(self, resource_id: int, actor: Actor) -> Result:
        """某个资源的全部预订（管理员）"""
        if not actor.is_admin:
            return Result.fail(ErrorKind.UNAUTHORIZED, "只有管理员可以查看资源的预订列表")
        if not self.db.query(Resource.id).filter(Resource.id == resource_id).first():
            return Result.fail(ErrorKind.NOT_FOUND, "资源不存在", resource_id=resource_id)
        return Result.ok(self.db.query(Reservation).filter(
            Reservation.resource_id == resource_id
        ).order_by(Reservation.start_at).all())

    def list_all(self, actor: Actor, status: Optional[ReservationStatus] = None,
                 payment_status: Optional[PaymentStatus] = None,
                 resource_kind: Optional[ResourceKind] = None,
                 day: Optional[date] = None) -> Result:
        """管理端预订列表，可按状态、支付状态、资源类别与日期过滤"""
        if not actor.is_admin:
            return Result.fail(ErrorKind.UNAUTHORIZED, "只有管理员可以查看全部预订")

        query = self.db.query(Reservation)
        if status:
            query = query.filter(Reservation.status == status)
        if payment_status:
            query = query.filter(Reservation.payment_status == payment_status)
        if resource_kind:
            query = query.filter(Reservation.resource_kind == ResourceKind(resource_kind).value)
        if day:
            day_start = datetime.combine(day, time.min)
            # 房间结束时刻不占用，乐器结束日当天占用
            query = query.filter(
                Reservation.start_at < day_start + timedelta(days=1),
                or_(
                    and_(Reservation.resource_kind == ResourceKind.ROOM.value, Reservation.end_at > day_start),
                    and_(Reservation.resource_kind == ResourceKind.ITEM.value, Reservation.end_at >= day_start),
                ),
            )
        return Result.ok(query.order_by(Reservation.start_at.desc()).all())

    def get_availability(self, resource_id: int, start: date, end: Optional[date] = None) -> Result:
        """
        资源可用性

        - 房间：start 当天 24 个整点时段（"HH:00"），end 忽略
        - 乐器：[start, end] 闭区间内逐日标注，另附冲突的预订
        """
        resource = self.db.query(Resource).filter(Resource.id == resource_id).first()
        if not resource:
            return Result.fail(ErrorKind.NOT_FOUND, "资源不存在", resource_id=resource_id)

        rule = resource.granularity_rule
        day_start = datetime.combine(start, time.min)
        if resource.resource_kind == ResourceKind.ROOM:
            window = TimeRange(day_start, day_start + timedelta(days=1))
            label_format = "%H:00"
        else:
            end = end or start
            if end < start:
                return Result.fail(ErrorKind.INVALID_RANGE, "结束日期不能早于开始日期")
            if (end - start).days + 1 > MAX_CALENDAR_DAYS:
                return Result.fail(ErrorKind.INVALID_RANGE, f"查询范围不能超过 {MAX_CALENDAR_DAYS} 天")
            window = TimeRange(day_start, datetime.combine(end, time.min))
            label_format = "%Y-%m-%d"

        active = self._active_reservations(resource.id)
        calendar = ResourceCalendar.from_reservations(resource.id, rule, active)
        slots = [
            AvailabilitySlot(
                label=slot.start.strftime(label_format),
                start=slot.start,
                end=slot.end,
                available=resource.is_active and slot.available,
                reservation_ids=slot.reservation_ids,
            )
            for slot in calendar.availability(window)
        ]
        conflict_ids = set(calendar.conflicts(window))
        return Result.ok(AvailabilityView(
            resource_id=resource.id,
            resource_kind=resource.kind,
            resource_name=resource.name,
            is_active=bool(resource.is_active),
            available=bool(resource.is_active) and not conflict_ids,
            slots=slots,
            conflicts=[r for r in active if r.id in conflict_ids],
        ))

    # ============== 准入 ==============

    def reserve(self, resource_id: int, start: TimePoint, end: TimePoint,
                requester_id: int, notes: Optional[str] = None) -> Result:
        """
        预订 / 租赁准入

        1. 资源存在且可用，时间区间满足粒度要求
        2. 加载同一资源上待确认 / 已确认的预订
        3. 冲突检测，有冲突则 SlotUnavailable
        4. 价格 = 单位数 × 费率
        5. 以初始状态写入
        """
        with self._locks.hold(resource_id):
            with storage_guard(self.db, "reserve"):
                resource = self.db.query(Resource).filter(
                    Resource.id == resource_id
                ).with_for_update().first()
                if not resource:
                    return self._reject(Result.fail(ErrorKind.NOT_FOUND, "资源不存在", resource_id=resource_id))
                if not self.db.query(Member.id).filter(Member.id == requester_id).first():
                    return self._reject(Result.fail(ErrorKind.NOT_FOUND, "会员不存在", member_id=requester_id))
                if not resource.is_active:
                    return self._reject(Result.fail(
                        ErrorKind.RESOURCE_UNAVAILABLE, f"{resource.name} 当前不可预订", resource_id=resource_id
                    ))

                rule = resource.granularity_rule
                problem = rule.validate(start, end)
                if problem:
                    return self._reject(Result.fail(ErrorKind.INVALID_RANGE, problem))
                candidate = rule.to_range(start, end)

                calendar = ResourceCalendar.from_reservations(
                    resource.id, rule, self._active_reservations(resource.id)
                )
                conflicts = calendar.conflicts(candidate)
                if conflicts:
                    cases = [
                        overlap_case(candidate, rng, rule).value
                        for rid, rng in calendar.committed if rid in conflicts
                    ]
                    return self._reject(Result.fail(
                        ErrorKind.SLOT_UNAVAILABLE, "所选时段已被预订",
                        conflicting_reservation_ids=conflicts, cases=cases,
                    ))

                reservation = Reservation(
                    resource_id=resource.id,
                    resource_kind=resource.kind,
                    requester_id=requester_id,
                    start_at=candidate.start,
                    end_at=candidate.end,
                    duration_units=rule.duration_units(candidate),
                    status=ReservationStatus(self._initial_statuses[resource.kind]),
                    payment_status=PaymentStatus.PENDING,
                    price=rule.price(resource.rate, candidate),
                    notes=notes,
                    created_at=self._now(),
                    updated_at=self._now(),
                )
                self.db.add(reservation)
                self.db.commit()
                self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation.id} created: {resource.kind} {resource.id} "
            f"{reservation.start_at} - {reservation.end_at}, price {reservation.price}, "
            f"status {reservation.status.value}"
        )
        self._publish_event(Event(
            event_type=EventType.RESERVATION_CREATED,
            timestamp=self._now(),
            data=ReservationCreatedData(
                reservation_id=reservation.id,
                resource_id=resource.id,
                resource_kind=resource.kind,
                resource_name=resource.name,
                requester_id=requester_id,
                start_at=reservation.start_at,
                end_at=reservation.end_at,
                status=reservation.status.value,
                price=reservation.price,
            ).to_dict(),
            source="reservation_service",
        ))
        return Result.ok(reservation)

    # ============== 状态迁移 ==============

    def update_status(self, reservation_id: int, new_status: ReservationStatus, actor: Actor,
                      reason: Optional[str] = None) -> Result:
        """状态迁移；迁移到 cancelled 时走取消流程"""
        new_status = ReservationStatus(new_status)
        if new_status == ReservationStatus.CANCELLED:
            return self.cancel(reservation_id, actor, reason)

        resource_id = self._resource_of(reservation_id)
        if resource_id is None:
            return Result.fail(ErrorKind.NOT_FOUND, "预订不存在", reservation_id=reservation_id)

        with self._locks.hold(resource_id):
            with storage_guard(self.db, "update_status"):
                reservation = self._lock_reservation(reservation_id)
                old_status = reservation.status.value
                check = check_status_transition(old_status, new_status.value, reservation.requester_id, actor)
                if not check.success:
                    return self._reject(check)
                reservation.status = new_status
                reservation.updated_at = self._now()
                self.db.commit()
                self.db.refresh(reservation)

        logger.info(f"Reservation {reservation_id} status: {old_status} -> {new_status.value} by {actor.member_id}")
        self._publish_event(Event(
            event_type=EventType.RESERVATION_STATUS_CHANGED,
            timestamp=self._now(),
            data=ReservationStatusChangedData(
                reservation_id=reservation_id,
                old_status=old_status,
                new_status=new_status.value,
                changed_by=actor.member_id,
            ).to_dict(),
            source="reservation_service",
        ))
        return Result.ok(reservation)

    def cancel(self, reservation_id: int, actor: Actor, reason: Optional[str] = None) -> Result:
        """
        取消预订并计算取消费

        取消费只记录在预订上，不产生积分流水；时段随即释放。
        """
        resource_id = self._resource_of(reservation_id)
        if resource_id is None:
            return Result.fail(ErrorKind.NOT_FOUND, "预订不存在", reservation_id=reservation_id)

        with self._locks.hold(resource_id):
            with storage_guard(self.db, "cancel"):
                reservation = self._lock_reservation(reservation_id)
                old_status = reservation.status.value
                check = check_status_transition(old_status, CANCELLED, reservation.requester_id, actor)
                if not check.success:
                    return self._reject(check)

                now = self._now()
                fee = self._policy.fee_for(reservation.price, reservation.start_at, now)
                reservation.status = ReservationStatus.CANCELLED
                reservation.cancellation_fee = fee
                reservation.cancel_reason = reason
                reservation.cancelled_by = actor.member_id
                reservation.cancelled_at = now
                reservation.updated_at = now
                self.db.commit()
                self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation_id} cancelled by {actor.member_id} "
            f"(was {old_status}), fee {reservation.cancellation_fee}"
        )
        self._publish_event(Event(
            event_type=EventType.RESERVATION_CANCELLED,
            timestamp=self._now(),
            data=ReservationCancelledData(
                reservation_id=reservation.id,
                resource_id=reservation.resource_id,
                resource_kind=reservation.resource_kind,
                requester_id=reservation.requester_id,
                old_status=old_status,
                price=reservation.price,
                cancellation_fee=reservation.cancellation_fee,
                cancelled_by=actor.member_id,
                reason=reason or "",
            ).to_dict(),
            source="reservation_service",
        ))
        return Result.ok(reservation)

    def update_payment_status(self, reservation_id: int, payment_status: PaymentStatus,
                              actor: Actor) -> Result:
        """修改支付状态（管理员）"""
        resource_id = self._resource_of(reservation_id)
        if resource_id is None:
            return Result.fail(ErrorKind.NOT_FOUND, "预订不存在", reservation_id=reservation_id)
        check = check_payment_change(payment_status, actor)
        if not check.success:
            self.db.rollback()
            return check

        with self._locks.hold(resource_id):
            with storage_guard(self.db, "update_payment_status"):
                reservation = self._lock_reservation(reservation_id)
                old = reservation.payment_status.value
                reservation.payment_status = PaymentStatus(check.value)
                reservation.updated_at = self._now()
                self.db.commit()
                self.db.refresh(reservation)

        logger.info(f"Reservation {reservation_id} payment status: {old} -> {check.value}")
        return Result.ok(reservation)

    # ============== 内部 ==============

    def _active_reservations(self, resource_id: int) -> List[Reservation]:
        return self.db.query(Reservation).filter(
            Reservation.resource_id == resource_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        ).all()

    def _resource_of(self, reservation_id: int) -> Optional[int]:
        row = self.db.query(Reservation.resource_id).filter(Reservation.id == reservation_id).first()
        return row.resource_id if row else None

    def _lock_reservation(self, reservation_id: int) -> Reservation:
        return self.db.query(Reservation).filter(
            Reservation.id == reservation_id
        ).with_for_update().first()

    def _reject(self, result: Result) -> Result:
        """释放行锁并记录被拒绝的操作"""
        self.db.rollback()
        logger.warning(f"Rejected: {result.error.kind}: {result.error.message}")
        return result
