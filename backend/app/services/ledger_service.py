"""
积分账本服务 - 本体操作层
管理会员积分账户（Member）与积分流水（LedgerEntry）

- 流水只追加；余额每次从完整流水集合重新折叠，不做增量累加
- 余额与等级的读-改-写在会员锁内完成，和追加流水处于同一事务
- 等级只由 reclassify() 计算，调用点：记账、过期清理、配置变更
- 传入的配置快照落后于已保存版本时，在会员锁内改用最新配置
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from core.engine.event_bus import Event, event_bus
from core.engine.keyed_lock import KeyedLock, account_locks
from core.result import Result
from app.database import storage_guard
from app.domain.errors import ErrorKind
from app.domain.ledger import fold_balance
from app.domain.tiers import NextTier, RewardConfigSnapshot
from app.models.events import EventType, LedgerEntryPostedData, TierChangedData
from app.models.ontology import LedgerCategory, LedgerEntry, Member, RewardConfig

logger = logging.getLogger(__name__)


@dataclass
class AccountSummary:
    """积分账户摘要"""
    member_id: int
    points: int
    tier: str
    discount: float
    next_tier: Optional[NextTier]
    history: List[LedgerEntry] = field(default_factory=list)


@dataclass
class AccountSweep:
    """单个账户的清理结果"""
    member_id: int
    entries_excluded: int = 0
    points_removed: int = 0
    tier_changed: bool = False


class LedgerService:
    """积分账本服务"""

    def __init__(
        self,
        db: Session,
        event_publisher: Callable[[Event], None] = None,
        clock: Callable[[], datetime] = None,
        locks: KeyedLock = None,
    ):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock or datetime.now
        self._locks = locks or account_locks

    # ============== 读取 ==============

    def get_entries(self, member_id: int, limit: Optional[int] = None) -> List[LedgerEntry]:
        """积分流水（新的在前）"""
        query = self.db.query(LedgerEntry).filter(
            LedgerEntry.member_id == member_id
        ).order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def summary(self, member_id: int, config: RewardConfigSnapshot,
                history_limit: int = 5) -> Result:
        """
        账户摘要：当前有效积分、等级、折扣、最近记录与下一等级

        积分按读取时刻折叠，即使清理任务尚未运行，已过期的流水也不计入。
        """
        member = self.db.query(Member).filter(Member.id == member_id).first()
        if not member:
            return Result.fail(ErrorKind.NOT_FOUND, "会员不存在", member_id=member_id)

        entries = self.db.query(LedgerEntry).filter(LedgerEntry.member_id == member_id).all()
        points = fold_balance(entries, self._now())
        tier = config.classify(points)
        return Result.ok(AccountSummary(
            member_id=member_id,
            points=points,
            tier=tier,
            discount=config.discount_for(tier),
            next_tier=config.next_tier(tier, points),
            history=self.get_entries(member_id, limit=history_limit),
        ))

    # ============== 余额与等级 ==============

    def recompute(self, member: Member, now: datetime) -> int:
        """从完整流水重新折叠余额（在调用方的事务与锁内）"""
        self.db.flush()
        entries = self.db.query(LedgerEntry).filter(LedgerEntry.member_id == member.id).all()
        member.points_total = fold_balance(entries, now)
        return member.points_total

    def reclassify(self, member: Member, config: RewardConfigSnapshot) -> Optional[Tuple[str, str]]:
        """
        按当前余额与配置重新分级

        Returns:
            等级发生变化时返回 (旧等级, 新等级)，否则 None
        """
        new_tier = config.classify(member.points_total or 0)
        old_tier = member.tier
        if new_tier == old_tier:
            return None
        member.tier = new_tier
        member.tier_updated_at = self._now()
        return old_tier, new_tier

    # ============== 记账 ==============

    def post_entry(
        self,
        member_id: int,
        amount: int,
        category: LedgerCategory,
        config: RewardConfigSnapshot,
        description: str = None,
        reference_type: str = None,
        reference_id: str = None,
    ) -> Result:
        """
        追加一条流水并同步余额与等级

        过期时间由配置的过期策略决定（策略关闭时为空）。
        """
        now = self._now()
        with self._locks.hold(member_id):
            with storage_guard(self.db, "post_entry"):
                member = self._lock_member(member_id)
                if not member:
                    self.db.rollback()
                    return Result.fail(ErrorKind.NOT_FOUND, "会员不存在", member_id=member_id)
                config = self._current_config(config)
                entry, tier_change = self._append(
                    member, amount, LedgerCategory(category), config, now,
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    expires_at=config.expires_at(now),
                )
                self.db.commit()
                self.db.refresh(entry)
                events = self._entry_events(member, entry, tier_change, "entry_posted")

        for e in events:
            self._publish_event(e)
        return Result.ok(entry)

    def accrue(
        self,
        member_id: int,
        category: LedgerCategory,
        config: RewardConfigSnapshot,
        spend: Optional[Decimal] = None,
        description: str = None,
        reference_type: str = None,
        reference_id: str = None,
    ) -> Result:
        """
        按配置的积分值累积积分

        booking / referral 按次计分，purchase / rental 按金额计分。
        积分为 0 时不记账，返回 Result.ok(None)。
        """
        category = LedgerCategory(category)
        points = config.points_for(category.value, spend)
        if points <= 0:
            logger.debug(f"No points to accrue for member {member_id} ({category.value}, spend={spend})")
            return Result.ok(None)
        return self.post_entry(
            member_id, points, category, config,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def reverse_reference(
        self,
        member_id: int,
        reference_type: str,
        reference_id: str,
        config: RewardConfigSnapshot,
        description: str = None,
    ) -> Result:
        """
        冲销某个来源（如预订）产生的积分

        每条正向流水追加一条等额负向流水，过期时间与原流水相同，
        已冲销过的流水不会重复冲销。

        Returns:
            value 为新追加的冲销流水列表（可能为空）
        """
        now = self._now()
        with self._locks.hold(member_id):
            with storage_guard(self.db, "reverse_reference"):
                member = self._lock_member(member_id)
                if not member:
                    self.db.rollback()
                    return Result.fail(ErrorKind.NOT_FOUND, "会员不存在", member_id=member_id)
                config = self._current_config(config)

                originals = self.db.query(LedgerEntry).filter(
                    LedgerEntry.member_id == member_id,
                    LedgerEntry.reference_type == reference_type,
                    LedgerEntry.reference_id == str(reference_id),
                    LedgerEntry.amount > 0,
                    LedgerEntry.reverses_entry_id.is_(None),
                ).all()
                reversed_ids = {
                    row.reverses_entry_id for row in self.db.query(LedgerEntry.reverses_entry_id).filter(
                        LedgerEntry.reverses_entry_id.in_([o.id for o in originals])
                    )
                } if originals else set()

                reversals = []
                tier_change = None
                for original in originals:
                    if original.id in reversed_ids:
                        continue
                    entry, change = self._append(
                        member, -original.amount, LedgerCategory.OTHER, config, now,
                        description=description or f"冲销流水 #{original.id}",
                        reference_type=reference_type,
                        reference_id=str(reference_id),
                        expires_at=original.expires_at,
                        reverses_entry_id=original.id,
                    )
                    reversals.append(entry)
                    tier_change = self._merge_change(tier_change, change)

                if not reversals:
                    self.db.rollback()
                    return Result.ok([])

                self.db.commit()
                events = []
                for entry in reversals:
                    self.db.refresh(entry)
                    events.extend(self._entry_events(member, entry, None, "entry_posted"))
                if tier_change:
                    events.append(self._tier_event(member, tier_change, "entry_posted"))

        for e in events:
            self._publish_event(e)
        return Result.ok(reversals)

    # ============== 清理与重新分级 ==============

    def sweep_account(self, member_id: int, config: RewardConfigSnapshot) -> Result:
        """
        排除一个账户的过期流水并重算余额与等级

        过期流水只打上 excluded_at 标记，不删除；重复执行不会重复扣减。
        """
        now = self._now()
        with self._locks.hold(member_id):
            with storage_guard(self.db, "sweep_account"):
                member = self._lock_member(member_id)
                if not member:
                    self.db.rollback()
                    return Result.fail(ErrorKind.NOT_FOUND, "会员不存在", member_id=member_id)
                config = self._current_config(config)

                expired = self.db.query(LedgerEntry).filter(
                    LedgerEntry.member_id == member_id,
                    LedgerEntry.expires_at.isnot(None),
                    LedgerEntry.expires_at <= now,
                    LedgerEntry.excluded_at.is_(None),
                ).all()
                for entry in expired:
                    entry.excluded_at = now

                before = member.points_total or 0
                after = self.recompute(member, now)
                tier_change = self.reclassify(member, config)
                self.db.commit()

                outcome = AccountSweep(
                    member_id=member_id,
                    entries_excluded=len(expired),
                    points_removed=max(before - after, 0),
                    tier_changed=tier_change is not None,
                )
                events = [self._tier_event(member, tier_change, "expiry_sweep")] if tier_change else []

        if expired:
            logger.info(
                f"Swept member {member_id}: excluded {outcome.entries_excluded} entries, "
                f"points {before} -> {after}"
            )
        for e in events:
            self._publish_event(e)
        return Result.ok(outcome)

    def reclassify_all(self, config: RewardConfigSnapshot) -> int:
        """
        配置变更后对全部账户重新分级（只重读余额，不重算历史）

        Returns:
            等级发生变化的账户数
        """
        member_ids = [row.id for row in self.db.query(Member.id).order_by(Member.id).all()]
        self.db.rollback()
        changed = 0
        for member_id in member_ids:
            with self._locks.hold(member_id):
                with storage_guard(self.db, "reclassify_all"):
                    member = self._lock_member(member_id)
                    if not member:
                        self.db.rollback()
                        continue
                    config = self._current_config(config)
                    tier_change = self.reclassify(member, config)
                    self.db.commit()
            if tier_change:
                changed += 1
                self._publish_event(self._tier_event(member, tier_change, "config_changed"))
        logger.info(f"Reclassified {len(member_ids)} accounts under config v{config.version}, {changed} changed")
        return changed

    # ============== 内部 ==============

    def _lock_member(self, member_id: int) -> Optional[Member]:
        return self.db.query(Member).filter(Member.id == member_id).with_for_update().first()

    def _current_config(self, config: RewardConfigSnapshot) -> RewardConfigSnapshot:
        """
        在会员锁内核对配置版本

        调用方持有的快照落后于已保存的版本时改用最新配置，
        保证写入的等级与当前门槛一致。
        """
        row = self.db.query(RewardConfig).filter(
            RewardConfig.id == RewardConfig.SINGLETON_ID
        ).populate_existing().first()
        if row is None or row.version <= config.version:
            return config
        logger.info(f"Config snapshot v{config.version} is stale, using v{row.version}")
        return row.to_snapshot()

    def _append(self, member: Member, amount: int, category: LedgerCategory,
                config: RewardConfigSnapshot, now: datetime, **fields):
        entry = LedgerEntry(
            member_id=member.id,
            amount=int(amount),
            category=category,
            created_at=now,
            **fields,
        )
        self.db.add(entry)
        self.recompute(member, now)
        tier_change = self.reclassify(member, config)
        logger.info(
            f"Ledger entry for member {member.id}: {amount:+d} ({category.value}), "
            f"total {member.points_total}, tier {member.tier}"
        )
        return entry, tier_change

    @staticmethod
    def _merge_change(first, second):
        if first is None:
            return second
        if second is None:
            return first
        old_tier, _ = first
        _, new_tier = second
        return None if old_tier == new_tier else (old_tier, new_tier)

    def _entry_events(self, member: Member, entry: LedgerEntry, tier_change, trigger: str) -> List[Event]:
        events = [Event(
            event_type=EventType.LEDGER_ENTRY_POSTED,
            timestamp=self._now(),
            data=LedgerEntryPostedData(
                entry_id=entry.id,
                member_id=member.id,
                amount=entry.amount,
                category=entry.category.value,
                points_total=member.points_total,
                tier=member.tier,
            ).to_dict(),
            source="ledger_service",
        )]
        if tier_change:
            events.append(self._tier_event(member, tier_change, trigger))
        return events

    def _tier_event(self, member: Member, tier_change: Tuple[str, str], trigger: str) -> Event:
        old_tier, new_tier = tier_change
        logger.info(f"Member {member.id} tier changed: {old_tier} -> {new_tier} ({trigger})")
        return Event(
            event_type=EventType.TIER_CHANGED,
            timestamp=self._now(),
            data=TierChangedData(
                member_id=member.id,
                old_tier=old_tier,
                new_tier=new_tier,
                points_total=member.points_total,
                trigger=trigger,
            ).to_dict(),
            source="ledger_service",
        )
