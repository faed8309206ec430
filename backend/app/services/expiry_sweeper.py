"""
积分过期清理

批处理：找出含有已到期但尚未排除的流水的账户，逐个账户排除并重算余额与等级。
每个账户单独提交，任务中途失败后重跑即可继续，已排除的流水不会被重复扣减。
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List
import logging

from sqlalchemy.orm import Session

from core.engine.event_bus import Event, event_bus
from app.database import SessionLocal
from app.models.ontology import LedgerEntry
from app.services.ledger_service import LedgerService
from app.services.reward_config_service import RewardConfigService

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "loyalty.expiry_sweep"


@dataclass
class SweepReport:
    """清理结果汇总"""
    started_at: datetime
    finished_at: datetime = None
    accounts_scanned: int = 0
    accounts_changed: int = 0
    entries_excluded: int = 0
    points_removed: int = 0
    failed_accounts: List[int] = field(default_factory=list)


class ExpirySweeper:
    """过期清理器"""

    def __init__(
        self,
        db: Session,
        event_publisher: Callable[[Event], None] = None,
        clock: Callable[[], datetime] = None,
    ):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock or datetime.now

    def pending_accounts(self, now: datetime) -> List[int]:
        """含有已到期未排除流水的账户"""
        rows = self.db.query(LedgerEntry.member_id).filter(
            LedgerEntry.expires_at.isnot(None),
            LedgerEntry.expires_at <= now,
            LedgerEntry.excluded_at.is_(None),
        ).distinct().all()
        return sorted(row.member_id for row in rows)

    def run(self) -> SweepReport:
        """
        执行一次清理

        不受过期策略开关影响：开关只决定新流水是否带过期时间，
        已带过期时间的流水到期后一律排除。
        """
        report = SweepReport(started_at=self._now())
        config = RewardConfigService(self.db, event_publisher=self._publish_event, clock=self._now).snapshot()
        ledger = LedgerService(self.db, event_publisher=self._publish_event, clock=self._now)

        member_ids = self.pending_accounts(report.started_at)
        self.db.rollback()
        for member_id in member_ids:
            report.accounts_scanned += 1
            result = ledger.sweep_account(member_id, config)
            if not result.success:
                report.failed_accounts.append(member_id)
                logger.warning(f"Sweep skipped member {member_id}: {result.error.message}")
                continue
            outcome = result.value
            report.entries_excluded += outcome.entries_excluded
            report.points_removed += outcome.points_removed
            if outcome.points_removed or outcome.tier_changed:
                report.accounts_changed += 1

        report.finished_at = self._now()
        logger.info(
            f"Expiry sweep finished: {report.accounts_scanned} accounts scanned, "
            f"{report.accounts_changed} changed, {report.entries_excluded} entries excluded, "
            f"{report.points_removed} points removed"
        )
        return report


def run_expiry_sweep() -> SweepReport:
    """调度任务入口：独立会话执行一次清理"""
    db = SessionLocal()
    try:
        return ExpirySweeper(db).run()
    finally:
        db.close()
