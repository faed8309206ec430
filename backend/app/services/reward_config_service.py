"""
奖励配置服务
全局唯一的 RewardConfig 记录：读取为不可变快照，只有管理员修改，
修改后递增版本、记录历史，并对所有账户重新分级
"""
from datetime import datetime
from typing import Callable, List
import logging
import threading

from pydantic import ValidationError
from sqlalchemy.orm import Session

from core.engine.event_bus import Event, event_bus
from core.result import Result
from app.database import storage_guard
from app.domain.actor import Actor
from app.domain.errors import ErrorKind
from app.domain.tiers import (
    DEFAULT_REWARD_CONFIG, RewardConfigSnapshot, RewardConfigUpdate, validate_tiers,
)
from app.models.events import EventType, RewardConfigUpdatedData
from app.models.ontology import RewardConfig
from app.models.snapshots import ConfigHistory
from app.services.config_history_service import ConfigHistoryService
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

CONFIG_KEY = "reward_config"

# 配置只有一个写入方
_config_write_lock = threading.Lock()


def _snapshot_to_dict(snapshot: RewardConfigSnapshot) -> dict:
    return snapshot.model_dump(mode="json")


class RewardConfigService:
    """奖励配置服务"""

    def __init__(
        self,
        db: Session,
        event_publisher: Callable[[Event], None] = None,
        clock: Callable[[], datetime] = None,
        ledger_service: LedgerService = None,
    ):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock or datetime.now
        self._ledger = ledger_service or LedgerService(db, event_publisher=self._publish_event, clock=self._now)
        self._history = ConfigHistoryService(db)

    def get_config(self) -> RewardConfig:
        """读取配置记录，不存在时写入默认配置"""
        row = self.db.query(RewardConfig).filter(RewardConfig.id == RewardConfig.SINGLETON_ID).first()
        if row is not None:
            return row
        with storage_guard(self.db, "seed_reward_config"):
            row = RewardConfig(id=RewardConfig.SINGLETON_ID, updated_at=self._now())
            self._apply(row, DEFAULT_REWARD_CONFIG)
            row.version = DEFAULT_REWARD_CONFIG.version
            self.db.add(row)
            self._history.record_change(
                CONFIG_KEY, row.version, None, _snapshot_to_dict(DEFAULT_REWARD_CONFIG),
                changed_by=None, change_reason="默认配置",
            )
            self.db.commit()
            self.db.refresh(row)
        logger.info("Seeded default reward configuration")
        return row

    def snapshot(self) -> RewardConfigSnapshot:
        """当前配置的不可变快照"""
        return self.get_config().to_snapshot()

    def update_config(self, update: RewardConfigUpdate, actor: Actor, reason: str = None) -> Result:
        """
        修改奖励配置

        合并部分修改并校验（门槛非递减、最低等级门槛为 0），
        保存新版本后对所有账户重新分级。

        Returns:
            成功时 value 为新配置快照
        """
        if not actor.is_admin:
            return Result.fail(ErrorKind.UNAUTHORIZED, "只有管理员可以修改奖励配置")

        with _config_write_lock:
            current = self.snapshot()
            try:
                merged = current.merge(update)
            except ValidationError as e:
                return Result.fail(ErrorKind.INVALID_CONFIGURATION, f"配置取值不合法: {e.errors()[0]['msg']}")
            except ValueError as e:
                return Result.fail(ErrorKind.INVALID_CONFIGURATION, str(e))

            problem = validate_tiers(merged.tiers)
            if problem:
                logger.warning(f"Rejected reward config update by {actor.member_id}: {problem}")
                return Result.fail(ErrorKind.INVALID_CONFIGURATION, problem)

            with storage_guard(self.db, "update_reward_config"):
                row = self.db.query(RewardConfig).filter(
                    RewardConfig.id == RewardConfig.SINGLETON_ID
                ).with_for_update().first()
                new_version = row.version + 1
                saved = merged.model_copy(update={"version": new_version})
                self._apply(row, saved)
                row.version = new_version
                row.updated_at = self._now()
                row.updated_by = actor.member_id
                self._history.record_change(
                    CONFIG_KEY, new_version, _snapshot_to_dict(current), _snapshot_to_dict(saved),
                    changed_by=actor.member_id, change_reason=reason,
                )
                self.db.commit()
            logger.info(f"Reward config updated to v{new_version} by member {actor.member_id}")

            changed = self._ledger.reclassify_all(saved)

        self._publish_event(Event(
            event_type=EventType.REWARD_CONFIG_UPDATED,
            timestamp=self._now(),
            data=RewardConfigUpdatedData(
                version=new_version,
                changed_by=actor.member_id,
                accounts_reclassified=changed,
            ).to_dict(),
            source="reward_config_service",
        ))
        return Result.ok(saved)

    def get_history(self, limit: int = 20) -> List[ConfigHistory]:
        """配置版本历史（新版本在前）"""
        self.get_config()
        return self._history.get_history(CONFIG_KEY, limit=limit)

    @staticmethod
    def _apply(row: RewardConfig, snapshot: RewardConfigSnapshot) -> None:
        row.tiers = [t.model_dump() for t in snapshot.tiers]
        row.point_values = dict(snapshot.point_values)
        row.expiry_enabled = snapshot.expiry.enabled
        row.expiry_duration_days = snapshot.expiry.duration_days
