"""
配置版本管理服务
记录配置变更历史，版本号与配置记录本身的版本号一致
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
import json
import logging

from app.models.snapshots import ConfigHistory

logger = logging.getLogger(__name__)


class ConfigHistoryService:
    """配置版本管理服务"""

    def __init__(self, db: Session):
        self.db = db

    def record_change(
        self,
        config_key: str,
        version: int,
        old_value: Optional[Dict[str, Any]],
        new_value: Dict[str, Any],
        changed_by: Optional[int],
        change_reason: str = None
    ) -> ConfigHistory:
        """
        记录配置变更（不提交，随调用方的事务一起提交）

        Args:
            config_key: 配置项标识（如 reward_config）
            version: 变更后的版本号
            old_value: 变更前的值
            new_value: 变更后的值
            changed_by: 变更人ID
            change_reason: 变更原因
        """
        self.db.query(ConfigHistory).filter(
            ConfigHistory.config_key == config_key,
            ConfigHistory.is_current == True  # noqa: E712
        ).update({"is_current": False})

        history = ConfigHistory(
            config_key=config_key,
            version=version,
            old_value=json.dumps(old_value, default=str, ensure_ascii=False) if old_value else None,
            new_value=json.dumps(new_value, default=str, ensure_ascii=False),
            changed_by=changed_by,
            changed_at=datetime.now(),
            change_reason=change_reason,
            is_current=True
        )
        self.db.add(history)
        self.db.flush()

        logger.info(f"Recorded config change: {config_key} v{version}")
        return history

    def get_history(self, config_key: str, limit: int = 20) -> List[ConfigHistory]:
        """配置变更历史（新版本在前）"""
        return self.db.query(ConfigHistory).filter(
            ConfigHistory.config_key == config_key
        ).order_by(ConfigHistory.version.desc()).limit(limit).all()

    @staticmethod
    def decode(history: ConfigHistory) -> Dict[str, Any]:
        """历史记录转字典（JSON 字段解码）"""
        return {
            "version": history.version,
            "old_value": json.loads(history.old_value) if history.old_value else None,
            "new_value": json.loads(history.new_value),
            "changed_by": history.changed_by,
            "changed_at": history.changed_at,
            "change_reason": history.change_reason,
            "is_current": history.is_current,
        }
