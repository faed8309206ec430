"""
配置历史表
每次修改奖励配置都追加一条版本记录，保存变更前后的完整值
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Index
from app.database import Base


class ConfigHistory(Base):
    """配置版本记录"""
    __tablename__ = "config_history"

    id = Column(Integer, primary_key=True, index=True)
    config_key = Column(String(50), nullable=False)      # 配置项标识（如 reward_config）
    version = Column(Integer, nullable=False)
    old_value = Column(Text)                             # JSON
    new_value = Column(Text, nullable=False)             # JSON
    changed_by = Column(Integer, ForeignKey("members.id"))
    changed_at = Column(DateTime, default=datetime.now, nullable=False)
    change_reason = Column(Text)
    is_current = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_config_history_key_version", "config_key", "version", unique=True),
    )
