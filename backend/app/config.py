"""
应用配置
从环境变量 / .env 读取运行参数。
积分奖励规则（等级门槛、折扣、积分值、过期策略）不在这里：
它是数据库中的唯一一条 RewardConfig 记录，由管理端维护。
"""
from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "StudioBook"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./studiobook.db"

    # 取消政策：开始前不足 N 小时取消，收取价格的一定比例作为取消费
    CANCELLATION_WINDOW_HOURS: int = 24
    CANCELLATION_FEE_RATE: float = 0.5

    # 准入成功后的初始状态（房间默认待确认，器材默认已确认）
    ROOM_INITIAL_STATUS: str = "pending"
    ITEM_INITIAL_STATUS: str = "confirmed"

    # 积分过期清理任务
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = 60

    # 预订积分：创建时累积，取消时冲销
    BOOKING_ACCRUAL_ENABLED: bool = True
    REVERSE_ACCRUAL_ON_CANCEL: bool = True

    # 账户摘要中返回的最近积分记录条数
    RECENT_HISTORY_LIMIT: int = 5

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("ROOM_INITIAL_STATUS", "ITEM_INITIAL_STATUS", mode="after")
    @classmethod
    def check_initial_status(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("pending", "confirmed"):
            raise ValueError("初始状态只能是 pending 或 confirmed")
        return v

    @field_validator("CANCELLATION_FEE_RATE", mode="after")
    @classmethod
    def check_fee_rate(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("取消费比例必须在 0 到 1 之间")
        return v


# 全局设置实例
settings = Settings()
