"""
调度器接口：域无关的定时任务抽象

积分过期清理等批处理任务通过 ISchedulerBackend 注册，
具体实现（APScheduler）由 app 层在启动时注入。
"""
from core.scheduler.base import ISchedulerBackend, SchedulerRegistry

__all__ = ["ISchedulerBackend", "SchedulerRegistry"]
