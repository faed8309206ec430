"""
core - 领域无关的运行时框架

为 app 层提供通用的引擎组件，不依赖任何具体业务概念：
- engine: 事件总线、状态机、按键互斥锁
- scheduler: 定时任务后端接口
- result: 统一的操作结果类型

使用方式:
    >>> from core.result import Result
    >>> from core.engine import event_bus, StateMachine
    >>> from core.scheduler import SchedulerRegistry
"""

__version__ = "0.2.0"
