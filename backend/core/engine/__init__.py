"""
core/engine - 核心引擎模块

- event_bus: 事件总线（发布/订阅）
- state_machine: 状态机（声明式转换表）
- keyed_lock: 按键互斥锁（资源级/账户级临界区）

使用方式:
    >>> from core.engine import event_bus, StateMachine, resource_locks
"""

from core.engine.event_bus import (
    EventHandler,
    Event,
    PublishResult,
    EventBus,
    event_bus,
)
from core.engine.state_machine import (
    StateTransition,
    StateMachineConfig,
    StateMachine,
)
from core.engine.keyed_lock import (
    KeyedLock,
    resource_locks,
    account_locks,
)

__all__ = [
    "EventHandler",
    "Event",
    "PublishResult",
    "EventBus",
    "event_bus",
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
    "KeyedLock",
    "resource_locks",
    "account_locks",
]
