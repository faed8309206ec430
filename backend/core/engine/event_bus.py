"""
core/engine/event_bus.py

进程内事件总线 - 同步发布/订阅
业务服务在事务提交、锁释放之后发布事件，订阅者在各自的会话中处理，
订阅者的异常被隔离并记录，不会回传给发布方。
"""
from typing import Callable, Dict, List, Any, Tuple
from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]


def _generate_event_id() -> str:
    """生成唯一事件ID"""
    return f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"


@dataclass
class Event:
    """
    事件

    Attributes:
        event_type: 事件类型（如 "reservation.created"）
        timestamp: 事件时间戳
        data: 事件数据（只含可序列化的公开字段）
        source: 触发来源（服务名）
        event_id: 唯一事件ID
    """

    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str = ""
    event_id: str = field(default_factory=_generate_event_id)


@dataclass
class PublishResult:
    """事件发布结果"""

    event_type: str
    subscriber_count: int
    success_count: int = 0
    failure_count: int = 0
    errors: List[Tuple[str, Exception]] = field(default_factory=list)


class EventBus:
    """
    线程安全的事件总线

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe("reservation.created", lambda e: print(e.data))
        >>> bus.publish(Event(event_type="reservation.created", timestamp=datetime.now(), data={}))
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._subscriber_lock = threading.RLock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """订阅事件（同一处理器重复订阅只记一次）"""
        with self._subscriber_lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.info(f"Handler {_handler_name(handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """取消订阅"""
        with self._subscriber_lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.info(f"Handler {_handler_name(handler)} unsubscribed from {event_type}")

    def publish(self, event: Event) -> PublishResult:
        """
        发布事件（同步执行所有处理器）

        处理器异常不会影响其他处理器，也不会抛给发布方。
        """
        # 在锁内复制，避免处理器执行期间持锁
        with self._subscriber_lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        result = PublishResult(event_type=event.event_type, subscriber_count=len(handlers))
        for handler in handlers:
            try:
                handler(event)
                result.success_count += 1
            except Exception as e:
                result.failure_count += 1
                result.errors.append((_handler_name(handler), e))
                logger.error(
                    f"Event handler {_handler_name(handler)} error for {event.event_type}: {e}",
                    exc_info=True,
                )
        return result

    def clear(self) -> None:
        """清空订阅（用于测试）"""
        with self._subscriber_lock:
            self._subscribers.clear()


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))


# 全局事件总线实例
event_bus = EventBus()


__all__ = [
    "EventHandler",
    "Event",
    "PublishResult",
    "EventBus",
    "event_bus",
]
