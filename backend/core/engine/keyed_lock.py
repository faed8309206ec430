"""
core/engine/keyed_lock.py

按键互斥锁 - 同一个键的临界区串行执行，不同键之间互不阻塞。
键用完即回收（引用计数），长时间运行不会累积锁对象。
"""
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator
import logging
import threading

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLock:
    """
    键控锁注册表

    Example:
        >>> locks = KeyedLock()
        >>> with locks.hold(("resource", 7)):
        ...     pass  # 对资源 7 的读-判-写
    """

    def __init__(self, name: str = "keyed"):
        self._name = name
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """获取 key 对应的互斥锁，退出上下文时释放"""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            contended = entry.refs > 1

        if contended:
            logger.debug(f"[{self._name}] waiting for lock {key!r}")
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._entries[key]


# 进程内共享的锁注册表：预订准入按资源加锁，积分账户按会员加锁
resource_locks = KeyedLock("resource")
account_locks = KeyedLock("account")


__all__ = ["KeyedLock", "resource_locks", "account_locks"]
