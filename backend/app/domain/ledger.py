"""
积分余额折叠

余额从不增量维护：每次都从完整的流水集合重新折叠，
过期流水被过滤掉而不是删除，结果下限为 0。
"""
from datetime import datetime
from typing import Any, Iterable


def is_live(entry: Any, now: datetime) -> bool:
    """未过期：expires_at 为空或晚于当前时间"""
    return entry.expires_at is None or entry.expires_at > now


def fold_balance(entries: Iterable[Any], now: datetime) -> int:
    """计算有效余额"""
    total = sum(e.amount for e in entries if is_live(e, now))
    return max(total, 0)
