"""
时间粒度规则

资源的预订契约由粒度规则参数化：
- 整小时（房间）：区间 [start, end) 半开，结束时刻即可被下一位使用
- 整天（乐器）：区间 [start, end] 闭合，结束日当天仍被占用

冲突判断、时长与价格都由规则给出，不再按资源类别复制代码。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterator, Optional, Union

TimePoint = Union[date, datetime]

CENT = Decimal("0.01")


class Granularity(str, Enum):
    """预订粒度"""
    HOUR = "hour"
    DAY = "day"


@dataclass(frozen=True)
class TimeRange:
    """
    粒度对齐后的时间区间

    start/end 总是 datetime；闭合与否由所属的粒度规则解释。
    """
    start: datetime
    end: datetime


class GranularityRule(ABC):
    """粒度规则"""

    granularity: Granularity
    inclusive_end: bool
    unit: timedelta

    @abstractmethod
    def validate(self, start: TimePoint, end: TimePoint) -> Optional[str]:
        """校验原始输入，返回错误描述；合法时返回 None"""

    @abstractmethod
    def to_range(self, start: TimePoint, end: TimePoint) -> TimeRange:
        """把已校验的输入转成存储用的区间"""

    @abstractmethod
    def duration_units(self, rng: TimeRange) -> int:
        """区间包含的计费单位数"""

    @abstractmethod
    def overlaps(self, a: TimeRange, b: TimeRange) -> bool:
        """两个区间是否冲突"""

    @abstractmethod
    def unit_slots(self, window: TimeRange) -> Iterator[TimeRange]:
        """把窗口切成单个计费单位的区间（用于可用性日历）"""

    def price(self, rate: Decimal, rng: TimeRange) -> Decimal:
        """价格 = 单位数 × 费率"""
        total = Decimal(self.duration_units(rng)) * Decimal(str(rate))
        return total.quantize(CENT, rounding=ROUND_HALF_UP)


class HourlyRule(GranularityRule):
    """整小时粒度：[start, end) 半开"""

    granularity = Granularity.HOUR
    inclusive_end = False
    unit = timedelta(hours=1)

    def validate(self, start: TimePoint, end: TimePoint) -> Optional[str]:
        if not isinstance(start, datetime) or not isinstance(end, datetime):
            return "房间预订需要精确到小时的开始与结束时间"
        for label, point in (("开始", start), ("结束", end)):
            if point.minute or point.second or point.microsecond:
                return f"{label}时间必须为整点"
        if end <= start:
            return "结束时间必须晚于开始时间"
        return None

    def to_range(self, start: TimePoint, end: TimePoint) -> TimeRange:
        return TimeRange(start=start, end=end)

    def duration_units(self, rng: TimeRange) -> int:
        return int((rng.end - rng.start) // self.unit)

    def overlaps(self, a: TimeRange, b: TimeRange) -> bool:
        return a.start < b.end and b.start < a.end

    def unit_slots(self, window: TimeRange) -> Iterator[TimeRange]:
        cursor = window.start
        while cursor < window.end:
            yield TimeRange(cursor, cursor + self.unit)
            cursor += self.unit


class DailyRule(GranularityRule):
    """整天粒度：[start, end] 闭合，天数含首尾"""

    granularity = Granularity.DAY
    inclusive_end = True
    unit = timedelta(days=1)

    @staticmethod
    def _as_date(point: TimePoint) -> Optional[date]:
        if isinstance(point, datetime):
            if point.time() != time.min:
                return None
            return point.date()
        if isinstance(point, date):
            return point
        return None

    def validate(self, start: TimePoint, end: TimePoint) -> Optional[str]:
        start_day, end_day = self._as_date(start), self._as_date(end)
        if start_day is None or end_day is None:
            return "租赁日期必须是整天"
        if end_day < start_day:
            return "结束日期不能早于开始日期"
        return None

    def to_range(self, start: TimePoint, end: TimePoint) -> TimeRange:
        return TimeRange(
            start=datetime.combine(self._as_date(start), time.min),
            end=datetime.combine(self._as_date(end), time.min),
        )

    def duration_units(self, rng: TimeRange) -> int:
        return (rng.end.date() - rng.start.date()).days + 1

    def overlaps(self, a: TimeRange, b: TimeRange) -> bool:
        return a.start <= b.end and b.start <= a.end

    def unit_slots(self, window: TimeRange) -> Iterator[TimeRange]:
        cursor = window.start
        while cursor <= window.end:
            yield TimeRange(cursor, cursor)
            cursor += self.unit


HOURLY = HourlyRule()
DAILY = DailyRule()


def rule_for(granularity: Granularity) -> GranularityRule:
    """按粒度取规则"""
    return HOURLY if Granularity(granularity) == Granularity.HOUR else DAILY
