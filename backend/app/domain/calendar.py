"""
资源日历

单个资源上处于占用状态（待确认 / 已确认）的时段集合。
日历只是内存中的快照：准入检查在资源锁内重新加载，保证读到一致的已占用集合。
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Tuple

from app.domain.granularity import GranularityRule, TimeRange
from app.domain.overlap import find_conflicts

ACTIVE_STATUSES = ("pending", "confirmed")


def _status_value(status: Any) -> str:
    return getattr(status, "value", status)


@dataclass
class Slot:
    """可用性视图中的一个计费单位"""
    start: Any
    end: Any
    available: bool
    reservation_ids: List[int] = field(default_factory=list)


@dataclass
class ResourceCalendar:
    """已占用时段：[(reservation_id, TimeRange), ...]"""
    resource_id: int
    rule: GranularityRule
    committed: List[Tuple[int, TimeRange]] = field(default_factory=list)

    @classmethod
    def from_reservations(cls, resource_id: int, rule: GranularityRule,
                          reservations: Iterable[Any]) -> "ResourceCalendar":
        """
        从预订记录构建日历

        只有同一资源且状态为 pending / confirmed 的预订参与冲突检测。
        """
        committed = [
            (r.id, TimeRange(r.start_at, r.end_at))
            for r in reservations
            if r.resource_id == resource_id and _status_value(r.status) in ACTIVE_STATUSES
        ]
        return cls(resource_id=resource_id, rule=rule, committed=committed)

    def conflicts(self, candidate: TimeRange) -> List[int]:
        return find_conflicts(candidate, self.committed, self.rule)

    def is_free(self, candidate: TimeRange) -> bool:
        return not self.conflicts(candidate)

    def availability(self, window: TimeRange) -> List[Slot]:
        """按计费单位切分窗口，逐个标注是否可用"""
        slots = []
        for unit in self.rule.unit_slots(window):
            ids = self.conflicts(unit)
            slots.append(Slot(start=unit.start, end=unit.end, available=not ids, reservation_ids=ids))
        return slots
