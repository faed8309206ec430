"""
冲突检测

overlaps() 是判定的唯一依据；overlap_case() 给出命名的冲突情形，
只用于日志和诊断，结果与粒度规则的不等式判定完全一致。
"""
from enum import Enum
from typing import Iterable, List, Optional, Tuple, TypeVar

from app.domain.granularity import GranularityRule, TimeRange

K = TypeVar("K")


class OverlapCase(str, Enum):
    """冲突情形"""
    STARTS_INSIDE = "starts_inside"    # 候选开始点落在已有区间内
    ENDS_INSIDE = "ends_inside"        # 候选结束点落在已有区间内
    CONTAINS = "contains"              # 候选完全覆盖已有区间


def _inside(point, rng: TimeRange, rule: GranularityRule) -> bool:
    if rule.inclusive_end:
        return rng.start <= point <= rng.end
    return rng.start <= point < rng.end


def overlap_case(candidate: TimeRange, existing: TimeRange,
                 rule: GranularityRule) -> Optional[OverlapCase]:
    """返回冲突情形；不冲突时返回 None"""
    if _inside(candidate.start, existing, rule):
        return OverlapCase.STARTS_INSIDE
    if rule.inclusive_end:
        ends_inside = _inside(candidate.end, existing, rule)
    else:
        # 半开区间的结束点本身不占用
        ends_inside = existing.start < candidate.end <= existing.end
    if ends_inside:
        return OverlapCase.ENDS_INSIDE
    if candidate.start <= existing.start and existing.end <= candidate.end:
        if rule.overlaps(candidate, existing):
            return OverlapCase.CONTAINS
    return None


def overlaps(candidate: TimeRange, committed: Iterable[TimeRange], rule: GranularityRule) -> bool:
    """候选区间是否与任一已占用区间冲突"""
    return any(rule.overlaps(candidate, rng) for rng in committed)


def find_conflicts(candidate: TimeRange, committed: Iterable[Tuple[K, TimeRange]],
                   rule: GranularityRule) -> List[K]:
    """返回与候选区间冲突的条目键（通常是预订 ID）"""
    return [key for key, rng in committed if rule.overlaps(candidate, rng)]
