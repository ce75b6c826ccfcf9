from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from fractions import Fraction
from typing import Any, Dict, List, Optional

from courtgrid.models.block import BlockType
from courtgrid.models.config import (
    CATEGORY_AVAILABLE,
    CATEGORY_HARD_BLOCKED,
    CATEGORY_SOFT_BLOCKED,
    STATUS_CATEGORY,
)
from courtgrid.utils.time_math import format_hhmm


class CurveMode(str, Enum):
    EXACT = "EXACT"
    SAMPLED = "SAMPLED"


def _category_total(counts: Dict[BlockType, int], category: str) -> int:
    return sum(n for status, n in counts.items() if STATUS_CATEGORY[status] == category)


@dataclass(frozen=True)
class CapacityPoint:
    """Court counts per status at one instant. Holds until the next point."""

    time: int
    counts: Dict[BlockType, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def courts_available(self) -> int:
        return _category_total(self.counts, CATEGORY_AVAILABLE)

    @property
    def courts_soft_blocked(self) -> int:
        return _category_total(self.counts, CATEGORY_SOFT_BLOCKED)

    @property
    def courts_hard_blocked(self) -> int:
        return _category_total(self.counts, CATEGORY_HARD_BLOCKED)

    def count(self, status: BlockType) -> int:
        return self.counts.get(BlockType(status), 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": format_hhmm(self.time),
            "counts": {s.value: n for s, n in self.counts.items()},
            "courts_available": self.courts_available,
            "courts_soft_blocked": self.courts_soft_blocked,
            "courts_hard_blocked": self.courts_hard_blocked,
        }


@dataclass(frozen=True)
class CapacityCurve:
    """
    Venue-level step function for one day.

    points[i].counts holds on [points[i].time, points[i+1].time), the last
    point holds until day_end.
    """

    day: date
    day_start: int
    day_end: int
    total_courts: int
    mode: CurveMode
    points: List[CapacityPoint]

    def point_at(self, instant: int) -> Optional[CapacityPoint]:
        """The point in effect at `instant`, or None outside [day_start, day_end)."""
        if instant < self.day_start or instant >= self.day_end:
            return None
        found = None
        for point in self.points:
            if point.time <= instant:
                found = point
            else:
                break
        return found

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "day_start": format_hhmm(self.day_start),
            "day_end": format_hhmm(self.day_end),
            "total_courts": self.total_courts,
            "mode": self.mode.value,
            "points": [p.to_dict() for p in self.points],
        }


@dataclass(frozen=True)
class CapacityStats:
    peak_hard_blocked: int
    peak_hard_blocked_time: Optional[int]
    peak_available: int
    peak_available_time: Optional[int]
    min_available: int
    min_available_time: Optional[int]
    average_available: Fraction
    available_court_minutes: int
    blocked_court_minutes: int
    total_court_minutes: int
    utilization: Fraction

    @property
    def utilization_percent(self) -> float:
        return float(self.utilization * 100)

    def to_dict(self) -> Dict[str, Any]:
        def _t(v):
            return format_hhmm(v) if v is not None else None

        return {
            "peak_hard_blocked": self.peak_hard_blocked,
            "peak_hard_blocked_time": _t(self.peak_hard_blocked_time),
            "peak_available": self.peak_available,
            "peak_available_time": _t(self.peak_available_time),
            "min_available": self.min_available,
            "min_available_time": _t(self.min_available_time),
            "average_available": float(self.average_available),
            "available_court_minutes": self.available_court_minutes,
            "blocked_court_minutes": self.blocked_court_minutes,
            "total_court_minutes": self.total_court_minutes,
            "utilization": float(self.utilization),
            "utilization_percent": self.utilization_percent,
        }


@dataclass(frozen=True)
class CapacityDiff:
    time: int
    deltas: Dict[BlockType, int]
    available_delta: int
    soft_blocked_delta: int
    hard_blocked_delta: int

    @property
    def is_change(self) -> bool:
        return any(self.deltas.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": format_hhmm(self.time),
            "deltas": {s.value: n for s, n in self.deltas.items() if n},
            "available_delta": self.available_delta,
            "soft_blocked_delta": self.soft_blocked_delta,
            "hard_blocked_delta": self.hard_blocked_delta,
        }
