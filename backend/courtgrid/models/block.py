from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from courtgrid.utils.time_math import format_hhmm, to_minutes


class BlockType(str, Enum):
    HARD_BLOCK = "HARD_BLOCK"
    LOCKED = "LOCKED"
    MAINTENANCE = "MAINTENANCE"
    BLOCKED = "BLOCKED"
    SCHEDULED = "SCHEDULED"
    PRACTICE = "PRACTICE"
    RESERVED = "RESERVED"
    SOFT_BLOCK = "SOFT_BLOCK"
    AVAILABLE = "AVAILABLE"


class BlockSource(str, Enum):
    USER = "USER"
    TEMPLATE = "TEMPLATE"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True, order=True)
class CourtRef:
    facility_id: str
    court_id: str

    def key(self) -> str:
        return f"{self.facility_id}|{self.court_id}"

    def to_dict(self) -> Dict[str, str]:
        return {"facility_id": self.facility_id, "court_id": self.court_id}


@dataclass(frozen=True)
class CourtMeta:
    """Catalog entry for a court. The engine only validates against `ref`."""

    ref: CourtRef
    name: str
    surface: str = "hard"
    indoor: bool = False
    has_lights: bool = False
    tags: tuple = ()


@dataclass(frozen=True)
class TimeRange:
    """Half-open minute interval [start, end) within one day."""

    start: int
    end: int

    @property
    def minutes(self) -> int:
        return self.end - self.start

    def is_well_formed(self) -> bool:
        return self.start < self.end

    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


@dataclass(frozen=True)
class Block:
    block_id: str
    court: CourtRef
    day: date
    start_time: int
    end_time: int
    block_type: BlockType
    priority: int
    reason: Optional[str] = None
    source: BlockSource = BlockSource.USER
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)

    @property
    def duration_minutes(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "court": self.court.to_dict(),
            "day": self.day.isoformat(),
            "start_time": format_hhmm(self.start_time),
            "end_time": format_hhmm(self.end_time),
            "block_type": self.block_type.value,
            "priority": self.priority,
            "reason": self.reason,
            "source": self.source.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        court = data["court"]
        return cls(
            block_id=data["block_id"],
            court=CourtRef(facility_id=court["facility_id"], court_id=court["court_id"]),
            day=date.fromisoformat(data["day"]),
            start_time=to_minutes(data["start_time"]),
            end_time=to_minutes(data["end_time"]),
            block_type=BlockType(data["block_type"]),
            priority=int(data["priority"]),
            reason=data.get("reason"),
            source=BlockSource(data.get("source", BlockSource.USER.value)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class FacilityDayTimeline:
    """All blocks for one court on one day, sorted by (start_time, block_id)."""

    court: CourtRef
    day: date
    day_range: TimeRange
    blocks: List[Block]

    def block_ids(self) -> List[str]:
        return [b.block_id for b in self.blocks]
