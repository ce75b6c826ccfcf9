from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Tuple

from courtgrid.models.block import BlockType, CourtRef
from courtgrid.utils.time_math import format_hhmm


@dataclass(frozen=True)
class RailSegment:
    start_time: int
    end_time: int
    status: BlockType
    contributing_block_ids: Tuple[str, ...] = ()

    @property
    def minutes(self) -> int:
        return self.end_time - self.start_time

    def covers(self, instant: int) -> bool:
        return self.start_time <= instant < self.end_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": format_hhmm(self.start_time),
            "end_time": format_hhmm(self.end_time),
            "status": self.status.value,
            "contributing_block_ids": list(self.contributing_block_ids),
        }


@dataclass(frozen=True)
class CourtRail:
    court: CourtRef
    day: date
    segments: List[RailSegment]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "court": self.court.to_dict(),
            "day": self.day.isoformat(),
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass(frozen=True)
class FacilityDayRails:
    """Rails for every catalog court of one facility on one day."""

    day: date
    facility_id: str
    rails: List[CourtRail]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "facility_id": self.facility_id,
            "rails": [r.to_dict() for r in self.rails],
        }
