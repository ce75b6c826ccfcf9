from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from courtgrid.models.block import Block, BlockType, CourtRef
from courtgrid.utils.time_math import TimeLike

if TYPE_CHECKING:
    from courtgrid.models.capacity import CapacityCurve
    from courtgrid.models.rail import RailSegment
    from courtgrid.models.template import Template


# ─── Issue / conflict codes ──────────────────────────────────────────────

INVALID_INTERVAL = "INVALID_INTERVAL"
OUTSIDE_DAY_BOUNDS = "OUTSIDE_DAY_BOUNDS"
UNKNOWN_COURT = "UNKNOWN_COURT"
UNKNOWN_BLOCK_TYPE = "UNKNOWN_BLOCK_TYPE"
INVALID_PRIORITY = "INVALID_PRIORITY"
INVALID_DAY = "INVALID_DAY"
NO_COURTS = "NO_COURTS"
BLOCK_NOT_FOUND = "BLOCK_NOT_FOUND"
TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
EMPTY_TEMPLATE = "EMPTY_TEMPLATE"
CONFLICT_REJECTED = "CONFLICT_REJECTED"

NOT_FOUND_CODES = frozenset({BLOCK_NOT_FOUND, TEMPLATE_NOT_FOUND})


class Severity(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"


SEVERITY_ORDER = {Severity.ERROR: 3, Severity.WARN: 2, Severity.INFO: 1}


class MutationKind(str, Enum):
    ADD = "ADD"
    MOVE = "MOVE"
    RESIZE = "RESIZE"
    REMOVE = "REMOVE"


class EventKind(str, Enum):
    BLOCK_ADDED = "BLOCK_ADDED"
    BLOCK_MOVED = "BLOCK_MOVED"
    BLOCK_RESIZED = "BLOCK_RESIZED"
    BLOCK_REMOVED = "BLOCK_REMOVED"
    TEMPLATE_APPLIED = "TEMPLATE_APPLIED"


@dataclass(frozen=True)
class MutationIssue:
    code: str
    message: str
    block_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "block_id": self.block_id, "context": self.context}


@dataclass(frozen=True)
class Conflict:
    evaluator_id: str
    code: str
    severity: Severity
    message: str
    block_id: Optional[str] = None
    conflicting_block_id: Optional[str] = None
    court_day_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluator_id": self.evaluator_id,
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "block_id": self.block_id,
            "conflicting_block_id": self.conflicting_block_id,
            "court_day_key": self.court_day_key,
        }


@dataclass(frozen=True)
class BlockMutation:
    """
    One change to the canonical block set.

    ADD carries the new block, REMOVE the removed block, MOVE/RESIZE the
    updated block plus previous_block.
    """

    kind: MutationKind
    block: Block
    previous_block: Optional[Block] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "block": self.block.to_dict(),
            "previous_block": self.previous_block.to_dict() if self.previous_block else None,
        }


@dataclass
class MutationResult:
    applied: List[BlockMutation] = field(default_factory=list)
    rejected: List[BlockMutation] = field(default_factory=list)
    errors: List[MutationIssue] = field(default_factory=list)
    warnings: List[MutationIssue] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.rejected

    @property
    def block_ids(self) -> List[str]:
        return [m.block.block_id for m in self.applied]

    @property
    def block_id(self) -> Optional[str]:
        ids = self.block_ids
        return ids[0] if ids else None

    @property
    def not_found(self) -> bool:
        return any(e.code in NOT_FOUND_CODES for e in self.errors)

    @property
    def blocking_conflicts(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.severity == Severity.ERROR]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "block_ids": self.block_ids,
            "applied": [m.to_dict() for m in self.applied],
            "rejected": [m.to_dict() for m in self.rejected],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass(frozen=True)
class EngineEvent:
    kind: EventKind
    mutations: List[BlockMutation]
    court_day_keys: List[str]
    conflicts: List[Conflict] = field(default_factory=list)


# ─── Mutation options ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ApplyBlockOptions:
    courts: Sequence[CourtRef]
    day: date
    start_time: TimeLike
    end_time: TimeLike
    block_type: Union[BlockType, str]
    priority: Optional[int] = None
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    force: bool = False
    clamp_to_day: bool = False


@dataclass(frozen=True)
class MoveBlockOptions:
    block_id: str
    start_time: TimeLike
    end_time: TimeLike
    court: Optional[CourtRef] = None
    day: Optional[date] = None
    force: bool = False
    clamp_to_day: bool = False


@dataclass(frozen=True)
class ResizeBlockOptions:
    block_id: str
    start_time: TimeLike
    end_time: TimeLike
    force: bool = False
    clamp_to_day: bool = False


@dataclass(frozen=True)
class RemoveBlockOptions:
    block_id: str


@dataclass(frozen=True)
class ApplyTemplateOptions:
    """
    Apply a registered template (template_id) or an inline one (template)
    across days x courts. courts=None means every catalog court.

    partial=False: any blocking conflict rejects the whole template.
    partial=True: conflicting sub-blocks are rejected, the rest applied.
    """

    days: Sequence[date]
    template_id: Optional[str] = None
    template: Optional["Template"] = None
    courts: Optional[Sequence[CourtRef]] = None
    force: bool = False
    partial: bool = False


MutationOptions = Union[
    ApplyBlockOptions, MoveBlockOptions, ResizeBlockOptions, RemoveBlockOptions, ApplyTemplateOptions
]


@dataclass
class SimulationResult:
    result: MutationResult
    rails: Dict[str, List["RailSegment"]] = field(default_factory=dict)
    capacity: Dict[date, "CapacityCurve"] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "rails": {key: [s.to_dict() for s in segs] for key, segs in self.rails.items()},
            "capacity": {day.isoformat(): curve.to_dict() for day, curve in self.capacity.items()},
        }
