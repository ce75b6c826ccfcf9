from courtgrid.models.block import (
    Block,
    BlockSource,
    BlockType,
    CourtMeta,
    CourtRef,
    FacilityDayTimeline,
    TimeRange,
)
from courtgrid.models.capacity import CapacityCurve, CapacityDiff, CapacityPoint, CapacityStats, CurveMode
from courtgrid.models.config import (
    BASELINE_STATUS,
    DEFAULT_STATUS_PRECEDENCE,
    STATUS_CATEGORY,
    EngineConfig,
    StatusPrecedence,
)
from courtgrid.models.mutation import (
    ApplyBlockOptions,
    ApplyTemplateOptions,
    BlockMutation,
    Conflict,
    EngineEvent,
    EventKind,
    MoveBlockOptions,
    MutationIssue,
    MutationKind,
    MutationResult,
    RemoveBlockOptions,
    ResizeBlockOptions,
    Severity,
    SimulationResult,
)
from courtgrid.models.rail import CourtRail, FacilityDayRails, RailSegment
from courtgrid.models.template import Template, TemplateEntry

__all__ = [
    "Block",
    "BlockSource",
    "BlockType",
    "CourtMeta",
    "CourtRef",
    "FacilityDayTimeline",
    "TimeRange",
    "CapacityCurve",
    "CapacityDiff",
    "CapacityPoint",
    "CapacityStats",
    "CurveMode",
    "BASELINE_STATUS",
    "DEFAULT_STATUS_PRECEDENCE",
    "STATUS_CATEGORY",
    "EngineConfig",
    "StatusPrecedence",
    "ApplyBlockOptions",
    "ApplyTemplateOptions",
    "BlockMutation",
    "Conflict",
    "EngineEvent",
    "EventKind",
    "MoveBlockOptions",
    "MutationIssue",
    "MutationKind",
    "MutationResult",
    "RemoveBlockOptions",
    "ResizeBlockOptions",
    "Severity",
    "SimulationResult",
    "CourtRail",
    "FacilityDayRails",
    "RailSegment",
    "Template",
    "TemplateEntry",
]
