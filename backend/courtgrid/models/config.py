from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

from courtgrid.errors import EngineConfigError
from courtgrid.models.block import BlockType, TimeRange
from courtgrid.utils.time_math import parse_hhmm

# ============================================================================
# Status Precedence (highest first)
# ============================================================================

DEFAULT_STATUS_PRECEDENCE: Tuple[BlockType, ...] = (
    BlockType.HARD_BLOCK,
    BlockType.LOCKED,
    BlockType.MAINTENANCE,
    BlockType.BLOCKED,
    BlockType.SCHEDULED,
    BlockType.PRACTICE,
    BlockType.RESERVED,
    BlockType.SOFT_BLOCK,
    BlockType.AVAILABLE,
)

BASELINE_STATUS = BlockType.AVAILABLE

# ============================================================================
# Status Categories (capacity summaries)
# ============================================================================

CATEGORY_AVAILABLE = "available"
CATEGORY_SOFT_BLOCKED = "soft_blocked"
CATEGORY_HARD_BLOCKED = "hard_blocked"

STATUS_CATEGORY: Dict[BlockType, str] = {
    BlockType.AVAILABLE: CATEGORY_AVAILABLE,
    BlockType.SOFT_BLOCK: CATEGORY_AVAILABLE,
    BlockType.RESERVED: CATEGORY_AVAILABLE,
    BlockType.BLOCKED: CATEGORY_SOFT_BLOCKED,
    BlockType.PRACTICE: CATEGORY_SOFT_BLOCKED,
    BlockType.MAINTENANCE: CATEGORY_SOFT_BLOCKED,
    BlockType.HARD_BLOCK: CATEGORY_HARD_BLOCKED,
    BlockType.LOCKED: CATEGORY_HARD_BLOCKED,
    BlockType.SCHEDULED: CATEGORY_HARD_BLOCKED,
}


@dataclass(frozen=True)
class StatusPrecedence:
    """
    Total ordering over block types.

    rank(type) = len(order) - index, so the first entry has the largest rank.
    Blocks default their priority to their type's rank; the winner of an
    active set is the block with the highest priority, then the highest type
    rank, then the earliest start_time, then the lowest block_id.
    """

    order: Tuple[BlockType, ...] = DEFAULT_STATUS_PRECEDENCE
    _ranks: Dict[BlockType, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        order = tuple(BlockType(t) for t in self.order)
        if len(set(order)) != len(order):
            raise EngineConfigError("status_precedence contains duplicate block types")
        missing = set(BlockType) - set(order)
        if missing:
            names = ", ".join(sorted(t.value for t in missing))
            raise EngineConfigError(f"status_precedence must rank every block type (missing: {names})")
        object.__setattr__(self, "order", order)
        object.__setattr__(self, "_ranks", {t: len(order) - i for i, t in enumerate(order)})

    def rank(self, block_type: BlockType) -> int:
        return self._ranks[BlockType(block_type)]


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine configuration. Set once at construction and never changed.

    allow_downgrade: when False, placing a block over a higher-priority block
    is an ERROR conflict that rejects the mutation unless forced.
    """

    day_start_time: str = "06:00"
    day_end_time: str = "23:00"
    slot_minutes: int = 15
    status_precedence: Sequence[BlockType] = DEFAULT_STATUS_PRECEDENCE
    allow_downgrade: bool = True
    precedence: StatusPrecedence = field(init=False, repr=False, compare=False)
    day_range: TimeRange = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        try:
            start = parse_hhmm(self.day_start_time)
            end = parse_hhmm(self.day_end_time)
        except ValueError as e:
            raise EngineConfigError(str(e)) from e
        if start >= end:
            raise EngineConfigError(
                f"day_start_time ({self.day_start_time}) must be before day_end_time ({self.day_end_time})"
            )
        if isinstance(self.slot_minutes, bool) or not isinstance(self.slot_minutes, int) or self.slot_minutes < 1:
            raise EngineConfigError(f"slot_minutes must be a positive integer, got {self.slot_minutes!r}")
        try:
            precedence = StatusPrecedence(tuple(self.status_precedence))
        except ValueError as e:
            raise EngineConfigError(str(e)) from e
        object.__setattr__(self, "status_precedence", precedence.order)
        object.__setattr__(self, "precedence", precedence)
        object.__setattr__(self, "day_range", TimeRange(start, end))

    @property
    def day_start_minutes(self) -> int:
        return self.day_range.start

    @property
    def day_end_minutes(self) -> int:
        return self.day_range.end

    def to_dict(self):
        return {
            "day_start_time": self.day_start_time,
            "day_end_time": self.day_end_time,
            "slot_minutes": self.slot_minutes,
            "status_precedence": [t.value for t in self.status_precedence],
            "allow_downgrade": self.allow_downgrade,
        }
