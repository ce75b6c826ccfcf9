"""
Rail Derivation
===============
Sweep-line conversion of possibly-overlapping blocks for one court-day into
the canonical rail: a sorted, non-overlapping, contiguous list of segments
covering the whole day range, one resolved status per segment.

Algorithm:
  1) Clamp every block to the day range (blocks clamping to nothing drop out)
  2) Breakpoints = every clamped start/end plus the day's own start/end
  3) Walk consecutive breakpoint pairs, maintaining the active block set
     from start/end events
  4) Resolve one status per interval (see resolve_status)
  5) Coalesce adjacent segments with the same status
  6) Validate; a violation is a defect and raises RailInvariantError

Work is proportional to the number of distinct boundaries, not to
slot_minutes: O(n log n) per court-day for n blocks.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from courtgrid.errors import InvalidIntervalError, RailInvariantError
from courtgrid.models.block import Block, BlockType, CourtRef, TimeRange
from courtgrid.models.config import BASELINE_STATUS, EngineConfig, StatusPrecedence
from courtgrid.models.rail import RailSegment
from courtgrid.utils.time_math import TimeLike, format_hhmm, to_minutes

_DEFAULT_PRECEDENCE = StatusPrecedence()


# ============================================================================
# Keys
# ============================================================================


def court_key(court: CourtRef) -> str:
    return court.key()


def court_day_key(court: CourtRef, day: date) -> str:
    """Composite cache/index key for one court on one day."""
    return f"{court_key(court)}|{day.isoformat()}"


# ============================================================================
# Range primitives
# ============================================================================


def build_day_range(config: EngineConfig) -> TimeRange:
    return TimeRange(config.day_start_minutes, config.day_end_minutes)


def diff_minutes(start: TimeLike, end: TimeLike) -> int:
    """Minutes from start to end. Accepts minute offsets, HH:MM or datetime.time."""
    return to_minutes(end) - to_minutes(start)


def ranges_overlap(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test; touching ranges do not overlap."""
    return a.start < b.end and b.start < a.end


def overlapping_range(a: TimeRange, b: TimeRange) -> Optional[TimeRange]:
    if not ranges_overlap(a, b):
        return None
    return TimeRange(max(a.start, b.start), min(a.end, b.end))


def clamp_to_day_range(interval: Union[Block, TimeRange], day_range: TimeRange) -> Optional[TimeRange]:
    """Truncate an interval to the day range. None when nothing is left."""
    rng = interval.time_range if isinstance(interval, Block) else interval
    start = max(rng.start, day_range.start)
    end = min(rng.end, day_range.end)
    if start >= end:
        return None
    return TimeRange(start, end)


# ============================================================================
# Status resolution
# ============================================================================


def resolution_key(block: Block, precedence: StatusPrecedence = _DEFAULT_PRECEDENCE) -> Tuple:
    """
    Sort key where the first element wins.

    Highest priority, then highest type rank, then earliest start_time,
    then lowest block_id.
    """
    return (-block.priority, -precedence.rank(block.block_type), block.start_time, block.block_id)


def resolve_status(
    active: Iterable[Block],
    precedence: StatusPrecedence = _DEFAULT_PRECEDENCE,
) -> Tuple[BlockType, Tuple[str, ...]]:
    """
    Pick the winning status of an active set.

    Returns (status, contributing block ids ordered winner first).
    An empty active set resolves to the baseline AVAILABLE status.
    """
    ranked = sorted(active, key=lambda b: resolution_key(b, precedence))
    if not ranked:
        return BASELINE_STATUS, ()
    return ranked[0].block_type, tuple(b.block_id for b in ranked)


# ============================================================================
# Segment merge + validation
# ============================================================================


def merge_adjacent_segments(segments: Sequence[RailSegment]) -> List[RailSegment]:
    """
    Coalesce touching segments that share a status.

    Contributing ids are unioned in first-seen order. Segments separated by
    a gap are never merged.
    """
    merged: List[RailSegment] = []
    for seg in segments:
        if merged and merged[-1].status == seg.status and merged[-1].end_time == seg.start_time:
            prev = merged[-1]
            ids = list(prev.contributing_block_ids)
            for bid in seg.contributing_block_ids:
                if bid not in ids:
                    ids.append(bid)
            merged[-1] = RailSegment(prev.start_time, seg.end_time, prev.status, tuple(ids))
        else:
            merged.append(seg)
    return merged


def validate_segments(segments: Sequence[RailSegment], day_range: Optional[TimeRange] = None) -> List[str]:
    """
    Check rail invariants. Returns violation messages; empty means valid.

    Without a day_range only ordering/contiguity/coalescing are checked.
    """
    violations: List[str] = []

    if day_range is not None:
        if not segments:
            violations.append(f"no segments cover day range {day_range.label()}")
            return violations
        if segments[0].start_time != day_range.start:
            violations.append(
                f"first segment starts at {format_hhmm(segments[0].start_time)}, "
                f"day starts at {format_hhmm(day_range.start)}"
            )
        if segments[-1].end_time != day_range.end:
            violations.append(
                f"last segment ends at {format_hhmm(segments[-1].end_time)}, "
                f"day ends at {format_hhmm(day_range.end)}"
            )

    for i, seg in enumerate(segments):
        if seg.start_time >= seg.end_time:
            violations.append(f"segment {i} has non-positive length ({seg.start_time}..{seg.end_time})")
        if i == 0:
            continue
        prev = segments[i - 1]
        if seg.start_time > prev.end_time:
            violations.append(f"gap between segment {i - 1} and {i} ({prev.end_time}..{seg.start_time})")
        elif seg.start_time < prev.end_time:
            violations.append(f"segment {i - 1} overlaps segment {i} ({seg.start_time} < {prev.end_time})")
        elif seg.status == prev.status:
            violations.append(f"segments {i - 1} and {i} share status {seg.status.value} and were not merged")

    return violations


# ============================================================================
# Sweep
# ============================================================================


def derive_rail_segments(
    blocks: Iterable[Block],
    day_range: TimeRange,
    precedence: StatusPrecedence = _DEFAULT_PRECEDENCE,
) -> List[RailSegment]:
    """Derive the canonical rail for one court-day. See module docstring."""
    if not day_range.is_well_formed():
        raise InvalidIntervalError(f"day range {day_range.start}..{day_range.end} is empty or inverted")

    starts: Dict[int, List[Block]] = defaultdict(list)
    ends: Dict[int, List[str]] = defaultdict(list)
    breakpoints = {day_range.start, day_range.end}

    for block in blocks:
        if not block.time_range.is_well_formed():
            raise InvalidIntervalError(
                f"block {block.block_id} has empty or inverted interval {block.start_time}..{block.end_time}"
            )
        window = clamp_to_day_range(block, day_range)
        if window is None:
            continue
        starts[window.start].append(block)
        ends[window.end].append(block.block_id)
        breakpoints.add(window.start)
        breakpoints.add(window.end)

    ordered = sorted(breakpoints)
    active: Dict[str, Block] = {}
    raw: List[RailSegment] = []

    for t0, t1 in zip(ordered, ordered[1:]):
        for bid in ends.get(t0, ()):
            active.pop(bid, None)
        for block in starts.get(t0, ()):
            active[block.block_id] = block
        status, ids = resolve_status(active.values(), precedence)
        raw.append(RailSegment(t0, t1, status, ids))

    segments = merge_adjacent_segments(raw)

    violations = validate_segments(segments, day_range)
    if violations:
        raise RailInvariantError(violations)
    return segments
