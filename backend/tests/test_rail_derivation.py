"""
Tests for rail derivation: sweep-line status resolution, coalescing and
segment invariants.
"""
from datetime import date

import pytest

from courtgrid.errors import InvalidIntervalError, RailInvariantError
from courtgrid.models import Block, BlockType, CourtRef, EngineConfig, RailSegment, StatusPrecedence, TimeRange
from courtgrid.services.rail_derivation import (
    build_day_range,
    clamp_to_day_range,
    court_day_key,
    court_key,
    derive_rail_segments,
    diff_minutes,
    merge_adjacent_segments,
    overlapping_range,
    ranges_overlap,
    resolve_status,
    validate_segments,
)
from courtgrid.utils.time_math import to_minutes

COURT = CourtRef("club", "A")
DAY = date(2026, 6, 13)
DAY_RANGE = TimeRange(480, 1200)  # 08:00-20:00
PRECEDENCE = StatusPrecedence()

AVAILABLE = BlockType.AVAILABLE
HARD = BlockType.HARD_BLOCK


def make_block(block_id, start, end, block_type=HARD, priority=None):
    block_type = BlockType(block_type)
    return Block(
        block_id=block_id,
        court=COURT,
        day=DAY,
        start_time=to_minutes(start),
        end_time=to_minutes(end),
        block_type=block_type,
        priority=priority if priority is not None else PRECEDENCE.rank(block_type),
    )


# -----------------------------------------------------------------------------
# Primitives
# -----------------------------------------------------------------------------


class TestPrimitives:
    def test_court_day_key(self):
        assert court_key(COURT) == "club|A"
        assert court_day_key(COURT, DAY) == "club|A|2026-06-13"

    def test_build_day_range(self):
        config = EngineConfig(day_start_time="07:30", day_end_time="22:00")
        assert build_day_range(config) == TimeRange(450, 1320)

    def test_diff_minutes(self):
        assert diff_minutes("09:00", "10:30") == 90
        assert diff_minutes(540, 600) == 60

    def test_touching_ranges_do_not_overlap(self):
        assert not ranges_overlap(TimeRange(540, 600), TimeRange(600, 660))
        assert ranges_overlap(TimeRange(540, 601), TimeRange(600, 660))

    def test_overlapping_range(self):
        assert overlapping_range(TimeRange(540, 620), TimeRange(600, 660)) == TimeRange(600, 620)
        assert overlapping_range(TimeRange(540, 600), TimeRange(600, 660)) is None

    def test_clamp_to_day_range(self):
        assert clamp_to_day_range(TimeRange(420, 540), DAY_RANGE) == TimeRange(480, 540)
        assert clamp_to_day_range(make_block("b1", "19:00", "21:00"), DAY_RANGE) == TimeRange(1140, 1200)
        assert clamp_to_day_range(TimeRange(0, 300), DAY_RANGE) is None

    def test_precedence_ranks_highest_first(self):
        assert PRECEDENCE.rank(HARD) == 9
        assert PRECEDENCE.rank(BlockType.SCHEDULED) == 5
        assert PRECEDENCE.rank(AVAILABLE) == 1


class TestResolveStatus:
    def test_empty_is_available(self):
        assert resolve_status([]) == (AVAILABLE, ())

    def test_higher_type_wins(self):
        soft = make_block("b1", "09:00", "10:00", BlockType.SOFT_BLOCK)
        hard = make_block("b2", "09:30", "10:00", HARD)
        assert resolve_status([soft, hard]) == (HARD, ("b2", "b1"))

    def test_priority_override_beats_type(self):
        soft = make_block("b1", "09:00", "10:00", BlockType.SOFT_BLOCK, priority=50)
        hard = make_block("b2", "09:00", "10:00", HARD)
        status, ids = resolve_status([hard, soft])
        assert status == BlockType.SOFT_BLOCK
        assert ids == ("b1", "b2")

    def test_equal_priority_falls_back_to_type_rank(self):
        locked = make_block("b1", "09:00", "10:00", BlockType.LOCKED, priority=5)
        practice = make_block("b2", "09:00", "10:00", BlockType.PRACTICE, priority=5)
        assert resolve_status([practice, locked])[0] == BlockType.LOCKED

    def test_tie_broken_by_start_then_id(self):
        late = make_block("a", "09:30", "10:00", BlockType.BLOCKED)
        early = make_block("z", "09:00", "10:00", BlockType.BLOCKED)
        twin = make_block("y", "09:00", "10:00", BlockType.BLOCKED)
        assert resolve_status([late, early, twin])[1] == ("y", "z", "a")

    def test_custom_precedence(self):
        order = (
            BlockType.SOFT_BLOCK,
            BlockType.HARD_BLOCK,
            BlockType.LOCKED,
            BlockType.MAINTENANCE,
            BlockType.BLOCKED,
            BlockType.SCHEDULED,
            BlockType.PRACTICE,
            BlockType.RESERVED,
            BlockType.AVAILABLE,
        )
        custom = StatusPrecedence(order)
        soft = make_block("b1", "09:00", "10:00", BlockType.SOFT_BLOCK, priority=1)
        hard = make_block("b2", "09:00", "10:00", HARD, priority=1)
        assert resolve_status([soft, hard], custom)[0] == BlockType.SOFT_BLOCK


# -----------------------------------------------------------------------------
# Sweep
# -----------------------------------------------------------------------------


class TestDeriveRailSegments:
    def test_no_blocks_single_available_segment(self):
        assert derive_rail_segments([], DAY_RANGE) == [RailSegment(480, 1200, AVAILABLE, ())]

    def test_single_hard_block(self):
        segments = derive_rail_segments([make_block("b1", "09:00", "10:00")], DAY_RANGE)
        assert segments == [
            RailSegment(480, 540, AVAILABLE, ()),
            RailSegment(540, 600, HARD, ("b1",)),
            RailSegment(600, 1200, AVAILABLE, ()),
        ]

    def test_lower_block_inside_higher_keeps_status_and_lists_both(self):
        blocks = [
            make_block("b1", "09:00", "10:00", HARD),
            make_block("b2", "09:30", "09:45", BlockType.SOFT_BLOCK),
        ]
        segments = derive_rail_segments(blocks, DAY_RANGE)
        assert [(s.start_time, s.end_time, s.status) for s in segments] == [
            (480, 540, AVAILABLE),
            (540, 600, HARD),
            (600, 1200, AVAILABLE),
        ]
        assert segments[1].contributing_block_ids == ("b1", "b2")

    def test_higher_block_splits_lower(self):
        blocks = [
            make_block("b1", "09:00", "12:00", BlockType.PRACTICE),
            make_block("b2", "10:00", "11:00", BlockType.MAINTENANCE),
        ]
        segments = derive_rail_segments(blocks, DAY_RANGE)
        assert [(s.start_time, s.end_time, s.status) for s in segments] == [
            (480, 540, AVAILABLE),
            (540, 600, BlockType.PRACTICE),
            (600, 660, BlockType.MAINTENANCE),
            (660, 720, BlockType.PRACTICE),
            (720, 1200, AVAILABLE),
        ]
        assert segments[2].contributing_block_ids == ("b2", "b1")

    def test_identical_intervals_same_type(self):
        blocks = [make_block("b2", "09:00", "10:00", BlockType.BLOCKED), make_block("b1", "09:00", "10:00", BlockType.BLOCKED)]
        segments = derive_rail_segments(blocks, DAY_RANGE)
        assert segments[1] == RailSegment(540, 600, BlockType.BLOCKED, ("b1", "b2"))

    def test_adjacent_same_status_merged_with_union_of_ids(self):
        blocks = [
            make_block("b2", "09:00", "11:00", BlockType.PRACTICE),
            make_block("b1", "10:00", "11:00", BlockType.PRACTICE),
        ]
        segments = derive_rail_segments(blocks, DAY_RANGE)
        assert segments[1] == RailSegment(540, 660, BlockType.PRACTICE, ("b2", "b1"))

    def test_touching_blocks_of_same_type_merge(self):
        blocks = [make_block("b1", "09:00", "10:00"), make_block("b2", "10:00", "11:00")]
        segments = derive_rail_segments(blocks, DAY_RANGE)
        assert segments[1] == RailSegment(540, 660, HARD, ("b1", "b2"))
        assert len(segments) == 3

    def test_full_day_block(self):
        segments = derive_rail_segments([make_block("b1", "08:00", "20:00", BlockType.MAINTENANCE)], DAY_RANGE)
        assert segments == [RailSegment(480, 1200, BlockType.MAINTENANCE, ("b1",))]

    def test_block_outside_day_contributes_nothing(self):
        segments = derive_rail_segments([make_block("b1", "05:00", "07:00")], DAY_RANGE)
        assert segments == [RailSegment(480, 1200, AVAILABLE, ())]

    def test_block_partially_outside_is_clamped(self):
        segments = derive_rail_segments([make_block("b1", "07:00", "09:00")], DAY_RANGE)
        assert segments[0] == RailSegment(480, 540, HARD, ("b1",))
        assert segments[1].start_time == 540

    def test_zero_length_block_rejected(self):
        with pytest.raises(InvalidIntervalError):
            derive_rail_segments([make_block("b1", "09:00", "09:00")], DAY_RANGE)

    def test_inverted_block_rejected(self):
        with pytest.raises(InvalidIntervalError):
            derive_rail_segments([make_block("b1", "10:00", "09:00")], DAY_RANGE)

    def test_empty_day_range_rejected(self):
        with pytest.raises(InvalidIntervalError):
            derive_rail_segments([], TimeRange(600, 600))

    def test_input_order_does_not_matter(self):
        blocks = [
            make_block("b1", "09:00", "10:30", BlockType.RESERVED),
            make_block("b2", "10:00", "12:00", BlockType.SCHEDULED),
            make_block("b3", "09:45", "11:15", BlockType.RESERVED),
        ]
        assert derive_rail_segments(blocks, DAY_RANGE) == derive_rail_segments(list(reversed(blocks)), DAY_RANGE)


# -----------------------------------------------------------------------------
# Merge + validation
# -----------------------------------------------------------------------------


class TestMergeAndValidate:
    def test_merge_does_not_cross_gap(self):
        segments = [RailSegment(480, 540, HARD, ("b1",)), RailSegment(600, 660, HARD, ("b2",))]
        assert merge_adjacent_segments(segments) == segments

    def test_merge_dedupes_ids(self):
        merged = merge_adjacent_segments(
            [RailSegment(480, 540, HARD, ("b1", "b2")), RailSegment(540, 600, HARD, ("b2", "b3"))]
        )
        assert merged == [RailSegment(480, 600, HARD, ("b1", "b2", "b3"))]

    def test_valid_rail(self):
        segments = [RailSegment(480, 540, AVAILABLE), RailSegment(540, 1200, HARD, ("b1",))]
        assert validate_segments(segments, DAY_RANGE) == []

    def test_detects_gap_overlap_and_unmerged(self):
        assert any("gap" in v for v in validate_segments([RailSegment(480, 500, HARD), RailSegment(510, 1200, AVAILABLE)]))
        assert any("overlaps" in v for v in validate_segments([RailSegment(480, 600, HARD), RailSegment(590, 1200, AVAILABLE)]))
        assert any("not merged" in v for v in validate_segments([RailSegment(480, 600, HARD), RailSegment(600, 1200, HARD)]))

    def test_detects_incomplete_coverage(self):
        violations = validate_segments([RailSegment(500, 1100, AVAILABLE)], DAY_RANGE)
        assert len(violations) == 2
        assert validate_segments([], DAY_RANGE)

    def test_detects_non_positive_segment(self):
        assert validate_segments([RailSegment(600, 600, HARD)])

    def test_invariant_error_carries_violations(self):
        err = RailInvariantError(["gap between segment 0 and 1 (500..510)"])
        assert err.violations == ["gap between segment 0 and 1 (500..510)"]
        assert "Rail invariant violated" in str(err)
