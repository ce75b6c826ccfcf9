"""
Tests for capacity curves: exact vs sampled generation, integrated stats,
before/after comparison and windowing.
"""
from datetime import date
from fractions import Fraction

import pytest

from courtgrid.errors import RailInvariantError
from courtgrid.models import BlockType, CourtRail, CourtRef, CurveMode, RailSegment, TimeRange
from courtgrid.services.capacity_curve import (
    calculate_capacity_stats,
    compare_capacity_curves,
    filter_capacity_curve,
    generate_capacity_curve,
    sample_capacity_curve,
)

DAY = date(2026, 6, 13)
DAY_RANGE = TimeRange(480, 1200)
COURT_A = CourtRef("club", "A")
COURT_B = CourtRef("club", "B")

AVAILABLE = BlockType.AVAILABLE
HARD = BlockType.HARD_BLOCK


def rail(*segments):
    return [RailSegment(start, end, status, ()) for start, end, status in segments]


def hard_at(start, end):
    """Court rail: HARD_BLOCK on [start, end), AVAILABLE elsewhere in the day."""
    return rail((480, start, AVAILABLE), (start, end, HARD), (end, 1200, AVAILABLE))


EMPTY = rail((480, 1200, AVAILABLE))


@pytest.fixture
def baseline():
    """Court A hard-blocked 09:00-10:00, court B open all day"""
    return generate_capacity_curve(DAY, {COURT_A: hard_at(540, 600), COURT_B: EMPTY}, DAY_RANGE)


class TestGenerate:
    def test_exact_points_at_segment_boundaries(self, baseline):
        assert [p.time for p in baseline.points] == [480, 540, 600]
        assert baseline.total_courts == 2
        assert baseline.mode == CurveMode.EXACT

    def test_counts_at_instant(self, baseline):
        point = baseline.point_at(570)
        assert point.courts_available == 1
        assert point.courts_hard_blocked == 1
        assert point.count(HARD) == 1
        assert point.total == 2

    def test_point_at_outside_range(self, baseline):
        assert baseline.point_at(479) is None
        assert baseline.point_at(1200) is None

    def test_sampled_grid(self):
        curve = generate_capacity_curve(
            DAY, [CourtRail(COURT_A, DAY, hard_at(540, 600))], DAY_RANGE, mode=CurveMode.SAMPLED, slot_minutes=60
        )
        assert [p.time for p in curve.points] == list(range(480, 1200, 60))
        assert curve.point_at(540).courts_hard_blocked == 1

    def test_sampled_mode_can_miss_short_blocks(self):
        rails = {COURT_A: hard_at(545, 555)}
        sampled = generate_capacity_curve(DAY, rails, DAY_RANGE, mode=CurveMode.SAMPLED, slot_minutes=60)
        exact = generate_capacity_curve(DAY, rails, DAY_RANGE)
        assert all(p.courts_hard_blocked == 0 for p in sampled.points)
        assert exact.point_at(550).courts_hard_blocked == 1

    def test_conservation(self, baseline):
        for point in baseline.points:
            assert sum(point.counts.values()) == baseline.total_courts
            assert point.courts_available + point.courts_soft_blocked + point.courts_hard_blocked == 2

    def test_every_status_counted(self):
        rails = {
            COURT_A: rail((480, 600, BlockType.PRACTICE), (600, 1200, AVAILABLE)),
            COURT_B: rail((480, 600, BlockType.RESERVED), (600, 1200, AVAILABLE)),
        }
        point = generate_capacity_curve(DAY, rails, DAY_RANGE).point_at(500)
        assert point.count(BlockType.PRACTICE) == 1
        assert point.count(BlockType.RESERVED) == 1
        assert point.courts_soft_blocked == 1
        assert point.courts_available == 1

    def test_rail_not_covering_day_raises(self):
        with pytest.raises(RailInvariantError):
            generate_capacity_curve(DAY, {COURT_A: rail((480, 600, AVAILABLE))}, DAY_RANGE)

    def test_bad_slot_minutes(self):
        with pytest.raises(ValueError):
            generate_capacity_curve(DAY, {COURT_A: EMPTY}, DAY_RANGE, mode=CurveMode.SAMPLED, slot_minutes=0)


class TestStats:
    def test_integrated_stats(self, baseline):
        stats = calculate_capacity_stats(baseline)
        assert stats.peak_hard_blocked == 1
        assert stats.peak_hard_blocked_time == 540
        assert stats.peak_available == 2
        assert stats.peak_available_time == 480
        assert stats.min_available == 1
        assert stats.min_available_time == 540
        assert stats.total_court_minutes == 1440
        assert stats.blocked_court_minutes == 60
        assert stats.available_court_minutes == 1380
        assert stats.utilization == Fraction(1, 24)
        assert stats.average_available == Fraction(23, 12)

    def test_short_block_counted_exactly(self):
        curve = generate_capacity_curve(DAY, {COURT_A: hard_at(545, 555)}, DAY_RANGE)
        stats = calculate_capacity_stats(curve)
        assert stats.blocked_court_minutes == 10
        assert stats.utilization == Fraction(10, 720)

    def test_empty_curve(self):
        curve = generate_capacity_curve(DAY, {}, DAY_RANGE)
        stats = calculate_capacity_stats(curve)
        assert stats.utilization == 0
        assert stats.total_court_minutes == 0

    def test_to_dict_is_plain_data(self, baseline):
        data = calculate_capacity_stats(baseline).to_dict()
        assert data["peak_hard_blocked_time"] == "09:00"
        assert data["utilization"] == pytest.approx(1 / 24)


class TestCompare:
    def test_only_changes(self, baseline):
        moved = generate_capacity_curve(DAY, {COURT_A: hard_at(660, 720), COURT_B: EMPTY}, DAY_RANGE)
        diffs = compare_capacity_curves(baseline, moved, only_changes=True)
        assert [d.time for d in diffs] == [540, 660]
        assert diffs[0].available_delta == 1
        assert diffs[0].hard_blocked_delta == -1
        assert diffs[0].deltas[HARD] == -1
        assert diffs[1].hard_blocked_delta == 1

    def test_all_rows(self, baseline):
        moved = generate_capacity_curve(DAY, {COURT_A: hard_at(660, 720), COURT_B: EMPTY}, DAY_RANGE)
        diffs = compare_capacity_curves(baseline, moved)
        assert [d.time for d in diffs] == [480, 540, 600, 660, 720]
        assert not diffs[0].is_change

    def test_identical_curves(self, baseline):
        assert compare_capacity_curves(baseline, baseline, only_changes=True) == []


class TestFilterAndSample:
    def test_window_inserts_carry_point(self, baseline):
        window = filter_capacity_curve(baseline, start="09:30", end="11:00")
        assert (window.day_start, window.day_end) == (570, 660)
        assert [p.time for p in window.points] == [570, 600]
        assert window.points[0].courts_hard_blocked == 1

    def test_status_subset(self, baseline):
        only_hard = filter_capacity_curve(baseline, statuses=["HARD_BLOCK"])
        assert all(set(p.counts) == {HARD} for p in only_hard.points)
        assert only_hard.point_at(540).count(HARD) == 1

    def test_window_outside_curve_is_empty(self, baseline):
        window = filter_capacity_curve(baseline, start="21:00", end="22:00")
        assert window.points == []

    def test_sample(self, baseline):
        sampled = sample_capacity_curve(baseline, 30)
        assert sampled.mode == CurveMode.SAMPLED
        assert len(sampled.points) == 24
        assert sampled.point_at(570).courts_hard_blocked == 1
        assert sampled.point_at(600).courts_hard_blocked == 0

    def test_sample_rejects_bad_interval(self, baseline):
        with pytest.raises(ValueError):
            sample_capacity_curve(baseline, 0)
