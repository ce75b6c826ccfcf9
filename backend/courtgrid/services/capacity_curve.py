"""
Capacity Curve Generation
=========================
Turns per-court rails into a venue-level time series: how many courts are in
each status at each instant of the day.

Two sampling modes:
  EXACT   - instants are the union of every rail boundary; nothing is missed,
            the curve is an exact step function of the rails
  SAMPLED - instants every slot_minutes from day start, for fixed-resolution
            display

Statistics are integrated over the step function with Fractions, so they do
not depend on slot_minutes when computed from an EXACT curve.
"""
from __future__ import annotations

import bisect
from datetime import date
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from courtgrid.errors import RailInvariantError
from courtgrid.models.block import BlockType, CourtRef, TimeRange
from courtgrid.models.capacity import CapacityCurve, CapacityDiff, CapacityPoint, CapacityStats, CurveMode
from courtgrid.models.config import (
    CATEGORY_AVAILABLE,
    CATEGORY_HARD_BLOCKED,
    CATEGORY_SOFT_BLOCKED,
    STATUS_CATEGORY,
)
from courtgrid.models.rail import CourtRail, RailSegment
from courtgrid.services.rail_derivation import validate_segments
from courtgrid.utils.time_math import TimeLike, to_minutes

RailsInput = Union[Mapping[CourtRef, Sequence[RailSegment]], Sequence[CourtRail]]


def _empty_counts() -> Dict[BlockType, int]:
    return {status: 0 for status in BlockType}


def _normalize_rails(rails: RailsInput) -> List[Sequence[RailSegment]]:
    if isinstance(rails, Mapping):
        return [rails[court] for court in sorted(rails)]
    return [rail.segments for rail in rails]


def _status_at(segments: Sequence[RailSegment], starts: List[int], instant: int) -> Optional[BlockType]:
    """Status of the segment covering `instant` (bisect on segment starts)."""
    idx = bisect.bisect_right(starts, instant) - 1
    if idx < 0:
        return None
    seg = segments[idx]
    return seg.status if seg.covers(instant) else None


# ============================================================================
# Generation
# ============================================================================


def generate_capacity_curve(
    day: date,
    rails: RailsInput,
    day_range: TimeRange,
    mode: CurveMode = CurveMode.EXACT,
    slot_minutes: int = 15,
) -> CapacityCurve:
    """
    Build the capacity curve for one day from pre-derived rails.

    Every rail must cover the day range; a rail that does not is a defect
    upstream and raises RailInvariantError rather than producing counts that
    do not sum to the court total.
    """
    mode = CurveMode(mode)
    court_rails = _normalize_rails(rails)

    for segments in court_rails:
        violations = validate_segments(segments, day_range)
        if violations:
            raise RailInvariantError(violations)

    if mode == CurveMode.EXACT:
        instants = {day_range.start}
        for segments in court_rails:
            instants.update(s.start_time for s in segments)
        sample_times = sorted(t for t in instants if day_range.start <= t < day_range.end)
    else:
        if slot_minutes < 1:
            raise ValueError(f"slot_minutes must be >= 1, got {slot_minutes}")
        sample_times = list(range(day_range.start, day_range.end, slot_minutes))

    indexed = [(segments, [s.start_time for s in segments]) for segments in court_rails]
    points: List[CapacityPoint] = []
    for instant in sample_times:
        counts = _empty_counts()
        for segments, starts in indexed:
            status = _status_at(segments, starts, instant)
            if status is None:
                raise RailInvariantError([f"no segment covers instant {instant}"])
            counts[status] += 1
        points.append(CapacityPoint(time=instant, counts=counts))

    return CapacityCurve(
        day=day,
        day_start=day_range.start,
        day_end=day_range.end,
        total_courts=len(court_rails),
        mode=mode,
        points=points,
    )


# ============================================================================
# Statistics
# ============================================================================


def _durations(curve: CapacityCurve) -> Iterable[tuple]:
    """(point, minutes the point holds for) over the curve's range."""
    pts = [p for p in curve.points if curve.day_start <= p.time < curve.day_end]
    for i, point in enumerate(pts):
        until = pts[i + 1].time if i + 1 < len(pts) else curve.day_end
        yield point, until - point.time


def calculate_capacity_stats(curve: CapacityCurve) -> CapacityStats:
    """
    Integrated statistics for a curve.

    utilization = blocked court-minutes / (courts x minutes), where blocked is
    every status outside the "available" category. Exact when the curve is
    EXACT; a SAMPLED curve is integrated as the step function it describes.
    """
    spans = list(_durations(curve))
    if not spans:
        return CapacityStats(
            peak_hard_blocked=0,
            peak_hard_blocked_time=None,
            peak_available=0,
            peak_available_time=None,
            min_available=0,
            min_available_time=None,
            average_available=Fraction(0),
            available_court_minutes=0,
            blocked_court_minutes=0,
            total_court_minutes=0,
            utilization=Fraction(0),
        )

    peak_hard = max(spans, key=lambda s: (s[0].courts_hard_blocked, -s[0].time))[0]
    peak_avail = max(spans, key=lambda s: (s[0].courts_available, -s[0].time))[0]
    min_avail = min(spans, key=lambda s: (s[0].courts_available, s[0].time))[0]

    span_minutes = sum(minutes for _, minutes in spans)
    available_cm = sum(p.courts_available * minutes for p, minutes in spans)
    blocked_cm = sum((p.total - p.courts_available) * minutes for p, minutes in spans)
    total_cm = curve.total_courts * span_minutes

    return CapacityStats(
        peak_hard_blocked=peak_hard.courts_hard_blocked,
        peak_hard_blocked_time=peak_hard.time,
        peak_available=peak_avail.courts_available,
        peak_available_time=peak_avail.time,
        min_available=min_avail.courts_available,
        min_available_time=min_avail.time,
        average_available=Fraction(available_cm, span_minutes) if span_minutes else Fraction(0),
        available_court_minutes=available_cm,
        blocked_court_minutes=blocked_cm,
        total_court_minutes=total_cm,
        utilization=Fraction(blocked_cm, total_cm) if total_cm else Fraction(0),
    )


# ============================================================================
# Comparison
# ============================================================================


def _counts_at(curve: CapacityCurve, instant: int) -> Dict[BlockType, int]:
    point = curve.point_at(instant)
    return dict(point.counts) if point is not None else {}


def compare_capacity_curves(
    baseline: CapacityCurve,
    modified: CapacityCurve,
    only_changes: bool = False,
) -> List[CapacityDiff]:
    """
    Instant-by-instant diff (modified - baseline) at the union of both
    curves' instants. Each side is read as a step function, so an instant
    present on only one side compares against the other side's value in
    effect at that time.
    """
    times = sorted({p.time for p in baseline.points} | {p.time for p in modified.points})
    diffs: List[CapacityDiff] = []
    for instant in times:
        before = _counts_at(baseline, instant)
        after = _counts_at(modified, instant)
        deltas = {status: after.get(status, 0) - before.get(status, 0) for status in BlockType}

        category_delta: Dict[str, int] = {}
        for status, delta in deltas.items():
            category = STATUS_CATEGORY[status]
            category_delta[category] = category_delta.get(category, 0) + delta

        diff = CapacityDiff(
            time=instant,
            deltas=deltas,
            available_delta=category_delta.get(CATEGORY_AVAILABLE, 0),
            soft_blocked_delta=category_delta.get(CATEGORY_SOFT_BLOCKED, 0),
            hard_blocked_delta=category_delta.get(CATEGORY_HARD_BLOCKED, 0),
        )
        if only_changes and not diff.is_change:
            continue
        diffs.append(diff)
    return diffs


# ============================================================================
# Filtering / resampling
# ============================================================================


def filter_capacity_curve(
    curve: CapacityCurve,
    statuses: Optional[Iterable[Union[BlockType, str]]] = None,
    start: Optional[TimeLike] = None,
    end: Optional[TimeLike] = None,
) -> CapacityCurve:
    """
    Restrict a curve to a time window and/or a status subset.

    The window is clipped to the curve's own range. A point is inserted at
    the window start carrying the value in effect there, so the result is
    still an exact step function over the window. Filtering by status drops
    the other statuses' counts; per-point totals then no longer equal
    total_courts.
    """
    window_start = max(curve.day_start, to_minutes(start)) if start is not None else curve.day_start
    window_end = min(curve.day_end, to_minutes(end)) if end is not None else curve.day_end
    keep = {BlockType(s) for s in statuses} if statuses is not None else None

    def _restrict(counts: Dict[BlockType, int]) -> Dict[BlockType, int]:
        if keep is None:
            return dict(counts)
        return {s: n for s, n in counts.items() if s in keep}

    points: List[CapacityPoint] = []
    if window_start < window_end:
        carry = curve.point_at(window_start)
        if carry is not None:
            points.append(CapacityPoint(time=window_start, counts=_restrict(carry.counts)))
        for point in curve.points:
            if window_start < point.time < window_end:
                points.append(CapacityPoint(time=point.time, counts=_restrict(point.counts)))
    else:
        window_end = window_start

    return CapacityCurve(
        day=curve.day,
        day_start=window_start,
        day_end=window_end,
        total_courts=curve.total_courts,
        mode=curve.mode,
        points=points,
    )


def sample_capacity_curve(curve: CapacityCurve, interval_minutes: int) -> CapacityCurve:
    """Resample onto a fixed grid (value in effect at each grid instant)."""
    if interval_minutes < 1:
        raise ValueError(f"interval_minutes must be >= 1, got {interval_minutes}")

    points: List[CapacityPoint] = []
    for instant in range(curve.day_start, curve.day_end, interval_minutes):
        point = curve.point_at(instant)
        if point is not None:
            points.append(CapacityPoint(time=instant, counts=dict(point.counts)))

    return CapacityCurve(
        day=curve.day,
        day_start=curve.day_start,
        day_end=curve.day_end,
        total_courts=curve.total_courts,
        mode=CurveMode.SAMPLED,
        points=points,
    )
