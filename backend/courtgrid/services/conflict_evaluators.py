"""
Conflict Evaluators
===================
Pluggable checks run against candidate block mutations before commit.

Severities:
  ERROR - rejects the mutation unless the caller forces it
  WARN  - committed, reported in MutationResult.warnings
  INFO  - committed, advisory only

The precedence-overlap evaluator is always installed by the engine and
implements the overlap policy:
  overlap with an equal/lower priority block      -> WARN
  overlap with a higher priority block            -> WARN if allow_downgrade, else ERROR

The others are optional and configured per engine.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

from courtgrid.models.block import Block, BlockType, CourtMeta, CourtRef
from courtgrid.models.config import EngineConfig
from courtgrid.models.mutation import BlockMutation, Conflict, MutationKind, SEVERITY_ORDER, Severity
from courtgrid.services.rail_derivation import court_day_key, ranges_overlap
from courtgrid.utils.time_math import format_hhmm, parse_hhmm

OVERLAP_HIGHER_PRECEDENCE = "OVERLAP_HIGHER_PRECEDENCE"
OVERLAP_EQUAL_PRECEDENCE = "OVERLAP_EQUAL_PRECEDENCE"
OVERLAP_LOWER_PRECEDENCE = "OVERLAP_LOWER_PRECEDENCE"


# ─── Context ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EvaluationContext:
    """Read-only view of engine state handed to evaluators."""

    config: EngineConfig
    blocks_by_id: Mapping[str, Block]
    blocks_by_court_day: Mapping[str, Sequence[str]]
    courts: Mapping[CourtRef, CourtMeta]

    def blocks_on(self, court: CourtRef, day: date) -> List[Block]:
        ids = self.blocks_by_court_day.get(court_day_key(court, day), ())
        return [self.blocks_by_id[bid] for bid in ids]

    def peers(self, mutations: Sequence[BlockMutation], index: int) -> List[Block]:
        """
        Blocks a candidate must be checked against: existing blocks on its
        court-day not touched by this batch, plus earlier candidates of the
        batch on the same court-day.
        """
        candidate = mutations[index].block
        touched = {m.block.block_id for m in mutations}
        peers = [b for b in self.blocks_on(candidate.court, candidate.day) if b.block_id not in touched]
        for earlier in mutations[:index]:
            if earlier.kind == MutationKind.REMOVE:
                continue
            b = earlier.block
            if b.court == candidate.court and b.day == candidate.day:
                peers.append(b)
        return peers


def _placed(mutations: Sequence[BlockMutation]):
    """(index, mutation) for mutations that put a block on the grid."""
    return [(i, m) for i, m in enumerate(mutations) if m.kind != MutationKind.REMOVE]


# ─── Base ────────────────────────────────────────────────────────────────

class ConflictEvaluator:
    evaluator_id = "base"
    name = "Base evaluator"

    def evaluate(self, ctx: EvaluationContext, mutations: Sequence[BlockMutation]) -> List[Conflict]:
        raise NotImplementedError

    def _conflict(self, code: str, severity: Severity, message: str, block: Block,
                  other: Optional[Block] = None) -> Conflict:
        return Conflict(
            evaluator_id=self.evaluator_id,
            code=code,
            severity=severity,
            message=message,
            block_id=block.block_id,
            conflicting_block_id=other.block_id if other else None,
            court_day_key=court_day_key(block.court, block.day),
        )


# ─── Always-on: precedence overlap ───────────────────────────────────────

class PrecedenceOverlapEvaluator(ConflictEvaluator):
    evaluator_id = "precedence-overlap"
    name = "Precedence overlap"

    def evaluate(self, ctx, mutations):
        precedence = ctx.config.precedence
        conflicts: List[Conflict] = []

        for i, mutation in _placed(mutations):
            candidate = mutation.block
            mine = (candidate.priority, precedence.rank(candidate.block_type))
            for peer in ctx.peers(mutations, i):
                if not ranges_overlap(candidate.time_range, peer.time_range):
                    continue
                theirs = (peer.priority, precedence.rank(peer.block_type))
                where = f"{candidate.court.court_id} {candidate.day} {peer.time_range.label()}"
                if theirs > mine:
                    severity = Severity.WARN if ctx.config.allow_downgrade else Severity.ERROR
                    conflicts.append(self._conflict(
                        OVERLAP_HIGHER_PRECEDENCE, severity,
                        f"{candidate.block_type.value} overlaps higher-precedence "
                        f"{peer.block_type.value} {peer.block_id} on {where}",
                        candidate, peer,
                    ))
                elif theirs == mine:
                    conflicts.append(self._conflict(
                        OVERLAP_EQUAL_PRECEDENCE, Severity.WARN,
                        f"{candidate.block_type.value} overlaps equal-precedence {peer.block_id} on {where}",
                        candidate, peer,
                    ))
                else:
                    conflicts.append(self._conflict(
                        OVERLAP_LOWER_PRECEDENCE, Severity.WARN,
                        f"{candidate.block_type.value} overrides {peer.block_type.value} {peer.block_id} on {where}",
                        candidate, peer,
                    ))
        return conflicts


# ─── Optional evaluators ─────────────────────────────────────────────────

class BlockDurationEvaluator(ConflictEvaluator):
    evaluator_id = "block-duration"
    name = "Block duration"

    def __init__(self, min_minutes: int = 15, max_minutes: int = 12 * 60):
        self.min_minutes = min_minutes
        self.max_minutes = max_minutes

    def evaluate(self, ctx, mutations):
        conflicts = []
        for _, mutation in _placed(mutations):
            block = mutation.block
            if block.duration_minutes < self.min_minutes:
                conflicts.append(self._conflict(
                    "BLOCK_TOO_SHORT", Severity.WARN,
                    f"Block is {block.duration_minutes} min (minimum {self.min_minutes})", block,
                ))
            elif block.duration_minutes > self.max_minutes:
                conflicts.append(self._conflict(
                    "BLOCK_TOO_LONG", Severity.WARN,
                    f"Block is {block.duration_minutes} min (maximum {self.max_minutes})", block,
                ))
        return conflicts


class MatchWindowEvaluator(ConflictEvaluator):
    evaluator_id = "match-window"
    name = "Match window"

    def __init__(self, min_match_minutes: int = 60):
        self.min_match_minutes = min_match_minutes

    def evaluate(self, ctx, mutations):
        conflicts = []
        for _, mutation in _placed(mutations):
            block = mutation.block
            if block.block_type == BlockType.AVAILABLE and block.duration_minutes < self.min_match_minutes:
                conflicts.append(self._conflict(
                    "MATCH_WINDOW_TOO_SHORT", Severity.WARN,
                    f"Available window of {block.duration_minutes} min is shorter than "
                    f"{self.min_match_minutes} min needed for a match",
                    block,
                ))
        return conflicts


class AdjacentBlockEvaluator(ConflictEvaluator):
    evaluator_id = "adjacent-block"
    name = "Adjacent block buffer"

    def __init__(self, buffer_minutes: int = 15):
        self.buffer_minutes = buffer_minutes

    def evaluate(self, ctx, mutations):
        conflicts = []
        for i, mutation in _placed(mutations):
            block = mutation.block
            for peer in ctx.peers(mutations, i):
                if ranges_overlap(block.time_range, peer.time_range):
                    continue
                gap = max(block.start_time - peer.end_time, peer.start_time - block.end_time)
                if 0 <= gap < self.buffer_minutes:
                    conflicts.append(self._conflict(
                        "NO_BUFFER", Severity.INFO,
                        f"Only {gap} min between {block.block_id} and {peer.block_id} "
                        f"(recommended {self.buffer_minutes})",
                        block, peer,
                    ))
        return conflicts


class MaintenanceWindowEvaluator(ConflictEvaluator):
    evaluator_id = "maintenance-window"
    name = "Maintenance window"

    def __init__(self, peak_start: str = "10:00", peak_end: str = "18:00"):
        self.peak_start = parse_hhmm(peak_start)
        self.peak_end = parse_hhmm(peak_end)

    def evaluate(self, ctx, mutations):
        conflicts = []
        for _, mutation in _placed(mutations):
            block = mutation.block
            if block.block_type != BlockType.MAINTENANCE:
                continue
            if block.start_time < self.peak_end and self.peak_start < block.end_time:
                conflicts.append(self._conflict(
                    "MAINTENANCE_IN_PEAK", Severity.INFO,
                    f"Maintenance {block.time_range.label()} falls inside peak hours "
                    f"{format_hhmm(self.peak_start)}-{format_hhmm(self.peak_end)}",
                    block,
                ))
        return conflicts


class LightingEvaluator(ConflictEvaluator):
    evaluator_id = "lighting"
    name = "Lighting"

    PLAYABLE = frozenset({
        BlockType.AVAILABLE,
        BlockType.SOFT_BLOCK,
        BlockType.RESERVED,
        BlockType.PRACTICE,
        BlockType.SCHEDULED,
    })

    def __init__(self, sunset: str = "19:30"):
        self.sunset = parse_hhmm(sunset)

    def evaluate(self, ctx, mutations):
        conflicts = []
        for _, mutation in _placed(mutations):
            block = mutation.block
            meta = ctx.courts.get(block.court)
            if meta is None or meta.indoor or meta.has_lights:
                continue
            if block.block_type in self.PLAYABLE and block.end_time > self.sunset:
                conflicts.append(self._conflict(
                    "PLAY_AFTER_SUNSET", Severity.WARN,
                    f"Outdoor court {meta.name} has no lights and {block.block_id} runs past "
                    f"sunset ({format_hhmm(self.sunset)})",
                    block,
                ))
        return conflicts


def default_evaluators() -> List[ConflictEvaluator]:
    """Fresh instances of every optional evaluator with default thresholds."""
    return [
        BlockDurationEvaluator(),
        MatchWindowEvaluator(),
        AdjacentBlockEvaluator(),
        MaintenanceWindowEvaluator(),
        LightingEvaluator(),
    ]


# ─── Helpers ─────────────────────────────────────────────────────────────

def highest_severity(conflicts: Sequence[Conflict]) -> Optional[Severity]:
    if not conflicts:
        return None
    return max((c.severity for c in conflicts), key=lambda s: SEVERITY_ORDER[s])


def format_conflicts(conflicts: Sequence[Conflict]) -> str:
    if not conflicts:
        return "No conflicts"
    return "\n".join(f"[{c.severity.value}] {c.code}: {c.message}" for c in conflicts)


def count_by_severity(conflicts: Sequence[Conflict]) -> Dict[str, int]:
    counts = {s.value: 0 for s in Severity}
    for c in conflicts:
        counts[c.severity.value] += 1
    return counts
