"""
Temporal Grid Engine
====================
In-memory mutation state machine for court availability.

Canonical state is the Block collection, nothing else. Rails and capacity
curves are derived on demand and cached per court-day / per day; any
mutation touching a court-day drops that court-day's rail and that day's
capacity curve.

Mutation pipeline (apply / move / resize / remove / template):
  1) Plan     - validate options, build candidate BlockMutations
  2) Evaluate - run conflict evaluators (precedence overlap always first)
  3) Decide   - ERROR conflicts reject unless force (partial templates
                reject only the offending blocks)
  4) Commit   - index blocks, invalidate caches
  5) Notify   - synchronous subscriber dispatch; mutating from a handler
                raises ReentrantMutationError

Validation problems, missing blocks and conflicts are returned as data in
MutationResult. Only defects (RailInvariantError, ReentrantMutationError)
and bad construction input (EngineConfigError) are raised.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from courtgrid.errors import EngineConfigError, ReentrantMutationError, UnknownCourtError
from courtgrid.models.block import Block, BlockType, CourtMeta, CourtRef, FacilityDayTimeline, TimeRange
from courtgrid.models.capacity import CapacityCurve, CapacityPoint, CapacityStats, CurveMode
from courtgrid.models.config import EngineConfig
from courtgrid.models.mutation import (
    BLOCK_NOT_FOUND,
    CONFLICT_REJECTED,
    EMPTY_TEMPLATE,
    INVALID_DAY,
    INVALID_INTERVAL,
    INVALID_PRIORITY,
    NO_COURTS,
    OUTSIDE_DAY_BOUNDS,
    TEMPLATE_NOT_FOUND,
    UNKNOWN_BLOCK_TYPE,
    UNKNOWN_COURT,
    ApplyBlockOptions,
    ApplyTemplateOptions,
    BlockMutation,
    Conflict,
    EngineEvent,
    EventKind,
    MoveBlockOptions,
    MutationIssue,
    MutationKind,
    MutationOptions,
    MutationResult,
    RemoveBlockOptions,
    ResizeBlockOptions,
    Severity,
    SimulationResult,
)
from courtgrid.models.rail import CourtRail, FacilityDayRails, RailSegment
from courtgrid.models.template import Template
from courtgrid.services.capacity_curve import calculate_capacity_stats, generate_capacity_curve
from courtgrid.services.conflict_evaluators import (
    ConflictEvaluator,
    EvaluationContext,
    PrecedenceOverlapEvaluator,
)
from courtgrid.services.rail_derivation import clamp_to_day_range, court_day_key, derive_rail_segments
from courtgrid.services.templates import expand_template, validate_template
from courtgrid.utils.courts import normalize_catalog
from courtgrid.utils.time_math import TimeLike, format_hhmm, to_minutes

logger = logging.getLogger(__name__)

EventHandler = Callable[[EngineEvent], None]

_EVENT_KIND = {
    ApplyBlockOptions: EventKind.BLOCK_ADDED,
    MoveBlockOptions: EventKind.BLOCK_MOVED,
    ResizeBlockOptions: EventKind.BLOCK_RESIZED,
    RemoveBlockOptions: EventKind.BLOCK_REMOVED,
    ApplyTemplateOptions: EventKind.TEMPLATE_APPLIED,
}


def _copy_curve(curve: CapacityCurve) -> CapacityCurve:
    points = [CapacityPoint(time=p.time, counts=dict(p.counts)) for p in curve.points]
    return dataclasses.replace(curve, points=points)


def _unique_courts(courts: Iterable[CourtRef]) -> List[CourtRef]:
    """Drop repeated courts, keeping first-seen order."""
    unique: List[CourtRef] = []
    for court in courts:
        if court not in unique:
            unique.append(court)
    return unique


class _IdAllocator:
    """Hands out provisional block ids; the engine adopts `next` on commit."""

    def __init__(self, start: int):
        self.next = start

    def __call__(self) -> str:
        block_id = f"block-{self.next}"
        self.next += 1
        return block_id


@dataclass
class _Plan:
    mutations: List[BlockMutation] = field(default_factory=list)
    errors: List[MutationIssue] = field(default_factory=list)
    next_seq: Optional[int] = None
    force: bool = False
    partial: bool = False


class TemporalGridEngine:
    """
    One engine per grid (tournament, venue, ...). Instances share nothing.

    Use create_engine() to build one.
    """

    def __init__(
        self,
        config: EngineConfig,
        court_catalog: Iterable[Union[CourtRef, CourtMeta]],
        evaluators: Optional[Sequence[ConflictEvaluator]] = None,
    ):
        if not isinstance(config, EngineConfig):
            raise EngineConfigError(f"config must be an EngineConfig, got {type(config).__name__}")
        self._config = config
        self._courts = self._build_catalog(court_catalog)
        self._evaluators: List[ConflictEvaluator] = [PrecedenceOverlapEvaluator()] + list(evaluators or [])

        self._blocks: Dict[str, Block] = {}
        self._by_court_day: Dict[str, List[str]] = {}
        self._templates: Dict[str, Template] = {}
        self._next_seq = 1

        self._rail_cache: Dict[str, List[RailSegment]] = {}
        self._capacity_cache: Dict[date, CapacityCurve] = {}

        self._subscribers: List[EventHandler] = []
        self._dispatching = False

    @staticmethod
    def _build_catalog(court_catalog) -> Dict[CourtRef, CourtMeta]:
        try:
            catalog = normalize_catalog(court_catalog or [])
        except TypeError as e:
            raise EngineConfigError(str(e)) from e
        if not catalog:
            raise EngineConfigError("Court catalog must contain at least one court")
        courts: Dict[CourtRef, CourtMeta] = {}
        for meta in catalog:
            if meta.ref in courts:
                raise EngineConfigError(f"Duplicate court in catalog: {meta.ref.key()}")
            courts[meta.ref] = meta
        return courts

    # ─── Mutations ───────────────────────────────────────────────────────

    def apply_block(self, options: ApplyBlockOptions) -> MutationResult:
        return self._mutate(options)

    def move_block(self, options: MoveBlockOptions) -> MutationResult:
        return self._mutate(options)

    def resize_block(self, options: ResizeBlockOptions) -> MutationResult:
        return self._mutate(options)

    def remove_block(self, block_id: Union[str, RemoveBlockOptions]) -> MutationResult:
        options = block_id if isinstance(block_id, RemoveBlockOptions) else RemoveBlockOptions(block_id=block_id)
        return self._mutate(options)

    def apply_template(self, options: ApplyTemplateOptions) -> MutationResult:
        return self._mutate(options)

    def simulate(self, options: MutationOptions) -> SimulationResult:
        """
        Run a mutation against a scratch copy of the current state.

        Canonical state, caches and subscribers are untouched. The returned
        rails and curves are exactly what the real mutation followed by a
        read would return.
        """
        scratch = self._scratch_copy()
        plan = scratch._plan(options)
        result = scratch._execute(plan, _EVENT_KIND[type(options)], emit=False)

        touched: Dict[str, Tuple[CourtRef, date]] = {}
        for mutation in plan.mutations:
            for block in (mutation.previous_block, mutation.block):
                if block is not None:
                    touched.setdefault(court_day_key(block.court, block.day), (block.court, block.day))

        rails = {key: scratch.get_rail_segments(court, day) for key, (court, day) in touched.items()}
        days = sorted({day for _, day in touched.values()})
        capacity = {day: scratch.get_capacity_curve(day) for day in days}
        logger.debug("Simulated %s: %d court-days touched", type(options).__name__, len(touched))
        return SimulationResult(result=result, rails=rails, capacity=capacity)

    def _mutate(self, options: MutationOptions) -> MutationResult:
        if self._dispatching:
            raise ReentrantMutationError(
                f"{type(options).__name__} called from a subscriber while an event is being dispatched"
            )
        plan = self._plan(options)
        return self._execute(plan, _EVENT_KIND[type(options)])

    def _scratch_copy(self) -> "TemporalGridEngine":
        scratch = TemporalGridEngine(self._config, list(self._courts.values()), self._evaluators[1:])
        scratch._blocks = dict(self._blocks)
        scratch._by_court_day = {key: list(ids) for key, ids in self._by_court_day.items()}
        scratch._templates = dict(self._templates)
        scratch._next_seq = self._next_seq
        scratch._rail_cache = dict(self._rail_cache)
        scratch._capacity_cache = dict(self._capacity_cache)
        return scratch

    # ─── Planning ────────────────────────────────────────────────────────

    def _plan(self, options: MutationOptions) -> _Plan:
        if isinstance(options, ApplyBlockOptions):
            return self._plan_apply_block(options)
        if isinstance(options, MoveBlockOptions):
            return self._plan_move(options, MutationKind.MOVE, options.court, options.day)
        if isinstance(options, ResizeBlockOptions):
            return self._plan_move(options, MutationKind.RESIZE, None, None)
        if isinstance(options, RemoveBlockOptions):
            return self._plan_remove(options)
        if isinstance(options, ApplyTemplateOptions):
            return self._plan_template(options)
        raise TypeError(f"Unsupported mutation options: {type(options).__name__}")

    def _resolve_interval(
        self,
        start: TimeLike,
        end: TimeLike,
        clamp: bool,
        block_id: Optional[str] = None,
    ) -> Tuple[Optional[TimeRange], List[MutationIssue]]:
        try:
            s = to_minutes(start)
            e = to_minutes(end)
        except (TypeError, ValueError) as exc:
            return None, [MutationIssue(INVALID_INTERVAL, str(exc), block_id)]

        if s >= e:
            return None, [MutationIssue(
                INVALID_INTERVAL,
                f"Start {format_hhmm(s)} must be before end {format_hhmm(e)}",
                block_id,
            )]

        day_range = self._config.day_range
        if day_range.start <= s and e <= day_range.end:
            return TimeRange(s, e), []

        label = f"{format_hhmm(s)}-{format_hhmm(e)}"
        if clamp:
            clamped = clamp_to_day_range(TimeRange(s, e), day_range)
            if clamped is not None:
                return clamped, []
            message = f"Interval {label} lies entirely outside day bounds {day_range.label()}"
        else:
            message = f"Interval {label} is outside day bounds {day_range.label()}"
        return None, [MutationIssue(OUTSIDE_DAY_BOUNDS, message, block_id)]

    @staticmethod
    def _check_day(day, block_id: Optional[str] = None) -> List[MutationIssue]:
        if isinstance(day, datetime) or not isinstance(day, date):
            return [MutationIssue(INVALID_DAY, f"Day must be a date, got {day!r}", block_id)]
        return []

    @staticmethod
    def _check_priority(priority) -> List[MutationIssue]:
        if priority is None or (isinstance(priority, int) and not isinstance(priority, bool)):
            return []
        return [MutationIssue(INVALID_PRIORITY, f"Priority must be an integer, got {priority!r}")]

    def _check_courts(self, courts: Sequence[CourtRef]) -> List[MutationIssue]:
        return [
            MutationIssue(UNKNOWN_COURT, f"Unknown court: {court.key()}", context={"court": court.to_dict()})
            for court in courts
            if court not in self._courts
        ]

    def _plan_apply_block(self, options: ApplyBlockOptions) -> _Plan:
        errors: List[MutationIssue] = []
        courts = _unique_courts(options.courts or ())
        if not courts:
            errors.append(MutationIssue(NO_COURTS, "At least one court is required"))
        errors.extend(self._check_courts(courts))
        errors.extend(self._check_day(options.day))
        errors.extend(self._check_priority(options.priority))

        block_type = None
        try:
            block_type = BlockType(options.block_type)
        except ValueError:
            errors.append(MutationIssue(UNKNOWN_BLOCK_TYPE, f"Unknown block type: {options.block_type!r}"))

        rng, issues = self._resolve_interval(options.start_time, options.end_time, options.clamp_to_day)
        errors.extend(issues)
        if errors:
            return _Plan(errors=errors)

        priority = options.priority if options.priority is not None else self._config.precedence.rank(block_type)
        ids = _IdAllocator(self._next_seq)
        mutations = [
            BlockMutation(
                kind=MutationKind.ADD,
                block=Block(
                    block_id=ids(),
                    court=court,
                    day=options.day,
                    start_time=rng.start,
                    end_time=rng.end,
                    block_type=block_type,
                    priority=priority,
                    reason=options.reason,
                    metadata=dict(options.metadata or {}),
                ),
            )
            for court in courts
        ]
        return _Plan(mutations=mutations, next_seq=ids.next, force=options.force)

    def _plan_move(
        self,
        options: Union[MoveBlockOptions, ResizeBlockOptions],
        kind: MutationKind,
        court: Optional[CourtRef],
        day: Optional[date],
    ) -> _Plan:
        current = self._blocks.get(options.block_id)
        if current is None:
            return _Plan(errors=[self._not_found(options.block_id)])

        target_court = court if court is not None else current.court
        target_day = day if day is not None else current.day
        errors = self._check_courts([target_court])
        errors.extend(self._check_day(target_day, options.block_id))
        rng, issues = self._resolve_interval(
            options.start_time, options.end_time, options.clamp_to_day, options.block_id
        )
        errors.extend(issues)
        if errors:
            return _Plan(errors=errors)

        updated = dataclasses.replace(
            current,
            court=target_court,
            day=target_day,
            start_time=rng.start,
            end_time=rng.end,
        )
        return _Plan(
            mutations=[BlockMutation(kind=kind, block=updated, previous_block=current)],
            force=options.force,
        )

    def _plan_remove(self, options: RemoveBlockOptions) -> _Plan:
        current = self._blocks.get(options.block_id)
        if current is None:
            return _Plan(errors=[self._not_found(options.block_id)])
        return _Plan(mutations=[BlockMutation(kind=MutationKind.REMOVE, block=current)])

    def _plan_template(self, options: ApplyTemplateOptions) -> _Plan:
        template = options.template
        if template is None and options.template_id is not None:
            template = self._templates.get(options.template_id)
        if template is None:
            return _Plan(errors=[MutationIssue(
                TEMPLATE_NOT_FOUND,
                f"Template not found: {options.template_id}",
                context={"template_id": options.template_id},
            )])

        days = list(options.days or ())
        courts = _unique_courts(options.courts) if options.courts is not None else list(self._courts)
        errors: List[MutationIssue] = []
        if not days:
            errors.append(MutationIssue(EMPTY_TEMPLATE, "Template application covers no days"))
        for day in days:
            errors.extend(self._check_day(day))
        if not courts:
            errors.append(MutationIssue(NO_COURTS, "At least one court is required"))
        errors.extend(self._check_courts(courts))
        errors.extend(validate_template(template, self._config.day_range, list(self._courts)))
        if errors:
            return _Plan(errors=errors)

        ids = _IdAllocator(self._next_seq)
        blocks = expand_template(template, days, courts, self._config.precedence, ids)
        return _Plan(
            mutations=[BlockMutation(kind=MutationKind.ADD, block=b) for b in blocks],
            next_seq=ids.next,
            force=options.force,
            partial=options.partial,
        )

    @staticmethod
    def _not_found(block_id: str) -> MutationIssue:
        return MutationIssue(BLOCK_NOT_FOUND, f"Block not found: {block_id}", block_id)

    # ─── Evaluate / decide / commit ──────────────────────────────────────

    def _evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(
            config=self._config,
            blocks_by_id=MappingProxyType(self._blocks),
            blocks_by_court_day=MappingProxyType(self._by_court_day),
            courts=MappingProxyType(self._courts),
        )

    def _evaluate(self, mutations: Sequence[BlockMutation]) -> List[Conflict]:
        ctx = self._evaluation_context()
        conflicts: List[Conflict] = []
        for evaluator in self._evaluators:
            conflicts.extend(evaluator.evaluate(ctx, mutations))
        return conflicts

    def _execute(self, plan: _Plan, event_kind: EventKind, emit: bool = True) -> MutationResult:
        result = MutationResult(errors=list(plan.errors))
        if plan.errors:
            logger.warning(
                "%s rejected: %s", event_kind.value, "; ".join(f"{e.code}: {e.message}" for e in plan.errors)
            )
            return result

        conflicts = self._evaluate(plan.mutations) if plan.mutations else []
        result.conflicts = conflicts
        result.warnings = [
            MutationIssue(c.code, c.message, c.block_id, {"conflicting_block_id": c.conflicting_block_id})
            for c in conflicts
            if c.severity == Severity.WARN
        ]

        blocking = {c.block_id for c in conflicts if c.severity == Severity.ERROR}
        applied = list(plan.mutations)
        if blocking and not plan.force:
            if plan.partial:
                applied = [m for m in plan.mutations if m.block.block_id not in blocking]
            else:
                applied = []
            result.rejected = [m for m in plan.mutations if m not in applied]
            result.errors.append(MutationIssue(
                CONFLICT_REJECTED,
                f"{len(result.rejected)} block(s) conflict with higher-precedence blocks",
                context={"block_ids": sorted(blocking)},
            ))
            logger.warning(
                "%s: %d of %d mutation(s) rejected on conflicts",
                event_kind.value, len(result.rejected), len(plan.mutations),
            )
        elif blocking:
            logger.info("%s: forcing past %d blocking conflict(s)", event_kind.value, len(blocking))

        if not applied:
            return result

        keys = self._commit(applied, plan.next_seq)
        result.applied = applied
        logger.info(
            "%s committed: %d block(s), %d court-day(s), %d conflict(s)",
            event_kind.value, len(applied), len(keys), len(conflicts),
        )
        if emit:
            self._emit(EngineEvent(kind=event_kind, mutations=list(applied), court_day_keys=keys, conflicts=conflicts))
        return result

    def _commit(self, mutations: Sequence[BlockMutation], next_seq: Optional[int]) -> List[str]:
        touched: List[str] = []

        def _touch(block: Block):
            key = court_day_key(block.court, block.day)
            if key not in touched:
                touched.append(key)
            return key

        for mutation in mutations:
            old = mutation.block if mutation.kind == MutationKind.REMOVE else mutation.previous_block
            if old is not None:
                key = _touch(old)
                self._by_court_day[key].remove(old.block_id)
                if not self._by_court_day[key]:
                    del self._by_court_day[key]
                del self._blocks[old.block_id]
            if mutation.kind != MutationKind.REMOVE:
                block = mutation.block
                self._blocks[block.block_id] = block
                self._by_court_day.setdefault(_touch(block), []).append(block.block_id)

        if next_seq is not None:
            self._next_seq = max(self._next_seq, next_seq)

        for key in touched:
            self._rail_cache.pop(key, None)
        for day in {date.fromisoformat(key.rsplit("|", 1)[1]) for key in touched}:
            self._capacity_cache.pop(day, None)
        return touched

    # ─── Events ──────────────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register a post-commit callback. Returns an idempotent unsubscribe."""
        self._subscribers.append(handler)

        def unsubscribe():
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    def _emit(self, event: EngineEvent):
        self._dispatching = True
        try:
            for handler in list(self._subscribers):
                try:
                    handler(event)
                except ReentrantMutationError:
                    raise
                except Exception:
                    logger.exception("Subscriber %r failed handling %s", handler, event.kind.value)
        finally:
            self._dispatching = False

    # ─── Templates ───────────────────────────────────────────────────────

    def register_template(self, template: Template) -> None:
        if template.template_id in self._templates:
            logger.info("Replacing template %s", template.template_id)
        self._templates[template.template_id] = template

    def get_template(self, template_id: str) -> Optional[Template]:
        return self._templates.get(template_id)

    def get_templates(self) -> List[Template]:
        return [self._templates[tid] for tid in sorted(self._templates)]

    def remove_template(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None

    # ─── Reads ───────────────────────────────────────────────────────────

    def get_config(self) -> EngineConfig:
        return self._config

    def list_courts(self) -> List[CourtMeta]:
        return list(self._courts.values())

    def get_block(self, block_id: str) -> Optional[Block]:
        return self._blocks.get(block_id)

    def get_all_blocks(self) -> List[Block]:
        return sorted(self._blocks.values(), key=lambda b: (b.day, b.court, b.start_time, b.block_id))

    def get_day_blocks(self, day: date) -> List[Block]:
        return [b for b in self.get_all_blocks() if b.day == day]

    def _require_court(self, court: CourtRef):
        if court not in self._courts:
            raise UnknownCourtError(court.key())

    def get_timeline(self, court: CourtRef, day: date) -> FacilityDayTimeline:
        self._require_court(court)
        ids = self._by_court_day.get(court_day_key(court, day), ())
        blocks = sorted((self._blocks[bid] for bid in ids), key=lambda b: (b.start_time, b.block_id))
        return FacilityDayTimeline(court=court, day=day, day_range=self._config.day_range, blocks=blocks)

    def get_rail_segments(self, court: CourtRef, day: date) -> List[RailSegment]:
        self._require_court(court)
        key = court_day_key(court, day)
        cached = self._rail_cache.get(key)
        if cached is not None:
            logger.debug("Rail cache hit %s", key)
            return list(cached)
        timeline = self.get_timeline(court, day)
        segments = derive_rail_segments(timeline.blocks, timeline.day_range, self._config.precedence)
        self._rail_cache[key] = segments
        return list(segments)

    def get_court_rail(self, court: CourtRef, day: date) -> CourtRail:
        return CourtRail(court=court, day=day, segments=self.get_rail_segments(court, day))

    def get_day_rails(self, day: date, facility_id: Optional[str] = None) -> List[FacilityDayRails]:
        """Rails for every catalog court on `day`, grouped by facility in catalog order."""
        grouped: Dict[str, List[CourtRail]] = {}
        for court in self._courts:
            if facility_id is not None and court.facility_id != facility_id:
                continue
            grouped.setdefault(court.facility_id, []).append(self.get_court_rail(court, day))
        return [FacilityDayRails(day=day, facility_id=fid, rails=rails) for fid, rails in grouped.items()]

    def get_capacity_curve(
        self,
        day: date,
        mode: Optional[CurveMode] = None,
        courts: Optional[Sequence[CourtRef]] = None,
    ) -> CapacityCurve:
        """
        Capacity curve for one day over all catalog courts (or a subset).

        mode defaults to EXACT. Only the all-courts EXACT curve is cached;
        callers always get their own copy.
        """
        mode = CurveMode(mode) if mode is not None else CurveMode.EXACT
        cacheable = courts is None and mode == CurveMode.EXACT
        if cacheable and day in self._capacity_cache:
            logger.debug("Capacity cache hit %s", day.isoformat())
            return _copy_curve(self._capacity_cache[day])

        selected = list(self._courts) if courts is None else list(courts)
        for court in selected:
            self._require_court(court)
        rails = [self.get_court_rail(court, day) for court in selected]
        curve = generate_capacity_curve(
            day, rails, self._config.day_range, mode=mode, slot_minutes=self._config.slot_minutes
        )
        if cacheable:
            self._capacity_cache[day] = curve
            return _copy_curve(curve)
        return curve

    def get_capacity_stats(self, day: date, courts: Optional[Sequence[CourtRef]] = None) -> CapacityStats:
        return calculate_capacity_stats(self.get_capacity_curve(day, CurveMode.EXACT, courts))


def create_engine(
    config: EngineConfig,
    court_catalog: Iterable[Union[CourtRef, CourtMeta]],
    evaluators: Optional[Sequence[ConflictEvaluator]] = None,
) -> TemporalGridEngine:
    """Build an engine; configuration problems raise EngineConfigError here."""
    engine = TemporalGridEngine(config, court_catalog, evaluators)
    logger.info(
        "Engine created: %d court(s), day %s-%s, slot %d min",
        len(engine.list_courts()), config.day_start_time, config.day_end_time, config.slot_minutes,
    )
    return engine
