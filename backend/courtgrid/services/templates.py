"""
Template expansion.

A template is a recurring day pattern (e.g. "maintenance 07:00-08:00, league
practice 17:00-19:00"). Applying it to a set of days and courts expands every
entry into one candidate block per (day, court) pair; the engine then runs
the candidates through the same validation and conflict path as a single
applied block.
"""
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from courtgrid.models.block import Block, BlockSource, BlockType, CourtRef, TimeRange
from courtgrid.models.config import StatusPrecedence
from courtgrid.models.mutation import (
    EMPTY_TEMPLATE,
    INVALID_INTERVAL,
    INVALID_PRIORITY,
    OUTSIDE_DAY_BOUNDS,
    UNKNOWN_COURT,
    MutationIssue,
)
from courtgrid.models.template import Template, TemplateEntry
from courtgrid.utils.time_math import format_hhmm, to_minutes

logger = logging.getLogger(__name__)


def build_template_entry(
    start_time,
    end_time,
    block_type,
    priority: Optional[int] = None,
    reason: Optional[str] = None,
    courts: Optional[Sequence[CourtRef]] = None,
    metadata: Optional[Dict] = None,
) -> TemplateEntry:
    """Normalize edge values (HH:MM strings, type names) into a TemplateEntry."""
    return TemplateEntry(
        start_time=to_minutes(start_time),
        end_time=to_minutes(end_time),
        block_type=BlockType(block_type),
        priority=priority,
        reason=reason,
        courts=tuple(dict.fromkeys(courts)) if courts is not None else None,
        metadata=dict(metadata or {}),
    )


def validate_template(
    template: Template,
    day_range: TimeRange,
    known_courts: Sequence[CourtRef],
) -> List[MutationIssue]:
    """Structural checks that do not depend on the current block set."""
    if not template.entries:
        return [MutationIssue(EMPTY_TEMPLATE, f"Template '{template.template_id}' has no entries")]

    known = set(known_courts)
    issues: List[MutationIssue] = []
    for idx, entry in enumerate(template.entries):
        ctx = {"template_id": template.template_id, "entry": idx}
        if entry.priority is not None and (isinstance(entry.priority, bool) or not isinstance(entry.priority, int)):
            issues.append(MutationIssue(
                INVALID_PRIORITY, f"Entry {idx}: priority must be an integer, got {entry.priority!r}", context=ctx,
            ))
        if entry.start_time >= entry.end_time:
            issues.append(MutationIssue(
                INVALID_INTERVAL,
                f"Entry {idx}: start {format_hhmm(entry.start_time)} is not before end {format_hhmm(entry.end_time)}",
                context=ctx,
            ))
            continue
        if entry.start_time < day_range.start or entry.end_time > day_range.end:
            issues.append(MutationIssue(
                OUTSIDE_DAY_BOUNDS,
                f"Entry {idx}: {format_hhmm(entry.start_time)}-{format_hhmm(entry.end_time)} "
                f"is outside day bounds {day_range.label()}",
                context=ctx,
            ))
        for court in entry.courts or ():
            if court not in known:
                issues.append(MutationIssue(
                    UNKNOWN_COURT, f"Entry {idx}: unknown court {court.key()}", context=ctx,
                ))
    return issues


def expand_template(
    template: Template,
    days: Sequence[date],
    courts: Sequence[CourtRef],
    precedence: StatusPrecedence,
    next_block_id: Callable[[], str],
) -> List[Block]:
    """
    Expand entries across days x courts, ordered by day, then entry, then court.

    An entry with its own court list ignores `courts`. Every produced block
    is tagged with source=TEMPLATE and metadata["template_id"].
    """
    blocks: List[Block] = []
    for day in sorted(set(days)):
        for entry in template.entries:
            targets = entry.courts if entry.courts is not None else courts
            for court in targets:
                metadata = dict(entry.metadata)
                metadata["template_id"] = template.template_id
                blocks.append(Block(
                    block_id=next_block_id(),
                    court=court,
                    day=day,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    block_type=entry.block_type,
                    priority=entry.priority if entry.priority is not None else precedence.rank(entry.block_type),
                    reason=entry.reason or template.name,
                    source=BlockSource.TEMPLATE,
                    metadata=metadata,
                ))
    logger.debug(
        "Expanded template %s into %d blocks (%d days)", template.template_id, len(blocks), len(set(days))
    )
    return blocks
