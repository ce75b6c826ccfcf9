from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator, model_validator

from courtgrid.errors import EngineConfigError, GridAlreadyExistsError, GridNotFoundError, UnknownCourtError
from courtgrid.models.block import BlockType, CourtMeta, CourtRef
from courtgrid.models.capacity import CurveMode
from courtgrid.models.config import DEFAULT_STATUS_PRECEDENCE, EngineConfig
from courtgrid.models.mutation import (
    CONFLICT_REJECTED,
    ApplyBlockOptions,
    ApplyTemplateOptions,
    MoveBlockOptions,
    MutationResult,
    RemoveBlockOptions,
    ResizeBlockOptions,
)
from courtgrid.models.template import Template
from courtgrid.services.capacity_curve import (
    compare_capacity_curves,
    filter_capacity_curve,
    sample_capacity_curve,
)
from courtgrid.services.engine_registry import EngineRegistry
from courtgrid.services.temporal_grid_engine import TemporalGridEngine
from courtgrid.services.templates import build_template_entry
from courtgrid.utils.courts import build_court_catalog
from courtgrid.utils.time_math import parse_hhmm

router = APIRouter()


def get_registry(request: Request) -> EngineRegistry:
    return request.app.state.registry


# ============================================================================
# Request models
# ============================================================================


class CourtIn(BaseModel):
    facility_id: str
    court_id: str

    def ref(self) -> CourtRef:
        return CourtRef(facility_id=self.facility_id, court_id=self.court_id)


class CourtMetaIn(CourtIn):
    name: Optional[str] = None
    surface: str = "hard"
    indoor: bool = False
    has_lights: bool = False
    tags: List[str] = []


class GridConfigIn(BaseModel):
    day_start_time: str = "06:00"
    day_end_time: str = "23:00"
    slot_minutes: int = 15
    status_precedence: Optional[List[str]] = None
    allow_downgrade: bool = True

    @field_validator("day_start_time", "day_end_time")
    @classmethod
    def validate_hhmm(cls, v):
        parse_hhmm(v)
        return v


class GridCreate(BaseModel):
    """
    Courts come either as an explicit list or as facility_id + court_names
    ("1,2,3" or ["1","2","3"]).
    """

    grid_id: Optional[str] = None
    courts: Optional[List[CourtMetaIn]] = None
    facility_id: Optional[str] = None
    court_names: Optional[Any] = None
    config: Optional[GridConfigIn] = None
    default_evaluators: bool = False

    @model_validator(mode="after")
    def validate_courts(self):
        if self.courts is None and self.facility_id is None:
            raise ValueError("Provide either courts or facility_id + court_names")
        if self.courts is not None and self.facility_id is not None:
            raise ValueError("courts and facility_id + court_names are mutually exclusive")
        return self


class BlockApply(BaseModel):
    courts: List[CourtIn]
    day: date
    start_time: str
    end_time: str
    block_type: str
    priority: Optional[int] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = {}
    force: bool = False
    clamp_to_day: bool = False


class BlockMove(BaseModel):
    start_time: str
    end_time: str
    court: Optional[CourtIn] = None
    day: Optional[date] = None
    force: bool = False
    clamp_to_day: bool = False


class BlockResize(BaseModel):
    start_time: str
    end_time: str
    force: bool = False
    clamp_to_day: bool = False


class TemplateEntryIn(BaseModel):
    start_time: str
    end_time: str
    block_type: BlockType
    priority: Optional[int] = None
    reason: Optional[str] = None
    courts: Optional[List[CourtIn]] = None
    metadata: Dict[str, Any] = {}

    @model_validator(mode="after")
    def validate_times(self):
        if parse_hhmm(self.end_time) <= parse_hhmm(self.start_time):
            raise ValueError("end_time must be greater than start_time")
        return self


class TemplateCreate(BaseModel):
    template_id: str
    name: str
    description: Optional[str] = None
    entries: List[TemplateEntryIn]

    @field_validator("entries")
    @classmethod
    def validate_entries(cls, v):
        if not v:
            raise ValueError("A template needs at least one entry")
        return v


class TemplateApply(BaseModel):
    days: List[date]
    courts: Optional[List[CourtIn]] = None
    force: bool = False
    partial: bool = False


class SimulateRequest(BaseModel):
    operation: Literal["apply", "move", "resize", "remove", "template"]
    block_id: Optional[str] = None
    template_id: Optional[str] = None
    apply: Optional[BlockApply] = None
    move: Optional[BlockMove] = None
    resize: Optional[BlockResize] = None
    template: Optional[TemplateApply] = None

    @model_validator(mode="after")
    def validate_payload(self):
        if self.operation in ("move", "resize", "remove") and not self.block_id:
            raise ValueError(f"block_id is required for {self.operation}")
        if self.operation == "template" and not self.template_id:
            raise ValueError("template_id is required for template")
        if self.operation != "remove" and getattr(self, self.operation) is None:
            raise ValueError(f"'{self.operation}' payload is required")
        return self


# ============================================================================
# Conversion helpers
# ============================================================================


def _engine(registry: EngineRegistry, grid_id: str) -> TemporalGridEngine:
    try:
        return registry.get(grid_id)
    except GridNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _court_ref(facility_id: str, court_id: str) -> CourtRef:
    return CourtRef(facility_id=facility_id, court_id=court_id)


def _apply_options(body: BlockApply) -> ApplyBlockOptions:
    return ApplyBlockOptions(
        courts=[c.ref() for c in body.courts],
        day=body.day,
        start_time=body.start_time,
        end_time=body.end_time,
        block_type=body.block_type,
        priority=body.priority,
        reason=body.reason,
        metadata=body.metadata,
        force=body.force,
        clamp_to_day=body.clamp_to_day,
    )


def _move_options(block_id: str, body: BlockMove) -> MoveBlockOptions:
    return MoveBlockOptions(
        block_id=block_id,
        start_time=body.start_time,
        end_time=body.end_time,
        court=body.court.ref() if body.court else None,
        day=body.day,
        force=body.force,
        clamp_to_day=body.clamp_to_day,
    )


def _resize_options(block_id: str, body: BlockResize) -> ResizeBlockOptions:
    return ResizeBlockOptions(
        block_id=block_id,
        start_time=body.start_time,
        end_time=body.end_time,
        force=body.force,
        clamp_to_day=body.clamp_to_day,
    )


def _template_options(template_id: str, body: TemplateApply) -> ApplyTemplateOptions:
    return ApplyTemplateOptions(
        days=body.days,
        template_id=template_id,
        courts=[c.ref() for c in body.courts] if body.courts is not None else None,
        force=body.force,
        partial=body.partial,
    )


def _mutation_status(result: MutationResult) -> int:
    """200 when anything was applied; otherwise 404 / 409 / 422 by error kind."""
    if result.applied:
        return 200
    if result.not_found:
        return 404
    if any(e.code == CONFLICT_REJECTED for e in result.errors):
        return 409
    if result.errors:
        return 422
    return 200


def _mutation_response(result: MutationResult) -> JSONResponse:
    return JSONResponse(status_code=_mutation_status(result), content=result.to_dict())


def _grid_summary(grid_id: str, engine: TemporalGridEngine) -> Dict[str, Any]:
    return {
        "grid_id": grid_id,
        "court_count": len(engine.list_courts()),
        "block_count": len(engine.get_all_blocks()),
        "config": engine.get_config().to_dict(),
    }


def _court_out(meta: CourtMeta) -> Dict[str, Any]:
    return {
        **meta.ref.to_dict(),
        "name": meta.name,
        "surface": meta.surface,
        "indoor": meta.indoor,
        "has_lights": meta.has_lights,
        "tags": list(meta.tags),
    }


# ============================================================================
# Grids
# ============================================================================


@router.get("/grids")
def list_grids(registry: EngineRegistry = Depends(get_registry)):
    return [_grid_summary(gid, engine) for gid, engine in registry.items()]


@router.post("/grids")
def create_grid(body: GridCreate, registry: EngineRegistry = Depends(get_registry)):
    """Create an engine for a new grid"""
    if body.courts is not None:
        catalog = [
            CourtMeta(
                ref=c.ref(),
                name=c.name or c.court_id,
                surface=c.surface,
                indoor=c.indoor,
                has_lights=c.has_lights,
                tags=tuple(c.tags),
            )
            for c in body.courts
        ]
    else:
        catalog = build_court_catalog(body.facility_id, body.court_names)

    config = None
    if body.config is not None:
        try:
            config = EngineConfig(
                day_start_time=body.config.day_start_time,
                day_end_time=body.config.day_end_time,
                slot_minutes=body.config.slot_minutes,
                status_precedence=body.config.status_precedence or DEFAULT_STATUS_PRECEDENCE,
                allow_downgrade=body.config.allow_downgrade,
            )
        except EngineConfigError as e:
            raise HTTPException(status_code=422, detail=str(e))

    try:
        grid_id, engine = registry.create(
            catalog,
            grid_id=body.grid_id,
            config=config,
            with_default_evaluators=body.default_evaluators,
        )
    except GridAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except EngineConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {**_grid_summary(grid_id, engine), "courts": [_court_out(m) for m in engine.list_courts()]}


@router.get("/grids/{grid_id}")
def get_grid(grid_id: str, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    return {**_grid_summary(grid_id, engine), "courts": [_court_out(m) for m in engine.list_courts()]}


@router.delete("/grids/{grid_id}")
def delete_grid(grid_id: str, registry: EngineRegistry = Depends(get_registry)):
    if not registry.remove(grid_id):
        raise HTTPException(status_code=404, detail=f"Grid not found: {grid_id}")
    return {"deleted": True, "grid_id": grid_id}


# ============================================================================
# Blocks
# ============================================================================


@router.get("/grids/{grid_id}/blocks")
def list_blocks(grid_id: str, day: Optional[date] = None, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    blocks = engine.get_day_blocks(day) if day is not None else engine.get_all_blocks()
    return [b.to_dict() for b in blocks]


@router.get("/grids/{grid_id}/blocks/{block_id}")
def get_block(grid_id: str, block_id: str, registry: EngineRegistry = Depends(get_registry)):
    block = _engine(registry, grid_id).get_block(block_id)
    if block is None:
        raise HTTPException(status_code=404, detail=f"Block not found: {block_id}")
    return block.to_dict()


@router.post("/grids/{grid_id}/blocks")
def apply_block(grid_id: str, body: BlockApply, registry: EngineRegistry = Depends(get_registry)):
    """Apply one block per listed court"""
    engine = _engine(registry, grid_id)
    return _mutation_response(engine.apply_block(_apply_options(body)))


@router.post("/grids/{grid_id}/blocks/{block_id}/move")
def move_block(grid_id: str, block_id: str, body: BlockMove, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    return _mutation_response(engine.move_block(_move_options(block_id, body)))


@router.post("/grids/{grid_id}/blocks/{block_id}/resize")
def resize_block(grid_id: str, block_id: str, body: BlockResize, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    return _mutation_response(engine.resize_block(_resize_options(block_id, body)))


@router.delete("/grids/{grid_id}/blocks/{block_id}")
def remove_block(grid_id: str, block_id: str, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    return _mutation_response(engine.remove_block(RemoveBlockOptions(block_id=block_id)))


# ============================================================================
# Templates
# ============================================================================


@router.get("/grids/{grid_id}/templates")
def list_templates(grid_id: str, registry: EngineRegistry = Depends(get_registry)):
    return [t.to_dict() for t in _engine(registry, grid_id).get_templates()]


@router.post("/grids/{grid_id}/templates")
def register_template(grid_id: str, body: TemplateCreate, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    template = Template(
        template_id=body.template_id,
        name=body.name,
        description=body.description,
        entries=[
            build_template_entry(
                e.start_time,
                e.end_time,
                e.block_type,
                priority=e.priority,
                reason=e.reason,
                courts=[c.ref() for c in e.courts] if e.courts is not None else None,
                metadata=e.metadata,
            )
            for e in body.entries
        ],
    )
    engine.register_template(template)
    return template.to_dict()


@router.delete("/grids/{grid_id}/templates/{template_id}")
def delete_template(grid_id: str, template_id: str, registry: EngineRegistry = Depends(get_registry)):
    if not _engine(registry, grid_id).remove_template(template_id):
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return {"deleted": True, "template_id": template_id}


@router.post("/grids/{grid_id}/templates/{template_id}/apply")
def apply_template(
    grid_id: str, template_id: str, body: TemplateApply, registry: EngineRegistry = Depends(get_registry)
):
    """Expand a registered template across days x courts"""
    engine = _engine(registry, grid_id)
    return _mutation_response(engine.apply_template(_template_options(template_id, body)))


# ============================================================================
# Simulation
# ============================================================================


@router.post("/grids/{grid_id}/simulate")
def simulate(grid_id: str, body: SimulateRequest, registry: EngineRegistry = Depends(get_registry)):
    """
    Preview a mutation without committing it.

    Adds capacity_diff per touched day: simulated minus current curve, rows
    with no change dropped.
    """
    engine = _engine(registry, grid_id)
    if body.operation == "apply":
        options = _apply_options(body.apply)
    elif body.operation == "move":
        options = _move_options(body.block_id, body.move)
    elif body.operation == "resize":
        options = _resize_options(body.block_id, body.resize)
    elif body.operation == "remove":
        options = RemoveBlockOptions(block_id=body.block_id)
    else:
        options = _template_options(body.template_id, body.template)

    simulation = engine.simulate(options)
    response = simulation.to_dict()
    response["capacity_diff"] = {
        day.isoformat(): [
            d.to_dict()
            for d in compare_capacity_curves(engine.get_capacity_curve(day), curve, only_changes=True)
        ]
        for day, curve in simulation.capacity.items()
    }
    return response


# ============================================================================
# Rails + capacity
# ============================================================================


@router.get("/grids/{grid_id}/days/{day}/courts/{facility_id}/{court_id}/timeline")
def get_timeline(
    grid_id: str, day: date, facility_id: str, court_id: str, registry: EngineRegistry = Depends(get_registry)
):
    engine = _engine(registry, grid_id)
    try:
        timeline = engine.get_timeline(_court_ref(facility_id, court_id), day)
    except UnknownCourtError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "court": timeline.court.to_dict(),
        "day": timeline.day.isoformat(),
        "day_range": timeline.day_range.label(),
        "blocks": [b.to_dict() for b in timeline.blocks],
    }


@router.get("/grids/{grid_id}/days/{day}/courts/{facility_id}/{court_id}/rail")
def get_court_rail(
    grid_id: str, day: date, facility_id: str, court_id: str, registry: EngineRegistry = Depends(get_registry)
):
    engine = _engine(registry, grid_id)
    try:
        return engine.get_court_rail(_court_ref(facility_id, court_id), day).to_dict()
    except UnknownCourtError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/grids/{grid_id}/days/{day}/rails")
def get_day_rails(
    grid_id: str, day: date, facility_id: Optional[str] = None, registry: EngineRegistry = Depends(get_registry)
):
    engine = _engine(registry, grid_id)
    return [r.to_dict() for r in engine.get_day_rails(day, facility_id=facility_id)]


@router.get("/grids/{grid_id}/days/{day}/capacity")
def get_capacity_curve(
    grid_id: str,
    day: date,
    mode: CurveMode = CurveMode.EXACT,
    interval_minutes: Optional[int] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    statuses: Optional[str] = None,
    registry: EngineRegistry = Depends(get_registry),
):
    """
    Capacity curve for a day.

    statuses is a comma-separated BlockType list; start/end are HH:MM.
    interval_minutes resamples the curve onto a coarser grid.
    """
    engine = _engine(registry, grid_id)
    curve = engine.get_capacity_curve(day, mode=mode)
    try:
        if interval_minutes is not None:
            curve = sample_capacity_curve(curve, interval_minutes)
        if start is not None or end is not None or statuses:
            status_list = [s.strip() for s in statuses.split(",") if s.strip()] if statuses else None
            curve = filter_capacity_curve(curve, statuses=status_list, start=start, end=end)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return curve.to_dict()


@router.get("/grids/{grid_id}/days/{day}/capacity/stats")
def get_capacity_stats(grid_id: str, day: date, registry: EngineRegistry = Depends(get_registry)):
    engine = _engine(registry, grid_id)
    return {"day": day.isoformat(), **engine.get_capacity_stats(day).to_dict()}
