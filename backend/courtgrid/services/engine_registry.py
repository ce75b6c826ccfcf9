"""
In-process registry of grid engines, one per grid id.

The HTTP layer keeps a single registry on app.state; engines never live in
module globals so several grids (tournaments, venues) stay independent.
"""
import itertools
import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

from courtgrid.errors import GridAlreadyExistsError, GridNotFoundError
from courtgrid.models.block import CourtMeta, CourtRef
from courtgrid.models.config import EngineConfig
from courtgrid.services.conflict_evaluators import default_evaluators
from courtgrid.services.temporal_grid_engine import TemporalGridEngine, create_engine

logger = logging.getLogger(__name__)


class EngineRegistry:
    def __init__(self, default_config: Optional[EngineConfig] = None):
        self.default_config = default_config or EngineConfig()
        self._engines: Dict[str, TemporalGridEngine] = {}
        self._ids = itertools.count(1)

    def _next_grid_id(self) -> str:
        while True:
            grid_id = f"grid-{next(self._ids)}"
            if grid_id not in self._engines:
                return grid_id

    def create(
        self,
        court_catalog: Iterable[Union[CourtRef, CourtMeta]],
        grid_id: Optional[str] = None,
        config: Optional[EngineConfig] = None,
        with_default_evaluators: bool = False,
    ) -> Tuple[str, TemporalGridEngine]:
        """
        Build and register an engine. EngineConfigError propagates untouched.
        """
        if grid_id is not None and grid_id in self._engines:
            raise GridAlreadyExistsError(f"Grid already exists: {grid_id}")
        evaluators = default_evaluators() if with_default_evaluators else None
        engine = create_engine(config or self.default_config, court_catalog, evaluators)
        grid_id = grid_id or self._next_grid_id()
        self._engines[grid_id] = engine
        logger.info("Registered grid %s (%d courts)", grid_id, len(engine.list_courts()))
        return grid_id, engine

    def get(self, grid_id: str) -> TemporalGridEngine:
        engine = self._engines.get(grid_id)
        if engine is None:
            raise GridNotFoundError(grid_id)
        return engine

    def remove(self, grid_id: str) -> bool:
        removed = self._engines.pop(grid_id, None) is not None
        if removed:
            logger.info("Removed grid %s", grid_id)
        return removed

    def items(self) -> List[Tuple[str, TemporalGridEngine]]:
        return sorted(self._engines.items())

    def __len__(self):
        return len(self._engines)

    def __contains__(self, grid_id: str):
        return grid_id in self._engines
