"""
Exception hierarchy for the grid engine.

Only defects and construction-time configuration problems are raised.
Validation failures, missing blocks and conflicts travel back to the caller
as data inside MutationResult.
"""


class GridEngineError(Exception):
    """Base class for everything the engine raises."""


class EngineConfigError(GridEngineError, ValueError):
    """EngineConfig or court catalog is unusable; no engine can be built."""


class InvalidIntervalError(GridEngineError, ValueError):
    """A zero-length or inverted interval reached a pure helper directly."""


class RailInvariantError(GridEngineError, AssertionError):
    """Rail derivation produced output that breaks the segment invariants."""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("Rail invariant violated: " + "; ".join(self.violations))


class ReentrantMutationError(GridEngineError, RuntimeError):
    """A subscriber tried to mutate the engine while an event was being dispatched."""


class UnknownCourtError(GridEngineError, KeyError):
    """A read asked for a court that is not in the engine's catalog."""

    def __init__(self, court_key: str):
        self.court_key = court_key
        super().__init__(f"Unknown court: {court_key}")

    def __str__(self):
        return self.args[0]


class GridNotFoundError(GridEngineError, KeyError):
    def __init__(self, grid_id: str):
        self.grid_id = grid_id
        super().__init__(f"Grid not found: {grid_id}")

    def __str__(self):
        return self.args[0]


class GridAlreadyExistsError(GridEngineError, ValueError):
    pass
