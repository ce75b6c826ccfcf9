from datetime import date

import pytest
from fastapi.testclient import TestClient

from courtgrid.main import app
from courtgrid.models import CourtMeta, CourtRef, EngineConfig
from courtgrid.routes.grids import get_registry
from courtgrid.services.engine_registry import EngineRegistry
from courtgrid.services.temporal_grid_engine import create_engine

# ============================================================================
# Shared engine setup: one facility, day 08:00-20:00, 15-minute slots
# ============================================================================


@pytest.fixture(name="day")
def day_fixture() -> date:
    return date(2026, 6, 13)


@pytest.fixture(name="court_a")
def court_a_fixture() -> CourtRef:
    return CourtRef(facility_id="club", court_id="A")


@pytest.fixture(name="court_b")
def court_b_fixture() -> CourtRef:
    return CourtRef(facility_id="club", court_id="B")


@pytest.fixture(name="config")
def config_fixture() -> EngineConfig:
    return EngineConfig(day_start_time="08:00", day_end_time="20:00", slot_minutes=15)


@pytest.fixture(name="engine")
def engine_fixture(config, court_a):
    """Single-court engine"""
    return create_engine(config, [court_a])


@pytest.fixture(name="two_court_engine")
def two_court_engine_fixture(config, court_a, court_b):
    return create_engine(config, [CourtMeta(ref=court_a, name="Court A"), CourtMeta(ref=court_b, name="Court B")])


@pytest.fixture(name="registry")
def registry_fixture() -> EngineRegistry:
    return EngineRegistry(EngineConfig(day_start_time="08:00", day_end_time="20:00", slot_minutes=15))


@pytest.fixture(name="client")
def client_fixture(registry: EngineRegistry):
    """Provide a test client backed by a fresh engine registry

    Override MUST be set BEFORE TestClient() so no request ever reaches the
    app-level registry.
    """
    app.dependency_overrides[get_registry] = lambda: registry

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
