import os
from typing import List

from dotenv import load_dotenv

from courtgrid.models.config import EngineConfig

load_dotenv()

GRID_DAY_START = os.getenv("GRID_DAY_START", "06:00")
GRID_DAY_END = os.getenv("GRID_DAY_END", "23:00")
GRID_SLOT_MINUTES = int(os.getenv("GRID_SLOT_MINUTES", "15"))
GRID_ALLOW_DOWNGRADE = os.getenv("GRID_ALLOW_DOWNGRADE", "true").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def default_engine_config() -> EngineConfig:
    """EngineConfig built from GRID_* env vars; new grids use it unless they pass their own."""
    return EngineConfig(
        day_start_time=GRID_DAY_START,
        day_end_time=GRID_DAY_END,
        slot_minutes=GRID_SLOT_MINUTES,
        allow_downgrade=GRID_ALLOW_DOWNGRADE,
    )


def cors_origins() -> List[str]:
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    extra = os.getenv("CORS_ORIGINS", "")
    if extra:
        origins.extend(o.strip() for o in extra.split(",") if o.strip())
    return origins
