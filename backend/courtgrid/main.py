import logging
import os
import subprocess
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtgrid.config import LOG_LEVEL, cors_origins, default_engine_config
from courtgrid.logging_config import setup_logging
from courtgrid.routes import grids
from courtgrid.services.engine_registry import EngineRegistry

logger = logging.getLogger(__name__)

app = FastAPI(title="Court Grid API")


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        logger.debug("git not available, falling back to build timestamp")

    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.registry = EngineRegistry(default_engine_config())

app.include_router(grids.router, prefix="/api", tags=["grids"])


@app.on_event("startup")
def on_startup():
    setup_logging(LOG_LEVEL)
    route_count = sum(1 for r in app.routes if getattr(r, "path", None))
    logger.info("Court Grid API started: %d routes, build %s", route_count, BUILD_HASH)


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {
        "app_name": "Court Grid API",
        "build_hash": BUILD_HASH,
        "status": "healthy",
        "grids": len(app.state.registry),
    }
