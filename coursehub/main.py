# coursehub/main.py
"""
CourseHub API application.

Mounts the versioned routers under /api/v1 plus the unversioned health
and metrics endpoints. When ``automation_worker_in_process`` is set the
automation worker pool runs inside this process for the lifetime of the
application; otherwise it runs in ``run_automation_worker.py``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .database import SessionLocal
from .routes import health, prometheus
from .routes.v1 import automation as automation_v1, lessons as lessons_v1
from .services.automation_worker import AutomationWorkerPool
from .services.template_service import BRAND_NAME

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start and stop the in-process worker pool around the application."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    worker: Optional[AutomationWorkerPool] = None
    if settings.automation_worker_in_process:
        worker = AutomationWorkerPool(SessionLocal)
        worker.start()
    app.state.automation_worker = worker

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    if worker is not None:
        worker.stop(timeout=settings.jobs_poll_interval * 2)


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Lesson scheduling conflicts and school automation jobs",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(lessons_v1.router, prefix="/lessons")
api_v1.include_router(automation_v1.router, prefix="/automation")

app.include_router(api_v1)

# Unversioned: probes and scrapers depend on fixed paths
app.include_router(health.router)
app.include_router(prometheus.router)
