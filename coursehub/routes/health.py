# coursehub/routes/health.py
"""
Health check endpoint.

A failing database degrades the status instead of failing the request.
``automation_worker`` is null when the worker pool runs as its own process.
"""

from datetime import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import utcnow
from ..database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    environment: str
    database: bool
    automation_worker: Optional[bool] = None
    timestamp: datetime


@router.get("/health", response_model=HealthCheckResponse)
def health_check(request: Request, db: Session = Depends(get_db)) -> HealthCheckResponse:
    database_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database_ok = False

    worker = getattr(request.app.state, "automation_worker", None)
    worker_ok = worker.running if worker is not None else None

    return HealthCheckResponse(
        status="healthy" if database_ok and worker_ok is not False else "degraded",
        environment=settings.environment,
        database=database_ok,
        automation_worker=worker_ok,
        timestamp=utcnow(),
    )
