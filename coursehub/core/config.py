# coursehub/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")

    database_url: str = Field(
        default="sqlite:///./coursehub.db",
        description="SQLAlchemy URL of the scheduling store",
    )
    database_echo: bool = False
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Broker URL used by Celery beat and workers",
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build deep links in notifications",
    )

    # Notifications
    email_provider: Literal["console", "resend"] = Field(default="console")
    resend_api_key: Optional[SecretStr] = Field(default=None)
    from_email: str = Field(default="CourseHub <noreply@coursehub.local>")

    # Trusted identity headers injected by the upstream gateway
    identity_user_header: str = "X-User-Id"
    identity_tenant_header: str = "X-Tenant-Id"
    identity_role_header: str = "X-User-Role"

    # Automation job engine
    jobs_concurrency: int = Field(
        default=5,
        description="Maximum number of automation jobs executed in parallel per process",
        ge=1,
    )
    jobs_max_attempts: int = Field(
        default=3,
        description="Maximum attempts before an automation job is marked FAILED",
        ge=1,
    )
    jobs_backoff_base_ms: int = Field(
        default=2000,
        description="Base backoff in milliseconds, doubled on every failed attempt",
        ge=1,
    )
    jobs_backoff_cap_ms: int = Field(
        default=600_000,
        description="Maximum backoff in milliseconds between retries",
        ge=1,
    )
    jobs_poll_interval: float = Field(
        default=2.0,
        description="Worker pool poll interval in seconds",
        gt=0,
    )
    jobs_claim_timeout_seconds: int = Field(
        default=900,
        description="ACTIVE jobs untouched for longer than this are returned to PENDING",
        ge=1,
    )
    jobs_completed_retention_hours: int = Field(
        default=168,
        description="History window for COMPLETED jobs before they are purged",
        ge=1,
    )
    jobs_failed_retention_hours: int = Field(
        default=720,
        description="History window for FAILED jobs before they are purged",
        ge=1,
    )
    automation_worker_in_process: bool = Field(
        default=False,
        description="Run the automation worker pool inside the API process",
    )

    # Daily automation
    attendance_before_minutes: int = Field(default=30, ge=0)
    attendance_after_minutes: int = Field(default=15, ge=0)
    payment_due_soon_days: int = Field(default=3, ge=0)
    payment_overdue_days: int = Field(default=7, ge=1)
    payment_final_notice_days: int = Field(default=30, ge=1)
    capacity_warning_threshold: float = Field(default=0.9, gt=0, le=1)
    recurrence_lead_days: int = Field(
        default=7,
        description="How far ahead of an occurrence its lesson is materialized",
        ge=0,
    )
    daily_automation_hour: int = Field(default=0, ge=0, le=23)
    daily_automation_minute: int = Field(default=5, ge=0, le=59)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("payment_final_notice_days")
    @classmethod
    def _final_notice_after_overdue(cls, value: int, info) -> int:
        overdue = info.data.get("payment_overdue_days")
        if overdue is not None and value <= overdue:
            raise ValueError("payment_final_notice_days must be greater than payment_overdue_days")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
