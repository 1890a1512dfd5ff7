# coursehub/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from ...database import get_db
from .auth import Principal, get_current_principal, require_admin, require_staff
from .services import get_automation_service, get_conflict_checker, get_lesson_service

__all__ = [
    # Auth
    "Principal",
    "get_current_principal",
    "require_admin",
    "require_staff",
    # Database
    "get_db",
    # Services
    "get_automation_service",
    "get_conflict_checker",
    "get_lesson_service",
]
