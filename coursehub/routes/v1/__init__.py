# coursehub/routes/v1/__init__.py
"""Versioned API routers mounted under /api/v1."""

from . import automation, lessons

__all__ = ["automation", "lessons"]
