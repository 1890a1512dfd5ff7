"""CourseHub scheduling-conflict detection and automation job engine."""

__version__ = "0.1.0"
