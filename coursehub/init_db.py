# coursehub/init_db.py
"""Create every CourseHub table on the configured database."""

import logging

from .database import Base, engine
from . import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info(f"Created {len(Base.metadata.tables)} tables")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
