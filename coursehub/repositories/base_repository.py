# coursehub/repositories/base_repository.py
"""
Base repositories for CourseHub.

Repositories flush but never commit; the owning service decides when the
unit of work ends. Every SQLAlchemy failure leaves this layer as a
RepositoryException.

Tenant-owned tables go through TenantScopedRepository, whose finders take
the tenant id first and always apply it. There is no unscoped lookup for
tenant-owned rows.
"""

import logging
from typing import Any, Callable, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _run(self, what: str, operation: Callable[[], R]) -> R:
        """Run a store call, translating driver errors into RepositoryException."""
        try:
            return operation()
        except SQLAlchemyError as e:
            self.logger.error(f"{self.model.__name__}: {what} failed: {e}")
            raise RepositoryException(f"{what} failed for {self.model.__name__}: {e}") from e

    def create(self, **kwargs: Any) -> T:
        """Add and flush a new row so its id is available. Does not commit."""
        entity = self.model(**kwargs)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, e)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {e}") from e
        return entity

    def _execute_query(self, query: Query) -> List[T]:
        return self._run("query", query.all)

    def _execute_first(self, query: Query) -> Optional[T]:
        return self._run("query", query.first)

    def _execute_scalar(self, query: Query) -> Any:
        return self._run("scalar query", query.scalar)


class TenantScopedRepository(BaseRepository[T]):
    """Repository for models carrying a ``tenant_id`` column."""

    def _scoped(self, tenant_id: str) -> Query:
        if not tenant_id:
            raise RepositoryException(f"Tenant id is required to query {self.model.__name__}")
        return self.db.query(self.model).filter(self.model.tenant_id == tenant_id)

    def get_by_id(self, tenant_id: str, id: str) -> Optional[T]:
        return self._execute_first(self._scoped(tenant_id).filter(self.model.id == id))

    def create(self, **kwargs: Any) -> T:
        if not kwargs.get("tenant_id"):
            raise RepositoryException(f"Tenant id is required to create {self.model.__name__}")
        return super().create(**kwargs)

    def update(self, tenant_id: str, id: str, **kwargs: Any) -> Optional[T]:
        """
        Set the given fields on one row of the tenant and flush.

        Unknown attributes are ignored and ``tenant_id`` is never changed.
        Returns None when the row does not exist in this tenant.
        """
        kwargs.pop("tenant_id", None)
        entity = self.get_by_id(tenant_id, id)
        if entity is None:
            return None
        for key, value in kwargs.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        self._run("update", self.db.flush)
        return entity
