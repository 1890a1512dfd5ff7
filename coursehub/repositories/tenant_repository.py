# coursehub/repositories/tenant_repository.py
"""
Tenant listing and administrator lookup.

Listing tenants is a privileged operation used only by system triggers
(the daily automation scan) to iterate tenants one by one; every further
read goes through the tenant-scoped repositories.
"""

import logging
from typing import List

from sqlalchemy.orm import Session, joinedload

from ..core.enums import ADMIN_ROLES
from ..models.tenant import Tenant, TenantMembership, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TenantRepository(BaseRepository[Tenant]):
    def __init__(self, db: Session):
        super().__init__(db, Tenant)

    def list_tenant_ids(self) -> List[str]:
        query = self.db.query(Tenant.id).order_by(Tenant.id)
        return [row[0] for row in self._execute_query(query)]

    def get_admin_users(self, tenant_id: str) -> List[User]:
        """Users holding ADMIN or SUPERADMIN in ``tenant_id``."""
        query = (
            self.db.query(TenantMembership)
            .options(joinedload(TenantMembership.user))
            .filter(
                TenantMembership.tenant_id == tenant_id,
                TenantMembership.role.in_([role.value for role in ADMIN_ROLES]),
            )
            .order_by(TenantMembership.created_at, TenantMembership.id)
        )
        return [membership.user for membership in self._execute_query(query)]
