# coursehub/api/dependencies/auth.py
"""
Authentication and authorization dependencies.

Authentication happens upstream. The gateway asserts the caller's
identity in trusted headers (user, tenant, role) and these dependencies
turn them into a Principal. Every tenant-owned query downstream is
scoped by ``principal.tenant_id``.
"""

from dataclasses import dataclass
import logging

from fastapi import Depends, Request

from ...core.config import settings
from ...core.enums import ADMIN_ROLES, RoleName
from ...core.exceptions import ForbiddenException, UnauthorizedException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user_id: str
    tenant_id: str
    role: RoleName

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_current_principal(request: Request) -> Principal:
    """
    Build the caller identity from the trusted gateway headers.

    Raises HTTP 401 when any header is missing or the role is unknown.
    """
    user_id = (request.headers.get(settings.identity_user_header) or "").strip()
    tenant_id = (request.headers.get(settings.identity_tenant_header) or "").strip()
    role_raw = (request.headers.get(settings.identity_role_header) or "").strip().upper()

    if not user_id or not tenant_id or not role_raw:
        raise UnauthorizedException("Authentication required", code="NOT_AUTHENTICATED").to_http_exception()
    try:
        role = RoleName(role_raw)
    except ValueError:
        logger.warning(f"Rejected unknown role {role_raw!r} for user {user_id}")
        raise UnauthorizedException("Unknown role", code="INVALID_ROLE").to_http_exception() from None

    return Principal(user_id=user_id, tenant_id=tenant_id, role=role)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Allow only ADMIN and SUPERADMIN callers."""
    if not principal.is_admin:
        raise ForbiddenException(
            "Administrator role required", code="ADMIN_REQUIRED"
        ).to_http_exception()
    return principal


def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Allow administrators and teachers."""
    if not principal.is_admin and principal.role is not RoleName.TEACHER:
        raise ForbiddenException("Staff role required", code="STAFF_REQUIRED").to_http_exception()
    return principal
