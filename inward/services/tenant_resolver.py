"""Resolve which tenant an authenticated actor is operating in.

This is the only place that looks at raw auth claims. Everything downstream
receives an explicit ``TenantContext``.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inward.core.enums import UserRole
from inward.core.exceptions import AuthorizationError
from inward.core.logging import get_logger
from inward.models.tenant import Tenant
from inward.models.user import User, TenantMembership


logger = get_logger(__name__)


@dataclass(frozen=True)
class TenantContext:
    """Who is acting, as what role, inside which tenant.

    ``tenant_id`` is None only for a super-admin operating in global mode.
    """
    user_id: str
    role: UserRole
    tenant_id: Optional[str]
    is_super_admin: bool = False
    user_name: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.is_super_admin and self.tenant_id is None


async def resolve_tenant_context(
    db: AsyncSession,
    user: User,
    requested_tenant_id: Optional[str] = None,
    hinted_tenant_id: Optional[str] = None,
) -> TenantContext:
    """Build the tenant context for ``user``.

    ``requested_tenant_id`` is an explicit workspace selection (X-Tenant-ID
    header) and must be backed by a membership row unless the actor is a
    super-admin. ``hinted_tenant_id`` is a client-held claim (JWT) used only
    to pick among several memberships; a stale hint falls back to the
    membership table. Fails closed with AuthorizationError.
    """
    if not user.is_active:
        raise AuthorizationError("User account is inactive", code="user_inactive")

    if user.is_super_admin:
        tenant_id = None
        if requested_tenant_id:
            tenant = await db.get(Tenant, requested_tenant_id)
            if tenant is None:
                raise AuthorizationError("Selected tenant does not exist", code="tenant_unknown")
            tenant_id = tenant.id
        return TenantContext(
            user_id=user.id,
            role=UserRole.ADMIN,
            tenant_id=tenant_id,
            is_super_admin=True,
            user_name=user.full_name,
        )

    result = await db.execute(
        select(TenantMembership, Tenant)
        .join(Tenant, Tenant.id == TenantMembership.tenant_id)
        .where(TenantMembership.user_id == user.id)
    )
    memberships = result.all()

    if not memberships:
        logger.warning("Actor has no tenant membership", extra={"user_id": user.id})
        raise AuthorizationError("No workspace is assigned to this user", code="tenant_unresolved")

    chosen = None
    if requested_tenant_id:
        chosen = next((row for row in memberships if row.Tenant.id == requested_tenant_id), None)
        if chosen is None:
            logger.warning(
                f"Requested tenant {requested_tenant_id} not in memberships",
                extra={"user_id": user.id},
            )
            raise AuthorizationError("You are not a member of the selected workspace", code="tenant_forbidden")
    elif hinted_tenant_id:
        # A stale hint is ignored, never trusted
        chosen = next((row for row in memberships if row.Tenant.id == hinted_tenant_id), None)

    if chosen is None and len(memberships) == 1:
        chosen = memberships[0]
    if chosen is None:
        raise AuthorizationError(
            "Select a workspace with the X-Tenant-ID header",
            code="tenant_selection_required",
        )

    membership, tenant = chosen.TenantMembership, chosen.Tenant
    if not tenant.is_active:
        logger.info("Blocked actor of inactive tenant", extra={"user_id": user.id, "tenant_id": tenant.id})
        raise AuthorizationError("This workspace has been deactivated", code="tenant_inactive")

    return TenantContext(
        user_id=user.id,
        role=membership.role,
        tenant_id=tenant.id,
        is_super_admin=False,
        user_name=user.full_name,
    )
