"""Authentication API endpoints.

Tokens are issued by the external identity provider; this service only
verifies them, so the only endpoint here describes the caller.
"""
from fastapi import APIRouter
from sqlalchemy import select

from inward.core.dependencies import CurrentUser, TenantCtx, DbSession
from inward.models.tenant import Tenant
from inward.models.user import TenantMembership
from inward.schemas.auth import MeResponse, MembershipResponse, UserResponse
from inward.services.access_control import POLICY, visible_statuses


router = APIRouter()


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    current_user: CurrentUser,
    ctx: TenantCtx,
    db: DbSession,
):
    """Get the current user, the workspace resolved for this request and its permissions."""
    result = await db.execute(
        select(TenantMembership, Tenant)
        .join(Tenant, Tenant.id == TenantMembership.tenant_id)
        .where(TenantMembership.user_id == current_user.id)
        .order_by(Tenant.name)
    )
    memberships = [
        MembershipResponse(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            workspace_slug=tenant.workspace_slug,
            role=membership.role,
            is_primary_admin=membership.is_primary_admin,
        )
        for membership, tenant in result.all()
    ]
    statuses = visible_statuses(ctx.role)
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        tenant_id=ctx.tenant_id,
        role=ctx.role,
        is_super_admin=ctx.is_super_admin,
        capabilities=sorted(c.value for c in POLICY[ctx.role]),
        visible_statuses=None if statuses is None else sorted(s.value for s in statuses),
        memberships=memberships,
    )
