"""Tenant resolution tests."""
import pytest

from inward.core.enums import UserRole
from inward.core.exceptions import AuthorizationError
from inward.models.user import User, TenantMembership
from inward.services.tenant_resolver import resolve_tenant_context


@pytest.mark.asyncio
async def test_single_membership_resolves_without_selection(db_session, tenant, members):
    ctx = await resolve_tenant_context(db_session, members[UserRole.INSTALLER])

    assert ctx.tenant_id == tenant.id
    assert ctx.role == UserRole.INSTALLER
    assert not ctx.is_global


@pytest.mark.asyncio
async def test_stale_hint_falls_back_to_membership(db_session, tenant, members, other_tenant):
    """A token claim naming a tenant the user left is ignored."""
    ctx = await resolve_tenant_context(
        db_session, members[UserRole.MANAGER], hinted_tenant_id=other_tenant.id
    )
    assert ctx.tenant_id == tenant.id


@pytest.mark.asyncio
async def test_explicit_selection_must_be_a_membership(db_session, members, other_tenant):
    with pytest.raises(AuthorizationError) as exc:
        await resolve_tenant_context(
            db_session, members[UserRole.MANAGER], requested_tenant_id=other_tenant.id
        )
    assert exc.value.code == "tenant_forbidden"


@pytest.mark.asyncio
async def test_multiple_memberships_need_a_selection(db_session, tenant, other_tenant, make_member):
    user = await make_member(tenant, UserRole.MANAGER, "floating@inward.test")
    # Same user, second tenant
    db_session.add(TenantMembership(tenant_id=other_tenant.id, user_id=user.id, role=UserRole.ACCOUNTANT))
    await db_session.commit()

    with pytest.raises(AuthorizationError) as exc:
        await resolve_tenant_context(db_session, user)
    assert exc.value.code == "tenant_selection_required"

    ctx = await resolve_tenant_context(db_session, user, requested_tenant_id=other_tenant.id)
    assert ctx.tenant_id == other_tenant.id
    assert ctx.role == UserRole.ACCOUNTANT

    hinted = await resolve_tenant_context(db_session, user, hinted_tenant_id=tenant.id)
    assert hinted.role == UserRole.MANAGER


@pytest.mark.asyncio
async def test_user_without_membership_fails_closed(db_session):
    user = User(email="nobody@inward.test")
    db_session.add(user)
    await db_session.commit()

    with pytest.raises(AuthorizationError) as exc:
        await resolve_tenant_context(db_session, user)
    assert exc.value.code == "tenant_unresolved"


@pytest.mark.asyncio
async def test_inactive_tenant_is_blocked(db_session, tenant, members):
    tenant.is_active = False
    await db_session.commit()

    with pytest.raises(AuthorizationError) as exc:
        await resolve_tenant_context(db_session, members[UserRole.ADMIN])
    assert exc.value.code == "tenant_inactive"


@pytest.mark.asyncio
async def test_super_admin_is_global_until_a_tenant_is_selected(db_session, super_admin, tenant):
    ctx = await resolve_tenant_context(db_session, super_admin)
    assert ctx.is_global
    assert ctx.role == UserRole.ADMIN

    scoped = await resolve_tenant_context(db_session, super_admin, requested_tenant_id=tenant.id)
    assert scoped.tenant_id == tenant.id
    assert not scoped.is_global


@pytest.mark.asyncio
async def test_super_admin_selecting_unknown_tenant_is_rejected(db_session, super_admin):
    with pytest.raises(AuthorizationError) as exc:
        await resolve_tenant_context(db_session, super_admin, requested_tenant_id="missing")
    assert exc.value.code == "tenant_unknown"
