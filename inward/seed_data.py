"""Seed data script to populate a demo workspace for local development."""
import asyncio
from typing import Callable

from sqlalchemy import select

from inward.core.config import settings
from inward.core.database import async_session_maker, engine, Base
from inward.core.enums import SubscriptionStatus, UserRole
from inward.models.tenant import Tenant
from inward.models.user import User, TenantMembership
from inward.models.location import Location, Department
from inward.models.notification import WhatsAppSettings
import inward.models  # noqa: F401


DEMO_SLUG = "demo-workshop"


async def seed_data(session_factory: Callable = async_session_maker) -> bool:
    """Seed the reserved platform workspace and one demo tenant.

    Returns False when the demo tenant already exists.
    """
    async with session_factory() as session:
        # Check if data already exists
        result = await session.execute(select(Tenant).where(Tenant.workspace_slug == DEMO_SLUG))
        if result.scalar_one_or_none():
            print("Data already seeded. Skipping...")
            return False

        platform = await session.get(Tenant, settings.SUPER_ADMIN_TENANT_ID)
        if platform is None:
            platform = Tenant(
                id=settings.SUPER_ADMIN_TENANT_ID,
                name="Platform Administration",
                workspace_slug="platform",
                subscription_status=SubscriptionStatus.ACTIVE,
            )
            session.add(platform)

        root = User(email="root@demo.com", full_name="Platform Admin", is_super_admin=True)
        session.add(root)
        await session.flush()
        session.add(TenantMembership(
            tenant_id=platform.id, user_id=root.id, role=UserRole.ADMIN, is_primary_admin=True
        ))

        tenant = Tenant(
            name="Demo Car Accessories",
            workspace_slug=DEMO_SLUG,
            subscription_status=SubscriptionStatus.TRIAL,
        )
        session.add(tenant)
        await session.flush()
        print(f"Created tenant: {tenant.name} (ID: {tenant.id})")

        for name in ("Main Workshop", "City Branch"):
            session.add(Location(tenant_id=tenant.id, name=name))
        for name in ("Audio", "Lighting", "Protection", "Interior"):
            session.add(Department(tenant_id=tenant.id, name=name))

        users_data = [
            {"email": "admin@demo.com", "full_name": "Admin User", "role": UserRole.ADMIN, "phone": "9000000001"},
            {"email": "manager@demo.com", "full_name": "Floor Manager", "role": UserRole.MANAGER, "phone": "9000000002"},
            {"email": "coordinator@demo.com", "full_name": "Service Coordinator",
             "role": UserRole.COORDINATOR, "phone": "9000000003"},
            {"email": "installer@demo.com", "full_name": "Fitting Technician",
             "role": UserRole.INSTALLER, "phone": "9000000004"},
            {"email": "accountant@demo.com", "full_name": "Accounts Desk",
             "role": UserRole.ACCOUNTANT, "phone": "9000000005"},
        ]

        for user_data in users_data:
            role = user_data.pop("role")
            user = User(**user_data)
            session.add(user)
            await session.flush()
            session.add(TenantMembership(
                tenant_id=tenant.id,
                user_id=user.id,
                role=role,
                is_primary_admin=role == UserRole.ADMIN,
            ))
            print(f"Created user: {user.email} (Role: {role.value}, ID: {user.id})")

        # Mock provider logs messages instead of sending them
        session.add(WhatsAppSettings(tenant_id=tenant.id, enabled=True, provider="mock"))

        await session.commit()
        print("\n✅ Seed data created successfully!")
        print("\n📝 Sign in through the identity provider with any of the emails above,")
        print("   or mint a local token with inward.core.security.create_access_token(user_id).")
        return True


async def main():
    """Main entry point."""
    # Create tables if they don't exist (for local development)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await seed_data()


if __name__ == "__main__":
    asyncio.run(main())
