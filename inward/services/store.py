"""Tenant-guarded persistence for vehicle records.

Every read and write goes through ``VehicleRepository`` so the tenant filter
is applied in one place. Cross-tenant hits raise ``TenantIsolationError``,
which the API renders exactly like a missing record.
"""
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inward.core.enums import VehicleStatus
from inward.core.exceptions import AuthorizationError, TenantIsolationError
from inward.core.logging import context_extra, get_logger
from inward.models.vehicle import Vehicle, ProductCompletion
from inward.services.tenant_resolver import TenantContext


logger = get_logger(__name__)


class VehicleRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _check_scope(ctx: TenantContext) -> None:
        # Only a super-admin may operate without a tenant
        if ctx.tenant_id is None and not ctx.is_super_admin:
            raise AuthorizationError("No workspace is assigned to this user", code="tenant_unresolved")

    def scoped(self, ctx: TenantContext, stmt):
        self._check_scope(ctx)
        if not ctx.is_global:
            stmt = stmt.where(Vehicle.tenant_id == ctx.tenant_id)
        return stmt

    async def get(self, ctx: TenantContext, vehicle_id: str) -> Vehicle:
        """Fetch a vehicle visible to ``ctx`` or raise TenantIsolationError."""
        self._check_scope(ctx)
        result = await self.db.execute(
            select(Vehicle)
            .where(Vehicle.id == vehicle_id)
            .execution_options(populate_existing=True)
        )
        vehicle = result.scalar_one_or_none()
        if vehicle is None:
            raise TenantIsolationError()
        if not ctx.is_global and vehicle.tenant_id != ctx.tenant_id:
            logger.warning(
                "Cross-tenant vehicle access blocked",
                extra=context_extra(ctx, vehicle_id=vehicle_id),
            )
            raise TenantIsolationError()
        return vehicle

    async def list_by_status(
        self,
        ctx: TenantContext,
        statuses: Optional[Iterable[VehicleStatus]] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Vehicle], int]:
        """List vehicles in ``statuses`` (all when None), newest first, with total count."""
        filters = []
        if statuses is not None:
            filters.append(Vehicle.status.in_(list(statuses)))
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(or_(
                Vehicle.registration_number.ilike(pattern),
                Vehicle.customer_name.ilike(pattern),
                Vehicle.short_id.ilike(pattern),
            ))

        count_result = await self.db.execute(
            self.scoped(ctx, select(func.count(Vehicle.id)).where(*filters))
        )
        total = count_result.scalar() or 0

        stmt = self.scoped(ctx, select(Vehicle).where(*filters)).order_by(Vehicle.created_at.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all()), total

    async def update_guarded(
        self,
        ctx: TenantContext,
        vehicle_id: str,
        values: Dict[str, Any],
        expected_statuses: Optional[Iterable[VehicleStatus]] = None,
        conditions: Iterable[Any] = (),
    ) -> int:
        """Apply ``values`` only if the row still matches; returns the number of rows changed.

        The stored tenant id is re-checked before writing, and the UPDATE is
        additionally filtered on tenant and ``expected_statuses`` so a
        concurrent status change makes it a no-op (rowcount 0).
        """
        if "tenant_id" in values:
            raise ValueError("tenant_id is immutable")
        self._check_scope(ctx)
        owner = await self.db.execute(select(Vehicle.tenant_id).where(Vehicle.id == vehicle_id))
        stored_tenant_id = owner.scalar_one_or_none()
        if stored_tenant_id is None or (not ctx.is_global and stored_tenant_id != ctx.tenant_id):
            logger.warning(
                "Refused update on vehicle outside actor tenant",
                extra=context_extra(ctx, vehicle_id=vehicle_id),
            )
            raise TenantIsolationError()

        stmt = update(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.tenant_id == stored_tenant_id)
        if expected_statuses is not None:
            stmt = stmt.where(Vehicle.status.in_(list(expected_statuses)))
        for condition in conditions:
            stmt = stmt.where(condition)
        result = await self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount

    # Product completion rows

    async def completed_indices(self, vehicle_id: str) -> Set[int]:
        result = await self.db.execute(
            select(ProductCompletion.product_index).where(ProductCompletion.vehicle_id == vehicle_id)
        )
        return set(result.scalars().all())

    async def add_completion(self, vehicle_id: str, product_index: int, user_id: str) -> bool:
        """Insert a completion row; returns False if the index was already complete."""
        existing = await self.db.execute(
            select(ProductCompletion.id).where(
                ProductCompletion.vehicle_id == vehicle_id,
                ProductCompletion.product_index == product_index,
            )
        )
        if existing.scalar_one_or_none():
            return False
        try:
            # Savepoint so a concurrent duplicate insert does not poison the outer transaction
            async with self.db.begin_nested():
                self.db.add(ProductCompletion(
                    vehicle_id=vehicle_id,
                    product_index=product_index,
                    completed_by=user_id,
                ))
                await self.db.flush()
        except IntegrityError:
            return False
        return True

    async def remove_completion(self, vehicle_id: str, product_index: int) -> bool:
        result = await self.db.execute(
            delete(ProductCompletion).where(
                ProductCompletion.vehicle_id == vehicle_id,
                ProductCompletion.product_index == product_index,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def prune_completions(self, vehicle_id: str, product_count: int) -> int:
        """Drop completions whose index no longer exists in the product list."""
        result = await self.db.execute(
            delete(ProductCompletion).where(
                ProductCompletion.vehicle_id == vehicle_id,
                ProductCompletion.product_index >= product_count,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def completed_indices_for(self, vehicle_ids: Iterable[str]) -> Dict[str, Set[int]]:
        ids = list(vehicle_ids)
        found: Dict[str, Set[int]] = {vehicle_id: set() for vehicle_id in ids}
        if not ids:
            return found
        result = await self.db.execute(
            select(ProductCompletion.vehicle_id, ProductCompletion.product_index)
            .where(ProductCompletion.vehicle_id.in_(ids))
        )
        for vehicle_id, product_index in result.all():
            found[vehicle_id].add(product_index)
        return found
