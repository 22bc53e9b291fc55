"""Dashboard and accounts reporting over a tenant's vehicles."""
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from inward.core.enums import VehicleStatus
from inward.core.exceptions import PreconditionError
from inward.models.vehicle import Vehicle
from inward.services.access_control import Capability, is_allowed, require, visible_statuses
from inward.services.financials import FinancialSummary, derive_for_vehicle, summarize
from inward.services.lifecycle import COMPLETED_LIKE_STATUSES, parse_status
from inward.services.store import VehicleRepository
from inward.services.tenant_resolver import TenantContext


IN_PROGRESS_STATUSES = frozenset({VehicleStatus.IN_PROGRESS, VehicleStatus.UNDER_INSTALLATION})


def parse_month(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """``YYYY-MM`` -> (year, month)."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except ValueError:
        raise PreconditionError("Month must be formatted as YYYY-MM", code="invalid_month")
    return parsed.year, parsed.month


def _closing_date(vehicle: Vehicle) -> datetime:
    return vehicle.delivered_at or vehicle.completed_at or vehicle.updated_at or vehicle.created_at


async def financial_summary(
    db: AsyncSession,
    ctx: TenantContext,
    statuses: Optional[Iterable] = None,
    month: Optional[str] = None,
) -> FinancialSummary:
    """Aggregate figures for vehicles in ``statuses`` (completed work by default)."""
    require(ctx, Capability.VIEW_FINANCIALS)
    wanted = {parse_status(s) for s in statuses} if statuses else set(COMPLETED_LIKE_STATUSES)
    allowed = visible_statuses(ctx.role)
    if allowed is not None:
        wanted &= allowed
    period = parse_month(month)

    vehicles, _ = await VehicleRepository(db).list_by_status(ctx, statuses=wanted)
    if period is not None:
        vehicles = [
            v for v in vehicles
            if (_closing_date(v).year, _closing_date(v).month) == period
        ]
    return summarize(derive_for_vehicle(v) for v in vehicles)


async def status_counts(db: AsyncSession, ctx: TenantContext) -> Dict[str, int]:
    repo = VehicleRepository(db)
    result = await db.execute(
        repo.scoped(ctx, select(Vehicle.status, func.count(Vehicle.id))).group_by(Vehicle.status)
    )
    counts = {status.value: 0 for status in VehicleStatus}
    for status, count in result.all():
        counts[status.value] = count
    return counts


async def dashboard(db: AsyncSession, ctx: TenantContext, month: Optional[str] = None) -> dict:
    counts = await status_counts(db, ctx)

    repo = VehicleRepository(db)
    start_of_day = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    today_result = await db.execute(
        repo.scoped(ctx, select(func.count(Vehicle.id)).where(Vehicle.created_at >= start_of_day))
    )

    data = {
        "total_vehicles": sum(counts.values()),
        "status_counts": counts,
        "in_progress": sum(counts[s.value] for s in IN_PROGRESS_STATUSES),
        "todays_intakes": today_result.scalar() or 0,
        "awaiting_invoicing": counts[VehicleStatus.INSTALLATION_COMPLETE.value],
        "accountant_queue": None,
        "completed_work": None,
    }
    if is_allowed(ctx.role, Capability.VIEW_FINANCIALS):
        data["accountant_queue"] = await financial_summary(
            db, ctx, statuses=[VehicleStatus.INSTALLATION_COMPLETE]
        )
        data["completed_work"] = await financial_summary(db, ctx, month=month)
    return data
