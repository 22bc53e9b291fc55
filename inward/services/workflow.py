"""Vehicle workflow commands.

Each public method is one unit of work: authorise, load through the
tenant-guarded repository, validate, write, commit. Status writes are
compare-and-set on the stored status so two racing requests can never both
apply (or both announce) the same transition. Methods return the committed
vehicle plus the notification events to dispatch once the caller is done.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inward.core.enums import NotificationEvent, VehicleStatus
from inward.core.exceptions import (
    AuthorizationError, InvalidTransitionError, PreconditionError
)
from inward.core.logging import context_extra, get_logger
from inward.models.location import Location
from inward.models.vehicle import Vehicle
from inward.services.access_control import Capability, require, visible_statuses, can_view_status
from inward.services.financials import (
    DerivedAmounts, ZERO, to_money, parse_products, compute_totals,
    validate_discount, apply_discount, derive_for_vehicle
)
from inward.services.lifecycle import (
    ACCOUNTING_STATUSES, TERMINAL_STATUSES, TOGGLEABLE_STATUSES,
    parse_status, validate_transition, is_terminal
)
from inward.services.notifications import VehicleSnapshot, WorkflowEvent
from inward.services.store import VehicleRepository
from inward.services.tenant_resolver import TenantContext


logger = get_logger(__name__)

# Fields a creator may edit while the vehicle is still in the install stages
EDITABLE_FIELDS = frozenset({
    "customer_name", "customer_phone", "customer_email", "customer_address",
    "registration_number", "make", "model", "year", "color", "vehicle_type",
    "location_id", "manager_id", "products", "remarks",
})

# Stored NOT NULL; may be changed but never cleared
REQUIRED_FIELDS = ("customer_name", "registration_number")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkflowResult:
    vehicle: Vehicle
    events: List[WorkflowEvent] = field(default_factory=list)
    changed: bool = True
    completed_indices: Optional[List[int]] = None
    amounts: Optional[DerivedAmounts] = None


def check_required(values: Dict[str, Any], fields: Iterable[str]) -> None:
    """Raise when any of ``fields`` is missing or blank in ``values``."""
    blank = sorted(name for name in fields if not str(values.get(name) or "").strip())
    if blank:
        raise PreconditionError(f"Fields cannot be empty: {', '.join(blank)}", code="invalid_fields")


def clean_products(raw: Optional[Iterable[Dict[str, Any]]]) -> List[dict]:
    """Validate incoming line items strictly and return their stored form."""
    cleaned = []
    for position, item in enumerate(raw or []):
        name = str(item.get("product") or "").strip()
        if not name:
            raise PreconditionError(f"Product {position + 1} has no name", code="invalid_products")
        try:
            price = to_money(item.get("price"))
        except ValueError:
            raise PreconditionError(f"Product {position + 1} has an invalid price", code="invalid_products")
        if price < ZERO:
            raise PreconditionError(f"Product {position + 1} has a negative price", code="invalid_products")
        cleaned.append({
            "product": name,
            "brand": str(item.get("brand") or "").strip(),
            "department": str(item.get("department") or "").strip(),
            "price": str(price),
        })
    return cleaned


class VehicleWorkflow:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.vehicles = VehicleRepository(db)

    def _event(self, ctx: TenantContext, event_type: NotificationEvent, vehicle: Vehicle) -> WorkflowEvent:
        return WorkflowEvent(
            event_type=event_type,
            snapshot=VehicleSnapshot.from_vehicle(vehicle),
            triggered_by=ctx.user_id,
        )

    async def _check_location(self, ctx: TenantContext, tenant_id: str, location_id: Optional[str]) -> None:
        if not location_id:
            return
        result = await self.db.execute(
            select(Location.id).where(Location.id == location_id, Location.tenant_id == tenant_id)
        )
        if result.scalar_one_or_none() is None:
            raise PreconditionError("Unknown location for this workspace", code="invalid_location")

    async def _compare_and_set(
        self,
        ctx: TenantContext,
        vehicle_id: str,
        expected: Iterable[VehicleStatus],
        target: VehicleStatus,
        values: Optional[Dict[str, Any]] = None,
        conditions: Iterable[Any] = (),
    ) -> Vehicle:
        """Move to ``target`` only if the stored status is still in ``expected``; commits."""
        expected = list(expected)
        changed = await self.vehicles.update_guarded(
            ctx,
            vehicle_id,
            {"status": target, **(values or {})},
            expected_statuses=expected,
            conditions=conditions,
        )
        if not changed:
            await self.db.rollback()
            current = (await self.vehicles.get(ctx, vehicle_id)).status
            logger.info(
                f"Lost status race: wanted {target.value}, found {current.value}",
                extra=context_extra(ctx, vehicle_id=vehicle_id),
            )
            raise InvalidTransitionError(
                f"Vehicle changed to {current.value} while this request was processed; reload and retry",
                current=current.value,
                target=target.value,
                code="status_conflict",
            )
        await self.db.commit()
        logger.info(
            f"Vehicle moved to {target.value}",
            extra=context_extra(ctx, vehicle_id=vehicle_id),
        )
        return await self.vehicles.get(ctx, vehicle_id)

    # Queries

    async def get_vehicle(self, ctx: TenantContext, vehicle_id: str) -> Vehicle:
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        if not can_view_status(ctx.role, vehicle.status):
            raise AuthorizationError(
                f"Vehicles in status {vehicle.status.value} are not available to your role",
                code="status_not_visible",
            )
        return vehicle

    async def list_vehicles(
        self,
        ctx: TenantContext,
        statuses: Optional[Iterable[Any]] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Vehicles in the requested statuses, narrowed to what the role may see."""
        requested = None
        if statuses:
            requested = {parse_status(s) for s in statuses}
            # Legacy alias is always listed together with delivered
            if VehicleStatus.DELIVERED in requested:
                requested.add(VehicleStatus.COMPLETE_AND_DELIVERED)
        allowed = visible_statuses(ctx.role)
        if allowed is not None:
            requested = set(allowed) if requested is None else requested & allowed
        return await self.vehicles.list_by_status(
            ctx,
            statuses=requested,
            search=search,
            offset=(page - 1) * page_size,
            limit=page_size,
        )

    async def completed_indices(self, vehicle_id: str) -> List[int]:
        return sorted(await self.vehicles.completed_indices(vehicle_id))

    async def financials(self, ctx: TenantContext, vehicle_id: str) -> DerivedAmounts:
        require(ctx, Capability.VIEW_FINANCIALS)
        vehicle = await self.get_vehicle(ctx, vehicle_id)
        return derive_for_vehicle(vehicle)

    # Commands

    async def create_vehicle(self, ctx: TenantContext, data: Dict[str, Any]) -> WorkflowResult:
        require(ctx, Capability.CREATE_VEHICLE)
        if ctx.tenant_id is None:
            raise PreconditionError(
                "Select a workspace with the X-Tenant-ID header before creating vehicles",
                code="tenant_required",
            )
        values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        check_required(values, REQUIRED_FIELDS)
        values["products"] = clean_products(values.get("products"))
        await self._check_location(ctx, ctx.tenant_id, values.get("location_id"))

        vehicle_id = str(uuid.uuid4())
        vehicle = Vehicle(
            id=vehicle_id,
            short_id=vehicle_id[:8],
            tenant_id=ctx.tenant_id,
            status=VehicleStatus.PENDING,
            created_by=ctx.user_id,
            **values,
        )
        self.db.add(vehicle)
        await self.db.commit()
        await self.db.refresh(vehicle)

        logger.info(
            f"Vehicle {vehicle.short_id} created with {len(values['products'])} products",
            extra=context_extra(ctx, vehicle_id=vehicle.id),
        )
        return WorkflowResult(
            vehicle=vehicle,
            events=[self._event(ctx, NotificationEvent.VEHICLE_INWARD_CREATED, vehicle)],
            completed_indices=[],
        )

    async def update_vehicle_details(
        self, ctx: TenantContext, vehicle_id: str, changes: Dict[str, Any]
    ) -> WorkflowResult:
        require(ctx, Capability.CREATE_VEHICLE)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        if vehicle.status not in TOGGLEABLE_STATUSES:
            raise InvalidTransitionError(
                "Vehicle details can only be edited before installation is complete",
                current=vehicle.status.value,
                code="details_locked",
            )

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise PreconditionError(f"Fields cannot be edited: {', '.join(sorted(unknown))}", code="invalid_fields")
        values = dict(changes)
        check_required(values, [name for name in REQUIRED_FIELDS if name in values])
        if "products" in values:
            values["products"] = clean_products(values["products"])
        if "location_id" in values:
            await self._check_location(ctx, vehicle.tenant_id, values["location_id"])
        if not values:
            return WorkflowResult(vehicle=vehicle, changed=False)

        updated = await self.vehicles.update_guarded(
            ctx, vehicle_id, values, expected_statuses=TOGGLEABLE_STATUSES
        )
        if not updated:
            await self.db.rollback()
            raise InvalidTransitionError(
                "Vehicle left the install stages while this request was processed",
                code="status_conflict",
            )

        events: List[WorkflowEvent] = []
        if "products" in values:
            await self.vehicles.prune_completions(vehicle_id, len(values["products"]))
            events = await self._complete_installation_if_ready(ctx, vehicle_id, len(values["products"]))
        await self.db.commit()

        vehicle = await self.vehicles.get(ctx, vehicle_id)
        return WorkflowResult(
            vehicle=vehicle,
            events=[self._event(ctx, e, vehicle) for e in events],
            completed_indices=await self.completed_indices(vehicle_id),
        )

    async def advance_status(self, ctx: TenantContext, vehicle_id: str, target: Any) -> WorkflowResult:
        """Move one step forward. Accounting and delivery steps follow their own rules."""
        target = parse_status(target)
        if target == VehicleStatus.COMPLETED:
            return await self.mark_accountant_complete(ctx, vehicle_id)
        if target in TERMINAL_STATUSES:
            return await self.mark_delivered(ctx, vehicle_id)

        require(ctx, Capability.ADVANCE_INSTALL_STATUS)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        current = vehicle.status
        if current == target == VehicleStatus.INSTALLATION_COMPLETE:
            return WorkflowResult(vehicle=vehicle, changed=False)
        validate_transition(current, target)

        values = {}
        if target == VehicleStatus.INSTALLATION_COMPLETE:
            values["installation_completed_at"] = _utcnow()
        vehicle = await self._compare_and_set(ctx, vehicle_id, [current], target, values)

        if target == VehicleStatus.INSTALLATION_COMPLETE:
            event_type = NotificationEvent.INSTALLATION_COMPLETE
        else:
            event_type = NotificationEvent.VEHICLE_STATUS_UPDATED
        return WorkflowResult(vehicle=vehicle, events=[self._event(ctx, event_type, vehicle)])

    async def _complete_installation_if_ready(
        self, ctx: TenantContext, vehicle_id: str, product_count: int
    ) -> List[NotificationEvent]:
        """Auto-advance guard: every product completed and at least one product.

        Runs inside the caller's transaction. Only the caller whose
        compare-and-set succeeds gets the event back.
        """
        if product_count == 0:
            return []
        done = await self.vehicles.completed_indices(vehicle_id)
        if len(done) != product_count:
            return []
        moved = await self.vehicles.update_guarded(
            ctx,
            vehicle_id,
            {"status": VehicleStatus.INSTALLATION_COMPLETE, "installation_completed_at": _utcnow()},
            expected_statuses=TOGGLEABLE_STATUSES,
        )
        if not moved:
            return []
        logger.info(
            "All products installed; vehicle moved to installation_complete",
            extra=context_extra(ctx, vehicle_id=vehicle_id),
        )
        return [NotificationEvent.INSTALLATION_COMPLETE]

    async def set_product_completion(
        self, ctx: TenantContext, vehicle_id: str, product_index: int, completed: bool = True
    ) -> WorkflowResult:
        require(ctx, Capability.TOGGLE_PRODUCT_COMPLETION)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        if vehicle.status not in TOGGLEABLE_STATUSES:
            raise InvalidTransitionError(
                f"Product completion is closed once the vehicle is {vehicle.status.value}",
                current=vehicle.status.value,
                code="installation_closed",
            )
        products = parse_products(vehicle.products)
        if not 0 <= product_index < len(products):
            raise PreconditionError(
                f"Product index {product_index} is out of range (0-{len(products) - 1})"
                if products else "This vehicle has no products",
                code="invalid_product_index",
            )

        # Touching the row first serialises completion writers on the same vehicle
        # and fails if the status left the install stages in the meantime.
        touched = await self.vehicles.update_guarded(
            ctx, vehicle_id, {"updated_at": _utcnow()}, expected_statuses=TOGGLEABLE_STATUSES
        )
        if not touched:
            await self.db.rollback()
            raise InvalidTransitionError(
                "Installation was completed while this request was processed",
                code="installation_closed",
            )

        if completed:
            changed = await self.vehicles.add_completion(vehicle_id, product_index, ctx.user_id)
        else:
            changed = await self.vehicles.remove_completion(vehicle_id, product_index)
        if not changed:
            await self.db.rollback()
            vehicle = await self.vehicles.get(ctx, vehicle_id)
            return WorkflowResult(
                vehicle=vehicle,
                changed=False,
                completed_indices=await self.completed_indices(vehicle_id),
            )

        events = await self._complete_installation_if_ready(ctx, vehicle_id, len(products))
        await self.db.commit()

        vehicle = await self.vehicles.get(ctx, vehicle_id)
        logger.info(
            f"Product {product_index} marked {'complete' if completed else 'incomplete'}",
            extra=context_extra(ctx, vehicle_id=vehicle_id),
        )
        return WorkflowResult(
            vehicle=vehicle,
            events=[self._event(ctx, e, vehicle) for e in events],
            completed_indices=await self.completed_indices(vehicle_id),
        )

    async def set_invoice_number(
        self, ctx: TenantContext, vehicle_id: str, invoice_number: Optional[str]
    ) -> WorkflowResult:
        require(ctx, Capability.SET_INVOICE_NUMBER)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        if is_terminal(vehicle.status):
            raise InvalidTransitionError(
                "Invoice number cannot change after delivery",
                current=vehicle.status.value,
                code="terminal_status",
            )
        if vehicle.status not in ACCOUNTING_STATUSES:
            raise PreconditionError(
                "Invoice numbers can be set only between installation completion and delivery",
                code="invoice_stage",
            )
        normalized = (invoice_number or "").strip() or None
        if normalized == vehicle.invoice_number:
            return WorkflowResult(vehicle=vehicle, changed=False)

        updated = await self.vehicles.update_guarded(
            ctx, vehicle_id, {"invoice_number": normalized}, expected_statuses=ACCOUNTING_STATUSES
        )
        if not updated:
            await self.db.rollback()
            raise InvalidTransitionError("Vehicle left the accounting stage while this request was processed",
                                         code="status_conflict")
        await self.db.commit()

        vehicle = await self.vehicles.get(ctx, vehicle_id)
        events = []
        if normalized:
            events.append(self._event(ctx, NotificationEvent.INVOICE_NUMBER_ADDED, vehicle))
        return WorkflowResult(vehicle=vehicle, events=events)

    async def mark_accountant_complete(self, ctx: TenantContext, vehicle_id: str) -> WorkflowResult:
        require(ctx, Capability.MARK_ACCOUNTANT_COMPLETE)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        validate_transition(vehicle.status, VehicleStatus.COMPLETED)
        if not (vehicle.invoice_number or "").strip():
            raise PreconditionError(
                "Set an invoice number before marking this entry complete",
                code="invoice_number_required",
            )
        vehicle = await self._compare_and_set(
            ctx,
            vehicle_id,
            [VehicleStatus.INSTALLATION_COMPLETE],
            VehicleStatus.COMPLETED,
            {"completed_at": _utcnow()},
            # The invoice number must still be present at write time
            conditions=[Vehicle.invoice_number.is_not(None), Vehicle.invoice_number != ""],
        )
        return WorkflowResult(
            vehicle=vehicle,
            events=[self._event(ctx, NotificationEvent.ACCOUNTANT_COMPLETED, vehicle)],
        )

    async def record_discount(
        self,
        ctx: TenantContext,
        vehicle_id: str,
        amount: Any,
        offered_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> WorkflowResult:
        require(ctx, Capability.RECORD_DISCOUNT)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        if vehicle.status not in ACCOUNTING_STATUSES:
            raise PreconditionError(
                "Discounts can be recorded only between installation completion and delivery",
                code="discount_stage",
            )
        try:
            discount = to_money(amount)
        except ValueError:
            raise PreconditionError("Discount amount is not a number", code="invalid_discount")
        gross = compute_totals(parse_products(vehicle.products))
        discount = validate_discount(gross, discount)

        updated = await self.vehicles.update_guarded(
            ctx,
            vehicle_id,
            {
                "discount_amount": discount,
                "discount_offered_by": (offered_by or "").strip() or None,
                "discount_reason": (reason or "").strip() or None,
                "discount_recorded_by": ctx.user_id,
                "discount_recorded_at": _utcnow(),
            },
            expected_statuses=ACCOUNTING_STATUSES,
        )
        if not updated:
            await self.db.rollback()
            raise InvalidTransitionError("Vehicle was delivered while this request was processed",
                                         code="status_conflict")
        await self.db.commit()

        vehicle = await self.vehicles.get(ctx, vehicle_id)
        logger.info(
            f"Discount {discount} recorded on gross {gross}",
            extra=context_extra(ctx, vehicle_id=vehicle_id),
        )
        return WorkflowResult(vehicle=vehicle, amounts=apply_discount(gross, discount))

    async def mark_delivered(self, ctx: TenantContext, vehicle_id: str) -> WorkflowResult:
        require(ctx, Capability.MARK_DELIVERED)
        vehicle = await self.vehicles.get(ctx, vehicle_id)
        validate_transition(vehicle.status, VehicleStatus.DELIVERED)
        vehicle = await self._compare_and_set(
            ctx,
            vehicle_id,
            [VehicleStatus.COMPLETED],
            VehicleStatus.DELIVERED,
            {"delivered_at": _utcnow()},
        )
        return WorkflowResult(
            vehicle=vehicle,
            events=[self._event(ctx, NotificationEvent.VEHICLE_DELIVERED, vehicle)],
        )
