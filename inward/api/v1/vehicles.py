"""Vehicle inward API endpoints."""
from dataclasses import asdict
from typing import Iterable, List, Optional
from fastapi import APIRouter, BackgroundTasks, Query, status

from inward.core.dependencies import TenantCtx, Workflow, Dispatcher
from inward.core.logging import context_extra, get_logger
from inward.models.vehicle import Vehicle
from inward.schemas.vehicle import (
    VehicleCreate, VehicleUpdate, VehicleResponse, VehicleListResponse,
    StatusUpdateRequest, ProductCompletionRequest, InvoiceNumberRequest,
    DiscountRequest, FinancialsResponse, ProductCompletionResponse, DiscountResponse,
)
from inward.services.access_control import redact_vehicle
from inward.services.financials import ZERO, derive_for_vehicle, parse_products
from inward.services.tenant_resolver import TenantContext
from inward.services.workflow import WorkflowResult


router = APIRouter()
logger = get_logger(__name__)


def build_vehicle_response(vehicle: Vehicle, completed: Iterable[int], role) -> VehicleResponse:
    """Render a vehicle for ``role``, hiding financial fields where the role has no access."""
    done = set(completed)
    items = parse_products(vehicle.products)
    discount = None
    if (vehicle.discount_amount or ZERO) > ZERO or vehicle.discount_recorded_at:
        discount = {
            "amount": vehicle.discount_amount,
            "offered_by": vehicle.discount_offered_by,
            "reason": vehicle.discount_reason,
            "recorded_by": vehicle.discount_recorded_by,
            "recorded_at": vehicle.discount_recorded_at,
        }
    data = {
        "id": vehicle.id,
        "short_id": vehicle.short_id,
        "tenant_id": vehicle.tenant_id,
        "status": vehicle.status,
        "customer_name": vehicle.customer_name,
        "customer_phone": vehicle.customer_phone,
        "customer_email": vehicle.customer_email,
        "customer_address": vehicle.customer_address,
        "registration_number": vehicle.registration_number,
        "make": vehicle.make,
        "model": vehicle.model,
        "year": vehicle.year,
        "color": vehicle.color,
        "vehicle_type": vehicle.vehicle_type,
        "location_id": vehicle.location_id,
        "manager_id": vehicle.manager_id,
        "remarks": vehicle.remarks,
        "products": [
            {
                "index": index,
                "product": item.product,
                "brand": item.brand or None,
                "department": item.department or None,
                "price": item.price,
                "completed": index in done,
            }
            for index, item in enumerate(items)
        ],
        "completed_count": len(done),
        "invoice_number": vehicle.invoice_number,
        "discount": discount,
        "financials": asdict(derive_for_vehicle(vehicle)),
        "created_by": vehicle.created_by,
        "created_at": vehicle.created_at,
        "updated_at": vehicle.updated_at,
        "installation_completed_at": vehicle.installation_completed_at,
        "completed_at": vehicle.completed_at,
        "delivered_at": vehicle.delivered_at,
    }
    return VehicleResponse(**redact_vehicle(role, data))


async def _respond(
    ctx: TenantContext,
    workflow,
    result: WorkflowResult,
    background_tasks: BackgroundTasks,
    dispatcher,
) -> VehicleResponse:
    if result.events:
        background_tasks.add_task(dispatcher.dispatch, result.events)
        logger.info(
            f"Queued {len(result.events)} notification(s): "
            f"{', '.join(e.event_type.value for e in result.events)}",
            extra=context_extra(ctx, vehicle_id=result.vehicle.id),
        )
    completed = result.completed_indices
    if completed is None:
        completed = await workflow.completed_indices(result.vehicle.id)
    return build_vehicle_response(result.vehicle, completed, ctx.role)


@router.post("", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    request: VehicleCreate,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Record a vehicle inward. Starts in `pending`."""
    result = await workflow.create_vehicle(ctx, request.model_dump(mode="json"))
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    ctx: TenantCtx,
    workflow: Workflow,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List vehicles visible to the caller's role, newest first."""
    vehicles, total = await workflow.list_vehicles(
        ctx, statuses=status_filter, search=search, page=page, page_size=page_size
    )
    completed = await workflow.vehicles.completed_indices_for(v.id for v in vehicles)
    return VehicleListResponse(
        vehicles=[build_vehicle_response(v, completed[v.id], ctx.role) for v in vehicles],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: str,
    ctx: TenantCtx,
    workflow: Workflow,
):
    """Get a specific vehicle by ID."""
    vehicle = await workflow.get_vehicle(ctx, vehicle_id)
    completed = await workflow.completed_indices(vehicle.id)
    return build_vehicle_response(vehicle, completed, ctx.role)


@router.patch("/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(
    vehicle_id: str,
    request: VehicleUpdate,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Edit customer, vehicle or product details while installation is open."""
    changes = request.model_dump(mode="json", exclude_unset=True)
    result = await workflow.update_vehicle_details(ctx, vehicle_id, changes)
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.post("/{vehicle_id}/status", response_model=VehicleResponse)
async def update_status(
    vehicle_id: str,
    request: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Advance the vehicle exactly one step along its lifecycle."""
    result = await workflow.advance_status(ctx, vehicle_id, request.status)
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.put("/{vehicle_id}/products/{product_index}", response_model=ProductCompletionResponse)
async def set_product_completion(
    vehicle_id: str,
    product_index: int,
    request: ProductCompletionRequest,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """
    Mark one product installed (or not installed).
    - Idempotent: setting the current value again changes nothing.
    - When every product is installed the vehicle moves to `installation_complete`.
    """
    result = await workflow.set_product_completion(ctx, vehicle_id, product_index, request.completed)
    vehicle = await _respond(ctx, workflow, result, background_tasks, dispatcher)
    return ProductCompletionResponse(vehicle=vehicle, changed=result.changed)


@router.put("/{vehicle_id}/invoice-number", response_model=VehicleResponse)
async def set_invoice_number(
    vehicle_id: str,
    request: InvoiceNumberRequest,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Set or clear the invoice number. An empty value clears it."""
    result = await workflow.set_invoice_number(ctx, vehicle_id, request.invoice_number)
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.post("/{vehicle_id}/accountant-complete", response_model=VehicleResponse)
async def mark_accountant_complete(
    vehicle_id: str,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Close accounting on an installed vehicle. Requires an invoice number."""
    result = await workflow.mark_accountant_complete(ctx, vehicle_id)
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.put("/{vehicle_id}/discount", response_model=DiscountResponse)
async def record_discount(
    vehicle_id: str,
    request: DiscountRequest,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Record the discount offered to the customer; it may not exceed the gross total."""
    result = await workflow.record_discount(
        ctx, vehicle_id, request.amount, offered_by=request.offered_by, reason=request.reason
    )
    vehicle = await _respond(ctx, workflow, result, background_tasks, dispatcher)
    return DiscountResponse(vehicle=vehicle, financials=FinancialsResponse.model_validate(result.amounts))


@router.post("/{vehicle_id}/deliver", response_model=VehicleResponse)
async def mark_delivered(
    vehicle_id: str,
    background_tasks: BackgroundTasks,
    ctx: TenantCtx,
    workflow: Workflow,
    dispatcher: Dispatcher,
):
    """Hand the vehicle back to the customer. No further changes afterwards."""
    result = await workflow.mark_delivered(ctx, vehicle_id)
    return await _respond(ctx, workflow, result, background_tasks, dispatcher)


@router.get("/{vehicle_id}/financials", response_model=FinancialsResponse)
async def get_financials(
    vehicle_id: str,
    ctx: TenantCtx,
    workflow: Workflow,
):
    """Gross, discount and final amounts for one vehicle."""
    amounts = await workflow.financials(ctx, vehicle_id)
    return FinancialsResponse.model_validate(amounts)
