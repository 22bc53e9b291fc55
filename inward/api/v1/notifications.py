"""Notification endpoints."""
from fastapi import APIRouter

from inward.core.dependencies import TenantCtx, DbSession, Dispatcher
from inward.core.exceptions import PreconditionError
from inward.core.logging import context_extra, get_logger
from inward.schemas.notification import NotificationReportResponse, SampleNotificationRequest
from inward.services.access_control import Capability, require
from inward.services.notifications import VehicleSnapshot, load_gateway


router = APIRouter()
logger = get_logger(__name__)


@router.post("/test", response_model=NotificationReportResponse)
async def send_test_notification(
    request: SampleNotificationRequest,
    ctx: TenantCtx,
    db: DbSession,
    dispatcher: Dispatcher,
):
    """
    Check the WhatsApp setup synchronously.
    - With `phone`: sends `message` (or a fixed text) to that number only.
    - Without: sends a sample `event_type` to every opted-in member.
    """
    require(ctx, Capability.MANAGE_TENANT_CONFIG)
    if ctx.tenant_id is None:
        raise PreconditionError("Select a workspace with the X-Tenant-ID header", code="tenant_required")

    gateway = await load_gateway(db, ctx.tenant_id, dispatcher.transport)
    if request.phone:
        message = request.message or "Test message from Vehicle Inward Console. WhatsApp is configured."
        report = await gateway.send_direct(request.phone, message)
    else:
        sample = VehicleSnapshot(
            vehicle_id="00000000-test-0000-0000-000000000000",
            tenant_id=ctx.tenant_id,
            registration_number="TEST-0001",
            customer_name="Test Customer",
            status="pending",
        )
        report = await gateway.notify(request.event_type, sample)

    logger.info(
        f"Test notification: sent={report.sent}, failed={report.failed}",
        extra=context_extra(ctx),
    )
    return NotificationReportResponse(**report.to_dict())
