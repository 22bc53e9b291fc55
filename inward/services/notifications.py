"""Workflow notifications over WhatsApp.

The gateway works on a committed snapshot of the vehicle: it resolves the
tenant members who opted in to the event, renders the tenant's template (or
the built-in default) per recipient and hands each message to the tenant's
transport. Delivery problems are counted in the report and logged; they are
never raised to the caller that triggered the event.
"""
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from inward.core.config import settings
from inward.core.database import async_session_maker
from inward.core.enums import NotificationEvent, UserRole
from inward.core.exceptions import NotificationDeliveryError
from inward.core.logging import context_extra, get_logger
from inward.models.notification import (
    NotificationPreference, MessageTemplate, WhatsAppSettings, PREFERENCE_FIELDS
)
from inward.models.user import User, TenantMembership
from inward.whatsapp import WhatsAppTransport, build_transport


logger = get_logger(__name__)

DISABLED_MESSAGE = "WhatsApp notifications are disabled"

# Admins configure notifications; they are never recipients
NOTIFIED_ROLES = (
    UserRole.INSTALLER,
    UserRole.COORDINATOR,
    UserRole.ACCOUNTANT,
    UserRole.MANAGER,
)

# Used when a member has no preference row for their role
ROLE_DEFAULTS: Dict[NotificationEvent, FrozenSet[UserRole]] = {
    NotificationEvent.VEHICLE_INWARD_CREATED: frozenset({UserRole.INSTALLER, UserRole.MANAGER}),
    NotificationEvent.VEHICLE_STATUS_UPDATED: frozenset(),
    NotificationEvent.INSTALLATION_COMPLETE: frozenset({
        UserRole.COORDINATOR, UserRole.ACCOUNTANT, UserRole.MANAGER
    }),
    NotificationEvent.INVOICE_NUMBER_ADDED: frozenset({UserRole.MANAGER}),
    NotificationEvent.ACCOUNTANT_COMPLETED: frozenset({UserRole.COORDINATOR}),
    NotificationEvent.VEHICLE_DELIVERED: frozenset({UserRole.MANAGER}),
}

DEFAULT_TEMPLATES: Dict[NotificationEvent, str] = {
    NotificationEvent.VEHICLE_INWARD_CREATED: (
        "*New Vehicle Entry*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "Status: Pending\n\nPlease check the dashboard for details."
    ),
    NotificationEvent.VEHICLE_STATUS_UPDATED: (
        "*Status Updated*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "New Status: {{status}}\n\nPlease check the dashboard for details."
    ),
    NotificationEvent.INSTALLATION_COMPLETE: (
        "*Installation Complete*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "All products have been installed successfully.\n\nReady for accountant review."
    ),
    NotificationEvent.INVOICE_NUMBER_ADDED: (
        "*Invoice Number Added*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "Invoice number has been set by accountant.\n\nPlease check the dashboard for details."
    ),
    NotificationEvent.ACCOUNTANT_COMPLETED: (
        "*Accountant Completed*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "Invoice processing completed.\n\nReady for delivery."
    ),
    NotificationEvent.VEHICLE_DELIVERED: (
        "*Vehicle Delivered*\n\nVehicle: {{vehicleNumber}}\nCustomer: {{customerName}}\n\n"
        "Vehicle has been marked as delivered.\n\nThank you for your work!"
    ),
}

TOKEN_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class VehicleSnapshot:
    """The committed state of a vehicle at the moment an event fired."""
    vehicle_id: str
    tenant_id: str
    registration_number: Optional[str] = None
    customer_name: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_vehicle(cls, vehicle) -> "VehicleSnapshot":
        status = vehicle.status.value if hasattr(vehicle.status, "value") else vehicle.status
        return cls(
            vehicle_id=vehicle.id,
            tenant_id=vehicle.tenant_id,
            registration_number=vehicle.registration_number,
            customer_name=vehicle.customer_name,
            status=status,
        )


@dataclass(frozen=True)
class WorkflowEvent:
    event_type: NotificationEvent
    snapshot: VehicleSnapshot
    triggered_by: Optional[str] = None


@dataclass(frozen=True)
class Recipient:
    user_id: str
    role: UserRole
    phone: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.name or self.user_id} ({self.phone})"


@dataclass
class NotificationReport:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed, "errors": list(self.errors)}


def render_template(template: str, snapshot: VehicleSnapshot, recipient: Recipient) -> str:
    """Substitute ``{{token}}`` placeholders. Unknown tokens are left as written."""
    role = recipient.role.value if isinstance(recipient.role, UserRole) else str(recipient.role)
    values = {
        "vehicleNumber": snapshot.registration_number or snapshot.vehicle_id[:8],
        "customerName": snapshot.customer_name or "N/A",
        "vehicleId": snapshot.vehicle_id[:8],
        "status": snapshot.status or "N/A",
        "recipientName": recipient.name or "User",
        "recipientRole": role[:1].upper() + role[1:],
    }
    return TOKEN_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def default_enabled(role: UserRole, event_type: NotificationEvent) -> bool:
    return role in ROLE_DEFAULTS.get(event_type, frozenset())


async def resolve_recipients(
    db: AsyncSession,
    tenant_id: str,
    event_type: NotificationEvent,
) -> List[Recipient]:
    """Members of ``tenant_id`` who should hear about ``event_type``."""
    result = await db.execute(
        select(TenantMembership, User, NotificationPreference)
        .join(User, User.id == TenantMembership.user_id)
        .outerjoin(
            NotificationPreference,
            and_(
                NotificationPreference.tenant_id == TenantMembership.tenant_id,
                NotificationPreference.user_id == TenantMembership.user_id,
                NotificationPreference.role == TenantMembership.role,
            ),
        )
        .where(
            TenantMembership.tenant_id == tenant_id,
            TenantMembership.role.in_(NOTIFIED_ROLES),
            User.is_active.is_(True),
        )
    )

    column = PREFERENCE_FIELDS[event_type]
    recipients = []
    for membership, user, preference in result.all():
        if preference is not None:
            enabled = bool(getattr(preference, column))
        else:
            enabled = default_enabled(membership.role, event_type)
        if not enabled:
            continue
        phone = (user.phone or "").strip()
        if not phone:
            logger.debug(f"Skipping {user.id}: no phone number on file")
            continue
        recipients.append(Recipient(
            user_id=user.id,
            role=membership.role,
            phone=phone,
            name=user.full_name,
        ))
    return recipients


async def load_templates(db: AsyncSession, tenant_id: str) -> Dict[NotificationEvent, str]:
    result = await db.execute(
        select(MessageTemplate).where(MessageTemplate.tenant_id == tenant_id)
    )
    return {row.event_type: row.template for row in result.scalars().all() if row.template}


class NotificationGateway:
    """Sends one workflow event to every opted-in member of its tenant."""

    def __init__(self, db: AsyncSession, transport: Optional[WhatsAppTransport], enabled: bool = True):
        self.db = db
        self.transport = transport
        self.enabled = enabled and transport is not None

    async def notify(self, event_type: NotificationEvent, snapshot: VehicleSnapshot) -> NotificationReport:
        report = NotificationReport()
        log_extra = context_extra(
            tenant_id=snapshot.tenant_id, vehicle_id=snapshot.vehicle_id, event_type=event_type.value
        )
        if not self.enabled:
            logger.warning("Notifications disabled for tenant; event not sent", extra=log_extra)
            report.errors.append(DISABLED_MESSAGE)
            return report

        recipients = await resolve_recipients(self.db, snapshot.tenant_id, event_type)
        templates = await load_templates(self.db, snapshot.tenant_id)
        template = templates.get(event_type) or DEFAULT_TEMPLATES[event_type]

        for recipient in recipients:
            message = render_template(template, snapshot, recipient)
            try:
                result = await self.transport.send(recipient.phone, message)
                if not result.success:
                    raise NotificationDeliveryError(recipient.label, result.error or "unknown error")
            except NotificationDeliveryError as e:
                report.failed += 1
                report.errors.append(str(e))
                logger.warning(f"WhatsApp delivery failed: {e}", extra=log_extra)
            except Exception as e:
                report.failed += 1
                report.errors.append(f"{recipient.label}: {type(e).__name__}")
                logger.exception(f"Unexpected error sending to {recipient.user_id}: {e}", extra=log_extra)
            else:
                report.sent += 1

        logger.info(
            f"Notification {event_type.value}: recipients={len(recipients)}, "
            f"sent={report.sent}, failed={report.failed}",
            extra=log_extra,
        )
        return report

    async def send_direct(self, phone: str, message: str) -> NotificationReport:
        """Send one ad-hoc message, e.g. to check a provider configuration."""
        report = NotificationReport()
        if not self.enabled:
            report.errors.append(DISABLED_MESSAGE)
            return report
        result = await self.transport.send(phone, message)
        if result.success:
            report.sent += 1
        else:
            report.failed += 1
            report.errors.append(f"{phone}: {result.error or 'unknown error'}")
        return report


async def load_gateway(
    db: AsyncSession,
    tenant_id: str,
    transport: Optional[WhatsAppTransport] = None,
) -> NotificationGateway:
    """Gateway for a tenant's stored WhatsApp settings.

    ``transport`` replaces the configured provider (used by tests and the
    test-message endpoint) but the tenant must still have notifications enabled.
    """
    if not settings.NOTIFICATIONS_ENABLED:
        return NotificationGateway(db, None, enabled=False)
    config = await db.get(WhatsAppSettings, tenant_id)
    if config is None or not config.enabled:
        return NotificationGateway(db, None, enabled=False)
    if transport is None:
        try:
            transport = build_transport(config)
        except ValueError:
            logger.error(f"Unknown WhatsApp provider '{config.provider}'", extra={"tenant_id": tenant_id})
            return NotificationGateway(db, None, enabled=False)
    return NotificationGateway(db, transport)


class NotificationDispatcher:
    """Runs queued workflow events after the triggering request has committed.

    Each event gets its own session, so a failure never touches the write
    that produced it.
    """

    def __init__(
        self,
        session_factory: Callable = async_session_maker,
        transport: Optional[WhatsAppTransport] = None,
    ):
        self.session_factory = session_factory
        self.transport = transport

    async def dispatch(self, events: Sequence[WorkflowEvent]) -> List[NotificationReport]:
        reports = []
        for event in events:
            try:
                async with self.session_factory() as db:
                    gateway = await load_gateway(db, event.snapshot.tenant_id, self.transport)
                    reports.append(await gateway.notify(event.event_type, event.snapshot))
            except Exception as e:
                logger.exception(
                    f"Notification dispatch failed for {event.event_type.value}: {e}",
                    extra=context_extra(tenant_id=event.snapshot.tenant_id, vehicle_id=event.snapshot.vehicle_id),
                )
        return reports


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; overridden in tests."""
    return NotificationDispatcher()
