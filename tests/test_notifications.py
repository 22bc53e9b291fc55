"""Notification gateway tests."""
import pytest

from inward.core.enums import NotificationEvent, UserRole
from inward.models.notification import MessageTemplate, NotificationPreference
from inward.services.notifications import (
    DISABLED_MESSAGE, NotificationDispatcher, Recipient, VehicleSnapshot, WorkflowEvent,
    load_gateway, render_template, resolve_recipients,
)
from inward.whatsapp import MockTransport


class ExplodingTransport:
    name = "exploding"

    async def send(self, to, message):
        raise RuntimeError("socket closed")


@pytest.fixture
def snapshot(tenant):
    return VehicleSnapshot(
        vehicle_id="3f2a9c1e-0000-0000-0000-000000000000",
        tenant_id=tenant.id,
        registration_number="KA01AB1234",
        customer_name="Asha Rao",
        status="pending",
    )


def test_render_template_substitutes_known_tokens():
    snap = VehicleSnapshot(vehicle_id="3f2a9c1e-aaaa", tenant_id="t", status="completed")
    recipient = Recipient(user_id="u", role=UserRole.ACCOUNTANT, phone="1", name=None)
    text = render_template(
        "Hi {{recipientName}} ({{ recipientRole }}): {{vehicleNumber}} for {{customerName}} "
        "is {{status}} {{mystery}}",
        snap,
        recipient,
    )
    assert text == "Hi User (Accountant): 3f2a9c1e for N/A is completed {{mystery}}"


@pytest.mark.asyncio
async def test_role_defaults_pick_recipients(db_session, tenant, members):
    recipients = await resolve_recipients(db_session, tenant.id, NotificationEvent.VEHICLE_INWARD_CREATED)
    assert {r.role for r in recipients} == {UserRole.INSTALLER, UserRole.MANAGER}

    status_updates = await resolve_recipients(db_session, tenant.id, NotificationEvent.VEHICLE_STATUS_UPDATED)
    assert status_updates == []


@pytest.mark.asyncio
async def test_preferences_override_role_defaults(db_session, tenant, members):
    db_session.add_all([
        NotificationPreference(
            tenant_id=tenant.id, user_id=members[UserRole.INSTALLER].id,
            role=UserRole.INSTALLER, notify_on_vehicle_created=False,
        ),
        NotificationPreference(
            tenant_id=tenant.id, user_id=members[UserRole.COORDINATOR].id,
            role=UserRole.COORDINATOR, notify_on_vehicle_created=True,
        ),
        # Admins are never messaged, whatever their flags say
        NotificationPreference(
            tenant_id=tenant.id, user_id=members[UserRole.ADMIN].id,
            role=UserRole.ADMIN, notify_on_vehicle_created=True,
        ),
    ])
    await db_session.commit()

    recipients = await resolve_recipients(db_session, tenant.id, NotificationEvent.VEHICLE_INWARD_CREATED)
    assert {r.role for r in recipients} == {UserRole.COORDINATOR, UserRole.MANAGER}


@pytest.mark.asyncio
async def test_members_without_phone_or_inactive_are_skipped(db_session, tenant, members, make_member):
    await make_member(tenant, UserRole.MANAGER, "nophone@speedline.test", phone="  ")
    members[UserRole.INSTALLER].is_active = False
    await db_session.commit()

    recipients = await resolve_recipients(db_session, tenant.id, NotificationEvent.VEHICLE_INWARD_CREATED)
    assert [r.user_id for r in recipients] == [members[UserRole.MANAGER].id]


@pytest.mark.asyncio
async def test_gateway_sends_rendered_messages(db_session, tenant, members, whatsapp_enabled, snapshot):
    transport = MockTransport()
    gateway = await load_gateway(db_session, tenant.id, transport)
    report = await gateway.notify(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot)

    assert report.sent == 2 and report.failed == 0
    assert sorted(to for to, _ in transport.sent) == ["9800000002", "9800000004"]
    assert all("Vehicle: KA01AB1234" in message for _, message in transport.sent)
    assert all("Customer: Asha Rao" in message for _, message in transport.sent)


@pytest.mark.asyncio
async def test_tenant_template_replaces_default(db_session, tenant, members, whatsapp_enabled, snapshot):
    db_session.add(MessageTemplate(
        tenant_id=tenant.id,
        event_type=NotificationEvent.VEHICLE_INWARD_CREATED,
        template="{{vehicleNumber}} arrived, {{recipientName}}",
    ))
    await db_session.commit()

    transport = MockTransport()
    gateway = await load_gateway(db_session, tenant.id, transport)
    await gateway.notify(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot)

    assert sorted(message for _, message in transport.sent) == [
        "KA01AB1234 arrived, Installer User",
        "KA01AB1234 arrived, Manager User",
    ]


@pytest.mark.asyncio
async def test_one_failed_recipient_does_not_stop_the_rest(db_session, tenant, members, whatsapp_enabled, snapshot):
    transport = MockTransport(fail_for={"9800000002"})
    gateway = await load_gateway(db_session, tenant.id, transport)
    report = await gateway.notify(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot)

    assert report.sent == 1
    assert report.failed == 1
    assert report.errors == ["Manager User (9800000002): Mock delivery failure"]


@pytest.mark.asyncio
async def test_transport_exceptions_are_counted(db_session, tenant, members, whatsapp_enabled, snapshot):
    gateway = await load_gateway(db_session, tenant.id, ExplodingTransport())
    report = await gateway.notify(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot)

    assert report.sent == 0
    assert report.failed == 2
    assert all(error.endswith("RuntimeError") for error in report.errors)


@pytest.mark.asyncio
async def test_disabled_tenant_sends_nothing(db_session, tenant, members, snapshot):
    transport = MockTransport()
    gateway = await load_gateway(db_session, tenant.id, transport)
    report = await gateway.notify(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot)

    assert report.to_dict() == {"sent": 0, "failed": 0, "errors": [DISABLED_MESSAGE]}
    assert transport.sent == []


@pytest.mark.asyncio
async def test_dispatcher_uses_its_own_session(session_factory, tenant, members, whatsapp_enabled, snapshot):
    transport = MockTransport()
    dispatcher = NotificationDispatcher(session_factory=session_factory, transport=transport)
    reports = await dispatcher.dispatch([
        WorkflowEvent(NotificationEvent.VEHICLE_INWARD_CREATED, snapshot),
        WorkflowEvent(NotificationEvent.VEHICLE_DELIVERED, snapshot),
    ])

    assert [r.sent for r in reports] == [2, 1]
    assert len(transport.sent) == 3
