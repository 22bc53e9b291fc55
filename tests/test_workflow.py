"""Vehicle workflow service tests."""
import asyncio
from decimal import Decimal

import pytest

from inward.core.enums import NotificationEvent, UserRole, VehicleStatus
from inward.core.exceptions import (
    AuthorizationError, InvalidTransitionError, PreconditionError, TenantIsolationError
)
from inward.models.vehicle import Vehicle
from inward.services.tenant_resolver import TenantContext
from inward.services.workflow import VehicleWorkflow


def _event_types(result):
    return [event.event_type for event in result.events]


@pytest.fixture
def workflow(db_session):
    return VehicleWorkflow(db_session)


@pytest.fixture
def roles(members, ctx_for):
    """TenantContext per role for the first tenant."""
    return {role: ctx_for(user, role) for role, user in members.items()}


async def _create(workflow, roles, products, **extra):
    data = {
        "customer_name": "Asha Rao",
        "registration_number": "KA01AB1234",
        "products": products,
        **extra,
    }
    result = await workflow.create_vehicle(roles[UserRole.MANAGER], data)
    return result.vehicle


async def _install_all(workflow, roles, vehicle, count):
    result = None
    for index in range(count):
        result = await workflow.set_product_completion(roles[UserRole.INSTALLER], vehicle.id, index)
    return result


@pytest.mark.asyncio
async def test_create_vehicle_starts_pending(workflow, roles, products):
    result = await workflow.create_vehicle(roles[UserRole.COORDINATOR], {
        "customer_name": "Asha Rao",
        "registration_number": "KA01AB1234",
        "products": products,
    })

    vehicle = result.vehicle
    assert vehicle.status == VehicleStatus.PENDING
    assert vehicle.short_id == vehicle.id[:8]
    assert vehicle.created_by == roles[UserRole.COORDINATOR].user_id
    assert [p["price"] for p in vehicle.products] == ["1000.00", "2000.00", "500.00"]
    assert _event_types(result) == [NotificationEvent.VEHICLE_INWARD_CREATED]


@pytest.mark.asyncio
async def test_installer_cannot_create_vehicles(workflow, roles, products):
    with pytest.raises(AuthorizationError):
        await workflow.create_vehicle(roles[UserRole.INSTALLER], {
            "customer_name": "Asha Rao",
            "registration_number": "KA01AB1234",
            "products": products,
        })


@pytest.mark.asyncio
async def test_product_without_name_is_rejected(workflow, roles):
    with pytest.raises(PreconditionError) as exc:
        await _create(workflow, roles, [{"product": "  ", "price": "10"}])
    assert exc.value.code == "invalid_products"


@pytest.mark.asyncio
async def test_unknown_location_is_rejected(workflow, roles, products):
    with pytest.raises(PreconditionError) as exc:
        await _create(workflow, roles, products, location_id="not-a-location")
    assert exc.value.code == "invalid_location"


@pytest.mark.asyncio
async def test_completing_every_product_auto_advances(workflow, roles, products):
    """Installer completes all three products; the vehicle moves on and toggling closes."""
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]

    first = await workflow.set_product_completion(installer, vehicle.id, 0)
    second = await workflow.set_product_completion(installer, vehicle.id, 1)
    assert first.events == [] and second.events == []
    assert second.vehicle.status == VehicleStatus.PENDING

    last = await workflow.set_product_completion(installer, vehicle.id, 2)
    assert last.vehicle.status == VehicleStatus.INSTALLATION_COMPLETE
    assert last.vehicle.installation_completed_at is not None
    assert last.completed_indices == [0, 1, 2]
    assert _event_types(last) == [NotificationEvent.INSTALLATION_COMPLETE]
    assert last.events[0].snapshot.status == "installation_complete"

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.set_product_completion(installer, vehicle.id, 0)
    assert exc.value.code == "installation_closed"


@pytest.mark.asyncio
async def test_toggle_is_idempotent(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]

    await workflow.set_product_completion(installer, vehicle.id, 1)
    repeat = await workflow.set_product_completion(installer, vehicle.id, 1)

    assert repeat.changed is False
    assert repeat.completed_indices == [1]
    assert repeat.events == []


@pytest.mark.asyncio
async def test_completions_are_independent_per_index(workflow, roles, products):
    """Each index is its own row; clearing one leaves the others alone."""
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]

    await workflow.set_product_completion(installer, vehicle.id, 0)
    await workflow.set_product_completion(installer, vehicle.id, 2)
    cleared = await workflow.set_product_completion(installer, vehicle.id, 0, completed=False)

    assert cleared.changed is True
    assert cleared.completed_indices == [2]
    assert cleared.vehicle.status == VehicleStatus.PENDING

    again = await workflow.set_product_completion(installer, vehicle.id, 0, completed=False)
    assert again.changed is False


@pytest.mark.asyncio
async def test_product_index_out_of_range(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    with pytest.raises(PreconditionError) as exc:
        await workflow.set_product_completion(roles[UserRole.INSTALLER], vehicle.id, 3)
    assert exc.value.code == "invalid_product_index"


@pytest.mark.asyncio
async def test_vehicle_without_products_never_auto_advances(workflow, roles):
    vehicle = await _create(workflow, roles, [])
    with pytest.raises(PreconditionError) as exc:
        await workflow.set_product_completion(roles[UserRole.INSTALLER], vehicle.id, 0)
    assert exc.value.code == "invalid_product_index"

    # A manager can still walk it through the install stages by hand
    manager = roles[UserRole.MANAGER]
    for target in ("in_progress", "under_installation", "installation_complete"):
        result = await workflow.advance_status(manager, vehicle.id, target)
    assert result.vehicle.status == VehicleStatus.INSTALLATION_COMPLETE
    assert _event_types(result) == [NotificationEvent.INSTALLATION_COMPLETE]


@pytest.mark.asyncio
async def test_manager_advances_one_step(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    result = await workflow.advance_status(roles[UserRole.MANAGER], vehicle.id, "in_progress")

    assert result.vehicle.status == VehicleStatus.IN_PROGRESS
    assert _event_types(result) == [NotificationEvent.VEHICLE_STATUS_UPDATED]

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.advance_status(roles[UserRole.MANAGER], vehicle.id, "installation_complete")
    assert exc.value.code == "skipped_transition"

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.advance_status(roles[UserRole.MANAGER], vehicle.id, "pending")
    assert exc.value.code == "backward_transition"


@pytest.mark.asyncio
async def test_installer_starts_work_one_step_at_a_time(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]

    started = await workflow.advance_status(installer, vehicle.id, "in_progress")
    assert started.vehicle.status == VehicleStatus.IN_PROGRESS
    assert _event_types(started) == [NotificationEvent.VEHICLE_STATUS_UPDATED]

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.advance_status(installer, vehicle.id, "installation_complete")
    assert exc.value.code == "skipped_transition"

    # Accounting steps stay out of reach
    with pytest.raises(AuthorizationError) as denied:
        await workflow.advance_status(installer, vehicle.id, "completed")
    assert denied.value.code == "forbidden_mark_accountant_complete"


@pytest.mark.asyncio
async def test_requesting_installation_complete_again_is_a_no_op(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))

    result = await workflow.advance_status(roles[UserRole.MANAGER], vehicle.id, "installation_complete")
    assert result.changed is False
    assert result.events == []


@pytest.mark.asyncio
async def test_accountant_needs_invoice_number(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))
    accountant = roles[UserRole.ACCOUNTANT]

    with pytest.raises(PreconditionError) as exc:
        await workflow.mark_accountant_complete(accountant, vehicle.id)
    assert exc.value.code == "invoice_number_required"

    invoiced = await workflow.set_invoice_number(accountant, vehicle.id, "  INV-001 ")
    assert invoiced.vehicle.invoice_number == "INV-001"
    assert _event_types(invoiced) == [NotificationEvent.INVOICE_NUMBER_ADDED]

    completed = await workflow.advance_status(accountant, vehicle.id, "completed")
    assert completed.vehicle.status == VehicleStatus.COMPLETED
    assert completed.vehicle.completed_at is not None
    assert _event_types(completed) == [NotificationEvent.ACCOUNTANT_COMPLETED]


@pytest.mark.asyncio
async def test_unchanged_or_cleared_invoice_number_sends_nothing(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))
    accountant = roles[UserRole.ACCOUNTANT]

    await workflow.set_invoice_number(accountant, vehicle.id, "INV-7")
    same = await workflow.set_invoice_number(accountant, vehicle.id, "INV-7")
    assert same.changed is False

    cleared = await workflow.set_invoice_number(accountant, vehicle.id, "   ")
    assert cleared.vehicle.invoice_number is None
    assert cleared.events == []


@pytest.mark.asyncio
async def test_delivered_vehicle_is_frozen(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))
    accountant = roles[UserRole.ACCOUNTANT]
    await workflow.set_invoice_number(accountant, vehicle.id, "INV-9")
    await workflow.mark_accountant_complete(accountant, vehicle.id)

    delivered = await workflow.mark_delivered(roles[UserRole.COORDINATOR], vehicle.id)
    assert delivered.vehicle.status == VehicleStatus.DELIVERED
    assert delivered.vehicle.delivered_at is not None
    assert _event_types(delivered) == [NotificationEvent.VEHICLE_DELIVERED]

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.advance_status(roles[UserRole.COORDINATOR], vehicle.id, "delivered")
    assert exc.value.code == "terminal_status"

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.set_invoice_number(accountant, vehicle.id, "INV-10")
    assert exc.value.code == "terminal_status"

    with pytest.raises(PreconditionError) as exc:
        await workflow.record_discount(accountant, vehicle.id, "100")
    assert exc.value.code == "discount_stage"


@pytest.mark.asyncio
async def test_delivery_requires_accountant_completion(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.mark_delivered(roles[UserRole.COORDINATOR], vehicle.id)
    assert exc.value.code == "skipped_transition"


@pytest.mark.asyncio
async def test_record_discount(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))

    result = await workflow.record_discount(
        roles[UserRole.ACCOUNTANT], vehicle.id, "500", offered_by="Showroom", reason="Festive offer"
    )
    assert result.vehicle.discount_amount == Decimal("500")
    assert result.vehicle.discount_recorded_by == roles[UserRole.ACCOUNTANT].user_id
    assert result.amounts.final_amount == Decimal("3000")
    assert result.amounts.discount_percentage == Decimal("14.29")


@pytest.mark.asyncio
async def test_over_discount_is_rejected(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    await _install_all(workflow, roles, vehicle, len(products))

    with pytest.raises(PreconditionError) as exc:
        await workflow.record_discount(roles[UserRole.ACCOUNTANT], vehicle.id, "3500.01")
    assert exc.value.code == "discount_exceeds_total"


@pytest.mark.asyncio
async def test_discount_before_installation_is_rejected(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    with pytest.raises(PreconditionError) as exc:
        await workflow.record_discount(roles[UserRole.ACCOUNTANT], vehicle.id, "100")
    assert exc.value.code == "discount_stage"


@pytest.mark.asyncio
async def test_editing_products_prunes_completions_and_can_complete(workflow, roles, products):
    """Dropping the only unfinished product completes the installation."""
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]
    await workflow.set_product_completion(installer, vehicle.id, 0)
    await workflow.set_product_completion(installer, vehicle.id, 1)

    result = await workflow.update_vehicle_details(
        roles[UserRole.MANAGER], vehicle.id, {"products": products[:2]}
    )
    assert result.vehicle.status == VehicleStatus.INSTALLATION_COMPLETE
    assert result.completed_indices == [0, 1]
    assert _event_types(result) == [NotificationEvent.INSTALLATION_COMPLETE]

    with pytest.raises(InvalidTransitionError) as exc:
        await workflow.update_vehicle_details(roles[UserRole.MANAGER], vehicle.id, {"remarks": "late"})
    assert exc.value.code == "details_locked"


@pytest.mark.asyncio
async def test_status_is_not_an_editable_field(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    with pytest.raises(PreconditionError) as exc:
        await workflow.update_vehicle_details(roles[UserRole.MANAGER], vehicle.id, {"status": "delivered"})
    assert exc.value.code == "invalid_fields"


@pytest.mark.asyncio
async def test_other_tenant_sees_not_found(workflow, roles, products, outsider, other_tenant):
    vehicle = await _create(workflow, roles, products)
    foreign = TenantContext(user_id=outsider.id, role=UserRole.MANAGER, tenant_id=other_tenant.id)

    with pytest.raises(TenantIsolationError) as cross:
        await workflow.get_vehicle(foreign, vehicle.id)
    with pytest.raises(TenantIsolationError) as missing:
        await workflow.get_vehicle(foreign, "00000000-0000-0000-0000-000000000000")

    assert cross.value.code == missing.value.code == "not_found"
    assert cross.value.message == missing.value.message

    with pytest.raises(TenantIsolationError):
        await workflow.advance_status(foreign, vehicle.id, "in_progress")
    unchanged = await workflow.get_vehicle(roles[UserRole.MANAGER], vehicle.id)
    assert unchanged.status == VehicleStatus.PENDING


@pytest.mark.asyncio
async def test_role_visibility_on_reads(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)
    with pytest.raises(AuthorizationError) as exc:
        await workflow.get_vehicle(roles[UserRole.ACCOUNTANT], vehicle.id)
    assert exc.value.code == "status_not_visible"


@pytest.mark.asyncio
async def test_listing_is_narrowed_by_role(workflow, roles, products, tenant, db_session):
    pending = await _create(workflow, roles, products, registration_number="KA01AA0001")
    installed = await _create(workflow, roles, products, registration_number="KA01AA0002")
    await _install_all(workflow, roles, installed, len(products))
    legacy = Vehicle(
        id="legacy00-0000-0000-0000-000000000000",
        short_id="legacy00",
        tenant_id=tenant.id,
        customer_name="Old Record",
        registration_number="KA01AA0003",
        status=VehicleStatus.COMPLETE_AND_DELIVERED,
        products=[],
    )
    db_session.add(legacy)
    await db_session.commit()

    installer_view, installer_total = await workflow.list_vehicles(roles[UserRole.INSTALLER])
    assert [v.id for v in installer_view] == [pending.id]
    assert installer_total == 1

    delivered, _ = await workflow.list_vehicles(roles[UserRole.MANAGER], statuses=["delivered"])
    assert [v.id for v in delivered] == [legacy.id]

    found, total = await workflow.list_vehicles(roles[UserRole.MANAGER], search="aa0002")
    assert total == 1
    assert found[0].id == installed.id


@pytest.mark.asyncio
async def test_super_admin_global_mode(workflow, roles, products, super_admin):
    vehicle = await _create(workflow, roles, products)
    global_ctx = TenantContext(
        user_id=super_admin.id, role=UserRole.ADMIN, tenant_id=None, is_super_admin=True
    )

    found = await workflow.get_vehicle(global_ctx, vehicle.id)
    assert found.id == vehicle.id

    with pytest.raises(PreconditionError) as exc:
        await workflow.create_vehicle(global_ctx, {
            "customer_name": "Nobody",
            "registration_number": "X",
            "products": [],
        })
    assert exc.value.code == "tenant_required"


@pytest.mark.asyncio
async def test_invoice_number_waits_for_installation(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)

    for role in (UserRole.ACCOUNTANT, UserRole.ADMIN):
        with pytest.raises(PreconditionError) as exc:
            await workflow.set_invoice_number(roles[role], vehicle.id, "INV-9")
        assert exc.value.code == "invoice_stage"

    unchanged = await workflow.get_vehicle(roles[UserRole.MANAGER], vehicle.id)
    assert unchanged.invoice_number is None


@pytest.mark.asyncio
async def test_create_requires_registration_and_customer(workflow, roles, products):
    with pytest.raises(PreconditionError) as exc:
        await workflow.create_vehicle(roles[UserRole.MANAGER], {"customer_name": "Asha Rao", "products": products})
    assert exc.value.code == "invalid_fields"
    assert "registration_number" in exc.value.message

    # The session is still usable afterwards
    vehicle = await _create(workflow, roles, products)
    assert vehicle.status == VehicleStatus.PENDING


@pytest.mark.asyncio
async def test_required_details_cannot_be_cleared(workflow, roles, products):
    vehicle = await _create(workflow, roles, products)

    with pytest.raises(PreconditionError) as exc:
        await workflow.update_vehicle_details(roles[UserRole.MANAGER], vehicle.id, {"registration_number": None})
    assert exc.value.code == "invalid_fields"

    renamed = await workflow.update_vehicle_details(
        roles[UserRole.MANAGER], vehicle.id, {"customer_name": "Asha R."}
    )
    assert renamed.vehicle.customer_name == "Asha R."


@pytest.mark.asyncio
async def test_concurrent_toggles_keep_every_completion(workflow, roles, products, session_factory):
    """Three installers finish different products at once on separate sessions."""
    vehicle = await _create(workflow, roles, products)
    installer = roles[UserRole.INSTALLER]

    async def toggle(index):
        async with session_factory() as session:
            return await VehicleWorkflow(session).set_product_completion(installer, vehicle.id, index)

    results = await asyncio.gather(*(toggle(index) for index in range(len(products))))

    announced = [r for r in results if NotificationEvent.INSTALLATION_COMPLETE in _event_types(r)]
    assert len(announced) == 1

    async with session_factory() as session:
        fresh = VehicleWorkflow(session)
        stored = await fresh.get_vehicle(roles[UserRole.MANAGER], vehicle.id)
        assert stored.status == VehicleStatus.INSTALLATION_COMPLETE
        assert await fresh.completed_indices(vehicle.id) == [0, 1, 2]
