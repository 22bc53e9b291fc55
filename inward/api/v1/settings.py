"""Tenant configuration endpoints: locations, departments, members and notifications."""
from typing import List
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select, func

from inward.core.config import settings as app_settings
from inward.core.dependencies import TenantCtx, DbSession
from inward.core.enums import NotificationEvent
from inward.core.exceptions import PreconditionError
from inward.core.logging import context_extra, get_logger
from inward.models.location import Location, Department
from inward.models.notification import (
    NotificationPreference, MessageTemplate, WhatsAppSettings, PREFERENCE_FIELDS
)
from inward.models.user import User, TenantMembership
from inward.schemas.settings import (
    LocationCreate, LocationUpdate, LocationResponse,
    DepartmentCreate, DepartmentUpdate, DepartmentResponse,
    MemberCreate, MemberUpdate, MemberResponse,
    NotificationPreferenceUpdate, NotificationPreferenceResponse,
    MessageTemplateUpdate, MessageTemplateResponse,
    WhatsAppSettingsUpdate, WhatsAppSettingsResponse,
)
from inward.services.access_control import Capability, require
from inward.services.notifications import DEFAULT_TEMPLATES, NOTIFIED_ROLES, default_enabled
from inward.services.tenant_resolver import TenantContext
from inward.whatsapp import sanitize_payload


router = APIRouter()
logger = get_logger(__name__)


def _tenant_id(ctx: TenantContext, manage: bool = False) -> str:
    if manage:
        require(ctx, Capability.MANAGE_TENANT_CONFIG)
    if ctx.tenant_id is None:
        raise PreconditionError("Select a workspace with the X-Tenant-ID header", code="tenant_required")
    return ctx.tenant_id


# Locations

@router.get("/locations", response_model=List[LocationResponse])
async def list_locations(ctx: TenantCtx, db: DbSession):
    """List installation locations of the workspace."""
    tenant_id = _tenant_id(ctx)
    result = await db.execute(
        select(Location).where(Location.tenant_id == tenant_id).order_by(Location.name)
    )
    return [LocationResponse.model_validate(loc) for loc in result.scalars().all()]


@router.post("/locations", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(request: LocationCreate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    existing = await db.execute(
        select(Location.id).where(Location.tenant_id == tenant_id, Location.name == request.name.strip())
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Location already exists")

    location = Location(tenant_id=tenant_id, name=request.name.strip(), address=request.address)
    db.add(location)
    await db.commit()
    await db.refresh(location)
    logger.info(f"Location created: {location.name}", extra=context_extra(ctx))
    return LocationResponse.model_validate(location)


@router.patch("/locations/{location_id}", response_model=LocationResponse)
async def update_location(location_id: str, request: LocationUpdate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(Location).where(Location.id == location_id, Location.tenant_id == tenant_id)
    )
    location = result.scalar_one_or_none()
    if location is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(location, key, value)
    await db.commit()
    await db.refresh(location)
    return LocationResponse.model_validate(location)


# Departments

@router.get("/departments", response_model=List[DepartmentResponse])
async def list_departments(ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx)
    result = await db.execute(
        select(Department).where(Department.tenant_id == tenant_id).order_by(Department.name)
    )
    return [DepartmentResponse.model_validate(d) for d in result.scalars().all()]


@router.post("/departments", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(request: DepartmentCreate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    existing = await db.execute(
        select(Department.id).where(Department.tenant_id == tenant_id, Department.name == request.name.strip())
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Department already exists")

    department = Department(tenant_id=tenant_id, name=request.name.strip())
    db.add(department)
    await db.commit()
    await db.refresh(department)
    return DepartmentResponse.model_validate(department)


@router.patch("/departments/{department_id}", response_model=DepartmentResponse)
async def update_department(department_id: str, request: DepartmentUpdate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(Department).where(Department.id == department_id, Department.tenant_id == tenant_id)
    )
    department = result.scalar_one_or_none()
    if department is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(department, key, value)
    await db.commit()
    await db.refresh(department)
    return DepartmentResponse.model_validate(department)


# Members

def _member_response(membership: TenantMembership, user: User) -> MemberResponse:
    return MemberResponse(
        membership_id=membership.id,
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        role=membership.role,
        is_primary_admin=membership.is_primary_admin,
        is_active=user.is_active,
    )


async def _get_membership(db, tenant_id: str, membership_id: str):
    result = await db.execute(
        select(TenantMembership, User)
        .join(User, User.id == TenantMembership.user_id)
        .where(TenantMembership.id == membership_id, TenantMembership.tenant_id == tenant_id)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return row


@router.get("/members", response_model=List[MemberResponse])
async def list_members(ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(TenantMembership, User)
        .join(User, User.id == TenantMembership.user_id)
        .where(TenantMembership.tenant_id == tenant_id)
        .order_by(User.email)
    )
    return [_member_response(m, u) for m, u in result.all()]


@router.post("/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(request: MemberCreate, ctx: TenantCtx, db: DbSession):
    """Add a user to the workspace with a role. Existing accounts are matched by email."""
    tenant_id = _tenant_id(ctx, manage=True)
    email = request.email.lower()
    result = await db.execute(select(User).where(func.lower(User.email) == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, full_name=request.full_name, phone=request.phone)
        db.add(user)
        await db.flush()
    else:
        existing = await db.execute(
            select(TenantMembership.id).where(
                TenantMembership.tenant_id == tenant_id,
                TenantMembership.user_id == user.id,
            )
        )
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member")

    membership = TenantMembership(tenant_id=tenant_id, user_id=user.id, role=request.role)
    db.add(membership)
    await db.commit()
    await db.refresh(membership)
    logger.info(
        f"Member {user.id} added as {request.role.value}",
        extra=context_extra(ctx),
    )
    return _member_response(membership, user)


@router.patch("/members/{membership_id}", response_model=MemberResponse)
async def update_member(membership_id: str, request: MemberUpdate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    membership, user = await _get_membership(db, tenant_id, membership_id)
    changes = request.model_dump(exclude_unset=True)

    if "role" in changes and changes["role"] != membership.role:
        if membership.is_primary_admin:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="The primary admin's role cannot be changed",
            )
        membership.role = changes["role"]
    if "phone" in changes:
        user.phone = changes["phone"]
    if "full_name" in changes:
        user.full_name = changes["full_name"]

    await db.commit()
    return _member_response(membership, user)


@router.delete("/members/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(membership_id: str, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    membership, user = await _get_membership(db, tenant_id, membership_id)
    if membership.is_primary_admin or user.id == ctx.user_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The primary admin and your own membership cannot be removed",
        )
    await db.delete(membership)
    await db.commit()
    logger.info(f"Member {user.id} removed", extra=context_extra(ctx))


# Notification preferences

def _preference_response(membership: TenantMembership, preference) -> NotificationPreferenceResponse:
    flags = {}
    for event, column in PREFERENCE_FIELDS.items():
        if preference is not None:
            flags[column] = bool(getattr(preference, column))
        else:
            flags[column] = default_enabled(membership.role, event)
    return NotificationPreferenceResponse(
        user_id=membership.user_id,
        role=membership.role,
        is_default=preference is None,
        **flags,
    )


@router.get("/notification-preferences", response_model=List[NotificationPreferenceResponse])
async def list_notification_preferences(ctx: TenantCtx, db: DbSession):
    """Effective preferences of every notifiable member (role defaults where unset)."""
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(TenantMembership, NotificationPreference)
        .outerjoin(
            NotificationPreference,
            (NotificationPreference.tenant_id == TenantMembership.tenant_id)
            & (NotificationPreference.user_id == TenantMembership.user_id)
            & (NotificationPreference.role == TenantMembership.role),
        )
        .where(
            TenantMembership.tenant_id == tenant_id,
            TenantMembership.role.in_(NOTIFIED_ROLES),
        )
    )
    return [_preference_response(m, p) for m, p in result.all()]


@router.put("/notification-preferences", response_model=NotificationPreferenceResponse)
async def update_notification_preference(request: NotificationPreferenceUpdate, ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(TenantMembership).where(
            TenantMembership.tenant_id == tenant_id,
            TenantMembership.user_id == request.user_id,
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")

    pref_result = await db.execute(
        select(NotificationPreference).where(
            NotificationPreference.tenant_id == tenant_id,
            NotificationPreference.user_id == membership.user_id,
            NotificationPreference.role == membership.role,
        )
    )
    preference = pref_result.scalar_one_or_none()
    if preference is None:
        # Start from the role defaults so unspecified events keep their behaviour
        preference = NotificationPreference(
            tenant_id=tenant_id,
            user_id=membership.user_id,
            role=membership.role,
            **{column: default_enabled(membership.role, event) for event, column in PREFERENCE_FIELDS.items()},
        )
        db.add(preference)

    for key, value in request.model_dump(exclude_unset=True, exclude={"user_id"}).items():
        if value is not None:
            setattr(preference, key, value)
    await db.commit()
    await db.refresh(preference)
    return _preference_response(membership, preference)


# Message templates

@router.get("/message-templates", response_model=List[MessageTemplateResponse])
async def list_message_templates(ctx: TenantCtx, db: DbSession):
    """Every event's template: the tenant override where set, else the built-in default."""
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(select(MessageTemplate).where(MessageTemplate.tenant_id == tenant_id))
    overrides = {t.event_type: t.template for t in result.scalars().all()}
    return [
        MessageTemplateResponse(
            event_type=event,
            template=overrides.get(event, DEFAULT_TEMPLATES[event]),
            is_default=event not in overrides,
        )
        for event in NotificationEvent
    ]


@router.put("/message-templates/{event_type}", response_model=MessageTemplateResponse)
async def update_message_template(
    event_type: NotificationEvent,
    request: MessageTemplateUpdate,
    ctx: TenantCtx,
    db: DbSession,
):
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(MessageTemplate).where(
            MessageTemplate.tenant_id == tenant_id,
            MessageTemplate.event_type == event_type,
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        template = MessageTemplate(tenant_id=tenant_id, event_type=event_type, template=request.template)
        db.add(template)
    else:
        template.template = request.template
    await db.commit()
    return MessageTemplateResponse(event_type=event_type, template=request.template, is_default=False)


@router.delete("/message-templates/{event_type}", response_model=MessageTemplateResponse)
async def reset_message_template(event_type: NotificationEvent, ctx: TenantCtx, db: DbSession):
    """Drop the tenant override and fall back to the default text."""
    tenant_id = _tenant_id(ctx, manage=True)
    result = await db.execute(
        select(MessageTemplate).where(
            MessageTemplate.tenant_id == tenant_id,
            MessageTemplate.event_type == event_type,
        )
    )
    template = result.scalar_one_or_none()
    if template is not None:
        await db.delete(template)
        await db.commit()
    return MessageTemplateResponse(event_type=event_type, template=DEFAULT_TEMPLATES[event_type], is_default=True)


# WhatsApp provider

def _whatsapp_response(config) -> WhatsAppSettingsResponse:
    if config is None:
        return WhatsAppSettingsResponse(enabled=False, provider=app_settings.WHATSAPP_DEFAULT_PROVIDER)
    data = {field: getattr(config, field) for field in WhatsAppSettingsResponse.model_fields}
    return WhatsAppSettingsResponse(**sanitize_payload(data))


@router.get("/whatsapp", response_model=WhatsAppSettingsResponse)
async def get_whatsapp_settings(ctx: TenantCtx, db: DbSession):
    tenant_id = _tenant_id(ctx, manage=True)
    return _whatsapp_response(await db.get(WhatsAppSettings, tenant_id))


@router.put("/whatsapp", response_model=WhatsAppSettingsResponse)
async def update_whatsapp_settings(request: WhatsAppSettingsUpdate, ctx: TenantCtx, db: DbSession):
    """Update provider settings. Omitted fields keep their stored value."""
    tenant_id = _tenant_id(ctx, manage=True)
    config = await db.get(WhatsAppSettings, tenant_id)
    if config is None:
        config = WhatsAppSettings(
            tenant_id=tenant_id,
            enabled=False,
            provider=app_settings.WHATSAPP_DEFAULT_PROVIDER,
        )
        db.add(config)

    for key, value in request.model_dump(mode="json", exclude_unset=True).items():
        if value is None and key in ("enabled", "provider"):
            continue
        setattr(config, key, value)
    await db.commit()
    await db.refresh(config)
    logger.info(
        f"WhatsApp settings updated: provider={config.provider}, enabled={config.enabled}",
        extra=context_extra(ctx),
    )
    return _whatsapp_response(config)
