"""Tenant configuration schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from inward.core.enums import NotificationEvent, UserRole, WhatsAppProviderName


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class LocationResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    address: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_active: Optional[bool] = None


class DepartmentResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MemberCreate(BaseModel):
    """Add a user to the workspace. An existing account with this email is reused."""
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    role: UserRole


class MemberUpdate(BaseModel):
    role: Optional[UserRole] = None
    phone: Optional[str] = Field(None, max_length=32)
    full_name: Optional[str] = Field(None, max_length=255)


class MemberResponse(BaseModel):
    membership_id: str
    user_id: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    is_primary_admin: bool
    is_active: bool


class NotificationPreferenceUpdate(BaseModel):
    user_id: str
    notify_on_vehicle_created: Optional[bool] = None
    notify_on_status_updated: Optional[bool] = None
    notify_on_installation_complete: Optional[bool] = None
    notify_on_invoice_added: Optional[bool] = None
    notify_on_accountant_complete: Optional[bool] = None
    notify_on_vehicle_delivered: Optional[bool] = None


class NotificationPreferenceResponse(BaseModel):
    user_id: str
    role: UserRole
    notify_on_vehicle_created: bool
    notify_on_status_updated: bool
    notify_on_installation_complete: bool
    notify_on_invoice_added: bool
    notify_on_accountant_complete: bool
    notify_on_vehicle_delivered: bool
    is_default: bool = False


class MessageTemplateUpdate(BaseModel):
    template: str = Field(..., min_length=1, max_length=4000)


class MessageTemplateResponse(BaseModel):
    event_type: NotificationEvent
    template: str
    is_default: bool


class WhatsAppSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    provider: Optional[WhatsAppProviderName] = None
    from_number: Optional[str] = Field(None, max_length=32)
    phone_number_id: Optional[str] = Field(None, max_length=64)
    access_token: Optional[str] = Field(None, max_length=512)
    account_sid: Optional[str] = Field(None, max_length=64)
    auth_token: Optional[str] = Field(None, max_length=255)
    webhook_url: Optional[str] = Field(None, max_length=500)
    api_key: Optional[str] = Field(None, max_length=255)


class WhatsAppSettingsResponse(BaseModel):
    """Provider settings with secrets masked."""
    enabled: bool
    provider: str
    from_number: Optional[str] = None
    phone_number_id: Optional[str] = None
    access_token: Optional[str] = None
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    webhook_url: Optional[str] = None
    api_key: Optional[str] = None
