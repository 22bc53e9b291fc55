"""Notification preference, template and provider settings models."""
from datetime import datetime, timezone
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from inward.core.database import Base
from inward.core.enums import NotificationEvent, UserRole


class NotificationPreference(Base):
    """Per-user opt-in flags for each workflow event, for one tenant role."""

    __tablename__ = "notification_preferences"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    notify_on_vehicle_created: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_status_updated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_installation_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_invoice_added: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_accountant_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_vehicle_delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    __table_args__ = (
        Index("ix_pref_tenant_user_role", "tenant_id", "user_id", "role", unique=True),
    )


# Maps each event to its opt-in column on NotificationPreference
PREFERENCE_FIELDS = {
    NotificationEvent.VEHICLE_INWARD_CREATED: "notify_on_vehicle_created",
    NotificationEvent.VEHICLE_STATUS_UPDATED: "notify_on_status_updated",
    NotificationEvent.INSTALLATION_COMPLETE: "notify_on_installation_complete",
    NotificationEvent.INVOICE_NUMBER_ADDED: "notify_on_invoice_added",
    NotificationEvent.ACCOUNTANT_COMPLETED: "notify_on_accountant_complete",
    NotificationEvent.VEHICLE_DELIVERED: "notify_on_vehicle_delivered",
}


class MessageTemplate(Base):
    """Tenant override of the default text for one event type."""

    __tablename__ = "message_templates"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )
    event_type: Mapped[NotificationEvent] = mapped_column(
        SQLEnum(NotificationEvent, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    template: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    __table_args__ = (
        Index("ix_template_tenant_event", "tenant_id", "event_type", unique=True),
    )


class WhatsAppSettings(Base):
    """Provider configuration for a tenant's WhatsApp notifications."""

    __tablename__ = "whatsapp_settings"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        primary_key=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    provider: Mapped[str] = mapped_column(String(32), default="mock", nullable=False)
    from_number: Mapped[str] = mapped_column(String(32), nullable=True)
    # Cloud API
    phone_number_id: Mapped[str] = mapped_column(String(64), nullable=True)
    access_token: Mapped[str] = mapped_column(String(512), nullable=True)
    # Twilio
    account_sid: Mapped[str] = mapped_column(String(64), nullable=True)
    auth_token: Mapped[str] = mapped_column(String(255), nullable=True)
    # Custom webhook
    webhook_url: Mapped[str] = mapped_column(String(500), nullable=True)
    api_key: Mapped[str] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
