"""Enum definitions for the application."""
from enum import Enum


class VehicleStatus(str, Enum):
    """Lifecycle status of a vehicle inward record."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    UNDER_INSTALLATION = "under_installation"
    INSTALLATION_COMPLETE = "installation_complete"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    # Legacy value written by older coordinator screens
    COMPLETE_AND_DELIVERED = "complete_and_delivered"


class UserRole(str, Enum):
    """Role a user holds inside one tenant."""
    ADMIN = "admin"
    MANAGER = "manager"
    COORDINATOR = "coordinator"
    INSTALLER = "installer"
    ACCOUNTANT = "accountant"


class SubscriptionStatus(str, Enum):
    """Tenant subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class NotificationEvent(str, Enum):
    """Workflow events that can be announced to staff."""
    VEHICLE_INWARD_CREATED = "vehicle_inward_created"
    VEHICLE_STATUS_UPDATED = "vehicle_status_updated"
    INSTALLATION_COMPLETE = "installation_complete"
    INVOICE_NUMBER_ADDED = "invoice_number_added"
    ACCOUNTANT_COMPLETED = "accountant_completed"
    VEHICLE_DELIVERED = "vehicle_delivered"


class WhatsAppProviderName(str, Enum):
    """Supported WhatsApp transports."""
    MOCK = "mock"
    CLOUD_API = "cloud-api"
    TWILIO = "twilio"
    CUSTOM = "custom"
