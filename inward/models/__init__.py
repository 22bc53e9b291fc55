"""SQLAlchemy models."""
from inward.models.tenant import Tenant
from inward.models.user import User, TenantMembership
from inward.models.location import Location, Department
from inward.models.vehicle import Vehicle, ProductCompletion
from inward.models.notification import NotificationPreference, MessageTemplate, WhatsAppSettings

__all__ = [
    "Tenant", "User", "TenantMembership", "Location", "Department",
    "Vehicle", "ProductCompletion",
    "NotificationPreference", "MessageTemplate", "WhatsAppSettings",
]
