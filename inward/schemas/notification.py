"""Notification schemas."""
from typing import List, Optional
from pydantic import BaseModel, Field

from inward.core.enums import NotificationEvent


class NotificationReportResponse(BaseModel):
    sent: int
    failed: int
    errors: List[str]


class SampleNotificationRequest(BaseModel):
    """Send a sample event to this tenant's opted-in members, or to one number."""
    event_type: NotificationEvent = NotificationEvent.VEHICLE_INWARD_CREATED
    phone: Optional[str] = Field(None, max_length=32)
    message: Optional[str] = Field(None, max_length=2000)
