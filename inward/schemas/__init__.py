"""Pydantic schemas."""
from inward.schemas.auth import MeResponse, MembershipResponse, UserResponse
from inward.schemas.vehicle import (
    ProductItem, VehicleCreate, VehicleUpdate, VehicleResponse, VehicleListResponse,
    StatusUpdateRequest, ProductCompletionRequest, InvoiceNumberRequest, DiscountRequest,
    FinancialsResponse,
)
from inward.schemas.report import FinancialSummaryResponse, DashboardResponse
from inward.schemas.notification import NotificationReportResponse, SampleNotificationRequest

__all__ = [
    "MeResponse", "MembershipResponse", "UserResponse",
    "ProductItem", "VehicleCreate", "VehicleUpdate", "VehicleResponse", "VehicleListResponse",
    "StatusUpdateRequest", "ProductCompletionRequest", "InvoiceNumberRequest", "DiscountRequest",
    "FinancialsResponse",
    "FinancialSummaryResponse", "DashboardResponse",
    "NotificationReportResponse", "SampleNotificationRequest",
]
