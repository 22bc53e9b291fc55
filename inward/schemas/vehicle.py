"""Vehicle inward schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from inward.core.enums import VehicleStatus


class ProductItem(BaseModel):
    """One accessory line on a vehicle."""
    product: str = Field(..., min_length=1, max_length=255)
    brand: Optional[str] = None
    department: Optional[str] = None
    price: Decimal = Field(Decimal("0"), ge=0)


class VehicleCreate(BaseModel):
    """Request to record a new vehicle inward."""
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=32)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_address: Optional[str] = Field(None, max_length=500)
    registration_number: str = Field(..., min_length=1, max_length=32)
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=2100)
    color: Optional[str] = None
    vehicle_type: Optional[str] = None
    location_id: Optional[str] = None
    manager_id: Optional[str] = None
    products: List[ProductItem] = Field(default_factory=list)
    remarks: Optional[str] = None


class VehicleUpdate(BaseModel):
    """Partial update of vehicle details; only sent fields change."""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=32)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_address: Optional[str] = Field(None, max_length=500)
    registration_number: Optional[str] = Field(None, min_length=1, max_length=32)
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=2100)
    color: Optional[str] = None
    vehicle_type: Optional[str] = None
    location_id: Optional[str] = None
    manager_id: Optional[str] = None
    products: Optional[List[ProductItem]] = None
    remarks: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    # Kept as a string so unknown values surface as a transition error
    status: str


class ProductCompletionRequest(BaseModel):
    completed: bool = True


class InvoiceNumberRequest(BaseModel):
    invoice_number: Optional[str] = Field(None, max_length=100)


class DiscountRequest(BaseModel):
    """Discount given to the customer on the gross total."""
    amount: Decimal
    offered_by: Optional[str] = Field(None, max_length=255)
    reason: Optional[str] = None


class ProductView(BaseModel):
    index: int
    product: str
    brand: Optional[str] = None
    department: Optional[str] = None
    price: Optional[Decimal] = None
    completed: bool = False


class DiscountView(BaseModel):
    amount: Decimal
    offered_by: Optional[str] = None
    reason: Optional[str] = None
    recorded_by: Optional[str] = None
    recorded_at: Optional[datetime] = None


class FinancialsResponse(BaseModel):
    """Derived amounts for one vehicle."""
    gross_total: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    final_amount: Decimal

    class Config:
        from_attributes = True


class VehicleResponse(BaseModel):
    """Vehicle response schema. Financial fields are null for roles without access."""
    id: str
    short_id: str
    tenant_id: str
    status: VehicleStatus
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    registration_number: str
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    vehicle_type: Optional[str] = None
    location_id: Optional[str] = None
    manager_id: Optional[str] = None
    remarks: Optional[str] = None
    products: List[ProductView]
    completed_count: int = 0
    invoice_number: Optional[str] = None
    discount: Optional[DiscountView] = None
    financials: Optional[FinancialsResponse] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    installation_completed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class VehicleListResponse(BaseModel):
    """List of vehicles response."""
    vehicles: List[VehicleResponse]
    total: int
    page: int
    page_size: int


class ProductCompletionResponse(BaseModel):
    vehicle: VehicleResponse
    changed: bool


class DiscountResponse(BaseModel):
    vehicle: VehicleResponse
    financials: FinancialsResponse
