"""Vehicle inward record and product completion models."""
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, Numeric, Text, JSON,
    Enum as SQLEnum, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from inward.core.database import Base
from inward.core.enums import VehicleStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Vehicle(Base):
    """A vehicle received for accessory installation."""

    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    short_id: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    # Owning tenant, never reassigned
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False
    )

    # Customer
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=True)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=True)
    customer_address: Mapped[str] = mapped_column(String(500), nullable=True)

    # Vehicle
    registration_number: Mapped[str] = mapped_column(String(32), nullable=False)
    make: Mapped[str] = mapped_column(String(100), nullable=True)
    model: Mapped[str] = mapped_column(String(100), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=True)
    color: Mapped[str] = mapped_column(String(50), nullable=True)
    vehicle_type: Mapped[str] = mapped_column(String(50), nullable=True)

    location_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True
    )
    manager_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    status: Mapped[VehicleStatus] = mapped_column(
        SQLEnum(VehicleStatus, values_callable=lambda e: [m.value for m in e]),
        default=VehicleStatus.PENDING,
        nullable=False
    )
    # List of {product, brand, department, price}; parsed leniently on read
    products: Mapped[list] = mapped_column(JSON, default=list, nullable=True)

    # Accounting sub-state
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    discount_offered_by: Mapped[str] = mapped_column(String(255), nullable=True)
    discount_reason: Mapped[str] = mapped_column(Text, nullable=True)
    discount_recorded_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    discount_recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    remarks: Mapped[str] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False
    )
    installation_completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="vehicles")
    location = relationship("Location")
    completions = relationship(
        "ProductCompletion",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="ProductCompletion.product_index",
    )

    __table_args__ = (
        Index("ix_vehicle_tenant_status", "tenant_id", "status"),
        Index("ix_vehicle_tenant_created", "tenant_id", "created_at"),
        Index("ix_vehicle_registration", "registration_number"),
    )


class ProductCompletion(Base):
    """One installed product line on a vehicle, keyed by its list index."""

    __tablename__ = "product_completions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    vehicle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False
    )
    product_index: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )

    vehicle = relationship("Vehicle", back_populates="completions")

    __table_args__ = (
        # Set semantics: concurrent toggles of different indices never collide
        UniqueConstraint("vehicle_id", "product_index", name="uq_completion_vehicle_index"),
    )
