"""Request payload schemas.

Every mutating endpoint parses its JSON body through one of these models, so
unknown fields are rejected and types are coerced before a service is called.
"""
from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import List, Literal, Optional, Type, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class RequestSchema(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def parse_body(schema: Type[SchemaT]) -> SchemaT:
    """Validate the current request's JSON body against ``schema``."""
    return schema.model_validate(request.get_json(silent=True) or {})


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` path or query value."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date format, expected YYYY-MM-DD") from None


# =============== AUTH ==================
class LoginRequest(RequestSchema):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


# =============== CUSTOMERS ==================
class VehicleCreate(RequestSchema):
    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: Literal["hatchback", "sedan", "suv", "luxury", "commercial"]
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1950, le=2100)
    color: Optional[str] = None


class CustomerCreate(RequestSchema):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: str = Field(..., min_length=5, max_length=20)
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    vehicles: List[VehicleCreate] = Field(default_factory=list)


class CustomerUpdate(RequestSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


# =============== CATALOG ==================
class CategoryCreate(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class ServiceCreate(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    category_id: Optional[int] = None
    description: Optional[str] = None
    base_price: Decimal = Field(..., ge=0)
    duration_minutes: int = Field(60, gt=0)
    is_active: bool = True


class ServiceUpdate(RequestSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category_id: Optional[int] = None
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    duration_minutes: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None


class PackageServiceIn(RequestSchema):
    service_id: int
    quantity: int = Field(1, ge=1)


class PackageCreate(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    validity_days: int = Field(365, gt=0)
    services: List[PackageServiceIn] = Field(default_factory=list)


# =============== STAFF ==================
class StaffCreate(RequestSchema):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6)
    role: Optional[Literal["admin", "manager", "technician", "customer_service"]] = None
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: str = Field(..., min_length=5, max_length=20)
    position: Literal["admin", "manager", "technician", "customer_service"]
    hire_date: date
    salary: Optional[Decimal] = Field(None, ge=0)


class StaffUpdate(RequestSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    position: Optional[Literal["admin", "manager", "technician", "customer_service"]] = None
    hire_date: Optional[date] = None
    salary: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


# =============== BOOKINGS ==================
class LineItemIn(RequestSchema):
    service_id: int
    quantity: int = Field(1, ge=1)


class BookingCreate(RequestSchema):
    customer_id: int
    vehicle_id: int
    booking_date: date
    booking_time: time
    # Emptiness is checked by the booking service so callers get one message.
    services: List[LineItemIn]
    notes: Optional[str] = None


class BookingUpdate(RequestSchema):
    customer_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    booking_date: Optional[date] = None
    booking_time: Optional[time] = None
    services: Optional[List[LineItemIn]] = None
    notes: Optional[str] = None


class BookingStatusUpdate(RequestSchema):
    status: str
    notes: Optional[str] = None


class BookingCancel(RequestSchema):
    reason: Optional[str] = None


class PublicBookingCreate(RequestSchema):
    name: str = Field(..., min_length=1, max_length=101)
    phone: str = Field(..., min_length=5, max_length=20)
    email: Optional[str] = None
    date: date
    time: time
    service_id: Optional[int] = None
    service_ids: List[int] = Field(default_factory=list)
    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_brand: str = Field(..., min_length=1)
    vehicle_model: str = Field(..., min_length=1)
    vehicle_type: Literal["hatchback", "sedan", "suv", "luxury", "commercial"]
    vehicle_color: Optional[str] = None
    vehicle_year: Optional[int] = Field(None, ge=1950, le=2100)
    notes: Optional[str] = None

    def all_service_ids(self) -> list[int]:
        ids = list(self.service_ids)
        if self.service_id is not None and self.service_id not in ids:
            ids.insert(0, self.service_id)
        return ids


# =============== JOB CARDS ==================
class JobCardCreate(RequestSchema):
    booking_id: int
    technician_id: Optional[int] = None
    notes: Optional[str] = None


class JobCardStatusUpdate(RequestSchema):
    status: str
    notes: Optional[str] = None


class JobCardAssign(RequestSchema):
    technician_id: int


# =============== INVENTORY ==================
class InventoryItemCreate(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    category: Optional[str] = None
    unit: str = "pieces"
    current_stock: int = Field(0, ge=0)
    min_stock_level: int = Field(10, ge=0)
    cost_per_unit: Decimal = Field(Decimal("0"), ge=0)
    supplier: Optional[str] = None


class InventoryItemUpdate(RequestSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    min_stock_level: Optional[int] = Field(None, ge=0)
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = None
    is_active: Optional[bool] = None


class StockAdjustment(RequestSchema):
    quantity: int
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    notes: Optional[str] = None


# =============== BILLING ==================
class InvoiceGenerate(RequestSchema):
    booking_id: int
    discount_amount: Decimal = Field(Decimal("0"), ge=0)


class PaymentRecord(RequestSchema):
    paid_amount: Decimal = Field(..., ge=0)
    payment_method: Literal["cash", "card", "upi", "bank_transfer"]
    notes: Optional[str] = None


class RefundRequest(RequestSchema):
    notes: Optional[str] = None


class CardPaymentConfirm(RequestSchema):
    payment_intent_id: str = Field(..., min_length=1)
