"""Database models for the detailing studio backend."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def money(value: Decimal | None) -> float:
    return float(value) if value is not None else 0.0


USER_ROLES = ("admin", "manager", "technician", "customer_service")
VEHICLE_TYPES = ("hatchback", "sedan", "suv", "luxury", "commercial")
BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
JOB_CARD_STATUSES = ("assigned", "in_progress", "qc_check", "completed", "delivered")
PHOTO_TYPES = ("before", "during", "after")
TRANSACTION_TYPES = ("in", "out")
REFERENCE_TYPES = ("purchase", "return", "adjustment", "usage")
PAYMENT_STATUSES = ("pending", "paid", "partial", "refunded")
PAYMENT_METHODS = ("cash", "card", "upi", "bank_transfer")


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(*USER_ROLES, name="user_role", native_enum=False, validate_strings=True),
        nullable=False,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    staff = db.relationship("Staff", back_populates="user", uselist=False)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": bool(self.is_active),
        }


class Customer(db.Model):
    __tablename__ = "customers"

    customer_id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(100), unique=True)
    phone = db.Column(db.String(20), nullable=False, index=True)
    address = db.Column(db.Text)
    city = db.Column(db.String(50))
    state = db.Column(db.String(50))
    pincode = db.Column(db.String(10))
    total_spent = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    last_visit = db.Column(db.Date)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    vehicles = db.relationship(
        "Vehicle", back_populates="customer", cascade="all, delete-orphan", order_by="Vehicle.vehicle_id"
    )
    bookings = db.relationship("Booking", back_populates="customer", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self, include_vehicles: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.customer_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "total_spent": money(self.total_spent),
            "last_visit": self.last_visit.isoformat() if self.last_visit else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_vehicles:
            data["vehicles"] = [vehicle.to_dict() for vehicle in self.vehicles]
        return data


class Vehicle(db.Model):
    __tablename__ = "vehicles"

    vehicle_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.customer_id", ondelete="CASCADE"), nullable=False
    )
    vehicle_number = db.Column(db.String(20), nullable=False, index=True)
    vehicle_type = db.Column(
        db.Enum(*VEHICLE_TYPES, name="vehicle_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    brand = db.Column(db.String(50))
    model = db.Column(db.String(50))
    year = db.Column(db.Integer)
    color = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    customer = db.relationship("Customer", back_populates="vehicles")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.vehicle_id,
            "customer_id": self.customer_id,
            "vehicle_number": self.vehicle_number,
            "vehicle_type": self.vehicle_type,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "color": self.color,
        }


class ServiceCategory(db.Model):
    __tablename__ = "service_categories"

    category_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.category_id,
            "name": self.name,
            "description": self.description,
            "is_active": bool(self.is_active),
        }


class Service(db.Model):
    """Catalog entry a booking line item is priced from."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("service_categories.category_id"), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    base_price = db.Column(db.Numeric(10, 2), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    category = db.relationship("ServiceCategory")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "description": self.description,
            "base_price": money(self.base_price),
            "duration_minutes": self.duration_minutes,
            "is_active": bool(self.is_active),
        }


class ServicePackage(db.Model):
    __tablename__ = "service_packages"

    package_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    validity_days = db.Column(db.Integer, nullable=False, default=365)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    items = db.relationship("PackageService", back_populates="package", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.package_id,
            "name": self.name,
            "description": self.description,
            "price": money(self.price),
            "validity_days": self.validity_days,
            "is_active": bool(self.is_active),
            "services": [item.to_dict() for item in self.items],
        }


class PackageService(db.Model):
    __tablename__ = "package_services"

    package_service_id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(
        db.Integer, db.ForeignKey("service_packages.package_id", ondelete="CASCADE"), nullable=False
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id", ondelete="CASCADE"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    package = db.relationship("ServicePackage", back_populates="items")
    service = db.relationship("Service")

    def to_dict(self) -> dict[str, object]:
        return {
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "quantity": self.quantity,
        }


class Staff(db.Model):
    __tablename__ = "staff"

    staff_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, unique=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(100), unique=True)
    phone = db.Column(db.String(20), nullable=False, unique=True)
    position = db.Column(db.String(50), nullable=False)
    hire_date = db.Column(db.Date, nullable=False)
    salary = db.Column(db.Numeric(10, 2))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="staff")
    job_cards = db.relationship("JobCard", back_populates="technician", cascade="all")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.staff_id,
            "user_id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "position": self.position,
            "role": self.user.role if self.user else None,
            "hire_date": self.hire_date.isoformat() if self.hire_date else None,
            "salary": money(self.salary) if self.salary is not None else None,
            "is_active": bool(self.is_active),
        }


class Booking(db.Model):
    """A customer's appointment with priced line items."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.customer_id", ondelete="CASCADE"), nullable=False
    )
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.vehicle_id"), nullable=False)
    booking_date = db.Column(db.Date, nullable=False)
    booking_time = db.Column(db.Time, nullable=False)
    status = db.Column(
        db.Enum(*BOOKING_STATUSES, name="booking_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
    )
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("Customer", back_populates="bookings")
    vehicle = db.relationship("Vehicle")
    line_items = db.relationship(
        "BookingService",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingService.booking_service_id",
    )
    job_card = db.relationship("JobCard", back_populates="booking", uselist=False, cascade="all, delete-orphan")
    invoice = db.relationship("Invoice", back_populates="booking", uselist=False, cascade="all, delete-orphan")

    def to_dict(self, include_details: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.booking_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.full_name if self.customer else None,
            "phone": self.customer.phone if self.customer else None,
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle.vehicle_number if self.vehicle else None,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "booking_time": self.booking_time.strftime("%H:%M") if self.booking_time else None,
            "status": self.status,
            "total_amount": money(self.total_amount),
            "notes": self.notes,
            "services": [item.to_dict() for item in self.line_items],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_details:
            data["customer"] = self.customer.to_dict() if self.customer else None
            data["vehicle"] = self.vehicle.to_dict() if self.vehicle else None
            data["job_card"] = self.job_card.to_dict() if self.job_card else None
        return data


class BookingService(db.Model):
    """Line item; ``price`` is frozen at booking time."""

    __tablename__ = "booking_services"

    booking_service_id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.booking_id", ondelete="CASCADE"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(10, 2), nullable=False)

    __table_args__ = (db.CheckConstraint("quantity >= 1", name="ck_booking_services_quantity"),)

    booking = db.relationship("Booking", back_populates="line_items")
    service = db.relationship("Service")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.price) * self.quantity

    def to_dict(self) -> dict[str, object]:
        return {
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "quantity": self.quantity,
            "price": money(self.price),
            "line_total": money(self.line_total),
        }


class JobCard(db.Model):
    """Work order tracking execution of a booking."""

    __tablename__ = "job_cards"

    job_card_id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.booking_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    assigned_technician_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id", ondelete="CASCADE"))
    status = db.Column(
        db.Enum(*JOB_CARD_STATUSES, name="job_card_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="assigned",
    )
    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    booking = db.relationship("Booking", back_populates="job_card")
    technician = db.relationship("Staff", back_populates="job_cards")
    photos = db.relationship(
        "JobCardPhoto",
        back_populates="job_card",
        cascade="all, delete-orphan",
        order_by="JobCardPhoto.photo_id",
    )

    def to_dict(self, include_photos: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.job_card_id,
            "booking_id": self.booking_id,
            "booking_status": self.booking.status if self.booking else None,
            "assigned_technician_id": self.assigned_technician_id,
            "technician_name": self.technician.full_name if self.technician else None,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_photos:
            data["photos"] = [photo.to_dict() for photo in self.photos]
        return data


class JobCardPhoto(db.Model):
    __tablename__ = "job_card_photos"

    photo_id = db.Column(db.Integer, primary_key=True)
    job_card_id = db.Column(
        db.Integer, db.ForeignKey("job_cards.job_card_id", ondelete="CASCADE"), nullable=False
    )
    photo_type = db.Column(
        db.Enum(*PHOTO_TYPES, name="photo_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    photo_url = db.Column(db.String(500), nullable=False)
    s3_key = db.Column(db.String(500))
    uploaded_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    job_card = db.relationship("JobCard", back_populates="photos")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.photo_id,
            "job_card_id": self.job_card_id,
            "photo_type": self.photo_type,
            "photo_url": self.photo_url,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class InventoryItem(db.Model):
    """Consumable stock; ``current_stock`` only moves through transactions."""

    __tablename__ = "inventory_items"

    item_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    category = db.Column(db.String(50))
    unit = db.Column(db.String(20), nullable=False, default="pieces")
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)
    cost_per_unit = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    supplier = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    __table_args__ = (db.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock"),)

    transactions = db.relationship(
        "InventoryTransaction",
        back_populates="item",
        order_by="InventoryTransaction.transaction_id",
        lazy="dynamic",
    )

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock_level

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.item_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "cost_per_unit": money(self.cost_per_unit),
            "supplier": self.supplier,
            "is_active": bool(self.is_active),
            "is_low_stock": self.is_low_stock,
        }


class InventoryTransaction(db.Model):
    """Immutable stock ledger entry."""

    __tablename__ = "inventory_transactions"

    transaction_id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.item_id"), nullable=False)
    transaction_type = db.Column(
        db.Enum(*TRANSACTION_TYPES, name="transaction_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    quantity = db.Column(db.Integer, nullable=False)
    reference_type = db.Column(
        db.Enum(*REFERENCE_TYPES, name="reference_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    reference_id = db.Column(db.Integer)
    notes = db.Column(db.Text)
    transaction_date = db.Column(db.DateTime, nullable=False, default=utc_now)

    __table_args__ = (db.CheckConstraint("quantity > 0", name="ck_inventory_transactions_quantity"),)

    item = db.relationship("InventoryItem", back_populates="transactions")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.transaction_type == "in" else -self.quantity

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.transaction_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "transaction_date": self.transaction_date.isoformat() if self.transaction_date else None,
        }


class Invoice(db.Model):
    """Billing record generated from one completed booking."""

    __tablename__ = "billing"

    invoice_id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.booking_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    invoice_number = db.Column(db.String(20), unique=True, nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
    )
    payment_method = db.Column(
        db.Enum(*PAYMENT_METHODS, name="payment_method", native_enum=False, validate_strings=True),
        nullable=True,
    )
    paid_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    notes = db.Column(db.Text)
    billing_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    booking = db.relationship("Booking", back_populates="invoice")
    card_payments = db.relationship(
        "CardPayment", back_populates="invoice", cascade="all, delete-orphan", order_by="CardPayment.card_payment_id"
    )

    @property
    def outstanding_amount(self) -> Decimal:
        if self.payment_status == "refunded":
            return Decimal("0.00")
        return max(Decimal(self.total_amount) - Decimal(self.paid_amount), Decimal("0.00"))

    def to_dict(self, include_services: bool = False) -> dict[str, object]:
        booking = self.booking
        data: dict[str, object] = {
            "id": self.invoice_id,
            "booking_id": self.booking_id,
            "invoice_number": self.invoice_number,
            "subtotal": money(self.subtotal),
            "tax_amount": money(self.tax_amount),
            "discount_amount": money(self.discount_amount),
            "total_amount": money(self.total_amount),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "paid_amount": money(self.paid_amount),
            "outstanding_amount": money(self.outstanding_amount),
            "notes": self.notes,
            "billing_date": self.billing_date.isoformat() if self.billing_date else None,
            "customer_name": booking.customer.full_name if booking and booking.customer else None,
            "vehicle_number": booking.vehicle.vehicle_number if booking and booking.vehicle else None,
        }
        if include_services and booking:
            data["services"] = [item.to_dict() for item in booking.line_items]
        return data


class CardPayment(db.Model):
    """One Stripe PaymentIntent applied to an invoice."""

    __tablename__ = "card_payments"

    card_payment_id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("billing.invoice_id", ondelete="CASCADE"), nullable=False)
    gateway_payment_id = db.Column(db.String(255), nullable=False, unique=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    invoice = db.relationship("Invoice", back_populates="card_payments")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.card_payment_id,
            "invoice_id": self.invoice_id,
            "gateway_payment_id": self.gateway_payment_id,
            "amount": money(self.amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
