"""Customers, their vehicles and derived spending aggregates."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Booking, Customer, Invoice, Vehicle
from . import page_params, pagination, to_cents

CUSTOMER_FIELDS = ("first_name", "last_name", "phone", "email", "address", "city", "state", "pincode")


def get_customer_or_404(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def _ensure_unique_email(email: str | None, *, exclude_customer_id: int | None = None) -> None:
    if not email:
        return
    query = Customer.query.filter(func.lower(Customer.email) == email.lower())
    if exclude_customer_id is not None:
        query = query.filter(Customer.customer_id != exclude_customer_id)
    if query.first() is not None:
        raise ConflictError("A customer with this email already exists")


def _ensure_vehicle_number_free(vehicle_number: str) -> None:
    if Vehicle.query.filter_by(vehicle_number=vehicle_number).first() is not None:
        raise ConflictError(f"Vehicle {vehicle_number} is already registered")


def list_customers(*, search: str | None = None, page: int | None = 1, limit: int | None = 10) -> dict[str, object]:
    page, limit = page_params(page, limit)
    query = Customer.query
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.phone.ilike(term),
                Customer.email.ilike(term),
            )
        )
    total = query.count()
    customers = query.order_by(Customer.created_at.desc(), Customer.customer_id.desc()).offset(
        (page - 1) * limit
    ).limit(limit)
    return {
        "customers": [customer.to_dict() for customer in customers],
        "pagination": pagination(page, limit, total),
    }


def create_customer(*, vehicles: list[dict[str, Any]] | None = None, **fields: Any) -> Customer:
    _ensure_unique_email(fields.get("email"))
    customer = Customer(**{field: fields.get(field) for field in CUSTOMER_FIELDS})
    for vehicle in vehicles or []:
        _ensure_vehicle_number_free(str(vehicle["vehicle_number"]))
        customer.vehicles.append(Vehicle(**vehicle))
    db.session.add(customer)
    db.session.commit()
    current_app.logger.info("Customer %s created", customer.customer_id)
    return customer


def update_customer(customer_id: int, **changes: Any) -> Customer:
    customer = get_customer_or_404(customer_id)
    if changes.get("email"):
        _ensure_unique_email(changes["email"], exclude_customer_id=customer_id)
    for field, value in changes.items():
        if field not in CUSTOMER_FIELDS:
            raise ValidationError(f"Unknown field: {field}")
        if value is not None:
            setattr(customer, field, value)
    db.session.commit()
    return customer


def delete_customer(customer_id: int) -> None:
    """Remove a customer along with their vehicles and bookings."""
    customer = get_customer_or_404(customer_id)
    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info("Customer %s deleted", customer_id)


def add_vehicle(customer_id: int, **fields: Any) -> Vehicle:
    customer = get_customer_or_404(customer_id)
    _ensure_vehicle_number_free(str(fields["vehicle_number"]))
    vehicle = Vehicle(customer_id=customer.customer_id, **fields)
    db.session.add(vehicle)
    db.session.commit()
    return vehicle


def refresh_customer_aggregates(customer_id: int) -> Customer:
    """Recompute ``total_spent`` and ``last_visit`` from invoices and bookings."""
    customer = get_customer_or_404(customer_id)

    spent = (
        db.session.query(func.sum(Invoice.paid_amount))
        .join(Booking, Invoice.booking_id == Booking.booking_id)
        .filter(Booking.customer_id == customer_id, Invoice.payment_status == "paid")
        .scalar()
    )
    last_visit = (
        db.session.query(func.max(Booking.booking_date))
        .filter(Booking.customer_id == customer_id, Booking.status == "completed")
        .scalar()
    )

    customer.total_spent = to_cents(spent or Decimal("0"))
    customer.last_visit = last_visit
    db.session.commit()
    current_app.logger.debug("Customer %s aggregates: spent %s, last visit %s", customer_id, spent, last_visit)
    return customer
