"""Booking lifecycle: creation, edits, status machine and slot lookups."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Sequence

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import BOOKING_STATUSES, Booking, BookingService, Customer, Service, Vehicle
from . import append_note, page_params, pagination, to_cents
from . import events

OPEN_STATUSES = ("pending", "confirmed", "in_progress")
TERMINAL_STATUSES = ("completed", "cancelled")

# Forward-only graph; completed and cancelled have no exits.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

OPENING_TIME = time(9, 0)
CLOSING_TIME = time(19, 0)
SLOT_MINUTES = 30


def _slot_time(value: time) -> time:
    return value.replace(second=0, microsecond=0, tzinfo=None)


def get_booking_or_404(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _resolve_line_items(line_items: Sequence[tuple[int, int]]) -> list[BookingService]:
    """Price each ``(service_id, quantity)`` pair from the current catalog."""
    if not line_items:
        raise ValidationError("Please select at least one service")

    for _, quantity in line_items:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

    service_ids = {service_id for service_id, _ in line_items}
    services = {
        service.service_id: service
        for service in Service.query.filter(Service.service_id.in_(service_ids), Service.is_active.is_(True))
    }
    invalid = sorted(service_ids - services.keys())
    if invalid:
        raise ValidationError(
            f"Invalid or inactive services: {', '.join(str(service_id) for service_id in invalid)}",
            details={"service_ids": invalid},
        )

    return [
        BookingService(service_id=service_id, quantity=quantity, price=services[service_id].base_price)
        for service_id, quantity in line_items
    ]


def _total(line_items: Iterable[BookingService]) -> Decimal:
    return to_cents(sum((item.line_total for item in line_items), Decimal("0")))


def _ensure_slot_free(booking_date: date, booking_time: time, *, exclude_booking_id: int | None = None) -> None:
    query = Booking.query.filter(
        Booking.booking_date == booking_date,
        Booking.booking_time == _slot_time(booking_time),
        Booking.status.in_(OPEN_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.booking_id != exclude_booking_id)
    if db.session.query(query.exists()).scalar():
        raise ConflictError("Booking time slot is not available", code="slot_unavailable")


def _ensure_vehicle_owned(customer_id: int, vehicle_id: int) -> None:
    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError("Customer not found")
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None or vehicle.customer_id != customer_id:
        raise ValidationError("Vehicle not found or does not belong to the selected customer")


def _publish_status_events(booking: Booking) -> None:
    if booking.status == "confirmed":
        events.publish(events.BOOKING_CONFIRMED, booking_id=booking.booking_id)
    elif booking.status == "completed":
        events.publish(
            events.BOOKING_COMPLETED, booking_id=booking.booking_id, customer_id=booking.customer_id
        )


def create_booking(
    *,
    customer_id: int,
    vehicle_id: int,
    booking_date: date,
    booking_time: time,
    line_items: Sequence[tuple[int, int]],
    notes: str | None = None,
    status: str = "confirmed",
) -> Booking:
    """Create a booking with priced line items in one transaction.

    Prices are copied from the catalog so later price edits never change an
    existing booking.
    """
    items = _resolve_line_items(line_items)
    _ensure_vehicle_owned(customer_id, vehicle_id)
    _ensure_slot_free(booking_date, booking_time)

    booking = Booking(
        customer_id=customer_id,
        vehicle_id=vehicle_id,
        booking_date=booking_date,
        booking_time=_slot_time(booking_time),
        status=status,
        notes=notes,
        line_items=items,
        total_amount=_total(items),
    )
    db.session.add(booking)
    db.session.commit()

    current_app.logger.info(
        "Booking %s created for customer %s (%s, total %s)",
        booking.booking_id,
        customer_id,
        status,
        booking.total_amount,
    )
    _publish_status_events(booking)
    return booking


def create_public_booking(
    *,
    name: str,
    phone: str,
    booking_date: date,
    booking_time: time,
    service_ids: Sequence[int],
    vehicle_number: str,
    vehicle_type: str,
    vehicle_brand: str | None = None,
    vehicle_model: str | None = None,
    vehicle_color: str | None = None,
    vehicle_year: int | None = None,
    email: str | None = None,
    notes: str | None = None,
) -> Booking:
    """Walk-in intake from the public portal; the booking starts ``pending``."""
    items = _resolve_line_items([(service_id, 1) for service_id in service_ids])
    _ensure_slot_free(booking_date, booking_time)

    customer = Customer.query.filter_by(phone=phone).first()
    vehicle = Vehicle.query.filter_by(vehicle_number=vehicle_number).first()
    if vehicle is not None and (customer is None or vehicle.customer_id != customer.customer_id):
        raise ValidationError("Vehicle number already registered with another customer")

    if customer is None:
        first_name, _, last_name = name.strip().partition(" ")
        customer = Customer(
            first_name=first_name,
            last_name=last_name.strip() or "-",
            phone=phone,
            email=email or None,
        )
        db.session.add(customer)
        db.session.flush()
        current_app.logger.info("Created customer %s from public booking", customer.customer_id)

    if vehicle is None:
        vehicle = Vehicle(
            customer=customer,
            vehicle_number=vehicle_number,
            vehicle_type=vehicle_type,
            brand=vehicle_brand,
            model=vehicle_model,
            color=vehicle_color,
            year=vehicle_year,
        )
        db.session.add(vehicle)

    booking = Booking(
        customer=customer,
        vehicle=vehicle,
        booking_date=booking_date,
        booking_time=_slot_time(booking_time),
        status="pending",
        notes=notes,
        line_items=items,
        total_amount=_total(items),
    )
    db.session.add(booking)
    db.session.commit()

    current_app.logger.info("Public booking %s received for %s", booking.booking_id, phone)
    return booking


def update_booking(
    booking_id: int,
    *,
    customer_id: int | None = None,
    vehicle_id: int | None = None,
    booking_date: date | None = None,
    booking_time: time | None = None,
    line_items: Sequence[tuple[int, int]] | None = None,
    notes: str | None = None,
) -> Booking:
    """Edit an open booking. Replacing line items reprices them from scratch."""
    booking = get_booking_or_404(booking_id)
    if booking.status in TERMINAL_STATUSES:
        raise ValidationError(f"Cannot edit a {booking.status} booking", code="invalid_transition")

    items = _resolve_line_items(line_items) if line_items is not None else None

    new_customer_id = customer_id if customer_id is not None else booking.customer_id
    new_vehicle_id = vehicle_id if vehicle_id is not None else booking.vehicle_id
    if customer_id is not None or vehicle_id is not None:
        _ensure_vehicle_owned(new_customer_id, new_vehicle_id)

    new_date = booking_date or booking.booking_date
    new_time = booking_time or booking.booking_time
    if booking_date is not None or booking_time is not None:
        _ensure_slot_free(new_date, new_time, exclude_booking_id=booking.booking_id)

    booking.customer_id = new_customer_id
    booking.vehicle_id = new_vehicle_id
    booking.booking_date = new_date
    booking.booking_time = _slot_time(new_time)
    if notes is not None:
        booking.notes = notes
    if items is not None:
        booking.line_items = items
        booking.total_amount = _total(items)

    db.session.commit()
    current_app.logger.info("Booking %s updated", booking.booking_id)
    return booking


def transition_status(booking_id: int, new_status: str, notes: str | None = None) -> Booking:
    if new_status not in BOOKING_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}", code="invalid_status")

    booking = get_booking_or_404(booking_id)
    old_status = booking.status

    if new_status == old_status:
        if notes:
            booking.notes = append_note(booking.notes, notes)
            db.session.commit()
        return booking

    if new_status not in ALLOWED_TRANSITIONS[old_status]:
        current_app.logger.warning("Rejected booking %s transition %s -> %s", booking_id, old_status, new_status)
        raise ValidationError(
            f"Cannot change booking status from {old_status} to {new_status}", code="invalid_transition"
        )

    booking.status = new_status
    booking.notes = append_note(booking.notes, notes)
    db.session.commit()

    current_app.logger.info("Booking %s status %s -> %s", booking_id, old_status, new_status)
    _publish_status_events(booking)
    return booking


def cancel_booking(booking_id: int, reason: str | None = None) -> Booking:
    booking = get_booking_or_404(booking_id)
    if booking.status == "cancelled":
        return booking
    note = f"Cancelled: {reason}" if reason else None
    return transition_status(booking_id, "cancelled", note)


def advance_to_completed(booking_id: int) -> Booking:
    """Walk an open booking forward through legal transitions to ``completed``."""
    booking = get_booking_or_404(booking_id)
    if booking.status == "cancelled":
        raise ValidationError("Cannot complete a cancelled booking", code="invalid_transition")

    path = ("pending", "confirmed", "in_progress", "completed")
    for status in path[path.index(booking.status) + 1:]:
        booking = transition_status(booking_id, status)
    return booking


def list_bookings(
    *,
    status: str | None = None,
    booking_date: date | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    page: int | None = 1,
    limit: int | None = 10,
) -> dict[str, object]:
    page, limit = page_params(page, limit)
    query = Booking.query.join(Customer, Booking.customer_id == Customer.customer_id).join(
        Vehicle, Booking.vehicle_id == Vehicle.vehicle_id
    )

    if status:
        query = query.filter(Booking.status == status)
    if booking_date:
        query = query.filter(Booking.booking_date == booking_date)
    if customer_id:
        query = query.filter(Booking.customer_id == customer_id)
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.phone.ilike(term),
                Vehicle.vehicle_number.ilike(term),
            )
        )

    total = query.count()
    bookings = (
        query.order_by(Booking.created_at.desc(), Booking.booking_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"bookings": [booking.to_dict() for booking in bookings], "pagination": pagination(page, limit, total)}


def available_slots(on_date: date) -> list[dict[str, object]]:
    held = {
        _slot_time(booking_time)
        for (booking_time,) in db.session.query(Booking.booking_time).filter(
            Booking.booking_date == on_date, Booking.status.in_(OPEN_STATUSES)
        )
    }

    slots = []
    current = datetime.combine(on_date, OPENING_TIME)
    closing = datetime.combine(on_date, CLOSING_TIME)
    while current < closing:
        slot = current.time()
        slots.append({"time": slot.strftime("%H:%M"), "available": slot not in held})
        current += timedelta(minutes=SLOT_MINUTES)
    return slots


def booking_stats(today: date | None = None) -> dict[str, object]:
    today = today or date.today()
    counts = dict(db.session.query(Booking.status, func.count(Booking.booking_id)).group_by(Booking.status).all())
    revenue, average = db.session.query(func.sum(Booking.total_amount), func.avg(Booking.total_amount)).one()
    today_count, today_revenue = (
        db.session.query(func.count(Booking.booking_id), func.sum(Booking.total_amount))
        .filter(Booking.booking_date == today)
        .one()
    )
    return {
        "total_bookings": sum(counts.values()),
        "by_status": {status: counts.get(status, 0) for status in BOOKING_STATUSES},
        "total_revenue": float(revenue or 0),
        "avg_booking_value": round(float(average or 0), 2),
        "today_bookings": today_count or 0,
        "today_revenue": float(today_revenue or 0),
    }
