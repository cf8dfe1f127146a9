"""Booking routes under /api/bookings."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .auth import login_required, roles_required
from .schemas import (BookingCancel, BookingCreate, BookingStatusUpdate,
                      BookingUpdate, PublicBookingCreate, parse_body,
                      parse_date)
from .services import booking_service

bp_bookings = Blueprint("bookings", __name__, url_prefix="/api/bookings")


@bp_bookings.get("")
@login_required
def list_bookings() -> tuple[dict[str, object], int]:
    """List bookings, newest first.
    ---
    tags:
      - Bookings
    security:
      - Bearer: []
    parameters:
      - in: query
        name: status
        type: string
        enum: [pending, confirmed, in_progress, completed, cancelled]
      - in: query
        name: date
        type: string
        format: date
      - in: query
        name: customer_id
        type: integer
      - in: query
        name: search
        type: string
        description: Matches customer name, phone or vehicle number
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
    responses:
      200:
        description: Paginated bookings with line items
      401:
        description: Authentication required
    """
    raw_date = request.args.get("date")
    result = booking_service.list_bookings(
        status=request.args.get("status") or None,
        booking_date=parse_date(raw_date) if raw_date else None,
        customer_id=request.args.get("customer_id", type=int),
        search=request.args.get("search") or None,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return jsonify(result), 200


@bp_bookings.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int) -> tuple[dict[str, object], int]:
    booking = booking_service.get_booking_or_404(booking_id)
    return jsonify({"booking": booking.to_dict(include_details=True)}), 200


@bp_bookings.post("")
@roles_required("admin", "manager")
def create_booking() -> tuple[dict[str, object], int]:
    """Create a confirmed booking for an existing customer and vehicle.
    ---
    tags:
      - Bookings
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [customer_id, vehicle_id, booking_date, booking_time, services]
          properties:
            customer_id:
              type: integer
            vehicle_id:
              type: integer
            booking_date:
              type: string
              format: date
            booking_time:
              type: string
              example: "10:30"
            services:
              type: array
              items:
                type: object
                properties:
                  service_id:
                    type: integer
                  quantity:
                    type: integer
            notes:
              type: string
    responses:
      201:
        description: Booking created; prices are captured from the catalog
      400:
        description: Empty or invalid services, or vehicle not owned by customer
      404:
        description: Customer not found
      409:
        description: Time slot already taken
    """
    payload = parse_body(BookingCreate)
    booking = booking_service.create_booking(
        customer_id=payload.customer_id,
        vehicle_id=payload.vehicle_id,
        booking_date=payload.booking_date,
        booking_time=payload.booking_time,
        line_items=[(item.service_id, item.quantity) for item in payload.services],
        notes=payload.notes,
    )
    return jsonify({"message": "Booking created successfully", "booking": booking.to_dict()}), 201


@bp_bookings.post("/public")
def create_public_booking() -> tuple[dict[str, object], int]:
    """Public booking form; no authentication, booking starts as pending."""
    payload = parse_body(PublicBookingCreate)
    booking = booking_service.create_public_booking(
        name=payload.name,
        phone=payload.phone,
        email=payload.email,
        booking_date=payload.date,
        booking_time=payload.time,
        service_ids=payload.all_service_ids(),
        vehicle_number=payload.vehicle_number,
        vehicle_type=payload.vehicle_type,
        vehicle_brand=payload.vehicle_brand,
        vehicle_model=payload.vehicle_model,
        vehicle_color=payload.vehicle_color,
        vehicle_year=payload.vehicle_year,
        notes=payload.notes,
    )
    return (
        jsonify({"message": "Booking created successfully", "booking_id": booking.booking_id, "booking": booking.to_dict()}),
        201,
    )


@bp_bookings.put("/<int:booking_id>")
@roles_required("admin", "manager")
def update_booking(booking_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(BookingUpdate)
    booking = booking_service.update_booking(
        booking_id,
        customer_id=payload.customer_id,
        vehicle_id=payload.vehicle_id,
        booking_date=payload.booking_date,
        booking_time=payload.booking_time,
        line_items=(
            [(item.service_id, item.quantity) for item in payload.services] if payload.services is not None else None
        ),
        notes=payload.notes,
    )
    return jsonify({"message": "Booking updated successfully", "booking": booking.to_dict()}), 200


@bp_bookings.put("/<int:booking_id>/status")
@roles_required("admin", "manager")
def update_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    """Move a booking along its status graph.
    ---
    tags:
      - Bookings
    parameters:
      - in: path
        name: booking_id
        required: true
        schema:
          type: integer
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [pending, confirmed, in_progress, completed, cancelled]
            notes:
              type: string
    responses:
      200:
        description: Booking status updated
      400:
        description: Unknown status or illegal transition
      404:
        description: Booking not found
    """
    payload = parse_body(BookingStatusUpdate)
    booking = booking_service.transition_status(booking_id, payload.status, payload.notes)
    return jsonify({"message": "Booking status updated successfully", "booking": booking.to_dict()}), 200


@bp_bookings.put("/<int:booking_id>/cancel")
@roles_required("admin", "manager", "customer_service")
def cancel_booking(booking_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(BookingCancel)
    booking = booking_service.cancel_booking(booking_id, payload.reason)
    return jsonify({"message": "Booking cancelled successfully", "booking": booking.to_dict()}), 200


@bp_bookings.get("/available-slots/<slot_date>")
@login_required
def available_slots(slot_date: str) -> tuple[dict[str, object], int]:
    on_date = parse_date(slot_date)
    return jsonify({"date": on_date.isoformat(), "slots": booking_service.available_slots(on_date)}), 200


@bp_bookings.get("/stats/overview")
@login_required
def booking_stats() -> tuple[dict[str, object], int]:
    return jsonify({"stats": booking_service.booking_stats()}), 200
