"""Tests for staff management."""
from __future__ import annotations

from datetime import date, time

import pytest

from app.errors import ConflictError, ValidationError
from app.extensions import db
from app.models import JobCard, Staff, User
from app.services import booking_service, job_card_service, staff_service


def _staff_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "username": "vikram",
        "email": "vikram@studio.test",
        "password": "polish123",
        "first_name": "Vikram",
        "last_name": "Shetty",
        "phone": "9811122233",
        "position": "technician",
        "hire_date": "2024-06-01",
        "salary": 28000,
    }
    payload.update(overrides)
    return payload


def test_create_staff_with_login(client, admin_headers) -> None:
    response = client.post("/api/staff", json=_staff_payload(), headers=admin_headers)

    assert response.status_code == 201
    staff = response.get_json()["staff"]
    assert staff["role"] == "technician"
    assert staff["salary"] == 28000.0

    login = client.post("/api/auth/login", json={"username": "vikram", "password": "polish123"})
    assert login.status_code == 200


def test_duplicate_username_conflicts(client, admin_headers) -> None:
    client.post("/api/staff", json=_staff_payload(), headers=admin_headers)

    response = client.post(
        "/api/staff",
        json=_staff_payload(email="other@studio.test", phone="9811100000"),
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert User.query.filter_by(username="vikram").count() == 1


def test_short_password_rejected(client, admin_headers) -> None:
    response = client.post("/api/staff", json=_staff_payload(password="abc"), headers=admin_headers)

    assert response.status_code == 400


def test_explicit_role_overrides_position(app) -> None:
    staff = staff_service.create_staff(
        username="meena",
        email="meena@studio.test",
        password="secret99",
        first_name="Meena",
        last_name="K",
        phone="9822233344",
        position="technician",
        role="manager",
        hire_date=date(2023, 2, 1),
    )

    assert staff.position == "technician"
    assert staff.user.role == "manager"


def test_create_staff_requires_manager(client, auth_headers) -> None:
    response = client.post("/api/staff", json=_staff_payload(), headers=auth_headers("customer_service"))

    assert response.status_code == 403


def test_position_change_updates_role(client, admin_headers, make_staff) -> None:
    staff = make_staff("technician")

    response = client.put(f"/api/staff/{staff.staff_id}", json={"position": "manager"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.get_json()["staff"]["role"] == "manager"
    assert db.session.get(User, staff.user_id).role == "manager"


def test_deactivating_staff_blocks_login(client, admin_headers, make_staff) -> None:
    staff = make_staff("technician")

    client.put(f"/api/staff/{staff.staff_id}", json={"is_active": False}, headers=admin_headers)

    login = client.post("/api/auth/login", json={"username": staff.user.username, "password": "secret123"})
    assert login.get_json()["error"] == "account_inactive"


def test_update_phone_conflict(make_staff) -> None:
    first = make_staff("technician")
    second = make_staff("technician")

    with pytest.raises(ConflictError):
        staff_service.update_staff(second.staff_id, phone=first.phone)
    with pytest.raises(ValidationError):
        staff_service.update_staff(second.staff_id, password="nope")


def test_delete_staff_removes_job_cards_and_login(client, admin_headers, make_staff, catalog, customer) -> None:
    technician = make_staff("technician")
    booking = booking_service.create_booking(
        customer_id=customer.customer_id,
        vehicle_id=customer.vehicles[0].vehicle_id,
        booking_date=date(2025, 7, 1),
        booking_time=time(9, 0),
        line_items=[(catalog["vacuum"].service_id, 1)],
    )
    job_card_service.create_job_card(booking.booking_id, technician.staff_id)
    user_id = technician.user_id

    response = client.delete(f"/api/staff/{technician.staff_id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.get_json()["deleted_job_cards"] == 1
    assert db.session.get(Staff, technician.staff_id) is None
    assert db.session.get(User, user_id) is None
    assert JobCard.query.count() == 0
    assert booking_service.get_booking_or_404(booking.booking_id).status == "confirmed"


def test_list_staff_by_position(client, admin_headers, make_staff) -> None:
    technician = make_staff("technician")
    make_staff("manager")

    response = client.get("/api/staff?position=technician", headers=admin_headers)

    assert [member["id"] for member in response.get_json()["staff"]] == [technician.staff_id]
