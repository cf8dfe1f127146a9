"""Tests for customers and their vehicles."""
from __future__ import annotations

from datetime import date, time

import pytest

from app.errors import ConflictError
from app.models import Booking, Customer, Vehicle
from app.services import booking_service, customer_service


def test_create_customer_with_vehicles(client, auth_headers) -> None:
    payload = {
        "first_name": "Farah",
        "last_name": "Khan",
        "phone": "9090909090",
        "email": "farah@example.com",
        "vehicles": [
            {"vehicle_number": "DL3CAB0001", "vehicle_type": "luxury", "brand": "BMW", "model": "X1"},
            {"vehicle_number": "DL3CAB0002", "vehicle_type": "hatchback"},
        ],
    }

    response = client.post("/api/customers", json=payload, headers=auth_headers("customer_service"))

    assert response.status_code == 201
    body = response.get_json()["customer"]
    assert body["name"] == "Farah Khan"
    assert body["total_spent"] == 0.0
    assert [vehicle["vehicle_number"] for vehicle in body["vehicles"]] == ["DL3CAB0001", "DL3CAB0002"]


def test_create_customer_invalid_vehicle_type(client, admin_headers) -> None:
    payload = {
        "first_name": "Farah",
        "last_name": "Khan",
        "phone": "9090909090",
        "vehicles": [{"vehicle_number": "DL3CAB0001", "vehicle_type": "tractor"}],
    }

    response = client.post("/api/customers", json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert Customer.query.count() == 0


def test_duplicate_email_conflicts(customer) -> None:
    with pytest.raises(ConflictError):
        customer_service.create_customer(first_name="A", last_name="B", phone="9111111111", email="ASHA@example.com")


def test_vehicle_number_is_unique(client, admin_headers, customer) -> None:
    response = client.post(
        f"/api/customers/{customer.customer_id}/vehicles",
        json={"vehicle_number": "KA01AB1234", "vehicle_type": "suv"},
        headers=admin_headers,
    )

    assert response.status_code == 409


def test_add_and_list_vehicles(client, admin_headers, customer) -> None:
    created = client.post(
        f"/api/customers/{customer.customer_id}/vehicles",
        json={"vehicle_number": "KA05MN7777", "vehicle_type": "suv", "year": 2022},
        headers=admin_headers,
    )
    listing = client.get(f"/api/customers/{customer.customer_id}/vehicles", headers=admin_headers)

    assert created.status_code == 201
    assert [vehicle["vehicle_number"] for vehicle in listing.get_json()["vehicles"]] == ["KA01AB1234", "KA05MN7777"]


def test_update_customer(client, admin_headers, customer) -> None:
    response = client.put(
        f"/api/customers/{customer.customer_id}", json={"city": "Bengaluru", "pincode": "560001"}, headers=admin_headers
    )

    assert response.status_code == 200
    body = response.get_json()["customer"]
    assert (body["city"], body["pincode"], body["phone"]) == ("Bengaluru", "560001", "9876543210")


def test_update_rejects_aggregates(client, admin_headers, customer) -> None:
    response = client.put(f"/api/customers/{customer.customer_id}", json={"total_spent": 1}, headers=admin_headers)

    assert response.status_code == 400


def test_search_and_pagination(client, admin_headers, customer) -> None:
    customer_service.create_customer(first_name="Rohan", last_name="Das", phone="9555512345")

    response = client.get("/api/customers?search=98765&limit=5", headers=admin_headers)

    body = response.get_json()
    assert [row["name"] for row in body["customers"]] == ["Asha Rao"]
    assert body["pagination"] == {"current_page": 1, "total_pages": 1, "total_items": 1, "items_per_page": 5}


def test_get_customer_includes_bookings(client, admin_headers, catalog, customer) -> None:
    booking_service.create_booking(
        customer_id=customer.customer_id,
        vehicle_id=customer.vehicles[0].vehicle_id,
        booking_date=date(2025, 8, 1),
        booking_time=time(13, 0),
        line_items=[(catalog["vacuum"].service_id, 1)],
    )

    response = client.get(f"/api/customers/{customer.customer_id}", headers=admin_headers)

    body = response.get_json()["customer"]
    assert len(body["vehicles"]) == 1
    assert body["bookings"][0]["total_amount"] == 300.0


def test_delete_customer_cascades(client, auth_headers, catalog, customer) -> None:
    booking_service.create_booking(
        customer_id=customer.customer_id,
        vehicle_id=customer.vehicles[0].vehicle_id,
        booking_date=date(2025, 8, 1),
        booking_time=time(13, 0),
        line_items=[(catalog["vacuum"].service_id, 1)],
    )

    forbidden = client.delete(f"/api/customers/{customer.customer_id}", headers=auth_headers("customer_service"))
    deleted = client.delete(f"/api/customers/{customer.customer_id}", headers=auth_headers("manager"))

    assert forbidden.status_code == 403
    assert deleted.status_code == 200
    assert Customer.query.count() == 0
    assert Vehicle.query.count() == 0
    assert Booking.query.count() == 0


@pytest.mark.parametrize(
    "method, path, payload",
    [
        ("post", "/api/customers", {"first_name": "Tej", "last_name": "Rao", "phone": "9000022222"}),
        ("put", "/api/customers/{customer_id}", {"city": "Mysuru"}),
        ("post", "/api/customers/{customer_id}/vehicles", {"vehicle_number": "KA09ZZ0009", "vehicle_type": "suv"}),
    ],
)
def test_technician_cannot_change_customers(client, auth_headers, customer, method, path, payload) -> None:
    url = path.format(customer_id=customer.customer_id)

    response = getattr(client, method)(url, json=payload, headers=auth_headers("technician"))

    assert response.status_code == 403
    assert Customer.query.count() == 1
    assert Vehicle.query.count() == 1
    assert Customer.query.one().city is None


def test_missing_customer_404(client, admin_headers) -> None:
    response = client.get("/api/customers/404", headers=admin_headers)

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"
