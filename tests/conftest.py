"""pytest configuration, app fixtures and shared factories."""
from __future__ import annotations

import itertools
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from werkzeug.security import generate_password_hash  # noqa: E402

from app import create_app  # noqa: E402
from app.auth import build_token  # noqa: E402
from app.extensions import db  # noqa: E402
from app.models import Customer, Service, ServiceCategory, Staff, User, Vehicle  # noqa: E402

PASSWORD = "secret123"
_sequence = itertools.count(1)


@pytest.fixture
def app_config(tmp_path) -> dict[str, object]:
    """Override in a test module to switch on reconciliation flags."""
    return {
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "STRIPE_SECRET_KEY": "sk_test_dummy",
        "AUTO_CREATE_JOB_CARD": False,
        "AUTO_COMPLETE_BOOKING": False,
        "AUTO_GENERATE_INVOICE": False,
        "BILLING_ACCUMULATE_PAYMENTS": False,
    }


@pytest.fixture
def app(app_config):
    app = create_app(app_config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_staff(app):
    """Create a User + Staff pair; ``role`` doubles as position unless given."""

    def _make_staff(role: str = "admin", *, position: str | None = None, is_active: bool = True) -> Staff:
        n = next(_sequence)
        user = User(
            username=f"{role}{n}",
            email=f"{role}{n}@studio.test",
            password_hash=generate_password_hash(PASSWORD),
            role=role,
            is_active=is_active,
        )
        staff = Staff(
            user=user,
            first_name=role.replace("_", " ").title(),
            last_name=f"No{n}",
            email=user.email,
            phone=f"98{n:08d}",
            position=position or role,
            hire_date=date(2024, 1, 15),
            is_active=is_active,
        )
        db.session.add_all([user, staff])
        db.session.commit()
        return staff

    return _make_staff


@pytest.fixture
def auth_headers(make_staff):
    """Factory returning bearer headers for a fresh staff member (or a given one)."""

    def _auth_headers(role: str = "admin", staff: Staff | None = None) -> dict[str, str]:
        staff = staff or make_staff(role)
        token = build_token(staff.user_id, staff.user.role)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def admin_headers(auth_headers) -> dict[str, str]:
    return auth_headers("admin")


@pytest.fixture
def catalog(app) -> dict[str, Service]:
    """Two active services priced 500 and 300, plus one inactive."""
    category = ServiceCategory(name="Washing")
    services = {
        "foam_wash": Service(name="Exterior Foam Wash", category=category, base_price=Decimal("500.00"), duration_minutes=45),
        "vacuum": Service(name="Interior Vacuum", category=category, base_price=Decimal("300.00"), duration_minutes=30),
        "retired": Service(name="Retired Polish", category=category, base_price=Decimal("900.00"), is_active=False),
    }
    db.session.add(category)
    db.session.add_all(services.values())
    db.session.commit()
    return services


@pytest.fixture
def customer(app) -> Customer:
    customer = Customer(first_name="Asha", last_name="Rao", phone="9876543210", email="asha@example.com")
    customer.vehicles.append(Vehicle(vehicle_number="KA01AB1234", vehicle_type="sedan", brand="Honda", model="City"))
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def booking_payload(catalog, customer):
    """Payload for a booking totalling 1100 (500 x 1 + 300 x 2)."""

    def _payload(**overrides: object) -> dict[str, object]:
        payload: dict[str, object] = {
            "customer_id": customer.customer_id,
            "vehicle_id": customer.vehicles[0].vehicle_id,
            "booking_date": "2025-03-10",
            "booking_time": "10:00",
            "services": [
                {"service_id": catalog["foam_wash"].service_id, "quantity": 1},
                {"service_id": catalog["vacuum"].service_id, "quantity": 2},
            ],
        }
        payload.update(overrides)
        return payload

    return _payload
