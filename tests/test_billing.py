"""Tests for invoices, payments, refunds and Stripe card payments."""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from app.errors import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models import CardPayment, Customer, Invoice
from app.services import billing_service, booking_service


def _completed_booking(catalog, customer, *, booking_time: time = time(10, 0)):
    booking = booking_service.create_booking(
        customer_id=customer.customer_id,
        vehicle_id=customer.vehicles[0].vehicle_id,
        booking_date=date(2025, 3, 10),
        booking_time=booking_time,
        line_items=[(catalog["foam_wash"].service_id, 1), (catalog["vacuum"].service_id, 2)],
    )
    booking_service.transition_status(booking.booking_id, "in_progress")
    return booking_service.transition_status(booking.booking_id, "completed")


@pytest.fixture
def completed_booking(catalog, customer):
    return _completed_booking(catalog, customer)


@pytest.fixture
def invoice(completed_booking) -> Invoice:
    return billing_service.generate_invoice(completed_booking.booking_id)


@pytest.fixture
def stripe_mock():
    """Mock Stripe API calls."""
    with patch("app.services.billing_service.stripe") as mock_stripe:
        mock_intent = MagicMock()
        mock_intent.id = "pi_test123"
        mock_intent.client_secret = "pi_test123_secret_abc"
        mock_intent.status = "succeeded"
        mock_intent.amount = 129800
        mock_intent.metadata = {"invoice_id": "1"}

        mock_stripe.PaymentIntent.create.return_value = mock_intent
        mock_stripe.PaymentIntent.retrieve.return_value = mock_intent
        mock_stripe.StripeError = Exception

        yield mock_stripe


def test_generate_invoice_applies_tax(client, auth_headers, completed_booking) -> None:
    response = client.post(
        "/api/billing/generate-invoice",
        json={"booking_id": completed_booking.booking_id},
        headers=auth_headers("customer_service"),
    )

    assert response.status_code == 201
    body = response.get_json()["invoice"]
    assert body["invoice_number"] == "INV-001"
    assert body["subtotal"] == 1100.0
    assert body["tax_amount"] == 198.0
    assert body["total_amount"] == 1298.0
    assert body["payment_status"] == "pending"
    assert body["paid_amount"] == 0.0


def test_invoice_requires_completed_booking(catalog, customer) -> None:
    booking = booking_service.create_booking(
        customer_id=customer.customer_id,
        vehicle_id=customer.vehicles[0].vehicle_id,
        booking_date=date(2025, 3, 12),
        booking_time=time(9, 0),
        line_items=[(catalog["vacuum"].service_id, 1)],
    )

    with pytest.raises(ValidationError):
        billing_service.generate_invoice(booking.booking_id)
    with pytest.raises(NotFoundError):
        billing_service.generate_invoice(9999)


def test_one_invoice_per_booking(client, admin_headers, invoice, completed_booking) -> None:
    response = client.post("/api/billing", json={"booking_id": completed_booking.booking_id}, headers=admin_headers)

    assert response.status_code == 409
    assert Invoice.query.count() == 1


def test_invoice_numbers_are_sequential(catalog, customer, invoice) -> None:
    second = _completed_booking(catalog, customer, booking_time=time(11, 0))
    third = _completed_booking(catalog, customer, booking_time=time(12, 0))

    numbers = [
        invoice.invoice_number,
        billing_service.generate_invoice(second.booking_id).invoice_number,
        billing_service.generate_invoice(third.booking_id).invoice_number,
    ]
    assert numbers == ["INV-001", "INV-002", "INV-003"]


def test_discount_reduces_total(completed_booking) -> None:
    invoice = billing_service.generate_invoice(completed_booking.booking_id, Decimal("98"))

    assert invoice.total_amount == Decimal("1200.00")


def test_discount_above_amount_rejected(completed_booking) -> None:
    with pytest.raises(ValidationError):
        billing_service.generate_invoice(completed_booking.booking_id, Decimal("1298.01"))


def test_partial_then_full_payment(client, admin_headers, invoice, customer) -> None:
    partial = client.put(
        f"/api/billing/{invoice.invoice_id}/payment",
        json={"paid_amount": 650, "payment_method": "upi"},
        headers=admin_headers,
    )
    assert partial.status_code == 200
    assert partial.get_json()["invoice"]["payment_status"] == "partial"
    assert partial.get_json()["invoice"]["outstanding_amount"] == 648.0

    full = client.put(
        f"/api/billing/{invoice.invoice_id}/payment",
        json={"paid_amount": 1298, "payment_method": "cash"},
        headers=admin_headers,
    )
    body = full.get_json()["invoice"]
    assert body["payment_status"] == "paid"
    assert body["paid_amount"] == 1298.0
    assert body["payment_method"] == "cash"

    refreshed = db.session.get(Customer, customer.customer_id)
    assert refreshed.total_spent == Decimal("1298.00")
    assert refreshed.last_visit == date(2025, 3, 10)


def test_overpayment_rejected(client, admin_headers, invoice) -> None:
    response = client.put(
        f"/api/billing/{invoice.invoice_id}/payment",
        json={"paid_amount": 1300, "payment_method": "card"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "overpayment"
    assert db.session.get(Invoice, invoice.invoice_id).payment_status == "pending"


def test_unknown_payment_method_rejected(client, admin_headers, invoice) -> None:
    response = client.put(
        f"/api/billing/{invoice.invoice_id}/payment",
        json={"paid_amount": 100, "payment_method": "cheque"},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_payment_requires_billing_role(client, auth_headers, invoice) -> None:
    response = client.put(
        f"/api/billing/{invoice.invoice_id}/payment",
        json={"paid_amount": 100, "payment_method": "cash"},
        headers=auth_headers("technician"),
    )

    assert response.status_code == 403


class TestAccumulatingPayments:
    @pytest.fixture
    def app_config(self, app_config):
        return {**app_config, "BILLING_ACCUMULATE_PAYMENTS": True}

    def test_amounts_add_up(self, invoice) -> None:
        billing_service.record_payment(invoice.invoice_id, Decimal("650"), "upi")
        result = billing_service.record_payment(invoice.invoice_id, Decimal("648"), "cash")

        assert result.paid_amount == Decimal("1298.00")
        assert result.payment_status == "paid"

    def test_running_total_cannot_exceed(self, invoice) -> None:
        billing_service.record_payment(invoice.invoice_id, Decimal("1000"), "upi")

        with pytest.raises(ValidationError):
            billing_service.record_payment(invoice.invoice_id, Decimal("300"), "upi")


def test_refund_paid_invoice(client, admin_headers, invoice, customer) -> None:
    billing_service.record_payment(invoice.invoice_id, Decimal("1298"), "card")

    response = client.put(f"/api/billing/{invoice.invoice_id}/refund", json={"notes": "Paint issue"}, headers=admin_headers)

    assert response.status_code == 200
    body = response.get_json()["invoice"]
    assert body["payment_status"] == "refunded"
    assert body["outstanding_amount"] == 0.0
    assert db.session.get(Customer, customer.customer_id).total_spent == Decimal("0.00")


def test_refund_requires_payment(invoice) -> None:
    with pytest.raises(ValidationError):
        billing_service.refund_invoice(invoice.invoice_id)


def test_refunded_invoice_rejects_payments(invoice) -> None:
    billing_service.record_payment(invoice.invoice_id, Decimal("500"), "cash")
    billing_service.refund_invoice(invoice.invoice_id)

    with pytest.raises(ValidationError):
        billing_service.record_payment(invoice.invoice_id, Decimal("1298"), "cash")


def test_outstanding_list_and_stats(client, admin_headers, invoice) -> None:
    billing_service.record_payment(invoice.invoice_id, Decimal("650"), "upi")

    outstanding = client.get("/api/billing/outstanding/list", headers=admin_headers).get_json()["invoices"]
    stats = client.get("/api/billing/stats/overview", headers=admin_headers).get_json()["stats"]

    assert [row["outstanding_amount"] for row in outstanding] == [648.0]
    assert stats["total_invoices"] == 1
    assert stats["total_billed"] == 1298.0
    assert stats["total_paid"] == 650.0
    assert stats["total_outstanding"] == 648.0
    assert stats["by_status"]["partial"] == 1
    assert {row["payment_method"]: row["amount"] for row in stats["by_method"]}["upi"] == 650.0


def test_list_and_get_invoice(client, admin_headers, invoice) -> None:
    listing = client.get("/api/billing?search=INV-001", headers=admin_headers).get_json()
    detail = client.get(f"/api/billing/{invoice.invoice_id}", headers=admin_headers).get_json()["invoice"]

    assert listing["pagination"]["total_items"] == 1
    assert detail["customer_name"] == "Asha Rao"
    assert [line["service_name"] for line in detail["services"]] == ["Exterior Foam Wash", "Interior Vacuum"]


def test_create_payment_intent_for_outstanding(client, admin_headers, invoice, stripe_mock) -> None:
    billing_service.record_payment(invoice.invoice_id, Decimal("298"), "cash")

    response = client.post(f"/api/billing/{invoice.invoice_id}/payment-intent", headers=admin_headers)

    assert response.status_code == 200
    assert response.get_json()["client_secret"] == "pi_test123_secret_abc"
    kwargs = stripe_mock.PaymentIntent.create.call_args.kwargs
    assert kwargs["amount"] == 100000
    assert kwargs["currency"] == "inr"
    assert kwargs["metadata"]["invoice_id"] == str(invoice.invoice_id)


def test_payment_intent_without_stripe_key(app, client, admin_headers, invoice) -> None:
    app.config["STRIPE_SECRET_KEY"] = None

    response = client.post(f"/api/billing/{invoice.invoice_id}/payment-intent", headers=admin_headers)

    assert response.status_code == 502
    assert response.get_json()["error"] == "payments_unavailable"


def test_stripe_error_is_reported(client, admin_headers, invoice, stripe_mock) -> None:
    stripe_mock.PaymentIntent.create.side_effect = Exception("card network down")

    response = client.post(f"/api/billing/{invoice.invoice_id}/payment-intent", headers=admin_headers)

    assert response.status_code == 502
    assert response.get_json()["error"] == "payment_error"


def test_confirm_card_payment_is_idempotent(client, admin_headers, invoice, stripe_mock) -> None:
    stripe_mock.PaymentIntent.retrieve.return_value.metadata = {"invoice_id": str(invoice.invoice_id)}
    url = f"/api/billing/{invoice.invoice_id}/confirm-card-payment"

    first = client.post(url, json={"payment_intent_id": "pi_test123"}, headers=admin_headers)
    second = client.post(url, json={"payment_intent_id": "pi_test123"}, headers=admin_headers)

    assert first.status_code == 200
    assert first.get_json()["status"] == "ok"
    assert first.get_json()["invoice"]["payment_status"] == "paid"
    assert first.get_json()["invoice"]["payment_method"] == "card"
    assert second.get_json()["invoice"]["paid_amount"] == 1298.0
    assert stripe_mock.PaymentIntent.retrieve.call_count == 1


def test_confirm_card_payment_pending_intent(client, admin_headers, invoice, stripe_mock) -> None:
    stripe_mock.PaymentIntent.retrieve.return_value.status = "processing"

    response = client.post(
        f"/api/billing/{invoice.invoice_id}/confirm-card-payment",
        json={"payment_intent_id": "pi_test123"},
        headers=admin_headers,
    )

    assert response.get_json()["status"] == "processing"
    assert db.session.get(Invoice, invoice.invoice_id).paid_amount == Decimal("0.00")


def test_confirm_card_payment_for_other_invoice_rejected(invoice, stripe_mock) -> None:
    stripe_mock.PaymentIntent.retrieve.return_value.metadata = {"invoice_id": "777"}

    with pytest.raises(ValidationError):
        billing_service.confirm_card_payment(invoice.invoice_id, "pi_test123")


def test_gateway_id_unique_across_invoices(catalog, customer, invoice, stripe_mock) -> None:
    stripe_mock.PaymentIntent.retrieve.return_value.metadata = {"invoice_id": str(invoice.invoice_id)}
    billing_service.confirm_card_payment(invoice.invoice_id, "pi_test123")

    other = billing_service.generate_invoice(_completed_booking(catalog, customer, booking_time=time(15, 0)).booking_id)
    stripe_mock.PaymentIntent.retrieve.return_value.metadata = {"invoice_id": str(other.invoice_id)}

    with pytest.raises(ConflictError):
        billing_service.confirm_card_payment(other.invoice_id, "pi_test123")


def test_separate_intents_each_count_once(client, admin_headers, invoice, stripe_mock) -> None:
    intents = {}
    for intent_id in ("pi_A", "pi_B"):
        intent = MagicMock()
        intent.id = intent_id
        intent.status = "succeeded"
        intent.amount = 30000
        intent.metadata = {"invoice_id": str(invoice.invoice_id)}
        intents[intent_id] = intent
    stripe_mock.PaymentIntent.retrieve.side_effect = intents.__getitem__
    url = f"/api/billing/{invoice.invoice_id}/confirm-card-payment"

    for intent_id in ("pi_A", "pi_B", "pi_A"):
        response = client.post(url, json={"payment_intent_id": intent_id}, headers=admin_headers)
        assert response.status_code == 200

    body = response.get_json()["invoice"]
    assert body["paid_amount"] == 600.0
    assert body["payment_status"] == "partial"
    assert [row.gateway_payment_id for row in CardPayment.query.order_by(CardPayment.card_payment_id)] == [
        "pi_A",
        "pi_B",
    ]
    assert stripe_mock.PaymentIntent.retrieve.call_count == 2


def test_list_invoices_by_billing_date(client, admin_headers, catalog, customer, invoice) -> None:
    later = billing_service.generate_invoice(_completed_booking(catalog, customer, booking_time=time(15, 0)).booking_id)
    invoice.billing_date = datetime(2025, 3, 10, 15, 0)
    later.billing_date = datetime(2025, 3, 12, 9, 0)
    db.session.commit()

    since = client.get("/api/billing?date_from=2025-03-11", headers=admin_headers).get_json()["invoices"]
    until = client.get("/api/billing?date_to=2025-03-10", headers=admin_headers).get_json()["invoices"]
    bad = client.get("/api/billing?date_from=03/11/2025", headers=admin_headers)

    assert [row["invoice_number"] for row in since] == ["INV-002"]
    assert [row["invoice_number"] for row in until] == ["INV-001"]
    assert bad.status_code == 400
