"""Invoices generated from completed bookings, payments and refunds."""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import stripe
from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, PaymentGatewayError, ValidationError
from ..extensions import db
from ..models import PAYMENT_METHODS, PAYMENT_STATUSES, Booking, CardPayment, Customer, Invoice
from . import append_note, page_params, pagination, to_cents
from .customer_service import refresh_customer_aggregates

INVOICE_PREFIX = "INV-"
_INVOICE_NUMBER = re.compile(r"^INV-(\d+)$")
ZERO = Decimal("0.00")


def get_invoice_or_404(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def _tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("TAX_RATE", "0.18")))


def next_invoice_number() -> str:
    """``INV-001``, ``INV-002``, ... following the highest number issued."""
    highest = 0
    for (number,) in db.session.query(Invoice.invoice_number):
        match = _INVOICE_NUMBER.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{INVOICE_PREFIX}{highest + 1:03d}"


def _payment_status(paid: Decimal, total: Decimal) -> str:
    if paid >= total:
        return "paid"
    if paid > 0:
        return "partial"
    return "pending"


def generate_invoice(booking_id: int, discount_amount: Decimal | int | str = 0) -> Invoice:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if booking.status != "completed":
        raise ValidationError("Invoices can only be generated for completed bookings")
    if booking.invoice is not None:
        raise ConflictError("Invoice already exists for this booking")

    subtotal = to_cents(sum((item.line_total for item in booking.line_items), Decimal("0")))
    tax_amount = to_cents(subtotal * _tax_rate())
    discount = to_cents(discount_amount)
    if discount < 0 or discount > subtotal + tax_amount:
        raise ValidationError("Discount must be between 0 and the invoice amount")

    invoice = Invoice(
        booking_id=booking_id,
        invoice_number=next_invoice_number(),
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount,
        total_amount=subtotal + tax_amount - discount,
        payment_status="pending",
        paid_amount=ZERO,
    )
    db.session.add(invoice)
    db.session.commit()
    current_app.logger.info(
        "Invoice %s generated for booking %s (total %s)", invoice.invoice_number, booking_id, invoice.total_amount
    )
    return invoice


def _apply_payment(
    invoice: Invoice, new_paid: Decimal, method: str, notes: str | None, card_payment: CardPayment | None = None
) -> Invoice:
    total = Decimal(invoice.total_amount)
    if new_paid < 0:
        raise ValidationError("Paid amount cannot be negative")
    if new_paid > total:
        raise ValidationError(f"Paid amount {new_paid} exceeds invoice total {total}", code="overpayment")

    was_paid = invoice.payment_status == "paid"
    invoice.paid_amount = new_paid
    if card_payment is not None:
        invoice.card_payments.append(card_payment)
    invoice.payment_method = method
    invoice.payment_status = _payment_status(new_paid, total)
    invoice.notes = append_note(invoice.notes, notes)
    db.session.commit()

    current_app.logger.info(
        "Payment on %s: paid %s of %s via %s (%s)",
        invoice.invoice_number,
        invoice.paid_amount,
        invoice.total_amount,
        method,
        invoice.payment_status,
    )
    if invoice.payment_status == "paid" and not was_paid:
        refresh_customer_aggregates(invoice.booking.customer_id)
    return invoice


def record_payment(
    invoice_id: int, amount: Decimal | int | str, method: str, notes: str | None = None
) -> Invoice:
    """Record money received against an invoice.

    By default ``amount`` is the total paid to date and replaces the stored
    value. With ``BILLING_ACCUMULATE_PAYMENTS`` it is added to it instead.
    """
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    invoice = get_invoice_or_404(invoice_id)
    if invoice.payment_status == "refunded":
        raise ValidationError("Cannot record a payment on a refunded invoice", code="invalid_transition")

    amount = to_cents(amount)
    if current_app.config.get("BILLING_ACCUMULATE_PAYMENTS"):
        new_paid = Decimal(invoice.paid_amount) + amount
    else:
        new_paid = amount
    return _apply_payment(invoice, new_paid, method, notes)


def refund_invoice(invoice_id: int, notes: str | None = None) -> Invoice:
    invoice = get_invoice_or_404(invoice_id)
    if invoice.payment_status not in ("paid", "partial"):
        raise ValidationError(
            f"Cannot refund an invoice that is {invoice.payment_status}", code="invalid_transition"
        )

    invoice.payment_status = "refunded"
    invoice.notes = append_note(invoice.notes, notes or "Refunded")
    db.session.commit()
    current_app.logger.info("Invoice %s refunded (%s)", invoice.invoice_number, invoice.paid_amount)
    refresh_customer_aggregates(invoice.booking.customer_id)
    return invoice


# =============== STRIPE ==================
def _configure_stripe() -> None:
    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        current_app.logger.warning("Stripe secret key not configured")
        raise PaymentGatewayError("Payments are not currently available", code="payments_unavailable")
    stripe.api_key = stripe_key


def create_payment_intent(invoice_id: int) -> dict[str, object]:
    """Open a Stripe PaymentIntent for the invoice's outstanding balance."""
    invoice = get_invoice_or_404(invoice_id)
    outstanding = invoice.outstanding_amount
    if outstanding <= 0:
        raise ValidationError("Invoice has no outstanding balance")

    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.create(
            amount=int(outstanding * 100),
            currency=current_app.config.get("CURRENCY", "inr"),
            metadata={"invoice_id": str(invoice.invoice_id), "invoice_number": invoice.invoice_number},
        )
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe API error while creating payment intent", exc_info=exc)
        raise PaymentGatewayError("An error occurred while processing the payment") from exc

    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.id,
        "amount": float(outstanding),
    }


def confirm_card_payment(invoice_id: int, payment_intent_id: str) -> tuple[str, Invoice]:
    """Record a succeeded PaymentIntent as a card payment, once."""
    invoice = get_invoice_or_404(invoice_id)
    recorded = CardPayment.query.filter_by(gateway_payment_id=payment_intent_id).first()
    if recorded is not None:
        if recorded.invoice_id != invoice.invoice_id:
            raise ConflictError("Payment intent already recorded")
        return "ok", invoice

    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe API error while retrieving payment intent", exc_info=exc)
        raise PaymentGatewayError("Failed to retrieve payment intent") from exc

    if intent.status != "succeeded":
        return intent.status, invoice

    metadata = intent.metadata or {}
    if str(metadata.get("invoice_id", "")) != str(invoice.invoice_id):
        raise ValidationError("Payment intent does not belong to this invoice")
    if not intent.amount or intent.amount <= 0:
        raise ValidationError("Payment intent has invalid amount")
    if invoice.payment_status == "refunded":
        raise ValidationError("Cannot record a payment on a refunded invoice", code="invalid_transition")

    received = to_cents(Decimal(int(intent.amount)) / 100)
    try:
        _apply_payment(
            invoice,
            Decimal(invoice.paid_amount) + received,
            "card",
            f"Card payment {payment_intent_id}",
            card_payment=CardPayment(gateway_payment_id=payment_intent_id, amount=received),
        )
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Duplicate confirmation detected for payment_intent %s", payment_intent_id)
        existing = CardPayment.query.filter_by(gateway_payment_id=payment_intent_id).first()
        if existing is None or existing.invoice_id != invoice_id:
            raise ConflictError("Payment intent already recorded") from None
        return "ok", get_invoice_or_404(invoice_id)
    return "ok", invoice


# =============== QUERIES ==================
def list_invoices(
    *,
    payment_status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
    page: int | None = 1,
    limit: int | None = 10,
) -> dict[str, object]:
    page, limit = page_params(page, limit)
    query = Invoice.query.join(Booking, Invoice.booking_id == Booking.booking_id).join(
        Customer, Booking.customer_id == Customer.customer_id
    )
    if payment_status:
        query = query.filter(Invoice.payment_status == payment_status)
    # Whole days, inclusive at both ends
    if date_from:
        query = query.filter(Invoice.billing_date >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(Invoice.billing_date < datetime.combine(date_to + timedelta(days=1), time.min))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(term),
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.phone.ilike(term),
            )
        )

    total = query.count()
    invoices = (
        query.order_by(Invoice.billing_date.desc(), Invoice.invoice_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"invoices": [invoice.to_dict() for invoice in invoices], "pagination": pagination(page, limit, total)}


def list_outstanding() -> list[Invoice]:
    return (
        Invoice.query.filter(Invoice.payment_status.in_(("pending", "partial")))
        .order_by(Invoice.billing_date.asc(), Invoice.invoice_id.asc())
        .all()
    )


def stats() -> dict[str, object]:
    invoices = Invoice.query.all()
    billable = [invoice for invoice in invoices if invoice.payment_status != "refunded"]

    methods = dict(
        db.session.query(Invoice.payment_method, func.count(Invoice.invoice_id))
        .filter(Invoice.payment_method.isnot(None))
        .group_by(Invoice.payment_method)
        .all()
    )
    by_method = []
    for method in PAYMENT_METHODS:
        paid = sum(
            (Decimal(invoice.paid_amount) for invoice in billable if invoice.payment_method == method), Decimal("0")
        )
        by_method.append({"payment_method": method, "count": methods.get(method, 0), "amount": float(to_cents(paid))})

    return {
        "total_invoices": len(invoices),
        "total_billed": float(to_cents(sum((Decimal(i.total_amount) for i in billable), Decimal("0")))),
        "total_paid": float(to_cents(sum((Decimal(i.paid_amount) for i in billable), Decimal("0")))),
        "total_outstanding": float(to_cents(sum((i.outstanding_amount for i in billable), Decimal("0")))),
        "by_status": {
            status: sum(1 for invoice in invoices if invoice.payment_status == status) for status in PAYMENT_STATUSES
        },
        "by_method": by_method,
    }
