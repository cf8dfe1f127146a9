"""Billing routes under /api/billing."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .auth import login_required, roles_required
from .schemas import CardPaymentConfirm, InvoiceGenerate, PaymentRecord, RefundRequest, parse_body, parse_date
from .services import billing_service

bp_billing = Blueprint("billing", __name__, url_prefix="/api/billing")

BILLING_ROLES = ("admin", "manager", "customer_service")


@bp_billing.get("")
@login_required
def list_invoices() -> tuple[dict[str, object], int]:
    date_from = request.args.get("date_from")
    date_to = request.args.get("date_to")
    result = billing_service.list_invoices(
        payment_status=request.args.get("payment_status") or None,
        date_from=parse_date(date_from) if date_from else None,
        date_to=parse_date(date_to) if date_to else None,
        search=request.args.get("search") or None,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return jsonify(result), 200


@bp_billing.post("")
@bp_billing.post("/generate-invoice")
@roles_required(*BILLING_ROLES)
def generate_invoice() -> tuple[dict[str, object], int]:
    """Generate the invoice for a completed booking.
    ---
    tags:
      - Billing
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [booking_id]
          properties:
            booking_id:
              type: integer
            discount_amount:
              type: number
    responses:
      201:
        description: Invoice created with status pending
      400:
        description: Booking not completed or discount out of range
      404:
        description: Booking not found
      409:
        description: Booking already invoiced
    """
    payload = parse_body(InvoiceGenerate)
    invoice = billing_service.generate_invoice(payload.booking_id, payload.discount_amount)
    return jsonify({"message": "Invoice generated successfully", "invoice": invoice.to_dict()}), 201


@bp_billing.get("/<int:invoice_id>")
@login_required
def get_invoice(invoice_id: int) -> tuple[dict[str, object], int]:
    invoice = billing_service.get_invoice_or_404(invoice_id)
    return jsonify({"invoice": invoice.to_dict(include_services=True)}), 200


@bp_billing.put("/<int:invoice_id>/payment")
@roles_required(*BILLING_ROLES)
def record_payment(invoice_id: int) -> tuple[dict[str, object], int]:
    """Record a payment against an invoice.
    ---
    tags:
      - Billing
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            paid_amount:
              type: number
              description: Amount paid to date
            payment_method:
              type: string
              enum: [cash, card, upi, bank_transfer]
            notes:
              type: string
    responses:
      200:
        description: Payment recorded and status recomputed
      400:
        description: Overpayment or refunded invoice
      404:
        description: Invoice not found
    """
    payload = parse_body(PaymentRecord)
    invoice = billing_service.record_payment(invoice_id, payload.paid_amount, payload.payment_method, payload.notes)
    return jsonify({"message": "Payment recorded successfully", "invoice": invoice.to_dict()}), 200


@bp_billing.put("/<int:invoice_id>/refund")
@roles_required(*BILLING_ROLES)
def refund_invoice(invoice_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(RefundRequest)
    invoice = billing_service.refund_invoice(invoice_id, payload.notes)
    return jsonify({"message": "Invoice refunded", "invoice": invoice.to_dict()}), 200


@bp_billing.post("/<int:invoice_id>/payment-intent")
@roles_required(*BILLING_ROLES)
def create_payment_intent(invoice_id: int) -> tuple[dict[str, object], int]:
    """Create a Stripe PaymentIntent for the outstanding balance.
    ---
    tags:
      - Billing
    responses:
      200:
        description: Payment intent created
        schema:
          type: object
          properties:
            client_secret:
              type: string
            payment_intent_id:
              type: string
      400:
        description: Nothing outstanding
      502:
        description: Stripe unavailable or not configured
    """
    return jsonify(billing_service.create_payment_intent(invoice_id)), 200


@bp_billing.post("/<int:invoice_id>/confirm-card-payment")
@roles_required(*BILLING_ROLES)
def confirm_card_payment(invoice_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(CardPaymentConfirm)
    status, invoice = billing_service.confirm_card_payment(invoice_id, payload.payment_intent_id)
    return jsonify({"status": status, "invoice": invoice.to_dict()}), 200


@bp_billing.get("/outstanding/list")
@login_required
def outstanding_invoices() -> tuple[dict[str, object], int]:
    invoices = billing_service.list_outstanding()
    return jsonify({"invoices": [invoice.to_dict() for invoice in invoices]}), 200


@bp_billing.get("/stats/overview")
@login_required
def billing_stats() -> tuple[dict[str, object], int]:
    return jsonify({"stats": billing_service.stats()}), 200
