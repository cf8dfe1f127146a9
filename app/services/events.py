"""In-process domain events.

Bookings, job cards and invoices are independent state machines. Services call
:func:`publish` after committing a state change; listeners registered by
:func:`register_listeners` react only when the matching policy flag is set in
the app config. Listeners live on ``app.extensions`` so every app instance has
its own set.
"""
from __future__ import annotations

from typing import Any, Callable

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ServiceError
from ..extensions import db

BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_COMPLETED = "booking_completed"
JOB_CARD_DELIVERED = "job_card_delivered"

Listener = Callable[..., None]

_EXTENSION_KEY = "domain_events"


def subscribe(app: Flask, event: str, listener: Listener) -> None:
    listeners = app.extensions.setdefault(_EXTENSION_KEY, {})
    listeners.setdefault(event, []).append(listener)


def publish(event: str, **payload: Any) -> None:
    """Run every listener registered for ``event`` on the current app."""
    listeners = current_app.extensions.get(_EXTENSION_KEY, {}).get(event, [])
    for listener in listeners:
        current_app.logger.debug("Dispatching %s to %s", event, listener.__name__)
        try:
            listener(**payload)
        except ServiceError as exc:
            # The triggering change is already committed; a policy that
            # cannot apply is reported, not raised.
            current_app.logger.warning("Policy %s skipped for %s: %s", listener.__name__, event, exc.message)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Policy %s failed for %s", listener.__name__, event, exc_info=exc)


# =============== POLICIES ==================
def create_job_card_for_booking(booking_id: int, **_: Any) -> None:
    from . import job_card_service

    job_card = job_card_service.create_job_card(booking_id)
    current_app.logger.info("Auto-created job card %s for booking %s", job_card.job_card_id, booking_id)


def complete_booking_for_job_card(booking_id: int, **_: Any) -> None:
    from . import booking_service

    booking_service.advance_to_completed(booking_id)


def generate_invoice_for_booking(booking_id: int, **_: Any) -> None:
    from . import billing_service

    invoice = billing_service.generate_invoice(booking_id)
    current_app.logger.info("Auto-generated invoice %s for booking %s", invoice.invoice_number, booking_id)


def refresh_customer_on_completion(customer_id: int, **_: Any) -> None:
    from . import customer_service

    customer_service.refresh_customer_aggregates(customer_id)


def register_listeners(app: Flask) -> None:
    """Wire listeners according to the reconciliation flags in ``app.config``."""
    app.extensions[_EXTENSION_KEY] = {}

    subscribe(app, BOOKING_COMPLETED, refresh_customer_on_completion)

    if app.config.get("AUTO_CREATE_JOB_CARD"):
        subscribe(app, BOOKING_CONFIRMED, create_job_card_for_booking)
    if app.config.get("AUTO_COMPLETE_BOOKING"):
        subscribe(app, JOB_CARD_DELIVERED, complete_booking_for_job_card)
    if app.config.get("AUTO_GENERATE_INVOICE"):
        subscribe(app, BOOKING_COMPLETED, generate_invoice_for_booking)
