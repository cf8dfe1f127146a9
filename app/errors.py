"""Domain errors raised by the service layer and their JSON rendering."""
from __future__ import annotations

import pydantic
from flask import Flask, current_app, jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db


class ServiceError(Exception):
    """Base class for errors a service reports back to the caller."""

    status_code = 400
    code = "invalid_request"

    def __init__(self, message: str, *, code: str | None = None, details: object = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    status_code = 400
    code = "invalid_payload"


class AuthenticationError(ServiceError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    code = "conflict"


class PaymentGatewayError(ServiceError):
    status_code = 502
    code = "payment_error"


class StorageError(ServiceError):
    status_code = 502
    code = "upload_failed"


def register_error_handlers(app: Flask) -> None:
    """Render every failure as ``{"error": ..., "message": ...}``."""

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(pydantic.ValidationError)
    def handle_schema_error(exc: pydantic.ValidationError):
        details = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return jsonify({"error": "invalid_payload", "message": "Request validation failed", "details": details}), 400

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        current_app.logger.warning("Integrity constraint violated: %s", exc.orig)
        return jsonify({"error": "conflict", "message": "Record conflicts with existing data"}), 409

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database error", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error", exc_info=exc)
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred"}), 500
