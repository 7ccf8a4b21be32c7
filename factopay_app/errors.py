# factopay_app/errors.py
# -*- coding: utf-8 -*-
"""Error taxonomy of the payment flows.

Every error raised by the services carries a ``kind`` (stable, machine
readable) and the HTTP status it maps to. ``register_error_handlers`` turns
them into JSON bodies at the request boundary, so no failure ever escapes a
view as an unhandled exception.
"""
from __future__ import annotations

from flask import current_app, jsonify, request
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException


class PaymentError(Exception):
    kind = "payment_error"
    status_code = 500

    def __init__(self, message: str = "", **extra):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        body.update(self.extra)
        return body


class ValidationError(PaymentError):
    kind = "validation_error"
    status_code = 400


class InvalidOrderError(ValidationError):
    kind = "invalid_order"


class MalformedEvent(ValidationError):
    kind = "malformed_event"


class NotFoundError(PaymentError):
    kind = "not_found"
    status_code = 404


class SignatureInvalid(PaymentError):
    kind = "signature_invalid"
    status_code = 400

    def __init__(self, reason: str = "signature_mismatch", **extra):
        super().__init__(f"Invalid signature ({reason})", reason=reason, **extra)
        self.reason = reason


class StateConflict(PaymentError):
    kind = "state_conflict"
    status_code = 409


class GatewayError(PaymentError):
    kind = "gateway_error"
    status_code = 502

    def __init__(self, message: str = "", retryable: bool = False, status: int | None = None, **extra):
        super().__init__(message, retryable=retryable, **extra)
        self.retryable = retryable
        self.status = status


class GatewayConfigError(GatewayError):
    kind = "gateway_not_configured"
    status_code = 500


class TransientError(PaymentError):
    kind = "transient_error"
    status_code = 503


class AuthenticationRequired(PaymentError):
    kind = "authentication_required"
    status_code = 401


class AdminRequired(PaymentError):
    kind = "admin_required"
    status_code = 403


def _context() -> str:
    # enough to reconcile by hand: route + any order/event reference in the body
    data = request.get_json(silent=True) or {}
    ref = {k: data[k] for k in ("orderId", "gatewayOrderId", "event") if isinstance(data, dict) and k in data}
    return f"{request.method} {request.path} {ref or ''}".strip()


def register_error_handlers(app):
    @app.errorhandler(PaymentError)
    def _payment_error(err: PaymentError):
        if err.status_code >= 500:
            current_app.logger.error("%s: %s [%s]", err.kind, err.message, _context())
        else:
            current_app.logger.warning("%s: %s [%s]", err.kind, err.message, _context())
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(OperationalError)
    def _db_unavailable(err):
        current_app.logger.exception("Database unavailable [%s]", _context())
        body = TransientError("Storage temporarily unavailable").to_dict()
        return jsonify(body), TransientError.status_code

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        return jsonify(error=(err.name or "http_error").lower().replace(" ", "_"),
                       message=err.description), err.code

    @app.errorhandler(Exception)
    def _unexpected(err):
        current_app.logger.exception("Unhandled error [%s]", _context())
        return jsonify(error="internal_error", message="Internal server error"), 500
