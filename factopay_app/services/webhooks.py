# factopay_app/services/webhooks.py
# -*- coding: utf-8 -*-
"""Razorpay webhook ingest.

Order of work is fixed: signature over the raw body, then parsing, then the
order lookup, then the state transition. Nothing touches an order before the
signature has been accepted.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional, Union

from flask import current_app

from ..errors import MalformedEvent, StateConflict, TransientError
from ..extensions import db
from ..models.audit import PaymentAuditLog
from ..models.payment_order import PENDING, PaymentOrder
from .order_state import TransitionResult, complete_order, fail_order, refund_order
from .signatures import require_valid, verify_webhook_signature


# ---------- event variants ----------
@dataclass(frozen=True)
class PaymentCaptured:
    gateway_order_id: str
    payment_id: str
    method: Optional[str] = None
    amount: Optional[int] = None


@dataclass(frozen=True)
class OrderPaid:
    gateway_order_id: str
    payment_id: str


@dataclass(frozen=True)
class PaymentFailed:
    gateway_order_id: str
    payment_id: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class RefundProcessed:
    gateway_order_id: str
    payment_id: str
    refund_id: str


@dataclass(frozen=True)
class IgnoredEvent:
    event: str


WebhookEvent = Union[PaymentCaptured, OrderPaid, PaymentFailed, RefundProcessed, IgnoredEvent]


def _entity(payload: dict, name: str) -> dict:
    try:
        entity = payload["payload"][name]["entity"]
    except (KeyError, TypeError):
        raise MalformedEvent(f"Event without payload.{name}.entity", event=payload.get("event"))
    if not isinstance(entity, dict):
        raise MalformedEvent(f"payload.{name}.entity must be an object", event=payload.get("event"))
    return entity


def _required(entity: dict, key: str, event: str) -> str:
    value = entity.get(key)
    if not value or not isinstance(value, str):
        raise MalformedEvent(f"{event}: missing {key}", event=event)
    return value


def parse_event(payload) -> WebhookEvent:
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise MalformedEvent("Webhook body must be an object with an 'event' field")
    event = payload["event"]

    if event == "payment.captured":
        pay = _entity(payload, "payment")
        amount = pay.get("amount")
        return PaymentCaptured(
            gateway_order_id=_required(pay, "order_id", event),
            payment_id=_required(pay, "id", event),
            method=pay.get("method"),
            amount=amount if isinstance(amount, int) else None,
        )
    if event == "order.paid":
        order = _entity(payload, "order")
        pay = _entity(payload, "payment")
        return OrderPaid(gateway_order_id=_required(order, "id", event),
                         payment_id=_required(pay, "id", event))
    if event == "payment.failed":
        pay = _entity(payload, "payment")
        return PaymentFailed(
            gateway_order_id=_required(pay, "order_id", event),
            payment_id=_required(pay, "id", event),
            reason=pay.get("error_description") or pay.get("error_code"),
        )
    if event == "refund.processed":
        refund = _entity(payload, "refund")
        pay = _entity(payload, "payment")
        return RefundProcessed(
            gateway_order_id=_required(pay, "order_id", event),
            payment_id=_required(refund, "payment_id", event),
            refund_id=_required(refund, "id", event),
        )
    return IgnoredEvent(event=event)


# ---------- ingest ----------
def _find_order(gateway_order_id: str, event_name: str) -> PaymentOrder:
    order = PaymentOrder.query.filter_by(gateway_order_id=gateway_order_id).first()
    if order is None:
        # may be replication lag right after creation: make the gateway redeliver
        raise TransientError(
            f"Order {gateway_order_id} not visible yet",
            gatewayOrderId=gateway_order_id, event=event_name,
        )
    return order


def _apply(event: WebhookEvent, event_name: str) -> Optional[TransitionResult]:
    if isinstance(event, IgnoredEvent):
        return None
    order = _find_order(event.gateway_order_id, event_name)
    source = f"webhook:{event_name}"
    if isinstance(event, (PaymentCaptured, OrderPaid)):
        if isinstance(event, PaymentCaptured) and event.amount is not None and event.amount != order.amount:
            current_app.logger.warning("Order %s captured %s but was created for %s",
                                       order.id, event.amount, order.amount)
        return complete_order(order, event.payment_id, source=source)
    if isinstance(event, PaymentFailed):
        return fail_order(order, event.reason or "payment failed", source=source)
    return refund_order(order, event.refund_id, source=source)


def process_webhook(raw_body: bytes, signature: Optional[str]) -> dict:
    """Verifies, parses and applies one delivery; returns the JSON ack body.

    Raises ``SignatureInvalid`` (400), ``MalformedEvent`` (400) or
    ``TransientError`` (503). An event that arrives while the order is still
    pending but only applies after a later step (a refund before its capture)
    is a ``TransientError`` too. A conflict with a settled order (e.g. a late
    ``payment.failed`` after completion) is acknowledged: redelivering it
    cannot change the outcome.
    """
    check = verify_webhook_signature(current_app.config.get("RAZORPAY_WEBHOOK_SECRET"), raw_body, signature)
    if not check.ok:
        PaymentAuditLog.record("signature_rejected", None, "webhook", f"reason={check.reason}")
        db.session.commit()
        current_app.logger.warning("Webhook rejected: %s", check.reason)
        require_valid(check)

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise MalformedEvent("Webhook body is not valid JSON")

    event = parse_event(payload)
    event_name = payload["event"]

    if isinstance(event, IgnoredEvent):
        current_app.logger.info("Webhook event %s ignored", event_name)
        PaymentAuditLog.record("webhook_ignored", None, f"event:{event_name}")
        db.session.commit()
        return {"status": "ignored", "event": event_name}

    try:
        result = _apply(event, event_name)
    except StateConflict as e:
        if e.extra.get("currentStatus") == PENDING:
            # refund.processed ahead of payment.captured
            raise TransientError(
                f"Order {e.extra.get('orderId')} is still pending; {event_name} must be redelivered",
                orderId=e.extra.get("orderId"), event=event_name,
            )
        current_app.logger.warning("Webhook %s for %s conflicts: %s", event_name, event.gateway_order_id, e.message)
        return {"status": "conflict", "event": event_name, "orderId": e.extra.get("orderId")}

    return {
        "status": "ok",
        "event": event_name,
        "orderId": result.order.id,
        "orderStatus": result.order.status,
        "alreadyApplied": result.already_applied,
    }
