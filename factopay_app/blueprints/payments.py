# factopay_app/blueprints/payments.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import uuid
from flask import Blueprint, request, jsonify, current_app

from ..decorators import login_required, current_identity
from ..errors import GatewayError, InvalidOrderError, NotFoundError, ValidationError
from ..extensions import db
from ..models.audit import PaymentAuditLog
from ..models.payment_order import PaymentOrder, PaymentOrderItem
from ..services.gateway import get_gateway
from ..services.order_state import complete_order, fail_order
from ..services.pricing import price_items
from ..services.signatures import require_valid, verify_payment_signature
from ..services.webhooks import process_webhook

bp = Blueprint("payments", __name__, url_prefix="/api/v1/payments")


def _json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data

def _new_receipt() -> str:
    # Razorpay caps receipts at 40 chars
    return f"rcpt_{uuid.uuid4().hex}"

def _owned_order(order_id, user: dict) -> PaymentOrder:
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ValidationError("orderId must be an integer")
    order = db.session.get(PaymentOrder, order_id)
    if order is None or (order.user_id != user["id"] and not user.get("is_admin")):
        raise NotFoundError(f"Payment order {order_id} not found", orderId=order_id)
    return order


@bp.route("/initiate-payment", methods=["POST"])
@login_required
def initiate_payment():
    """Prices the cart and opens the gateway order; the local order is only
    stored once the gateway has answered with its order id."""
    user = current_identity()
    data = _json()

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidOrderError("items must be a non-empty list")

    default_currency = current_app.config.get("DEFAULT_CURRENCY", "INR")
    currency = str(data.get("currency") or default_currency).upper()
    if currency != default_currency:
        raise ValidationError(f"Only {default_currency} orders are accepted")

    is_consultation = bool(data.get("isConsultationPayment"))
    consultation_price = data.get("consultationPrice") if is_consultation else None
    quote = price_items(items, data.get("billingPeriod"), currency, consultation_price=consultation_price)

    receipt = _new_receipt()
    gateway_order_id = None
    if not is_consultation:
        if quote.total_amount <= 0:
            raise InvalidOrderError("Order total must be positive; zero-cost orders go through consultation")
        try:
            gateway_order_id = get_gateway().create_order(
                quote.total_amount, currency, receipt, notes={"userId": str(user["id"])}
            )
        except GatewayError as e:
            PaymentAuditLog.record("gateway_error", None, f"receipt:{receipt}", e.message)
            db.session.commit()
            raise

    order = PaymentOrder(
        receipt=receipt,
        user_id=user["id"],
        amount=quote.total_amount,
        currency=currency,
        status="pending",
        payment_method="consultation" if is_consultation else "razorpay",
        gateway_order_id=gateway_order_id,
        is_consultation_payment=is_consultation,
        consultation_price=quote.consultation_price,
        items=[
            PaymentOrderItem(
                position=pos,
                item_type=it.item_type,
                item_id=it.item_id,
                price=it.price,
                billing_period=it.billing_period,
                selected_features=it.selected_features,
            )
            for pos, it in enumerate(quote.items)
        ],
    )
    db.session.add(order)
    db.session.commit()
    current_app.logger.info("Order %s initiated by user %s: %s %s (gateway %s)",
                            order.id, user["id"], order.amount, currency, gateway_order_id)

    return jsonify(
        orderId=order.id,
        gatewayOrderId=gateway_order_id,
        amount=order.amount,
        currency=order.currency,
        keyId=None if is_consultation else get_gateway().key_id,
    ), 201


@bp.route("/verify-payment", methods=["POST"])
@login_required
def verify_payment():
    user = current_identity()
    data = _json()
    gateway_order_id = data.get("gatewayOrderId")
    payment_id = data.get("gatewayPaymentId")
    signature = data.get("signature")
    if not data.get("orderId") or not gateway_order_id or not payment_id or not signature:
        raise ValidationError("Missing payment verification data")

    order = _owned_order(data.get("orderId"), user)
    if order.gateway_order_id != gateway_order_id:
        raise ValidationError("gatewayOrderId does not belong to this order", orderId=order.id)

    check = verify_payment_signature(
        current_app.config.get("RAZORPAY_KEY_SECRET"), gateway_order_id, payment_id, signature
    )
    if not check.ok:
        PaymentAuditLog.record("signature_rejected", order.id, f"payment:{payment_id}",
                               f"verify-payment reason={check.reason}")
        db.session.commit()
        require_valid(check, orderId=order.id)

    result = complete_order(order, payment_id, source="verify")
    return jsonify(
        status=result.order.status,
        orderId=result.order.id,
        transactionId=result.order.transaction_id,
        alreadyApplied=result.already_applied,
    )


@bp.route("/report-failure", methods=["POST"])
@login_required
def report_failure():
    user = current_identity()
    data = _json()
    order = _owned_order(data.get("orderId"), user)
    result = fail_order(order, str(data.get("reason") or "reported by client"), source="client")
    return jsonify(status=result.order.status, orderId=result.order.id, alreadyApplied=result.already_applied)


@bp.route("/payment-orders", methods=["GET"])
@login_required
def my_payment_orders():
    user = current_identity()
    orders = (PaymentOrder.query
              .filter_by(user_id=user["id"])
              .order_by(PaymentOrder.created_at.desc(), PaymentOrder.id.desc())
              .all())
    return jsonify(data=[o.to_dict() for o in orders])


# -------- Razorpay Webhook --------
@bp.route("/razorpay-webhook", methods=["POST"])  # configure the endpoint in the Razorpay dashboard
def razorpay_webhook():
    ack = process_webhook(request.get_data(cache=True), request.headers.get("X-Razorpay-Signature"))
    return jsonify(ack)
