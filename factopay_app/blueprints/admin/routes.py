# factopay_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import request, jsonify, current_app
from sqlalchemy import true
from ..admin import admin_bp
from ...decorators import admin_required, current_identity
from ...errors import NotFoundError, StateConflict, ValidationError
from ...extensions import db
from ...models import PaymentOrder
from ...models.payment_order import COMPLETED, REFUNDED, STATUSES
from ...services.admin_activation import activate
from ...services.gateway import get_gateway
from ...services.order_state import refund_order


def _page_args() -> tuple[int, int]:
    try:
        page = max(1, int(request.args.get("page", 1)))
        limit = min(100, max(1, int(request.args.get("limit", 10))))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    return page, limit

def _paginated(query, key: str):
    page, limit = _page_args()
    p = query.paginate(page=page, per_page=limit, error_out=False)
    return jsonify({
        key: [o.to_dict(include_user=True) for o in p.items],
        "pagination": {"total": p.total, "page": page, "limit": limit, "totalPages": p.pages},
    })

def _get_order(order_id: int) -> PaymentOrder:
    order = db.session.get(PaymentOrder, order_id)
    if order is None:
        raise NotFoundError(f"Payment order {order_id} not found", orderId=order_id)
    return order


# ---------------- ADMIN: Orders ----------------
@admin_bp.route("/payments")
@admin_required
def all_payments():
    query = PaymentOrder.query.order_by(PaymentOrder.created_at.desc(), PaymentOrder.id.desc())
    status = request.args.get("status")
    if status:
        if status not in STATUSES:
            raise ValidationError(f"Unknown status {status!r}")
        query = query.filter(PaymentOrder.status == status)
    return _paginated(query, "payments")


@admin_bp.route("/consultations")
@admin_required
def consultations():
    """Consultation orders waiting for (or already given) admin activation."""
    query = PaymentOrder.query.filter(PaymentOrder.is_consultation_payment == true())
    state = request.args.get("status", "pending")
    if state == "pending":
        query = query.filter(PaymentOrder.status == "pending")
    elif state == "activated":
        query = query.filter(PaymentOrder.payment_activated_by_admin == true())
    elif state != "all":
        raise ValidationError("status must be pending, activated or all")
    return _paginated(query.order_by(PaymentOrder.created_at.desc(), PaymentOrder.id.desc()), "consultations")


@admin_bp.route("/payment-orders/<int:order_id>/activate", methods=["POST"])
@admin_required
def activate_order(order_id):
    admin = current_identity()
    result = activate(order_id, admin["id"])
    current_app.logger.info("Order %s activated as %s by admin %s", order_id, result.order.status, admin["id"])
    return jsonify(paymentOrder=result.order.to_dict())


@admin_bp.route("/payment-orders/<int:order_id>/refund", methods=["POST"])
@admin_required
def refund(order_id):
    """Refunds the captured payment at the gateway, then marks the order refunded.
    The refund.processed webhook that follows is an idempotent replay."""
    admin = current_identity()
    order = _get_order(order_id)
    if order.status == REFUNDED:
        return jsonify(paymentOrder=order.to_dict(), alreadyApplied=True)
    if order.status != COMPLETED or not order.transaction_id:
        raise StateConflict(f"Order {order_id} is {order.status}; only completed orders can be refunded",
                            orderId=order_id, currentStatus=order.status)

    refund_id = get_gateway().refund_payment(order.transaction_id, order.amount)
    result = refund_order(order, refund_id, source=f"admin:{admin['id']}")
    return jsonify(paymentOrder=result.order.to_dict(), alreadyApplied=result.already_applied)
