# factopay_app/services/admin_activation.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models.payment_order import FREE_CONSULTATION, FREE_SERVICE, PaymentOrder
from .order_state import TransitionResult, activate_free


def activation_target(order: PaymentOrder) -> str:
    """Zero-cost consultations become free_consultation; orders an admin
    approved at an agreed consultation price become free_service."""
    return FREE_SERVICE if (order.consultation_price or 0) > 0 else FREE_CONSULTATION


def activate(order_id: int, admin_id: int) -> TransitionResult:
    order = db.session.get(PaymentOrder, order_id)
    if order is None:
        raise NotFoundError(f"Payment order {order_id} not found", orderId=order_id)
    if not order.is_consultation_payment:
        raise ValidationError("This is not a consultation order", orderId=order_id)
    # second activation lands here as StateConflict (not replayable)
    return activate_free(order, activation_target(order), admin_id)
