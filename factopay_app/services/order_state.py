# factopay_app/services/order_state.py
# -*- coding: utf-8 -*-
"""Order state machine.

    pending   -> completed | failed | free_consultation | free_service
    completed -> refunded

Every transition is one conditional UPDATE:

    UPDATE payment_orders SET status = :target, ...
     WHERE id = :id AND status = :expected

Only the caller whose UPDATE matched a row (rowcount == 1) runs the side
effects, inside the same DB transaction. Racing callers (verify-payment vs.
webhook, webhook redeliveries) see rowcount == 0, re-read the row and get
either "already applied" (current status == target) or ``StateConflict``.
"""
from __future__ import annotations

import calendar
from datetime import datetime
from typing import Callable, NamedTuple, Optional

from flask import current_app
from sqlalchemy import true

from ..errors import NotFoundError, StateConflict, ValidationError
from ..extensions import db
from ..models.audit import PaymentAuditLog
from ..models.payment_order import (
    COMPLETED, FAILED, FREE_CONSULTATION, FREE_SERVICE, PENDING, REFUNDED,
    PaymentOrder, PaymentOrderItem,
)
from ..models.user_purchase import UserPurchase
from .pricing import normalize_period

PERIOD_MONTHS = {"monthly": 1, "quarterly": 3, "half_yearly": 6, "yearly": 12}


class TransitionResult(NamedTuple):
    order: PaymentOrder
    applied: bool           # False: someone else already committed the same target

    @property
    def already_applied(self) -> bool:
        return not self.applied


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year, month = dt.year + month_index // 12, month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def purchase_expiry(item_type: str, billing_period: Optional[str], start: datetime) -> Optional[datetime]:
    months = PERIOD_MONTHS.get(normalize_period(billing_period))
    if item_type != "service" or not months:
        return None
    return _add_months(start, months)


# ---------- side effects (run only by the winning UPDATE) ----------
def _grant_purchases(order_id: int) -> None:
    order = db.session.get(PaymentOrder, order_id)
    now = datetime.utcnow()
    items = PaymentOrderItem.query.filter_by(order_id=order_id).order_by(PaymentOrderItem.position).all()
    for it in items:
        db.session.add(UserPurchase(
            user_id=order.user_id,
            item_type=it.item_type,
            item_id=it.item_id,
            selected_features=list(it.selected_features or []),
            billing_period=it.billing_period or "one_time",
            payment_order_id=order_id,
            status="active",
            expiry_date=purchase_expiry(it.item_type, it.billing_period, now),
        ))


def _cancel_purchases(order_id: int) -> None:
    UserPurchase.query.filter_by(payment_order_id=order_id, status="active") \
        .update({"status": "cancelled", "updated_at": datetime.utcnow()}, synchronize_session=False)


# ---------- compare-and-set ----------
def _compare_and_set(order_id: int, expected: str, values: dict, extra_where=()) -> bool:
    table = PaymentOrder.__table__
    stmt = (
        table.update()
        .where(table.c.id == order_id, table.c.status == expected, *extra_where)
        .values(updated_at=datetime.utcnow(), **values)
    )
    return db.session.execute(stmt).rowcount == 1


def _transition(order: PaymentOrder, expected: str, target: str, values: dict, *, source: str,
                ref: Optional[str] = None, side_effect: Optional[Callable[[int], None]] = None,
                replayable: bool = True, extra_where=()) -> TransitionResult:
    order_id = order.id
    try:
        won = _compare_and_set(order_id, expected, {"status": target, **values}, extra_where)
        if won:
            if side_effect:
                side_effect(order_id)
            PaymentAuditLog.record("transition", order_id, ref, f"{expected} -> {target} via {source}")
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if won:
        current_app.logger.info("Order %s: %s -> %s (%s)", order_id, expected, target, source)
        return TransitionResult(_reload(order_id), True)

    db.session.rollback()
    current = _reload(order_id)
    if replayable and current.status == target:
        current_app.logger.info("Order %s already %s, %s replay ignored", order_id, target, source)
        PaymentAuditLog.record("transition_replayed", order_id, ref, f"{target} via {source}")
        db.session.commit()
        return TransitionResult(current, False)

    PaymentAuditLog.record("transition_conflict", order_id, ref,
                           f"{current.status} -> {target} via {source} rejected")
    db.session.commit()
    raise StateConflict(
        f"Order {order_id} is {current.status}; cannot move to {target}",
        orderId=order_id, currentStatus=current.status, targetStatus=target,
    )


def _reload(order_id: int) -> PaymentOrder:
    order = db.session.get(PaymentOrder, order_id, populate_existing=True)
    if order is None:
        raise NotFoundError(f"Payment order {order_id} not found", orderId=order_id)
    return order


# ---------- transitions ----------
def complete_order(order: PaymentOrder, payment_id: str, source: str) -> TransitionResult:
    """pending -> completed, granting the purchased items exactly once."""
    if not payment_id:
        raise ValidationError("Completion requires the gateway payment id")
    result = _transition(
        order, PENDING, COMPLETED, {"transaction_id": payment_id},
        source=source, ref=f"payment:{payment_id}", side_effect=_grant_purchases,
    )
    if result.already_applied and result.order.transaction_id != payment_id:
        current_app.logger.warning(
            "Order %s completed with %s; %s reported another payment %s",
            result.order.id, result.order.transaction_id, source, payment_id,
        )
    return result


def fail_order(order: PaymentOrder, reason: str, source: str) -> TransitionResult:
    """pending -> failed."""
    return _transition(
        order, PENDING, FAILED, {"failure_reason": (reason or "")[:255] or None},
        source=source, ref=f"failure:{source}",
    )


def refund_order(order: PaymentOrder, refund_id: Optional[str], source: str) -> TransitionResult:
    """completed -> refunded; the purchases granted by the order are cancelled."""
    payment_ref = f"payment:{order.transaction_id}" if order.transaction_id else f"refund:{refund_id}"
    return _transition(
        order, COMPLETED, REFUNDED, {"transaction_id": None, "refund_id": refund_id},
        source=source, ref=payment_ref, side_effect=_cancel_purchases,
    )


def activate_free(order: PaymentOrder, target: str, admin_id: int) -> TransitionResult:
    """pending -> free_consultation | free_service, admin only; never replayable."""
    if target not in (FREE_CONSULTATION, FREE_SERVICE):
        raise ValidationError(f"Unsupported activation target {target!r}")
    table = PaymentOrder.__table__
    return _transition(
        order, PENDING, target,
        {
            "payment_activated_by_admin": True,
            "activated_at": datetime.utcnow(),
            "activated_by": admin_id,
            "payment_method": "admin",
        },
        source="admin", ref=f"admin:{admin_id}", side_effect=_grant_purchases,
        replayable=False, extra_where=(table.c.is_consultation_payment == true(),),
    )
