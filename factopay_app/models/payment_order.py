# factopay_app/models/payment_order.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db
from ..services.pricing import adjusted_price

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
REFUNDED = "refunded"
FREE_CONSULTATION = "free_consultation"
FREE_SERVICE = "free_service"

STATUSES = (PENDING, COMPLETED, FAILED, REFUNDED, FREE_CONSULTATION, FREE_SERVICE)


class PaymentOrder(db.Model):
    __tablename__ = "payment_orders"

    id = db.Column(db.Integer, primary_key=True)
    # sent to the gateway as "receipt": lets it dedupe retried creations
    receipt = db.Column(db.String(40), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)

    # always minor units (paise) to avoid float
    amount = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="razorpay")  # razorpay, consultation, admin

    gateway_order_id = db.Column(db.String(64), unique=True, index=True)   # order_xxx
    transaction_id = db.Column(db.String(64), unique=True)                 # pay_xxx, only while completed
    refund_id = db.Column(db.String(64))                                   # rfnd_xxx
    failure_reason = db.Column(db.String(255))

    # consultation flow (zero cost / admin approved)
    is_consultation_payment = db.Column(db.Boolean, nullable=False, default=False)
    consultation_price = db.Column(db.Integer)

    # set only by the admin activation, never cleared
    payment_activated_by_admin = db.Column(db.Boolean, nullable=False, default=False)
    activated_at = db.Column(db.DateTime)
    activated_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "PaymentOrderItem", back_populates="order", order_by="PaymentOrderItem.position",
        cascade="all, delete-orphan", lazy="selectin",
    )
    user = db.relationship("User", back_populates="payment_orders", foreign_keys=[user_id])

    @property
    def total_amount(self) -> int:
        total = sum(adjusted_price(it.price, it.billing_period) for it in self.items)
        if self.is_consultation_payment and self.consultation_price:
            total += self.consultation_price
        return total

    def to_dict(self, include_user: bool = False) -> dict:
        data = {
            "id": self.id,
            "receipt": self.receipt,
            "userId": self.user_id,
            "amount": self.amount,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "status": self.status,
            "paymentMethod": self.payment_method,
            "gatewayOrderId": self.gateway_order_id,
            "transactionId": self.transaction_id,
            "refundId": self.refund_id,
            "failureReason": self.failure_reason,
            "isConsultationPayment": self.is_consultation_payment,
            "consultationPrice": self.consultation_price,
            "paymentActivatedByAdmin": self.payment_activated_by_admin,
            "activatedAt": self.activated_at.isoformat() if self.activated_at else None,
            "activatedBy": self.activated_by,
            "items": [it.to_dict() for it in self.items],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        # joined identity lives under its own key, "userId" is always the plain id
        if include_user and self.user is not None:
            data["user"] = self.user.summary()
        return data

    def __repr__(self):
        return f"<PaymentOrder {self.id} {self.status}>"


class PaymentOrderItem(db.Model):
    __tablename__ = "payment_order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("payment_orders.id"), index=True, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    item_type = db.Column(db.String(16), nullable=False)     # course, service
    item_id = db.Column(db.String(64), nullable=False)
    price = db.Column(db.Integer, nullable=False)            # base price, minor units
    billing_period = db.Column(db.String(16))                # monthly, quarterly, half_yearly, yearly, one_time
    selected_features = db.Column(db.JSON, default=list)

    order = db.relationship("PaymentOrder", back_populates="items")

    @property
    def adjusted_price(self) -> int:
        return adjusted_price(self.price, self.billing_period)

    def to_dict(self) -> dict:
        return {
            "itemType": self.item_type,
            "itemId": self.item_id,
            "price": self.price,
            "adjustedPrice": self.adjusted_price,
            "billingPeriod": self.billing_period,
            "selectedFeatures": list(self.selected_features or []),
        }
